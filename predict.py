#!/usr/bin/env python3
"""Run a trained recipe model on new inputs."""

import argparse
import os
import sys
import traceback
from pathlib import Path

import pandas as pd

from recipes.utils.logging import setup_logging
from recipes.utils.device import setup_device
from recipes.inference.predictor import Predictor


AUDIO_SUFFIXES = ('.wav', '.flac', '.mp3', '.ogg')


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Make predictions with a trained recipe model')

    parser.add_argument(
        '--model-path', '-m',
        type=str,
        required=True,
        help='Path to a checkpoint written during training (e.g. best_model.pt)'
    )

    parser.add_argument(
        '--input-file', '-i',
        type=str,
        required=True,
        help='Audio file for classifiers, or CSV/JSON with an "x" column for regressors'
    )

    parser.add_argument(
        '--output-file', '-o',
        type=str,
        default=None,
        help='Where to write regression predictions (CSV or JSON by extension)'
    )

    parser.add_argument(
        '--labels-file',
        type=str,
        default=None,
        help='Text file with one class label per line, overriding the labels stored in the checkpoint'
    )

    parser.add_argument(
        '--device',
        type=str,
        default='auto',
        help='Device to use (auto, cpu, cuda, cuda:0, etc.)'
    )

    parser.add_argument(
        '--log-level',
        type=str,
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level'
    )

    return parser.parse_args(argv)


def load_table(input_file: str) -> pd.DataFrame:
    """Load tabular input from CSV or JSON."""
    file_ext = Path(input_file).suffix.lower()

    if file_ext == '.csv':
        return pd.read_csv(input_file)
    if file_ext == '.json':
        return pd.read_json(input_file)
    raise ValueError(f"Unsupported file format: {file_ext}")


def load_labels(labels_file: str):
    """Read class labels, one per line, skipping blank lines."""
    with open(labels_file, 'r') as f:
        return [line.strip() for line in f if line.strip()]


def write_table(df: pd.DataFrame, output_file: str) -> None:
    """Write predictions as CSV or JSON depending on the extension."""
    directory = os.path.dirname(output_file)
    if directory:
        os.makedirs(directory, exist_ok=True)

    if Path(output_file).suffix.lower() == '.json':
        df.to_json(output_file, orient='records', indent=2)
    else:
        df.to_csv(output_file, index=False)


def main(argv=None):
    """Main inference function."""
    args = parse_arguments(argv)

    logger = setup_logging(args.log_level)
    logger.info("Starting recipe inference")

    try:
        device = setup_device(args.device)
        labels = load_labels(args.labels_file) if args.labels_file else None
        predictor = Predictor(model_path=args.model_path, device=device, labels=labels)

        model_info = predictor.get_model_info()
        logger.info(f"Model type: {model_info['model_type']}, "
                    f"parameters: {model_info['trainable_parameters']:,}")

        if Path(args.input_file).suffix.lower() in AUDIO_SUFFIXES:
            label = predictor.predict_file(args.input_file)
            logger.info(f"Predicted: {label}")
            print(label)
            return 0

        predictions = predictor.predict_dataframe(load_table(args.input_file))
        logger.info(f"Generated {len(predictions)} predictions")

        if args.output_file:
            write_table(predictions, args.output_file)
            logger.info(f"Saved predictions to: {args.output_file}")
        else:
            print(predictions.to_string(index=False))

    except Exception as e:
        logger.error(f"Inference failed with error: {str(e)}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
