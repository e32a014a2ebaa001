#!/usr/bin/env python3
"""Train a recipe model from a YAML configuration."""

import argparse
import sys
import traceback

from recipes.utils.config import ConfigManager
from recipes.utils.logging import setup_logging
from recipes.utils.directory import DirectoryManager
from recipes.utils.device import setup_device, setup_reproducibility
from recipes.pipeline import setup_task
from recipes.training.trainer import Trainer


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Train a PyTorch tutorial recipe')

    parser.add_argument(
        '--config', '-c',
        type=str,
        required=True,
        help='Path to configuration file'
    )

    parser.add_argument(
        '--resume',
        type=str,
        default=None,
        help='Path to checkpoint to resume training from'
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

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Setup everything but do not start training'
    )

    parser.add_argument(
        '--output-dir',
        type=str,
        default='experiments',
        help='Root directory for experiment outputs'
    )

    parser.add_argument(
        '--experiment-name',
        type=str,
        default=None,
        help='Experiment name (defaults to <task>_<timestamp>)'
    )

    return parser.parse_args(argv)


def main(argv=None):
    """Main training function."""
    args = parse_arguments(argv)

    logger = setup_logging(args.log_level)
    logger.info("Starting recipe training")

    try:
        logger.info(f"Loading configuration from: {args.config}")
        config = ConfigManager(args.config)

        device = setup_device(args.device)
        logger.info(f"Using device: {device}")

        setup_reproducibility(config.get_experiment_config())

        directory_manager = DirectoryManager.for_experiment(
            args.output_dir, args.experiment_name, task=config.task
        )
        setup_logging(args.log_level, str(directory_manager.logs_dir), config.task)
        config.save_config(str(directory_manager.root_dir / 'config.yaml'))

        task = setup_task(config, device)
        task.model.log_model_summary()
        for key, value in task.info.items():
            logger.info(f"  {key}: {value}")

        if args.dry_run:
            logger.info("Dry run complete. Exiting without training.")
            return 0

        trainer = Trainer(
            task.model,
            config.config,
            device,
            directory_manager,
            input_transform=task.input_transform,
            labels=task.labels
        )

        epochs = config.get('training.epochs')
        trainer.train(
            train_loader=task.train_loader,
            val_loader=task.val_loader,
            epochs=epochs,
            resume_from_checkpoint=args.resume
        )

        trainer.test(task.test_loader)

        if hasattr(task.model, 'polynomial_string'):
            logger.info(f"Result: {task.model.polynomial_string()}")

        summary = trainer.get_training_summary()
        logger.info("Training Summary:")
        if summary["best_val_score"] is not None:
            logger.info(f"  Best score: {summary['best_val_score']:.6f}")
        logger.info(f"  Best epoch: {summary['best_epoch']}")
        logger.info(f"  Total epochs: {summary['total_epochs']}")
        logger.info(f"  Outputs: {directory_manager.root_dir}")

    except Exception as e:
        logger.error(f"Training failed with error: {str(e)}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
