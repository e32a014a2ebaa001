#!/usr/bin/env python3
"""Train M5 on Speech Commands and classify a few test clips.

Downloads the dataset (several GB) into ./data on first use.
"""

import argparse
import sys
import os

# Allow running from a source checkout without installing the package
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from recipes.utils.config import ConfigManager
from recipes.utils.logging import setup_logging
from recipes.utils.device import setup_device, setup_reproducibility
from recipes.utils.directory import DirectoryManager
from recipes.pipeline import setup_task
from recipes.training.trainer import Trainer
from recipes.inference.predictor import Predictor


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument('--config', default=os.path.join(os.path.dirname(__file__), '..', 'configs', 'speech_commands.yaml'))
    parser.add_argument('--epochs', type=int, default=2)
    parser.add_argument('--num-examples', type=int, default=5)
    args = parser.parse_args()

    logger = setup_logging('INFO')
    config = ConfigManager(args.config)
    config.set('training.epochs', args.epochs)

    device = setup_device('auto')
    setup_reproducibility(config.get_experiment_config())
    directory_manager = DirectoryManager.for_experiment('experiments', task=config.task)

    task = setup_task(config, device)
    logger.info(f"Labels: {task.labels}")
    for key, value in task.info.items():
        logger.info(f"  {key}: {value}")

    trainer = Trainer(task.model, config.config, device, directory_manager,
                      input_transform=task.input_transform, labels=task.labels)
    trainer.train(task.train_loader, task.val_loader, epochs=args.epochs)
    trainer.test(task.test_loader)

    predictor = Predictor(model=task.model, device=device,
                          input_transform=task.input_transform, labels=task.labels)
    test_set = task.test_loader.dataset
    for i in range(min(args.num_examples, len(test_set))):
        waveform, _, utterance, *_ = test_set[i]
        logger.info(f"Expected: {utterance}. Predicted: {predictor.predict_label(waveform)}.")


if __name__ == '__main__':
    main()
