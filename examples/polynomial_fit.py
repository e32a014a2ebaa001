#!/usr/bin/env python3
"""Fit y = sin(x) with the four polynomial models, without a YAML file."""

import math
import sys
import os

# Allow running from a source checkout without installing the package
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from recipes.utils.logging import setup_logging
from recipes.utils.device import setup_device, setup_reproducibility
from recipes.utils.directory import DirectoryManager
from recipes.data.polynomial import PolynomialDataLoader
from recipes.models import create_model, RAW_INPUT_MODELS
from recipes.training.trainer import Trainer
from recipes.inference.predictor import Predictor


RUNS = {
    'polynomial': {
        'model': {'model_type': 'polynomial', 'degree': 3},
        'optimizer': {'type': 'rmsprop', 'learning_rate': 1e-3},
        'epochs': 2000,
    },
    'polynomial3': {
        'model': {'model_type': 'polynomial3'},
        'optimizer': {'type': 'sgd', 'learning_rate': 1e-6},
        'epochs': 2000,
    },
    'legendre': {
        'model': {'model_type': 'legendre'},
        'optimizer': {'type': 'sgd', 'learning_rate': 5e-6},
        'epochs': 2000,
    },
    'dynamic': {
        'model': {'model_type': 'dynamic'},
        'optimizer': {'type': 'sgd', 'learning_rate': 1e-8, 'momentum': 0.9},
        'epochs': 30000,
    },
}


def run(name, run_config, device, output_dir, logger):
    model_config = run_config['model']
    loader = PolynomialDataLoader(
        num_points=2000,
        degree=model_config.get('degree', 3),
        raw_features=model_config['model_type'] in RAW_INPUT_MODELS
    )
    train_loader, _, _ = loader.create_dataloaders()

    model = create_model(model_config)
    config = {
        'task': 'polynomial',
        'model': model_config,
        'training': {
            'epochs': run_config['epochs'],
            'loss': {'type': 'mse', 'reduction': 'sum'},
            'optimizer': run_config['optimizer'],
            'checkpointing': {'enabled': True, 'max_checkpoints': 1},
            'logging': {'enabled': True, 'log_interval': 0, 'epoch_log_interval': run_config['epochs'] // 10},
        }
    }

    directory_manager = DirectoryManager.for_experiment(output_dir, name)
    trainer = Trainer(model, config, device, directory_manager)
    trainer.train(train_loader, epochs=run_config['epochs'])

    logger.info(f"{name}: {model.polynomial_string()}")

    predictor = Predictor(model=model, device=device)
    y = predictor.predict([0.0, math.pi / 2])['predictions']
    logger.info(f"{name}: sin(0) ~ {y[0]:.4f}, sin(pi/2) ~ {y[1]:.4f}")


def main():
    logger = setup_logging('INFO')
    device = setup_device('cpu')
    setup_reproducibility({'random_seed': 42})

    output_dir = os.path.join(os.path.dirname(__file__), 'outputs')
    for name, run_config in RUNS.items():
        logger.info(f"=== {name} ===")
        run(name, run_config, device, output_dir, logger)


if __name__ == '__main__':
    main()
