"""Base model interface for all recipe models."""

import json
import logging
from abc import ABC, abstractmethod
from typing import Dict, Any

import torch
import torch.nn as nn


class BaseModel(nn.Module, ABC):
    """Abstract base class keeping the config a model was built from.

    The config dict is stored in checkpoints so a model can be rebuilt for
    inference without the original YAML file.
    """

    task_type = 'regression'

    def __init__(self, config: Dict[str, Any]):
        super().__init__()
        self.config = dict(config)
        self.model_type = self.config.get('model_type', 'base')
        self.logger = logging.getLogger('recipes')

    @abstractmethod
    def forward(self, x: torch.Tensor) -> torch.Tensor:
        pass

    def count_parameters(self) -> int:
        """Number of trainable parameters."""
        return sum(p.numel() for p in self.parameters() if p.requires_grad)

    def get_model_summary(self) -> Dict[str, Any]:
        total_params = sum(p.numel() for p in self.parameters())

        return {
            'model_type': self.model_type,
            'task_type': self.task_type,
            'total_parameters': total_params,
            'trainable_parameters': self.count_parameters(),
            'config': self.config
        }

    def log_model_summary(self) -> None:
        summary = self.get_model_summary()
        self.logger.info(f"Model: {summary['model_type']} ({summary['task_type']})")
        self.logger.info(f"  Total parameters: {summary['total_parameters']:,}")
        self.logger.info(f"  Trainable parameters: {summary['trainable_parameters']:,}")
        self.logger.debug(f"Architecture:\n{self}")

    def save_model_config(self, filepath: str) -> None:
        with open(filepath, 'w') as f:
            json.dump(self.config, f, indent=2)

    @classmethod
    def load_model_config(cls, filepath: str) -> Dict[str, Any]:
        with open(filepath, 'r') as f:
            return json.load(f)
