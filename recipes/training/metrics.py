"""Evaluation metrics for the regression and classification recipes."""

from typing import Dict

import torch


def get_likely_index(tensor: torch.Tensor) -> torch.Tensor:
    """Find the most likely label index for each element in the batch."""
    return tensor.argmax(dim=-1)


def number_of_correct(pred: torch.Tensor, target: torch.Tensor) -> int:
    """Count number of correct predictions."""
    return pred.squeeze().eq(target).sum().item()


class MetricsCalculator:
    """Computes epoch metrics from concatenated outputs and targets.

    * ``regression``: ``mse``, ``mae``, ``sum_squared_error``
    * ``classification``: ``accuracy`` (percent), ``correct``, ``total``
      from log-probabilities of shape ``(N, classes)``
    """

    SUPPORTED = ('regression', 'classification')

    def __init__(self, task_type: str = 'regression'):
        if task_type not in self.SUPPORTED:
            raise ValueError(f"Unknown task type: {task_type}. Available: {list(self.SUPPORTED)}")
        self.task_type = task_type

    def calculate_metrics(self, predictions: torch.Tensor, targets: torch.Tensor) -> Dict[str, float]:
        predictions = predictions.detach().cpu()
        targets = targets.detach().cpu()

        if self.task_type == 'classification':
            return self._classification_metrics(predictions, targets)
        return self._regression_metrics(predictions, targets)

    @staticmethod
    def _regression_metrics(predictions: torch.Tensor, targets: torch.Tensor) -> Dict[str, float]:
        if predictions.shape != targets.shape:
            raise ValueError(f"Predictions and targets must have same shape. "
                             f"Got {tuple(predictions.shape)} vs {tuple(targets.shape)}")

        error = predictions - targets
        return {
            'mse': error.pow(2).mean().item(),
            'mae': error.abs().mean().item(),
            'sum_squared_error': error.pow(2).sum().item()
        }

    @staticmethod
    def _classification_metrics(log_probs: torch.Tensor, targets: torch.Tensor) -> Dict[str, float]:
        if log_probs.dim() != 2 or log_probs.size(0) != targets.size(0):
            raise ValueError(f"Expected (N, classes) outputs for {targets.size(0)} targets, "
                             f"got {tuple(log_probs.shape)}")

        total = targets.size(0)
        correct = number_of_correct(get_likely_index(log_probs), targets)
        return {
            'accuracy': 100. * correct / total if total else 0.0,
            'correct': correct,
            'total': total
        }

    def primary_metric(self) -> str:
        """Name of the metric used to summarise an epoch."""
        return 'accuracy' if self.task_type == 'classification' else 'mse'

    def format_metrics(self, metrics: Dict[str, float], precision: int = 6) -> str:
        parts = []
        for key, value in metrics.items():
            if isinstance(value, float):
                parts.append(f"{key}: {value:.{precision}f}")
            else:
                parts.append(f"{key}: {value}")
        return ", ".join(parts)
