"""Training pipeline and utilities."""

from .trainer import Trainer, create_loss_function
from .optimizers import OptimizerFactory, SchedulerFactory, create_optimizer_and_scheduler
from .metrics import MetricsCalculator, get_likely_index, number_of_correct

__all__ = [
    "Trainer",
    "create_loss_function",
    "OptimizerFactory",
    "SchedulerFactory",
    "create_optimizer_and_scheduler",
    "MetricsCalculator",
    "get_likely_index",
    "number_of_correct",
]
