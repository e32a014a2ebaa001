"""Optimizer and learning rate scheduler factories."""

import logging
from typing import Any, Dict, Optional, Tuple

import torch
import torch.optim as optim
import torch.optim.lr_scheduler as lr_scheduler


class OptimizerFactory:
    """Builds a ``torch.optim`` optimizer from a config section.

    Example config::

        optimizer:
          type: rmsprop
          learning_rate: 1.0e-3
    """

    SUPPORTED = ('sgd', 'adam', 'adamw', 'rmsprop')

    def __init__(self):
        self.logger = logging.getLogger('recipes')

    def create_optimizer(self, model_parameters, optimizer_config: Dict[str, Any]) -> optim.Optimizer:
        optimizer_type = optimizer_config.get('type', 'adam').lower()
        lr = float(optimizer_config.get('learning_rate', 1e-3))
        weight_decay = float(optimizer_config.get('weight_decay', 0.0))

        if optimizer_type not in self.SUPPORTED:
            raise ValueError(f"Unknown optimizer type: {optimizer_type}. Available: {list(self.SUPPORTED)}")

        self.logger.info(f"Creating {optimizer_type} optimizer with lr={lr}, weight_decay={weight_decay}")

        if optimizer_type == 'sgd':
            return optim.SGD(
                model_parameters,
                lr=lr,
                momentum=float(optimizer_config.get('momentum', 0.0)),
                nesterov=bool(optimizer_config.get('nesterov', False)),
                weight_decay=weight_decay
            )

        if optimizer_type == 'rmsprop':
            return optim.RMSprop(
                model_parameters,
                lr=lr,
                alpha=float(optimizer_config.get('alpha', 0.99)),
                eps=float(optimizer_config.get('eps', 1e-8)),
                momentum=float(optimizer_config.get('momentum', 0.0)),
                centered=bool(optimizer_config.get('centered', False)),
                weight_decay=weight_decay
            )

        betas = (float(optimizer_config.get('beta1', 0.9)), float(optimizer_config.get('beta2', 0.999)))
        eps = float(optimizer_config.get('eps', 1e-8))
        optimizer_cls = optim.Adam if optimizer_type == 'adam' else optim.AdamW
        return optimizer_cls(model_parameters, lr=lr, betas=betas, eps=eps, weight_decay=weight_decay)


class SchedulerFactory:
    """Builds a learning rate scheduler from a config section.

    ``step_mode`` tells the trainer when to step it: ``epoch`` (default) or
    ``batch`` (needed for ``one_cycle``).
    """

    SUPPORTED = ('none', 'step', 'multistep', 'exponential', 'cosine', 'reduce_on_plateau', 'one_cycle')

    def __init__(self):
        self.logger = logging.getLogger('recipes')

    def create_scheduler(self, optimizer: optim.Optimizer, scheduler_config: Optional[Dict[str, Any]]):
        """Return the configured scheduler, or ``None`` for ``type: none`` / no config."""
        if not scheduler_config:
            return None

        scheduler_type = scheduler_config.get('type', 'none').lower()
        if scheduler_type == 'none':
            return None

        self.logger.info(f"Creating {scheduler_type} scheduler")

        if scheduler_type == 'step':
            # Defaults reduce the learning rate tenfold after 20 epochs.
            return lr_scheduler.StepLR(
                optimizer,
                step_size=int(scheduler_config.get('step_size', 20)),
                gamma=float(scheduler_config.get('gamma', 0.1))
            )

        if scheduler_type == 'multistep':
            return lr_scheduler.MultiStepLR(
                optimizer,
                milestones=list(scheduler_config.get('milestones', [30, 60, 90])),
                gamma=float(scheduler_config.get('gamma', 0.1))
            )

        if scheduler_type == 'exponential':
            return lr_scheduler.ExponentialLR(optimizer, gamma=float(scheduler_config.get('gamma', 0.95)))

        if scheduler_type == 'cosine':
            return lr_scheduler.CosineAnnealingLR(
                optimizer,
                T_max=int(scheduler_config.get('T_max', 100)),
                eta_min=float(scheduler_config.get('eta_min', 0.0))
            )

        if scheduler_type == 'reduce_on_plateau':
            return lr_scheduler.ReduceLROnPlateau(
                optimizer,
                mode=scheduler_config.get('mode', 'min'),
                factor=float(scheduler_config.get('factor', 0.1)),
                patience=int(scheduler_config.get('patience', 10)),
                min_lr=float(scheduler_config.get('min_lr', 0.0))
            )

        if scheduler_type == 'one_cycle':
            return lr_scheduler.OneCycleLR(
                optimizer,
                max_lr=float(scheduler_config.get('max_lr', 1e-2)),
                total_steps=scheduler_config.get('total_steps'),
                epochs=scheduler_config.get('epochs'),
                steps_per_epoch=scheduler_config.get('steps_per_epoch'),
                pct_start=float(scheduler_config.get('pct_start', 0.3))
            )

        raise ValueError(f"Unknown scheduler type: {scheduler_type}. Available: {list(self.SUPPORTED)}")

    @staticmethod
    def requires_metric(scheduler) -> bool:
        """ReduceLROnPlateau steps on a monitored value rather than unconditionally."""
        return isinstance(scheduler, lr_scheduler.ReduceLROnPlateau)


def create_optimizer_and_scheduler(
    model_parameters,
    optimizer_config: Dict[str, Any],
    scheduler_config: Optional[Dict[str, Any]] = None
) -> Tuple[optim.Optimizer, Optional[Any]]:
    optimizer = OptimizerFactory().create_optimizer(model_parameters, optimizer_config)
    scheduler = SchedulerFactory().create_scheduler(optimizer, scheduler_config)
    return optimizer, scheduler
