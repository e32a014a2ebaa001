"""Main training orchestration module."""

import time
import logging
from typing import Dict, Any, List, Optional, Tuple

import torch
import torch.nn as nn
from torch.utils.data import DataLoader

from .metrics import MetricsCalculator
from .optimizers import OptimizerFactory, SchedulerFactory
from .callbacks import (
    CallbackManager, EarlyStoppingCallback, CheckpointCallback,
    LoggingCallback, SchedulerCallback, MetricsCallback,
    GradientClippingCallback, TrainingCurvesCallback
)
from ..models.base_model import BaseModel
from ..utils.directory import DirectoryManager


LOSS_FUNCTIONS = {
    'mse': nn.MSELoss,
    'l1': nn.L1Loss,
    'nll': nn.NLLLoss,
    'cross_entropy': nn.CrossEntropyLoss,
}


def create_loss_function(loss_config: Dict[str, Any]) -> nn.Module:
    """Create a loss module from ``{'type': ..., 'reduction': ...}``."""
    loss_type = loss_config.get('type', 'mse').lower()
    if loss_type not in LOSS_FUNCTIONS:
        raise ValueError(f"Unknown loss type: {loss_type}. Available: {sorted(LOSS_FUNCTIONS)}")
    return LOSS_FUNCTIONS[loss_type](reduction=loss_config.get('reduction', 'mean'))


class Trainer:
    """Runs the train / validate / test loops for any recipe model.

    Everything the loop needs (loss, optimizer, scheduler, callbacks) comes
    from the ``training`` section of the config. An optional
    ``input_transform`` module (e.g. a torchaudio Resample) is moved to the
    device and applied to every input batch before the forward pass.
    """

    def __init__(
        self,
        model: BaseModel,
        config: Dict[str, Any],
        device: Optional[torch.device] = None,
        directory_manager: Optional[DirectoryManager] = None,
        input_transform: Optional[nn.Module] = None,
        labels: Optional[List[str]] = None
    ):
        """Initialize Trainer.

        Args:
            model: Model to train
            config: Full recipe configuration
            device: Device to train on
            directory_manager: Where checkpoints, logs and plots go
            input_transform: Module applied to each input batch on the device
            labels: Class names saved into checkpoints for inference
        """
        self.model = model
        self.config = config
        self.device = device if device else torch.device('cuda' if torch.cuda.is_available() else 'cpu')
        self.directory_manager = directory_manager
        self.labels = labels
        self.logger = logging.getLogger('recipes')

        self.model.to(self.device)
        self.input_transform = input_transform.to(self.device) if input_transform is not None else None

        self.train_loader = None
        self.val_loader = None

        self._initialize_training_components()
        self._initialize_tracking()
        self._initialize_callbacks()

        self.logger.info(f"Initialized trainer on device: {self.device}")

    @property
    def training_config(self) -> Dict[str, Any]:
        return self.config.get('training') or {}

    def _initialize_training_components(self) -> None:
        training_config = self.training_config

        default_loss = 'nll' if self.model.task_type == 'classification' else 'mse'
        self.loss_fn = create_loss_function(training_config.get('loss') or {'type': default_loss})

        optimizer_config = training_config.get('optimizer') or {'type': 'adam', 'learning_rate': 1e-3}
        self.optimizer = OptimizerFactory().create_optimizer(self.model.parameters(), optimizer_config)
        self.scheduler = SchedulerFactory().create_scheduler(self.optimizer, training_config.get('scheduler'))

        self.metrics_calculator = MetricsCalculator(self.model.task_type)
        self.grad_clip_value = training_config.get('gradient_clipping')

    def _initialize_tracking(self) -> None:
        self.current_epoch = 0
        self.global_step = 0
        self.best_val_score = None
        self.best_epoch = 0

    def _output_dir(self, section: Dict[str, Any], key: str, attr: str, default: str) -> str:
        if self.directory_manager:
            return str(getattr(self.directory_manager, attr))
        return section.get(key, default)

    def _initialize_callbacks(self) -> None:
        training_config = self.training_config

        checkpoint_config = training_config.get('checkpointing') or {}
        self.metrics_callback = MetricsCallback(
            monitor=checkpoint_config.get('monitor', 'loss'),
            mode=checkpoint_config.get('mode', 'min')
        )
        callbacks = [self.metrics_callback]

        # Ahead of checkpointing so saved optimizer / scheduler state includes this epoch's step.
        if self.scheduler is not None:
            scheduler_config = training_config.get('scheduler') or {}
            callbacks.append(SchedulerCallback(
                self.scheduler,
                step_mode=scheduler_config.get('step_mode', 'epoch'),
                monitor=scheduler_config.get('monitor', 'loss')
            ))

        early_stopping_config = training_config.get('early_stopping') or {}
        if early_stopping_config.get('enabled', False):
            callbacks.append(EarlyStoppingCallback(
                patience=early_stopping_config.get('patience', 10),
                min_delta=early_stopping_config.get('min_delta', 0.0),
                mode=early_stopping_config.get('mode', 'min'),
                restore_best_weights=early_stopping_config.get('restore_best_weights', True),
                monitor=early_stopping_config.get('monitor', 'loss')
            ))

        if checkpoint_config.get('enabled', True):
            callbacks.append(CheckpointCallback(
                checkpoint_dir=self._output_dir(checkpoint_config, 'checkpoint_dir', 'checkpoints_dir', 'checkpoints'),
                max_checkpoints=checkpoint_config.get('max_checkpoints', 5),
                monitor=checkpoint_config.get('monitor', 'loss'),
                mode=checkpoint_config.get('mode', 'min'),
                save_best_only=checkpoint_config.get('save_best_only', True),
                save_every_n_epochs=checkpoint_config.get('save_every_n_epochs', 1)
            ))

        log_config = training_config.get('logging') or {}
        if log_config.get('enabled', True):
            callbacks.append(LoggingCallback(
                log_dir=self._output_dir(log_config, 'log_dir', 'logs_dir', 'logs'),
                experiment_name=log_config.get('experiment_name', self.config.get('task', 'default')),
                use_mlflow=log_config.get('use_mlflow', False),
                log_interval=log_config.get('log_interval', 20),
                epoch_log_interval=log_config.get('epoch_log_interval', 1),
                tracking_uri=log_config.get('tracking_uri')
            ))

        if self.grad_clip_value is not None:
            callbacks.append(GradientClippingCallback(self.grad_clip_value))

        plot_config = training_config.get('diagnostic_plotting') or {}
        if plot_config.get('enabled', False):
            callbacks.append(TrainingCurvesCallback(
                plot_dir=self._output_dir(plot_config, 'plot_dir', 'plots_dir', 'plots'),
                update_frequency=plot_config.get('update_frequency', 10)
            ))

        self.callback_manager = CallbackManager(callbacks)

    def _prepare_batch(self, inputs: torch.Tensor, targets: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
        inputs = inputs.to(self.device)
        targets = targets.to(self.device)
        if self.input_transform is not None:
            inputs = self.input_transform(inputs)
        return inputs, targets

    def checkpoint_extras(self) -> Dict[str, Any]:
        """Extra state stored with every checkpoint."""
        extras = {'task': self.config.get('task')}
        if self.labels is not None:
            extras['labels'] = list(self.labels)
        transform_config = (self.config.get('data') or {}).get('resample')
        if transform_config:
            extras['resample'] = dict(transform_config)
        return extras

    def train_epoch(self, train_loader: DataLoader) -> Tuple[float, Dict[str, float]]:
        """Train for one epoch.

        Returns:
            Tuple of (average batch loss, metrics)
        """
        self.model.train()
        total_loss = 0.0
        all_outputs = []
        all_targets = []

        for batch_idx, (inputs, targets) in enumerate(train_loader):
            inputs, targets = self._prepare_batch(inputs, targets)

            self.callback_manager.on_batch_start(self, batch_idx, (inputs, targets))

            self.optimizer.zero_grad()
            outputs = self.model(inputs)
            loss = self.loss_fn(outputs, targets)
            loss.backward()

            # Gradient clipping runs here, between backward and step.
            self.callback_manager.on_batch_end(self, batch_idx, (inputs, targets), loss.item(), outputs)

            self.optimizer.step()

            total_loss += loss.item()
            all_outputs.append(outputs.detach())
            all_targets.append(targets.detach())
            self.global_step += 1

        avg_loss = total_loss / len(train_loader)
        metrics = self.metrics_calculator.calculate_metrics(torch.cat(all_outputs), torch.cat(all_targets))
        metrics['loss'] = avg_loss

        return avg_loss, metrics

    def validate_epoch(self, val_loader: DataLoader) -> Tuple[float, Dict[str, float]]:
        """Evaluate without gradient tracking.

        Returns:
            Tuple of (average batch loss, metrics)
        """
        self.model.eval()
        total_loss = 0.0
        all_outputs = []
        all_targets = []

        with torch.no_grad():
            for inputs, targets in val_loader:
                inputs, targets = self._prepare_batch(inputs, targets)

                outputs = self.model(inputs)
                total_loss += self.loss_fn(outputs, targets).item()
                all_outputs.append(outputs)
                all_targets.append(targets)

        avg_loss = total_loss / len(val_loader)
        metrics = self.metrics_calculator.calculate_metrics(torch.cat(all_outputs), torch.cat(all_targets))
        metrics['loss'] = avg_loss

        return avg_loss, metrics

    def train(
        self,
        train_loader: DataLoader,
        val_loader: Optional[DataLoader] = None,
        epochs: int = 100,
        resume_from_checkpoint: Optional[str] = None
    ) -> Dict[str, Any]:
        """Main training loop.

        When no validation data is given the training data is evaluated
        in eval mode instead.

        Returns:
            Training history dictionary
        """
        self.train_loader = train_loader

        if val_loader is None or len(val_loader.dataset) == 0:
            self.logger.info("No validation data provided, evaluating on training data")
            val_loader = train_loader
        self.val_loader = val_loader

        start_epoch = 0
        if resume_from_checkpoint:
            checkpoint_callback = self.callback_manager.get(CheckpointCallback)
            if checkpoint_callback is None:
                raise ValueError("Resuming requires checkpointing to be enabled")
            checkpoint_info = checkpoint_callback.checkpoint_manager.load_checkpoint(
                resume_from_checkpoint, self.model, self.optimizer, self.scheduler, self.device
            )
            start_epoch = checkpoint_info['epoch'] + 1
            self.logger.info(f"Resumed training from epoch {start_epoch}")

        self.logger.info(f"Starting training for {epochs} epochs on {self.device}")
        self.logger.info(f"Model: {self.model.__class__.__name__}, "
                         f"Optimizer: {self.optimizer.__class__.__name__}"
                         + (f", Scheduler: {self.scheduler.__class__.__name__}" if self.scheduler else ""))

        self.callback_manager.on_training_start(self)
        training_start_time = time.time()

        for epoch in range(start_epoch, epochs):
            self.current_epoch = epoch
            self.callback_manager.on_epoch_start(self, epoch)

            _, train_metrics = self.train_epoch(train_loader)
            _, val_metrics = self.validate_epoch(val_loader)

            self.callback_manager.on_epoch_end(self, epoch, train_metrics, val_metrics)

            if self.callback_manager.should_stop_training():
                self.logger.info(f"Training stopped early at epoch {epoch}")
                break

        total_training_time = time.time() - training_start_time
        self.logger.info(f"Training completed in {total_training_time:.2f} seconds")

        self.callback_manager.on_training_end(self)

        return {
            'history': self.metrics_callback.train_history,
            'train_metrics_history': self.metrics_callback.train_metrics_history,
            'val_metrics_history': self.metrics_callback.val_metrics_history,
            'best_val_score': self.best_val_score,
            'best_epoch': self.best_epoch,
            'total_training_time': total_training_time
        }

    def test(self, test_loader: Optional[DataLoader]) -> Dict[str, float]:
        """Evaluate on the test set and log the result."""
        if test_loader is None or len(test_loader.dataset) == 0:
            self.logger.warning("No test data provided, skipping test evaluation")
            return {}

        test_loss, test_metrics = self.validate_epoch(test_loader)

        if self.metrics_calculator.task_type == 'classification':
            self.logger.info(
                f"Test Epoch: {self.current_epoch}\tAccuracy: {test_metrics['correct']}/"
                f"{test_metrics['total']} ({test_metrics['accuracy']:.0f}%)"
            )
        else:
            self.logger.info(f"Test Loss: {test_loss:.6f}")
        self.logger.info(f"Test Metrics: {self.metrics_calculator.format_metrics(test_metrics)}")

        return {'test_loss': test_loss, **test_metrics}

    def get_training_summary(self) -> Dict[str, Any]:
        history = self.metrics_callback.train_history
        return {
            'model_summary': self.model.get_model_summary(),
            'best_val_score': self.best_val_score,
            'best_epoch': self.best_epoch,
            'total_epochs': len(history['epoch']),
            'final_train_loss': history['train_loss'][-1] if history['train_loss'] else None,
            'final_val_loss': history['val_loss'][-1] if history['val_loss'] else None
        }
