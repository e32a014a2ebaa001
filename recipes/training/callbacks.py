"""Training callbacks for modular training orchestration."""

import logging
from abc import ABC
from pathlib import Path
from typing import Dict, Any, Optional, List, Tuple

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import torch

from .optimizers import SchedulerFactory
from ..utils.checkpoints import CheckpointManager
from ..utils.logging import ExperimentLogger


class Callback(ABC):
    """Base callback class for training hooks."""

    def on_training_start(self, trainer) -> None:
        pass

    def on_epoch_start(self, trainer, epoch: int) -> None:
        pass

    def on_batch_start(self, trainer, batch_idx: int, batch: Tuple) -> None:
        pass

    def on_batch_end(self, trainer, batch_idx: int, batch: Tuple, loss: float, outputs: torch.Tensor) -> None:
        """Called after backward and before the optimizer step."""
        pass

    def on_epoch_end(self, trainer, epoch: int, train_metrics: Dict[str, float], val_metrics: Optional[Dict[str, float]]) -> None:
        pass

    def on_training_end(self, trainer) -> None:
        pass


def _is_better(current: float, best: Optional[float], mode: str, min_delta: float = 0.0) -> bool:
    if best is None:
        return True
    if mode == 'min':
        return current < best - min_delta
    return current > best + min_delta


def _monitored(metrics: Optional[Dict[str, float]], fallback: Dict[str, float], monitor: str) -> Optional[float]:
    source = metrics if metrics else fallback
    return source.get(monitor) if source else None


class MetricsCallback(Callback):
    """Records per-epoch history and keeps the trainer's best score up to date."""

    def __init__(self, monitor: str = 'loss', mode: str = 'min'):
        self.monitor = monitor
        self.mode = mode
        self.train_history = {
            'epoch': [],
            'train_loss': [],
            'val_loss': [],
            'learning_rate': []
        }
        self.train_metrics_history = {}
        self.val_metrics_history = {}

    def on_epoch_end(self, trainer, epoch, train_metrics, val_metrics) -> None:
        self.train_history['epoch'].append(epoch)
        self.train_history['train_loss'].append(train_metrics.get('loss'))
        self.train_history['val_loss'].append(val_metrics.get('loss') if val_metrics else None)
        self.train_history['learning_rate'].append(trainer.optimizer.param_groups[0]['lr'])

        for key, value in train_metrics.items():
            self.train_metrics_history.setdefault(key, []).append(value)
        for key, value in (val_metrics or {}).items():
            self.val_metrics_history.setdefault(key, []).append(value)

        score = _monitored(val_metrics, train_metrics, self.monitor)
        if score is not None and _is_better(score, trainer.best_val_score, self.mode):
            trainer.best_val_score = score
            trainer.best_epoch = epoch


class EarlyStoppingCallback(Callback):
    """Stops training when the monitored metric stops improving."""

    def __init__(
        self,
        patience: int = 10,
        min_delta: float = 0.0,
        mode: str = 'min',
        restore_best_weights: bool = True,
        monitor: str = 'loss'
    ):
        """Initialize EarlyStoppingCallback.

        Args:
            patience: Number of epochs without improvement before stopping
            min_delta: Minimum change to qualify as improvement
            mode: 'min' if lower is better, 'max' if higher is better
            restore_best_weights: Load the best weights back when stopping
            monitor: Validation metric name (train metrics when there is no validation)
        """
        self.patience = patience
        self.min_delta = min_delta
        self.mode = mode
        self.restore_best_weights = restore_best_weights
        self.monitor = monitor

        self.best_score = None
        self.counter = 0
        self.best_epoch = 0
        self.best_state_dict = None
        self.should_stop = False

        self.logger = logging.getLogger('recipes')

    def on_epoch_end(self, trainer, epoch, train_metrics, val_metrics) -> None:
        score = _monitored(val_metrics, train_metrics, self.monitor)
        if score is None:
            return

        if _is_better(score, self.best_score, self.mode, self.min_delta):
            self.best_score = score
            self.best_epoch = epoch
            self.counter = 0
            if self.restore_best_weights:
                self.best_state_dict = {k: v.detach().clone() for k, v in trainer.model.state_dict().items()}
            return

        self.counter += 1
        if self.counter >= self.patience:
            self.logger.info(f"Early stopping triggered after {self.patience} epochs without improvement")
            self.logger.info(f"Best {self.monitor}: {self.best_score:.6f} at epoch {self.best_epoch}")

            if self.restore_best_weights and self.best_state_dict is not None:
                trainer.model.load_state_dict(self.best_state_dict)
                self.logger.info("Restored best model weights")

            self.should_stop = True


class CheckpointCallback(Callback):
    """Saves checkpoints, tagging the best one as ``best_model.pt``."""

    def __init__(
        self,
        checkpoint_dir: str = 'checkpoints',
        max_checkpoints: int = 5,
        monitor: str = 'loss',
        mode: str = 'min',
        save_best_only: bool = True,
        save_every_n_epochs: int = 1
    ):
        self.checkpoint_manager = CheckpointManager(checkpoint_dir, max_checkpoints)
        self.monitor = monitor
        self.mode = mode
        self.save_best_only = save_best_only
        self.save_every_n_epochs = max(1, save_every_n_epochs)
        self.best_score = None

    def on_epoch_end(self, trainer, epoch, train_metrics, val_metrics) -> None:
        score = _monitored(val_metrics, train_metrics, self.monitor)
        if score is None:
            return

        is_best = _is_better(score, self.best_score, self.mode)
        if is_best:
            self.best_score = score

        periodic = (epoch + 1) % self.save_every_n_epochs == 0
        if is_best or (not self.save_best_only and periodic):
            self.checkpoint_manager.save_checkpoint(
                trainer.model, trainer.optimizer, trainer.scheduler,
                epoch, val_metrics or train_metrics, is_best,
                additional_state=trainer.checkpoint_extras()
            )


class LoggingCallback(Callback):
    """Batch progress and epoch summaries in the tutorial's log format."""

    def __init__(
        self,
        log_dir: Optional[str] = None,
        experiment_name: str = 'default',
        use_mlflow: bool = False,
        log_interval: int = 20,
        epoch_log_interval: int = 1,
        tracking_uri: Optional[str] = None
    ):
        """Initialize LoggingCallback.

        Args:
            log_dir: Directory for config snapshots
            experiment_name: Name of the experiment
            use_mlflow: Mirror metrics to MLflow
            log_interval: Log batch progress every N batches, 0 disables it
            epoch_log_interval: Log the epoch summary every N epochs
            tracking_uri: MLflow tracking URI
        """
        self.experiment_logger = ExperimentLogger(
            experiment_name, log_dir=log_dir, use_mlflow=use_mlflow, tracking_uri=tracking_uri
        )
        self.log_interval = log_interval
        self.epoch_log_interval = max(1, epoch_log_interval)
        self.logger = logging.getLogger('recipes')

    def on_training_start(self, trainer) -> None:
        self.experiment_logger.log_config(trainer.config, "training_config.yaml")
        training_config = trainer.training_config
        optimizer_config = training_config.get('optimizer') or {}
        self.experiment_logger.log_hyperparameters({
            'task': trainer.config.get('task'),
            'model_type': trainer.model.model_type,
            'optimizer': optimizer_config.get('type'),
            'learning_rate': optimizer_config.get('learning_rate'),
            'epochs': training_config.get('epochs'),
            'parameters': trainer.model.count_parameters()
        })

    def on_batch_end(self, trainer, batch_idx, batch, loss, outputs) -> None:
        if self.log_interval <= 0 or batch_idx % self.log_interval != 0:
            return

        loader = trainer.train_loader
        total = len(loader.dataset)
        seen = min(batch_idx * (loader.batch_size or 1), total)
        self.logger.info(
            f"Train Epoch: {trainer.current_epoch} [{seen}/{total} "
            f"({100. * batch_idx / len(loader):.0f}%)]\tLoss: {loss:.6f}"
        )

    def on_epoch_end(self, trainer, epoch, train_metrics, val_metrics) -> None:
        self.experiment_logger.log_epoch(epoch, train_metrics, val_metrics)
        if (epoch + 1) % self.epoch_log_interval != 0:
            return

        primary = trainer.metrics_calculator.primary_metric()

        log_msg = f"Epoch {epoch:4d}: Train Loss = {train_metrics.get('loss', 0):.6f}"
        if val_metrics:
            log_msg += f", Val Loss = {val_metrics.get('loss', 0):.6f}"
            if primary in val_metrics:
                log_msg += f", Val {primary} = {val_metrics[primary]:.4f}"
        # Learning rate used during this epoch, recorded before the scheduler stepped.
        lr = trainer.metrics_callback.train_history['learning_rate'][-1]
        log_msg += f", LR = {lr:.2e}"
        self.logger.info(log_msg)

    def on_training_end(self, trainer) -> None:
        self.experiment_logger.log_model(trainer.model)
        self.experiment_logger.close()


class SchedulerCallback(Callback):
    """Steps the learning rate scheduler per epoch or per batch."""

    def __init__(self, scheduler, step_mode: str = 'epoch', monitor: str = 'loss'):
        if step_mode not in ('epoch', 'batch'):
            raise ValueError(f"step_mode must be 'epoch' or 'batch', got {step_mode}")
        self.scheduler = scheduler
        self.step_mode = step_mode
        self.monitor = monitor
        self._pending_batch_step = False

    def on_batch_end(self, trainer, batch_idx, batch, loss, outputs) -> None:
        # on_batch_end runs before optimizer.step(); the scheduler must step after it.
        if self.step_mode == 'batch':
            self._pending_batch_step = True

    def on_batch_start(self, trainer, batch_idx, batch) -> None:
        self._flush()

    def on_epoch_end(self, trainer, epoch, train_metrics, val_metrics) -> None:
        self._flush()
        if self.step_mode != 'epoch':
            return

        if SchedulerFactory.requires_metric(self.scheduler):
            score = _monitored(val_metrics, train_metrics, self.monitor)
            if score is not None:
                self.scheduler.step(score)
        else:
            self.scheduler.step()

    def _flush(self) -> None:
        if self._pending_batch_step:
            self.scheduler.step()
            self._pending_batch_step = False


class GradientClippingCallback(Callback):
    """Clips the gradient norm after backward."""

    def __init__(self, max_norm: float = 1.0):
        self.max_norm = max_norm

    def on_batch_end(self, trainer, batch_idx, batch, loss, outputs) -> None:
        torch.nn.utils.clip_grad_norm_(trainer.model.parameters(), self.max_norm)


class TrainingCurvesCallback(Callback):
    """Plots loss and primary metric curves; for regression also the current fit."""

    def __init__(self, plot_dir: str = 'plots', update_frequency: int = 1):
        self.plot_dir = Path(plot_dir)
        self.plot_dir.mkdir(parents=True, exist_ok=True)
        self.update_frequency = max(1, update_frequency)
        self.logger = logging.getLogger('recipes')

    def on_epoch_end(self, trainer, epoch, train_metrics, val_metrics) -> None:
        if epoch % self.update_frequency == 0:
            self._save(trainer, self.plot_dir / f'training_curves_epoch_{epoch:04d}.png')

    def on_training_end(self, trainer) -> None:
        self._save(trainer, self.plot_dir / 'final_training_curves.png')

    def _save(self, trainer, plot_path: Path) -> None:
        history = trainer.metrics_callback.train_history
        if not history['epoch']:
            return

        is_regression = trainer.metrics_calculator.task_type == 'regression'
        n_panels = 3 if is_regression else 2
        fig, axes = plt.subplots(1, n_panels, figsize=(5 * n_panels, 4))

        epochs = history['epoch']
        axes[0].plot(epochs, history['train_loss'], 'b-', label='Training Loss')
        if any(loss is not None for loss in history['val_loss']):
            axes[0].plot(epochs, history['val_loss'], 'r-', label='Validation Loss')
        axes[0].set_xlabel('Epoch')
        axes[0].set_ylabel('Loss')
        axes[0].set_title('Loss')
        axes[0].legend()
        axes[0].grid(True, alpha=0.3)

        primary = trainer.metrics_calculator.primary_metric()
        train_values = trainer.metrics_callback.train_metrics_history.get(primary, [])
        val_values = trainer.metrics_callback.val_metrics_history.get(primary, [])
        if train_values:
            axes[1].plot(epochs[:len(train_values)], train_values, 'b-', label=f'Training {primary}')
        if val_values:
            axes[1].plot(epochs[:len(val_values)], val_values, 'r-', label=f'Validation {primary}')
        axes[1].set_xlabel('Epoch')
        axes[1].set_title(primary)
        axes[1].legend()
        axes[1].grid(True, alpha=0.3)

        if is_regression:
            self._plot_fit(trainer, axes[2])

        fig.tight_layout()
        fig.savefig(plot_path, dpi=100, bbox_inches='tight')
        plt.close(fig)
        self.logger.debug(f"Saved training curves to {plot_path}")

    @staticmethod
    def _plot_fit(trainer, ax) -> None:
        xs, targets, predictions = [], [], []
        trainer.model.eval()
        with torch.no_grad():
            for inputs, batch_targets in trainer.val_loader:
                outputs = trainer.model(inputs.to(trainer.device)).cpu()
                # The first feature column is x itself for both feature layouts.
                xs.append(inputs[:, 0] if inputs.dim() == 2 else inputs)
                targets.append(batch_targets)
                predictions.append(outputs)

        x = torch.cat(xs)
        order = x.argsort()
        ax.plot(x[order], torch.cat(targets)[order], 'b-', label='Target')
        ax.plot(x[order], torch.cat(predictions)[order], 'r--', label='Prediction')
        ax.set_xlabel('x')
        ax.set_title('Fit')
        ax.legend()
        ax.grid(True, alpha=0.3)


class CallbackManager:
    """Runs each hook on every registered callback in order."""

    def __init__(self, callbacks: List[Callback]):
        self.callbacks = callbacks

    def on_training_start(self, trainer) -> None:
        for callback in self.callbacks:
            callback.on_training_start(trainer)

    def on_epoch_start(self, trainer, epoch: int) -> None:
        for callback in self.callbacks:
            callback.on_epoch_start(trainer, epoch)

    def on_batch_start(self, trainer, batch_idx: int, batch: Tuple) -> None:
        for callback in self.callbacks:
            callback.on_batch_start(trainer, batch_idx, batch)

    def on_batch_end(self, trainer, batch_idx: int, batch: Tuple, loss: float, outputs: torch.Tensor) -> None:
        for callback in self.callbacks:
            callback.on_batch_end(trainer, batch_idx, batch, loss, outputs)

    def on_epoch_end(self, trainer, epoch: int, train_metrics: Dict[str, float], val_metrics: Optional[Dict[str, float]]) -> None:
        for callback in self.callbacks:
            callback.on_epoch_end(trainer, epoch, train_metrics, val_metrics)

    def on_training_end(self, trainer) -> None:
        for callback in self.callbacks:
            callback.on_training_end(trainer)

    def get(self, callback_type) -> Optional[Callback]:
        for callback in self.callbacks:
            if isinstance(callback, callback_type):
                return callback
        return None

    def should_stop_training(self) -> bool:
        return any(getattr(callback, 'should_stop', False) for callback in self.callbacks)
