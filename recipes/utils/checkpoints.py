"""Checkpoints for resuming recipe runs and rebuilding models for inference.

A checkpoint is a plain dict written with ``torch.save``. Besides the
model / optimizer / scheduler state it carries the model config (so
``create_model`` can rebuild the network) and recipe extras such as the
Speech Commands labels and the resample settings.

The optimizer and scheduler state is the state *after* the epoch finished,
including that epoch's scheduler step, so a resumed run continues at
``epoch + 1`` with the same learning rate an uninterrupted run would use.
"""

import os
import re
import shutil
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import torch


BEST_CHECKPOINT = "best_model.pt"

_EPOCH_FILE = re.compile(r"^checkpoint_epoch_(\d+)\.pt$")


def epoch_filename(epoch: int) -> str:
    return f"checkpoint_epoch_{epoch:04d}.pt"


def build_checkpoint(
    model: torch.nn.Module,
    optimizer: torch.optim.Optimizer,
    scheduler: Optional[Any],
    epoch: int,
    metrics: Dict[str, float],
    extras: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    state = {
        'epoch': epoch,
        'metrics': dict(metrics),
        'model_config': getattr(model, 'config', None),
        'model_state_dict': model.state_dict(),
        'optimizer_state_dict': optimizer.state_dict(),
    }
    if scheduler is not None:
        state['scheduler_state_dict'] = scheduler.state_dict()
    # Extras never override the training state above.
    for key, value in (extras or {}).items():
        state.setdefault(key, value)
    return state


def read_checkpoint(checkpoint_path: str, device: Optional[torch.device] = None) -> Dict[str, Any]:
    """Read a checkpoint dictionary written by CheckpointManager."""
    if not os.path.exists(checkpoint_path):
        raise FileNotFoundError(f"Checkpoint not found: {checkpoint_path}")

    # Checkpoints hold plain config dicts and label lists next to tensors.
    return torch.load(checkpoint_path, map_location=device or torch.device('cpu'), weights_only=False)


class CheckpointManager:
    """Writes per-epoch checkpoints into one directory and rotates old ones.

    Layout::

        checkpoint_epoch_0000.pt
        checkpoint_epoch_0001.pt
        best_model.pt            # copy of the best epoch, never rotated
    """

    def __init__(self, checkpoint_dir: str, max_checkpoints: int = 5):
        if max_checkpoints < 1:
            raise ValueError("max_checkpoints must be >= 1")

        self.checkpoint_dir = Path(checkpoint_dir)
        self.max_checkpoints = max_checkpoints
        self.logger = logging.getLogger('recipes')

        self.checkpoint_dir.mkdir(parents=True, exist_ok=True)

    @property
    def best_path(self) -> Path:
        return self.checkpoint_dir / BEST_CHECKPOINT

    def save_checkpoint(
        self,
        model: torch.nn.Module,
        optimizer: torch.optim.Optimizer,
        scheduler: Optional[Any],
        epoch: int,
        metrics: Dict[str, float],
        is_best: bool = False,
        additional_state: Optional[Dict[str, Any]] = None
    ) -> str:
        """Write the epoch checkpoint, and ``best_model.pt`` when ``is_best``.

        Returns:
            Path of the epoch checkpoint
        """
        path = self.checkpoint_dir / epoch_filename(epoch)
        torch.save(build_checkpoint(model, optimizer, scheduler, epoch, metrics, additional_state), path)
        self.logger.debug(f"Saved checkpoint: {path}")

        if is_best:
            shutil.copyfile(path, self.best_path)
            self.logger.info(f"New best model at epoch {epoch}: {self.best_path}")

        self._rotate()
        return str(path)

    def load_checkpoint(
        self,
        checkpoint_path: str,
        model: torch.nn.Module,
        optimizer: Optional[torch.optim.Optimizer] = None,
        scheduler: Optional[Any] = None,
        device: Optional[torch.device] = None
    ) -> Dict[str, Any]:
        """Restore model (and, when given, optimizer / scheduler) state in place.

        Returns:
            ``epoch``, ``metrics``, ``model_config`` and ``labels`` of the checkpoint
        """
        checkpoint = read_checkpoint(checkpoint_path, device)

        model.load_state_dict(checkpoint['model_state_dict'])
        for component, key in ((optimizer, 'optimizer_state_dict'), (scheduler, 'scheduler_state_dict')):
            if component is not None and key in checkpoint:
                component.load_state_dict(checkpoint[key])

        self.logger.info(f"Restored {checkpoint_path} (epoch {checkpoint.get('epoch', 'unknown')})")

        return {
            'epoch': checkpoint.get('epoch', 0),
            'metrics': checkpoint.get('metrics', {}),
            'model_config': checkpoint.get('model_config'),
            'labels': checkpoint.get('labels')
        }

    def get_best_checkpoint(self) -> Optional[str]:
        return str(self.best_path) if self.best_path.exists() else None

    def get_latest_checkpoint(self) -> Optional[str]:
        checkpoints = self.list_checkpoints()
        return checkpoints[-1] if checkpoints else None

    def list_checkpoints(self) -> List[str]:
        """Epoch checkpoints, oldest first."""
        found = []
        for path in self.checkpoint_dir.iterdir():
            match = _EPOCH_FILE.match(path.name)
            if match:
                found.append((int(match.group(1)), path))
        return [str(path) for _, path in sorted(found)]

    def _rotate(self) -> None:
        stale = self.list_checkpoints()[:-self.max_checkpoints]
        for path in stale:
            try:
                os.remove(path)
            except OSError as e:
                self.logger.warning(f"Could not remove old checkpoint {path}: {e}")
