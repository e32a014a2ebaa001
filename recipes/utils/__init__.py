"""Utility functions and classes."""

from .config import ConfigManager
from .logging import setup_logging, ExperimentLogger
from .checkpoints import CheckpointManager
from .directory import DirectoryManager
from .device import setup_device, setup_reproducibility

__all__ = [
    "ConfigManager",
    "setup_logging",
    "ExperimentLogger",
    "CheckpointManager",
    "DirectoryManager",
    "setup_device",
    "setup_reproducibility",
]
