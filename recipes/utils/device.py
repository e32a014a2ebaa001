"""Device selection and run reproducibility."""

import os
import random
import logging
from typing import Any, Dict, Optional

import numpy as np
import torch


def setup_device(device_str: str = 'auto') -> torch.device:
    """Resolve a device string, falling back to CPU when CUDA is unavailable."""
    logger = logging.getLogger('recipes')

    if device_str == 'auto':
        return torch.device('cuda' if torch.cuda.is_available() else 'cpu')

    device = torch.device(device_str)
    if device.type == 'cuda' and not torch.cuda.is_available():
        logger.warning("CUDA not available, falling back to CPU")
        device = torch.device('cpu')

    return device


def setup_reproducibility(experiment_config: Optional[Dict[str, Any]] = None) -> int:
    """Seed python, numpy and torch, and, if requested, switch cuDNN to deterministic mode.

    Returns:
        The seed that was applied
    """
    experiment_config = experiment_config or {}
    random_seed = experiment_config.get('random_seed', 42)
    deterministic = experiment_config.get('deterministic', True)

    random.seed(random_seed)
    np.random.seed(random_seed)
    torch.manual_seed(random_seed)
    if torch.cuda.is_available():
        torch.cuda.manual_seed_all(random_seed)

    if deterministic:
        torch.backends.cudnn.deterministic = True
        torch.backends.cudnn.benchmark = False
        os.environ['PYTHONHASHSEED'] = str(random_seed)

    logging.getLogger('recipes').info(f"Reproducibility enabled with seed: {random_seed}")
    return random_seed
