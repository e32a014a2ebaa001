"""Wiring from a recipe config to data loaders, model and trainer inputs."""

import math
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import torch
import torch.nn as nn
from torch.utils.data import DataLoader

from .data.polynomial import PolynomialDataLoader
from .data.speech_commands import SpeechCommandsData, make_resample_transform
from .models import create_model, RAW_INPUT_MODELS
from .models.base_model import BaseModel
from .utils.config import ConfigManager


@dataclass
class TaskSetup:
    """Everything a run needs besides the trainer itself."""

    model: BaseModel
    train_loader: DataLoader
    val_loader: Optional[DataLoader]
    test_loader: Optional[DataLoader]
    input_transform: Optional[nn.Module] = None
    labels: Optional[List[str]] = None
    info: Dict[str, Any] = field(default_factory=dict)


def setup_polynomial(config: ConfigManager) -> TaskSetup:
    data_config = config.get_data_config()
    model_config = dict(config.get_model_config())

    degree = model_config.setdefault('degree', data_config.get('degree', 3))
    loader = PolynomialDataLoader(
        num_points=data_config.get('num_points', 2000),
        x_min=data_config.get('x_min', -math.pi),
        x_max=data_config.get('x_max', math.pi),
        degree=degree,
        raw_features=model_config['model_type'] in RAW_INPUT_MODELS
    )
    train_loader, val_loader, test_loader = loader.create_dataloaders(
        val_split=data_config.get('val_split', 0.0),
        test_split=data_config.get('test_split', 0.0),
        batch_size=data_config.get('batch_size'),
        shuffle=data_config.get('shuffle', False),
        random_seed=data_config.get('random_seed', 42)
    )

    return TaskSetup(
        model=create_model(model_config),
        train_loader=train_loader,
        val_loader=val_loader,
        test_loader=test_loader,
        info={'num_points': loader.num_points, 'degree': degree}
    )


def setup_speech_commands(
    config: ConfigManager,
    device: torch.device,
    dataset_cls=None
) -> TaskSetup:
    """Build Speech Commands loaders, the resample transform and an M5 sized to the labels."""
    data_config = config.get_data_config()
    model_config = dict(config.get_model_config())

    kwargs = {'dataset_cls': dataset_cls} if dataset_cls is not None else {}
    data = SpeechCommandsData(
        root=data_config['root'],
        download=data_config.get('download', True),
        labels=data_config.get('labels'),
        **kwargs
    )
    train_loader, val_loader, test_loader = data.create_dataloaders(
        batch_size=data_config.get('batch_size', 256),
        device=device,
        num_workers=data_config.get('num_workers'),
        pin_memory=data_config.get('pin_memory')
    )

    resample_config = data_config.get('resample')
    input_transform = make_resample_transform(**resample_config) if resample_config else None

    if model_config.get('n_output') is None:
        model_config['n_output'] = data.num_classes
    elif model_config['n_output'] != data.num_classes:
        raise ValueError(f"model.n_output={model_config['n_output']} does not match "
                         f"{data.num_classes} dataset labels")

    return TaskSetup(
        model=create_model(model_config),
        train_loader=train_loader,
        val_loader=val_loader,
        test_loader=test_loader,
        input_transform=input_transform,
        labels=data.labels,
        info={'num_classes': data.num_classes, **data.audio_info()}
    )


def setup_task(config: ConfigManager, device: torch.device, **kwargs) -> TaskSetup:
    logger = logging.getLogger('recipes')
    logger.info(f"Setting up task: {config.task}")

    if config.task == 'polynomial':
        return setup_polynomial(config)
    return setup_speech_commands(config, device, **kwargs)
