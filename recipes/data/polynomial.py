"""Synthetic sin(x) data for the polynomial fitting recipe."""

import math
import logging
from typing import Optional, Tuple

import torch
from torch.utils.data import Dataset, DataLoader


def make_sine_data(
    num_points: int = 2000,
    x_min: float = -math.pi,
    x_max: float = math.pi
) -> Tuple[torch.Tensor, torch.Tensor]:
    """Sample ``y = sin(x)`` on an evenly spaced grid.

    Returns:
        Tuple of ``(x, y)``, both of shape ``(num_points,)``
    """
    if num_points <= 0:
        raise ValueError("num_points must be a positive integer")
    if x_max <= x_min:
        raise ValueError("x_max must be greater than x_min")

    x = torch.linspace(x_min, x_max, num_points)
    y = torch.sin(x)
    return x, y


def polynomial_features(x: torch.Tensor, degree: int = 3) -> torch.Tensor:
    """Stack the powers ``x^1 .. x^degree`` column-wise.

    ``x`` of shape ``(N,)`` becomes ``(N, degree)``; this is the input the
    ``nn.Linear(degree, 1)`` layer of the polynomial model expects.
    """
    if degree < 1:
        raise ValueError("degree must be >= 1")

    p = torch.arange(1, degree + 1, dtype=x.dtype)
    return x.unsqueeze(-1).pow(p)


class PolynomialDataset(Dataset):
    """``(features, target)`` pairs for the sin(x) fit."""

    def __init__(self, x: torch.Tensor, y: torch.Tensor, degree: int = 3, raw_features: bool = False):
        """Initialize PolynomialDataset.

        Args:
            x: Sample points, shape ``(N,)``
            y: Targets, shape ``(N,)``
            degree: Polynomial degree used to expand ``x``
            raw_features: Keep bare ``x`` (for models that compute powers themselves)
        """
        if len(x) != len(y):
            raise ValueError("x and y must have the same length")

        self.x = x
        self.y = y
        self.degree = degree
        self.raw_features = raw_features
        self.features = x if raw_features else polynomial_features(x, degree)

    def __len__(self) -> int:
        return len(self.y)

    def __getitem__(self, idx: int) -> Tuple[torch.Tensor, torch.Tensor]:
        return self.features[idx], self.y[idx]


class PolynomialDataLoader:
    """Builds DataLoaders over the sampled sine curve.

    The tutorial fits all points at once, so by default everything goes into
    the training split and a batch covers the whole set.
    """

    def __init__(
        self,
        num_points: int = 2000,
        x_min: float = -math.pi,
        x_max: float = math.pi,
        degree: int = 3,
        raw_features: bool = False
    ):
        self.num_points = num_points
        self.x_min = x_min
        self.x_max = x_max
        self.degree = degree
        self.raw_features = raw_features
        self.logger = logging.getLogger('recipes')

        self.x, self.y = make_sine_data(num_points, x_min, x_max)

    def create_dataloaders(
        self,
        val_split: float = 0.0,
        test_split: float = 0.0,
        batch_size: Optional[int] = None,
        shuffle: bool = False,
        random_seed: Optional[int] = None
    ) -> Tuple[DataLoader, Optional[DataLoader], Optional[DataLoader]]:
        """Split the samples and wrap each split in a DataLoader.

        Args:
            val_split: Fraction of points held out for validation
            test_split: Fraction of points held out for testing
            batch_size: Batch size, ``None`` for full-batch training
            shuffle: Shuffle the training loader
            random_seed: Seed for the split permutation

        Returns:
            ``(train_loader, val_loader, test_loader)``; empty splits are ``None``
        """
        if val_split < 0 or test_split < 0 or val_split + test_split >= 1.0:
            raise ValueError("val_split and test_split must be non-negative and sum to less than 1.0")

        n_samples = len(self.x)
        n_val = int(val_split * n_samples)
        n_test = int(test_split * n_samples)
        n_train = n_samples - n_val - n_test

        if n_val or n_test:
            generator = torch.Generator()
            if random_seed is not None:
                generator.manual_seed(random_seed)
            indices = torch.randperm(n_samples, generator=generator)
        else:
            indices = torch.arange(n_samples)

        splits = {
            'train': indices[:n_train],
            'val': indices[n_train:n_train + n_val],
            'test': indices[n_train + n_val:]
        }

        loaders = {}
        for name, idx in splits.items():
            if len(idx) == 0:
                loaders[name] = None
                continue
            # Keep each split ordered along x so plotted curves stay readable.
            idx = idx.sort().values
            dataset = PolynomialDataset(self.x[idx], self.y[idx], self.degree, self.raw_features)
            loaders[name] = DataLoader(
                dataset,
                batch_size=batch_size or len(dataset),
                shuffle=shuffle if name == 'train' else False
            )

        self.logger.info(f"Created dataloaders: Train={n_train}, Val={n_val}, Test={n_test}")

        return loaders['train'], loaders['val'], loaders['test']
