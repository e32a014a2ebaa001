"""Datasets and loaders for the recipes."""

from .polynomial import PolynomialDataLoader, PolynomialDataset, make_sine_data, polynomial_features
from .speech_commands import SpeechCommandsData, pad_sequence, make_resample_transform

__all__ = [
    "PolynomialDataLoader",
    "PolynomialDataset",
    "make_sine_data",
    "polynomial_features",
    "SpeechCommandsData",
    "pad_sequence",
    "make_resample_transform",
]
