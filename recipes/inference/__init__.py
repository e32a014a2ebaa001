"""Inference on trained recipe models."""

from .predictor import Predictor, load_audio

__all__ = ["Predictor", "load_audio"]
