"""
Shared pytest fixtures for the recipe tests.

Speech Commands is several gigabytes, so the audio tests run against a small
in-memory stand-in with the same item layout and constructor signature as
torchaudio's SPEECHCOMMANDS.
"""

import logging
import textwrap
from pathlib import Path

import pytest
import torch


FAKE_LABELS = ("yes", "no", "up")
FAKE_SIZES = {"training": 12, "validation": 6, "testing": 6}


class FakeSpeechCommands(torch.utils.data.Dataset):
    """Tiny deterministic dataset of 1 s, 16 kHz clips."""

    def __init__(self, root, download=False, subset=None):
        self.root = root
        self.subset = subset
        self.size = FAKE_SIZES[subset]
        generator = torch.Generator().manual_seed(sorted(FAKE_SIZES).index(subset))
        self.waveforms = [torch.randn(1, 16000, generator=generator) * 0.1 for _ in range(self.size)]

    def __len__(self):
        return self.size

    def get_metadata(self, n):
        label = FAKE_LABELS[n % len(FAKE_LABELS)]
        return f"{label}/speaker_{n}_nohash_0.wav", 16000, label, f"speaker_{n}", 0

    def __getitem__(self, n):
        _, sample_rate, label, speaker_id, utterance_number = self.get_metadata(n)
        return self.waveforms[n], sample_rate, label, speaker_id, utterance_number


@pytest.fixture(autouse=True)
def _reset_recipes_logger():
    """setup_logging installs handlers on the shared logger; drop them after each test."""
    yield
    logger = logging.getLogger("recipes")
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()


@pytest.fixture()
def fake_dataset_cls():
    return FakeSpeechCommands


@pytest.fixture()
def polynomial_config() -> dict:
    """Small full-batch polynomial run that converges in a few hundred steps."""
    return {
        "task": "polynomial",
        "experiment": {"random_seed": 0},
        "data": {"num_points": 200},
        "model": {"model_type": "polynomial", "degree": 3},
        "training": {
            "epochs": 5,
            "loss": {"type": "mse", "reduction": "sum"},
            "optimizer": {"type": "rmsprop", "learning_rate": 1e-2},
            "scheduler": {"type": "none"},
            "checkpointing": {"enabled": True, "max_checkpoints": 2},
            "logging": {"enabled": True, "log_interval": 0},
        },
    }


@pytest.fixture()
def speech_config(tmp_path: Path) -> dict:
    return {
        "task": "speech_commands",
        "experiment": {"random_seed": 0},
        "data": {
            "root": str(tmp_path / "data"),
            "download": False,
            "batch_size": 4,
            "resample": {"orig_freq": 16000, "new_freq": 8000},
        },
        "model": {"model_type": "m5", "n_input": 1, "n_output": None, "stride": 16, "n_channel": 8},
        "training": {
            "epochs": 2,
            "loss": {"type": "nll"},
            "optimizer": {"type": "adam", "learning_rate": 0.01, "weight_decay": 0.0001},
            "scheduler": {"type": "step", "step_size": 20, "gamma": 0.1},
            "checkpointing": {"enabled": True, "monitor": "accuracy", "mode": "max"},
            "logging": {"enabled": True, "log_interval": 1},
        },
    }


@pytest.fixture()
def polynomial_config_file(tmp_path: Path) -> Path:
    content = textwrap.dedent("""\
        task: polynomial
        experiment:
          random_seed: 0
        data:
          num_points: 100
        model:
          model_type: polynomial
          degree: 3
        training:
          epochs: 3
          loss:
            type: mse
            reduction: sum
          optimizer:
            type: rmsprop
            learning_rate: 1.0e-3
          logging:
            log_interval: 0
    """)
    config_file = tmp_path / "polynomial.yaml"
    config_file.write_text(content, encoding="utf-8")
    return config_file
