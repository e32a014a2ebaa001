"""Model inference and prediction utilities."""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd
import torch
import torch.nn as nn
import torchaudio

from ..data.polynomial import polynomial_features
from ..data.speech_commands import make_resample_transform
from ..models import create_model, RAW_INPUT_MODELS
from ..models.base_model import BaseModel
from ..training.metrics import get_likely_index
from ..utils.checkpoints import read_checkpoint


def load_audio(path: str) -> Tuple[torch.Tensor, int]:
    """Read an audio file into a ``(channel, time)`` tensor and its sample rate."""
    return torchaudio.load(path)


class Predictor:
    """Runs a trained recipe model on new inputs."""

    def __init__(
        self,
        model: Optional[BaseModel] = None,
        model_path: Optional[str] = None,
        device: Optional[torch.device] = None,
        input_transform: Optional[nn.Module] = None,
        labels: Optional[List[str]] = None
    ):
        """Initialize Predictor.

        Args:
            model: Already-built model
            model_path: Checkpoint written by the trainer (used when ``model`` is None)
            device: Device to run inference on
            input_transform: Module applied to inputs before the forward pass
            labels: Class names, index-aligned with the model output
        """
        self.device = device if device else torch.device('cuda' if torch.cuda.is_available() else 'cpu')
        self.logger = logging.getLogger('recipes')
        self.input_transform = input_transform
        self.labels = labels

        if model is not None:
            self.model = model
        elif model_path is not None:
            self.model = self._load_model_from_path(model_path)
        else:
            raise ValueError("Provide either a model or a model_path")

        self.model.to(self.device)
        self.model.eval()
        if self.input_transform is not None:
            self.input_transform = self.input_transform.to(self.device)

        self.logger.info(f"Initialized predictor on device: {self.device}")

    def _load_model_from_path(self, model_path: str) -> BaseModel:
        checkpoint = read_checkpoint(model_path, self.device)

        model_config = checkpoint.get('model_config')
        if model_config is None:
            raise ValueError(f"Checkpoint has no model configuration: {model_path}")

        model = create_model(model_config)
        model.load_state_dict(checkpoint['model_state_dict'])

        if self.labels is None:
            self.labels = checkpoint.get('labels')
        if self.input_transform is None and checkpoint.get('resample'):
            self.input_transform = make_resample_transform(**checkpoint['resample'])

        self.logger.info(f"Loaded {model_config.get('model_type')} model from {model_path} "
                         f"(epoch {checkpoint.get('epoch', 'unknown')})")
        return model

    @property
    def is_classifier(self) -> bool:
        return self.model.task_type == 'classification'

    def _to_tensor(self, inputs: Union[torch.Tensor, np.ndarray, List[float]]) -> torch.Tensor:
        if isinstance(inputs, torch.Tensor):
            return inputs.float()
        return torch.as_tensor(np.asarray(inputs), dtype=torch.float32)

    def predict(
        self,
        inputs: Union[torch.Tensor, np.ndarray, List[float]],
        return_probabilities: bool = False
    ) -> Dict[str, torch.Tensor]:
        """Run the model on a batch.

        Regression models take sample points ``x`` of shape ``(N,)``; the
        polynomial features are built here when the model needs them.
        Classifiers take waveforms of shape ``(batch, channel, time)``.

        Returns:
            ``{'predictions': ...}`` plus ``'probabilities'`` for classifiers when requested
        """
        input_tensor = self._to_tensor(inputs)

        if not self.is_classifier and self.model.model_type not in RAW_INPUT_MODELS:
            input_tensor = polynomial_features(input_tensor.reshape(-1), self.model.degree)

        input_tensor = input_tensor.to(self.device)
        if self.input_transform is not None:
            input_tensor = self.input_transform(input_tensor)

        with torch.no_grad():
            outputs = self.model(input_tensor)

        if not self.is_classifier:
            return {'predictions': outputs.cpu()}

        result = {'predictions': get_likely_index(outputs).cpu()}
        if return_probabilities:
            result['probabilities'] = outputs.exp().cpu()
        return result

    def predict_label(self, waveform: torch.Tensor) -> str:
        """Predict the word spoken in a single ``(channel, time)`` waveform.

        Multi-channel audio is averaged down to mono for single-channel models.
        """
        if not self.is_classifier:
            raise ValueError("predict_label requires a classification model")
        if not self.labels:
            raise ValueError("No labels available to decode the prediction")

        waveform = self._to_tensor(waveform)
        n_input = getattr(self.model, 'n_input', waveform.shape[0])
        if waveform.shape[0] != n_input:
            if n_input != 1:
                raise ValueError(f"Expected {n_input} audio channels, got {waveform.shape[0]}")
            waveform = waveform.mean(dim=0, keepdim=True)

        index = self.predict(waveform.unsqueeze(0))['predictions'].reshape(-1)[0]
        return self.labels[int(index)]

    def predict_file(self, audio_path: str) -> str:
        """Predict the word spoken in an audio file, matching its sample rate to the model input."""
        waveform, sample_rate = load_audio(audio_path)
        self.logger.info(f"Loaded {audio_path}: shape={tuple(waveform.shape)}, sample_rate={sample_rate}")

        # The input transform expects audio at its own source rate.
        if isinstance(self.input_transform, torchaudio.transforms.Resample):
            expected_rate = self.input_transform.orig_freq
            if sample_rate != expected_rate:
                self.logger.info(f"Resampling {audio_path} from {sample_rate} Hz to {expected_rate} Hz")
                waveform = torchaudio.functional.resample(waveform, sample_rate, expected_rate)

        return self.predict_label(waveform)

    def predict_dataframe(self, df: pd.DataFrame, column: str = 'x') -> pd.DataFrame:
        """Regression predictions for the ``column`` of a DataFrame, added as ``prediction``."""
        if column not in df.columns:
            raise ValueError(f"Input data has no '{column}' column")

        result = df.copy()
        result['prediction'] = self.predict(df[column].to_numpy())['predictions'].numpy()
        return result

    def get_model_info(self) -> Dict[str, Any]:
        info = self.model.get_model_summary()
        info['device'] = str(self.device)
        if self.labels is not None:
            info['num_labels'] = len(self.labels)
        return info
