"""M5 convolutional network for raw-waveform audio classification."""

from typing import Any, Dict

import torch
import torch.nn as nn
import torch.nn.functional as F

from .base_model import BaseModel


class M5(BaseModel):
    """M5 network from "Very Deep Convolutional Neural Networks for Raw Waveforms".

    A wide first convolution (receptive field 80 samples, 10 ms at 8 kHz)
    followed by three narrow conv blocks, global average pooling over time and
    a linear classifier.

    Config keys:
        n_input: Input channels (1 for mono audio)
        n_output: Number of classes
        stride: Stride of the first convolution
        n_channel: Channels of the first two blocks, doubled for the last two
    """

    task_type = 'classification'

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.n_input = self.config.get('n_input', 1)
        self.n_output = self.config.get('n_output', 35)
        self.stride = self.config.get('stride', 16)
        self.n_channel = self.config.get('n_channel', 32)

        if self.n_output is None or self.n_output <= 0:
            raise ValueError("n_output must be a positive integer")

        n_channel = self.n_channel
        self.conv1 = nn.Conv1d(self.n_input, n_channel, kernel_size=80, stride=self.stride)
        self.bn1 = nn.BatchNorm1d(n_channel)
        self.pool1 = nn.MaxPool1d(4)
        self.conv2 = nn.Conv1d(n_channel, n_channel, kernel_size=3)
        self.bn2 = nn.BatchNorm1d(n_channel)
        self.pool2 = nn.MaxPool1d(4)
        self.conv3 = nn.Conv1d(n_channel, 2 * n_channel, kernel_size=3)
        self.bn3 = nn.BatchNorm1d(2 * n_channel)
        self.pool3 = nn.MaxPool1d(4)
        self.conv4 = nn.Conv1d(2 * n_channel, 2 * n_channel, kernel_size=3)
        self.bn4 = nn.BatchNorm1d(2 * n_channel)
        self.pool4 = nn.MaxPool1d(4)
        self.fc1 = nn.Linear(2 * n_channel, self.n_output)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """Map ``(batch, n_input, time)`` waveforms to ``(batch, n_output)`` log-probabilities."""
        if x.dim() != 3:
            raise ValueError(f"Expected input of shape (batch, channel, time), got {tuple(x.shape)}")

        x = self.conv1(x)
        x = F.relu(self.bn1(x))
        x = self.pool1(x)
        x = self.conv2(x)
        x = F.relu(self.bn2(x))
        x = self.pool2(x)
        x = self.conv3(x)
        x = F.relu(self.bn3(x))
        x = self.pool3(x)
        x = self.conv4(x)
        x = F.relu(self.bn4(x))
        x = self.pool4(x)
        x = F.avg_pool1d(x, x.shape[-1])
        x = x.permute(0, 2, 1)
        x = self.fc1(x)
        return F.log_softmax(x, dim=2).squeeze(1)
