"""Speech Commands dataset access for the audio classification recipe."""

import os
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import torch
import torchaudio
from torch.utils.data import DataLoader
from torchaudio.datasets import SPEECHCOMMANDS


SUBSETS = ('training', 'validation', 'testing')

SAMPLE_RATE = 16000


def pad_sequence(batch: Sequence[torch.Tensor]) -> torch.Tensor:
    """Right-pad ``(channel, time)`` waveforms with zeros to a common length.

    Returns:
        Tensor of shape ``(batch, channel, max_time)``
    """
    batch = [item.t() for item in batch]
    batch = torch.nn.utils.rnn.pad_sequence(batch, batch_first=True, padding_value=0.)
    return batch.permute(0, 2, 1)


def make_resample_transform(orig_freq: int = SAMPLE_RATE, new_freq: int = 8000) -> torchaudio.transforms.Resample:
    """Resampling applied to each batch before it reaches the network."""
    return torchaudio.transforms.Resample(orig_freq=orig_freq, new_freq=new_freq)


class SpeechCommandsData:
    """Train / validation / test views of the Speech Commands dataset.

    Each item of the underlying dataset is a tuple
    ``(waveform, sample_rate, label, speaker_id, utterance_number)``.
    Labels are indexed in sorted order of the words found in the training
    subset unless an explicit label list is given.
    """

    def __init__(
        self,
        root: str,
        download: bool = True,
        labels: Optional[List[str]] = None,
        dataset_cls: Callable[..., Any] = SPEECHCOMMANDS
    ):
        """Initialize SpeechCommandsData.

        Args:
            root: Directory the archive is downloaded to / read from
            download: Download the archive when it is missing
            labels: Fixed label vocabulary, skips scanning the training subset
            dataset_cls: Dataset class taking ``(root, download=..., subset=...)``
        """
        self.root = root
        self.download = download
        self.dataset_cls = dataset_cls
        self.logger = logging.getLogger('recipes')

        os.makedirs(root, exist_ok=True)

        self.datasets = {}
        for subset in SUBSETS:
            self.datasets[subset] = dataset_cls(root, download=download, subset=subset)
            self.logger.info(f"Loaded Speech Commands '{subset}' subset: {len(self.datasets[subset])} clips")

        self.labels = sorted(labels) if labels else self._collect_labels(self.datasets['training'])
        self._label_index = {label: i for i, label in enumerate(self.labels)}
        self.logger.info(f"Found {len(self.labels)} labels")

    @staticmethod
    def _collect_labels(dataset) -> List[str]:
        # get_metadata reads the label from the file path without decoding audio.
        return sorted({dataset.get_metadata(n)[2] for n in range(len(dataset))})

    @property
    def train_set(self):
        return self.datasets['training']

    @property
    def validation_set(self):
        return self.datasets['validation']

    @property
    def test_set(self):
        return self.datasets['testing']

    @property
    def sample_rate(self) -> int:
        return SAMPLE_RATE

    @property
    def num_classes(self) -> int:
        return len(self.labels)

    def label_to_index(self, word: str) -> torch.Tensor:
        """Return the position of the word in labels."""
        if word not in self._label_index:
            raise KeyError(f"Unknown label: {word}")
        return torch.tensor(self._label_index[word])

    def index_to_label(self, index: int) -> str:
        """Return the word corresponding to the index in labels."""
        index = int(index)
        if not 0 <= index < len(self.labels):
            raise KeyError(f"Label index out of range: {index}")
        return self.labels[index]

    def collate_fn(self, batch: Sequence[Tuple]) -> Tuple[torch.Tensor, torch.Tensor]:
        """Turn dataset items into a padded waveform batch and label indices."""
        tensors, targets = [], []

        for waveform, _, label, *_ in batch:
            tensors.append(waveform)
            targets.append(self.label_to_index(label))

        return pad_sequence(tensors), torch.stack(targets)

    def audio_info(self) -> Dict[str, Any]:
        """Shape and sample rate of the first training clip."""
        waveform, sample_rate, label, speaker_id, utterance_number = self.train_set[0]
        return {
            'waveform_shape': tuple(waveform.shape),
            'sample_rate': sample_rate,
            'label': label,
            'speaker_id': speaker_id,
            'utterance_number': utterance_number
        }

    def create_dataloaders(
        self,
        batch_size: int = 256,
        device: Optional[torch.device] = None,
        num_workers: Optional[int] = None,
        pin_memory: Optional[bool] = None
    ) -> Tuple[DataLoader, DataLoader, DataLoader]:
        """Build the three DataLoaders.

        Worker count and pinned memory default to ``1`` / ``True`` on CUDA
        and ``0`` / ``False`` otherwise.

        Returns:
            ``(train_loader, val_loader, test_loader)``
        """
        on_cuda = device is not None and torch.device(device).type == 'cuda'
        if num_workers is None:
            num_workers = 1 if on_cuda else 0
        if pin_memory is None:
            pin_memory = on_cuda

        def make_loader(dataset, shuffle: bool) -> DataLoader:
            return DataLoader(
                dataset,
                batch_size=batch_size,
                shuffle=shuffle,
                drop_last=False,
                collate_fn=self.collate_fn,
                num_workers=num_workers,
                pin_memory=pin_memory
            )

        self.logger.info(f"Creating dataloaders: batch_size={batch_size}, "
                         f"num_workers={num_workers}, pin_memory={pin_memory}")

        return (
            make_loader(self.train_set, shuffle=True),
            make_loader(self.validation_set, shuffle=False),
            make_loader(self.test_set, shuffle=False)
        )
