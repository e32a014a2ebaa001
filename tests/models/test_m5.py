"""
Tests for the M5 raw-waveform classifier.
"""

import json
from pathlib import Path

import pytest
import torch

from recipes.models.m5 import M5


def _model(**overrides) -> M5:
    config = {"model_type": "m5", "n_input": 1, "n_output": 35, "stride": 16, "n_channel": 32}
    config.update(overrides)
    return M5(config)


class TestForward:
    def test_output_is_batch_by_classes(self) -> None:
        model = _model().eval()
        out = model(torch.randn(2, 1, 8000))
        assert out.shape == (2, 35)

    def test_outputs_are_log_probabilities(self) -> None:
        model = _model(n_output=5).eval()
        out = model(torch.randn(3, 1, 8000))
        assert torch.allclose(out.exp().sum(dim=-1), torch.ones(3), atol=1e-5)

    def test_rejects_unbatched_input(self) -> None:
        with pytest.raises(ValueError):
            _model()(torch.randn(1, 8000))

    def test_training_step_updates_weights(self) -> None:
        model = _model(n_output=3, n_channel=8)
        optimizer = torch.optim.Adam(model.parameters(), lr=0.01)
        before = model.fc1.weight.detach().clone()

        loss = torch.nn.functional.nll_loss(model(torch.randn(4, 1, 8000)), torch.tensor([0, 1, 2, 0]))
        loss.backward()
        optimizer.step()

        assert not torch.equal(before, model.fc1.weight)


class TestConfig:
    def test_default_parameter_count(self) -> None:
        # Tutorial network with 35 classes.
        assert _model().count_parameters() == 26915

    def test_requires_output_size(self) -> None:
        with pytest.raises(ValueError):
            _model(n_output=None)

    def test_summary_and_config_file(self, tmp_path: Path) -> None:
        model = _model()
        summary = model.get_model_summary()
        assert summary["task_type"] == "classification"
        assert summary["config"]["n_output"] == 35

        path = tmp_path / "m5.json"
        model.save_model_config(str(path))
        assert M5.load_model_config(str(path)) == json.loads(path.read_text())
        assert M5(M5.load_model_config(str(path))).n_channel == 32
