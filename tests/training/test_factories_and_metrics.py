"""
Tests for optimizer / scheduler / loss construction and epoch metrics.
"""

import pytest
import torch
import torch.nn as nn

from recipes.training.metrics import MetricsCalculator, get_likely_index, number_of_correct
from recipes.training.optimizers import OptimizerFactory, SchedulerFactory, create_optimizer_and_scheduler
from recipes.training.trainer import create_loss_function


def _params():
    return nn.Linear(3, 1).parameters()


class TestOptimizerFactory:
    @pytest.mark.parametrize("name, cls", [
        ("sgd", torch.optim.SGD),
        ("adam", torch.optim.Adam),
        ("adamw", torch.optim.AdamW),
        ("rmsprop", torch.optim.RMSprop),
    ])
    def test_creates_each_type(self, name: str, cls) -> None:
        optimizer = OptimizerFactory().create_optimizer(_params(), {"type": name, "learning_rate": 0.05})
        assert isinstance(optimizer, cls)
        assert optimizer.param_groups[0]["lr"] == 0.05

    def test_string_numbers_from_yaml_are_accepted(self) -> None:
        optimizer = OptimizerFactory().create_optimizer(
            _params(), {"type": "adam", "learning_rate": "1e-3", "weight_decay": "1e-4"}
        )
        assert optimizer.param_groups[0]["weight_decay"] == pytest.approx(1e-4)

    def test_unknown_type_raises(self) -> None:
        with pytest.raises(ValueError):
            OptimizerFactory().create_optimizer(_params(), {"type": "lbfgs"})


class TestSchedulerFactory:
    def test_none_returns_none(self) -> None:
        optimizer = torch.optim.SGD(_params(), lr=0.1)
        assert SchedulerFactory().create_scheduler(optimizer, None) is None
        assert SchedulerFactory().create_scheduler(optimizer, {"type": "none"}) is None

    def test_step_defaults_decay_tenfold_after_twenty_epochs(self) -> None:
        optimizer, scheduler = create_optimizer_and_scheduler(
            _params(), {"type": "adam", "learning_rate": 0.01}, {"type": "step"}
        )
        for _ in range(20):
            optimizer.step()
            scheduler.step()
        assert optimizer.param_groups[0]["lr"] == pytest.approx(0.001)

    @pytest.mark.parametrize("config, cls", [
        ({"type": "multistep", "milestones": [2, 4]}, torch.optim.lr_scheduler.MultiStepLR),
        ({"type": "exponential", "gamma": 0.9}, torch.optim.lr_scheduler.ExponentialLR),
        ({"type": "cosine", "T_max": 10}, torch.optim.lr_scheduler.CosineAnnealingLR),
        ({"type": "one_cycle", "max_lr": 0.1, "epochs": 2, "steps_per_epoch": 5}, torch.optim.lr_scheduler.OneCycleLR),
    ])
    def test_creates_each_type(self, config: dict, cls) -> None:
        optimizer = torch.optim.SGD(_params(), lr=0.1, momentum=0.9)
        scheduler = SchedulerFactory().create_scheduler(optimizer, config)
        assert isinstance(scheduler, cls)
        assert not SchedulerFactory.requires_metric(scheduler)

    def test_multistep_decays_at_milestones(self) -> None:
        optimizer = torch.optim.SGD(_params(), lr=1.0)
        scheduler = SchedulerFactory().create_scheduler(
            optimizer, {"type": "multistep", "milestones": [1, 3], "gamma": 0.5}
        )
        rates = []
        for _ in range(4):
            optimizer.step()
            scheduler.step()
            rates.append(optimizer.param_groups[0]["lr"])
        assert rates == pytest.approx([0.5, 0.5, 0.25, 0.25])

    def test_plateau_requires_metric(self) -> None:
        optimizer = torch.optim.SGD(_params(), lr=0.1)
        scheduler = SchedulerFactory().create_scheduler(optimizer, {"type": "reduce_on_plateau"})
        assert SchedulerFactory.requires_metric(scheduler)

    def test_unknown_type_raises(self) -> None:
        optimizer = torch.optim.SGD(_params(), lr=0.1)
        with pytest.raises(ValueError):
            SchedulerFactory().create_scheduler(optimizer, {"type": "warmup"})


class TestLossFunction:
    def test_sum_reduction(self) -> None:
        loss_fn = create_loss_function({"type": "mse", "reduction": "sum"})
        assert loss_fn(torch.tensor([1.0, 2.0]), torch.tensor([0.0, 0.0])).item() == 5.0

    def test_nll(self) -> None:
        assert isinstance(create_loss_function({"type": "nll"}), nn.NLLLoss)

    def test_unknown_loss_raises(self) -> None:
        with pytest.raises(ValueError):
            create_loss_function({"type": "hinge"})


class TestMetrics:
    def test_likely_index_and_correct_count(self) -> None:
        log_probs = torch.log(torch.tensor([[0.1, 0.9], [0.8, 0.2], [0.3, 0.7]]))
        pred = get_likely_index(log_probs)
        assert pred.tolist() == [1, 0, 1]
        assert number_of_correct(pred, torch.tensor([1, 1, 1])) == 2

    def test_classification_metrics(self) -> None:
        log_probs = torch.log(torch.tensor([[0.1, 0.9], [0.8, 0.2]]))
        metrics = MetricsCalculator("classification").calculate_metrics(log_probs, torch.tensor([1, 1]))
        assert metrics == {"accuracy": 50.0, "correct": 1, "total": 2}

    def test_regression_metrics(self) -> None:
        metrics = MetricsCalculator("regression").calculate_metrics(
            torch.tensor([1.0, 3.0]), torch.tensor([0.0, 1.0])
        )
        assert metrics["mse"] == pytest.approx(2.5)
        assert metrics["mae"] == pytest.approx(1.5)
        assert metrics["sum_squared_error"] == pytest.approx(5.0)

    def test_regression_shape_mismatch_raises(self) -> None:
        with pytest.raises(ValueError):
            MetricsCalculator("regression").calculate_metrics(torch.zeros(3, 1), torch.zeros(3))

    def test_primary_metric(self) -> None:
        assert MetricsCalculator("classification").primary_metric() == "accuracy"
        assert MetricsCalculator("regression").primary_metric() == "mse"

    def test_unknown_task_type(self) -> None:
        with pytest.raises(ValueError):
            MetricsCalculator("ranking")
