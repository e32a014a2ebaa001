"""
Tests for the Trainer loop on the polynomial fit and on fake Speech Commands audio.
"""

import copy
import logging
from pathlib import Path

import pytest
import torch

from recipes.pipeline import setup_polynomial, setup_speech_commands
from recipes.training.callbacks import CheckpointCallback, EarlyStoppingCallback
from recipes.training.trainer import Trainer
from recipes.utils.checkpoints import read_checkpoint
from recipes.utils.config import ConfigManager
from recipes.utils.directory import DirectoryManager


def _polynomial_trainer(config: dict, tmp_path: Path):
    torch.manual_seed(0)
    task = setup_polynomial(ConfigManager(config=config))
    trainer = Trainer(task.model, config, torch.device("cpu"), DirectoryManager(tmp_path / "run"))
    return trainer, task


class TestPolynomialTraining:
    def test_loss_decreases(self, polynomial_config: dict, tmp_path: Path) -> None:
        polynomial_config["training"]["epochs"] = 50
        trainer, task = _polynomial_trainer(polynomial_config, tmp_path)

        result = trainer.train(task.train_loader, epochs=50)
        losses = result["history"]["train_loss"]

        assert len(losses) == 50
        assert losses[-1] < losses[0]
        assert result["best_val_score"] is not None

    def test_sum_reduction_loss_is_sum_squared_error(self, polynomial_config: dict, tmp_path: Path) -> None:
        trainer, task = _polynomial_trainer(polynomial_config, tmp_path)
        _, metrics = trainer.validate_epoch(task.train_loader)
        assert metrics["loss"] == pytest.approx(metrics["sum_squared_error"], rel=1e-4)

    def test_best_checkpoint_can_rebuild_model(self, polynomial_config: dict, tmp_path: Path) -> None:
        trainer, task = _polynomial_trainer(polynomial_config, tmp_path)
        trainer.train(task.train_loader, epochs=5)

        best = trainer.directory_manager.checkpoints_dir / "best_model.pt"
        checkpoint = read_checkpoint(str(best))
        assert checkpoint["model_config"]["model_type"] == "polynomial"
        assert checkpoint["task"] == "polynomial"

    def test_resume_continues_from_saved_epoch(self, polynomial_config: dict, tmp_path: Path) -> None:
        polynomial_config["training"]["checkpointing"]["save_best_only"] = False
        trainer, task = _polynomial_trainer(polynomial_config, tmp_path)
        trainer.train(task.train_loader, epochs=3)
        latest = trainer.callback_manager.get(CheckpointCallback).checkpoint_manager.get_latest_checkpoint()

        resumed, task = _polynomial_trainer(copy.deepcopy(polynomial_config), tmp_path)
        result = resumed.train(task.train_loader, epochs=5, resume_from_checkpoint=latest)

        assert result["history"]["epoch"] == [3, 4]

    def test_resume_without_checkpointing_raises(self, polynomial_config: dict, tmp_path: Path) -> None:
        polynomial_config["training"]["checkpointing"]["enabled"] = False
        trainer, task = _polynomial_trainer(polynomial_config, tmp_path)
        with pytest.raises(ValueError):
            trainer.train(task.train_loader, epochs=2, resume_from_checkpoint="missing.pt")

    def test_early_stopping(self, polynomial_config: dict, tmp_path: Path) -> None:
        polynomial_config["training"]["optimizer"] = {"type": "sgd", "learning_rate": 0.0}
        polynomial_config["training"]["early_stopping"] = {"enabled": True, "patience": 1}
        trainer, task = _polynomial_trainer(polynomial_config, tmp_path)

        result = trainer.train(task.train_loader, epochs=10)

        assert len(result["history"]["epoch"]) == 2
        assert trainer.callback_manager.get(EarlyStoppingCallback).should_stop

    def test_step_scheduler_runs_per_epoch(self, polynomial_config: dict, tmp_path: Path) -> None:
        polynomial_config["training"]["scheduler"] = {"type": "step", "step_size": 1, "gamma": 0.5}
        trainer, task = _polynomial_trainer(polynomial_config, tmp_path)

        result = trainer.train(task.train_loader, epochs=2)

        assert result["history"]["learning_rate"] == pytest.approx([0.01, 0.005])

    def test_resumed_run_keeps_learning_rate_schedule(self, polynomial_config: dict, tmp_path: Path) -> None:
        polynomial_config["training"]["scheduler"] = {"type": "step", "step_size": 1, "gamma": 0.5}
        polynomial_config["training"]["checkpointing"].update({"save_best_only": False, "max_checkpoints": 5})

        full, task = _polynomial_trainer(copy.deepcopy(polynomial_config), tmp_path / "full")
        full_result = full.train(task.train_loader, epochs=4)
        checkpoints = full.callback_manager.get(CheckpointCallback).checkpoint_manager.list_checkpoints()

        resumed, task = _polynomial_trainer(copy.deepcopy(polynomial_config), tmp_path / "resumed")
        result = resumed.train(task.train_loader, epochs=4, resume_from_checkpoint=checkpoints[1])

        assert full_result["history"]["learning_rate"] == pytest.approx([0.01, 0.005, 0.0025, 0.00125])
        assert result["history"]["epoch"] == [2, 3]
        assert result["history"]["learning_rate"] == pytest.approx([0.0025, 0.00125])

    def test_training_curves_are_plotted(self, polynomial_config: dict, tmp_path: Path) -> None:
        polynomial_config["training"]["diagnostic_plotting"] = {"enabled": True, "update_frequency": 2}
        trainer, task = _polynomial_trainer(polynomial_config, tmp_path)
        trainer.train(task.train_loader, epochs=3)

        plots = trainer.directory_manager.plots_dir
        assert (plots / "final_training_curves.png").is_file()
        assert (plots / "training_curves_epoch_0002.png").is_file()

    @pytest.mark.parametrize("model_type", ["polynomial3", "legendre", "dynamic"])
    def test_raw_input_models_train(self, polynomial_config: dict, tmp_path: Path, model_type: str) -> None:
        polynomial_config["model"] = {"model_type": model_type}
        polynomial_config["training"]["optimizer"] = {"type": "sgd", "learning_rate": 1e-6}
        trainer, task = _polynomial_trainer(polynomial_config, tmp_path)

        result = trainer.train(task.train_loader, epochs=2)

        assert len(result["history"]["train_loss"]) == 2
        assert trainer.test(task.test_loader) == {}


class TestSpeechCommandsTraining:
    @pytest.fixture()
    def trainer_and_task(self, speech_config: dict, tmp_path: Path, fake_dataset_cls):
        torch.manual_seed(0)
        config = ConfigManager(config=speech_config)
        task = setup_speech_commands(config, torch.device("cpu"), dataset_cls=fake_dataset_cls)
        trainer = Trainer(
            task.model, config.config, torch.device("cpu"), DirectoryManager(tmp_path / "run"),
            input_transform=task.input_transform, labels=task.labels
        )
        return trainer, task

    def test_trains_and_reports_accuracy(self, trainer_and_task, caplog: pytest.LogCaptureFixture) -> None:
        trainer, task = trainer_and_task
        caplog.set_level(logging.INFO, logger="recipes")

        trainer.train(task.train_loader, task.val_loader, epochs=2)
        results = trainer.test(task.test_loader)

        assert results["total"] == 6
        assert 0.0 <= results["accuracy"] <= 100.0
        assert "Train Epoch: 0 [0/12 (0%)]" in caplog.text
        assert "Test Epoch: 1\tAccuracy:" in caplog.text

    def test_uses_nll_loss(self, trainer_and_task) -> None:
        trainer, _ = trainer_and_task
        assert isinstance(trainer.loss_fn, torch.nn.NLLLoss)

    def test_inputs_are_resampled_before_the_model(self, trainer_and_task) -> None:
        trainer, task = trainer_and_task
        inputs, _ = trainer._prepare_batch(*next(iter(task.test_loader)))
        assert inputs.shape[-1] == 8000

    def test_checkpoint_carries_labels_and_resample(self, trainer_and_task) -> None:
        trainer, task = trainer_and_task
        trainer.train(task.train_loader, task.val_loader, epochs=1)

        checkpoint = read_checkpoint(str(trainer.directory_manager.checkpoints_dir / "best_model.pt"))
        assert checkpoint["labels"] == ["no", "up", "yes"]
        assert checkpoint["resample"] == {"orig_freq": 16000, "new_freq": 8000}
        assert checkpoint["model_config"]["n_output"] == 3
        assert "accuracy" in checkpoint["metrics"]
