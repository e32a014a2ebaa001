"""Logging setup and optional MLflow experiment tracking."""

import os
import logging
import sys
from datetime import datetime
from typing import Optional, Dict, Any

import yaml

try:
    import mlflow
    import mlflow.pytorch
    MLFLOW_AVAILABLE = True
except ImportError:
    MLFLOW_AVAILABLE = False


LOGGER_NAME = 'recipes'


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = None,
    experiment_name: Optional[str] = None
) -> logging.Logger:
    """Configure the package logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory to also write a timestamped log file into
        experiment_name: Prefix for the log file name

    Returns:
        Configured logger instance
    """
    level = getattr(logging, log_level.upper())

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

        prefix = experiment_name or 'training'
        log_filepath = os.path.join(log_dir, f"{prefix}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log")

        file_handler = logging.FileHandler(log_filepath)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

        logger.info(f"Logging to file: {log_filepath}")

    return logger


class MLflowLogger:
    """Thin wrapper over an active MLflow run."""

    def __init__(self, experiment_name: str, tracking_uri: Optional[str] = None):
        if not MLFLOW_AVAILABLE:
            raise ImportError("MLflow not available. Install with: pip install mlflow")

        self.experiment_name = experiment_name
        mlflow.set_tracking_uri(tracking_uri or "mlruns")
        mlflow.set_experiment(experiment_name)

        self.run = mlflow.start_run()
        self.logger = logging.getLogger(LOGGER_NAME)
        self.logger.info(f"MLflow run started: {self.run.info.run_id}")

    def log_scalars(self, metrics: Dict[str, float], step: int, prefix: str = "") -> None:
        for key, value in metrics.items():
            mlflow.log_metric(f"{prefix}{key}", value, step=step)

    def log_hyperparameters(self, hparam_dict: Dict[str, Any]) -> None:
        mlflow.log_params(hparam_dict)

    def log_config(self, config: Dict[str, Any], config_path: str) -> None:
        with open(config_path, 'w') as f:
            yaml.safe_dump(config, f, default_flow_style=False, indent=2)
        mlflow.log_artifact(config_path)

    def log_model(self, model, artifact_path: str = "model") -> None:
        mlflow.pytorch.log_model(model, artifact_path)

    def get_run_id(self) -> str:
        return self.run.info.run_id

    def close(self) -> None:
        mlflow.end_run()


class ExperimentLogger:
    """Epoch-level result logging to the package logger and, optionally, MLflow."""

    def __init__(
        self,
        experiment_name: str,
        log_dir: Optional[str] = None,
        use_mlflow: bool = False,
        tracking_uri: Optional[str] = None
    ):
        """Initialize experiment logger.

        Args:
            experiment_name: Name of the experiment
            log_dir: Directory for config snapshots
            use_mlflow: Whether to mirror metrics to MLflow
            tracking_uri: MLflow tracking URI
        """
        self.experiment_name = experiment_name
        self.log_dir = log_dir
        self.logger = logging.getLogger(LOGGER_NAME)

        self.mlflow_logger = None
        if use_mlflow and MLFLOW_AVAILABLE:
            try:
                self.mlflow_logger = MLflowLogger(experiment_name, tracking_uri)
                self.logger.info("MLflow logging enabled")
            except Exception as e:
                self.logger.warning(f"Failed to initialize MLflow logging: {e}")
        elif use_mlflow:
            self.logger.warning("MLflow requested but not available")

    def log_epoch(
        self,
        epoch: int,
        train_metrics: Dict[str, float],
        val_metrics: Optional[Dict[str, float]] = None
    ) -> None:
        """Log one epoch of train / validation metrics."""
        self.logger.debug(f"Epoch {epoch} train: {_format(train_metrics)}")
        if val_metrics:
            self.logger.debug(f"Epoch {epoch} validation: {_format(val_metrics)}")

        if self.mlflow_logger:
            self.mlflow_logger.log_scalars(train_metrics, epoch, prefix="train_")
            if val_metrics:
                self.mlflow_logger.log_scalars(val_metrics, epoch, prefix="val_")

    def log_hyperparameters(self, hparams: Dict[str, Any]) -> None:
        self.logger.debug(f"Hyperparameters: {hparams}")
        if self.mlflow_logger:
            self.mlflow_logger.log_hyperparameters(hparams)

    def log_config(self, config: Dict[str, Any], config_name: str = "config.yaml") -> None:
        """Write a config snapshot next to the logs and attach it to the run."""
        if not self.log_dir:
            return
        os.makedirs(self.log_dir, exist_ok=True)
        config_path = os.path.join(self.log_dir, config_name)

        if self.mlflow_logger:
            self.mlflow_logger.log_config(config, config_path)
        else:
            with open(config_path, 'w') as f:
                yaml.safe_dump(config, f, default_flow_style=False, indent=2)

    def log_model(self, model, artifact_path: str = "model") -> None:
        if self.mlflow_logger:
            self.mlflow_logger.log_model(model, artifact_path)

    def get_run_id(self) -> Optional[str]:
        if self.mlflow_logger:
            return self.mlflow_logger.get_run_id()
        return None

    def close(self) -> None:
        if self.mlflow_logger:
            self.mlflow_logger.close()
            self.mlflow_logger = None


def _format(metrics: Dict[str, float]) -> str:
    return ", ".join(
        f"{k}={v:.6f}" if isinstance(v, float) else f"{k}={v}" for k, v in metrics.items()
    )
