"""Configuration management utilities."""

import os
import copy
import yaml
from typing import Dict, Any, Optional


SUPPORTED_TASKS = ('polynomial', 'speech_commands')


class ConfigManager:
    """Loads a recipe YAML file and gives dot-notation access to it."""

    def __init__(self, config_path: Optional[str] = None, config: Optional[Dict[str, Any]] = None):
        """Initialize ConfigManager.

        Args:
            config_path: Path to a YAML configuration file
            config: Already-parsed configuration (used when no path is given)
        """
        self.config_path = config_path
        self.config = {}

        if config_path:
            self.load_config(config_path)
        elif config is not None:
            self.config = copy.deepcopy(config)
            self._validate_config()

    def load_config(self, config_path: str) -> Dict[str, Any]:
        """Load configuration from YAML file.

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If the file is empty or misses required settings
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r') as f:
            loaded = yaml.safe_load(f)

        if not isinstance(loaded, dict):
            raise ValueError(f"Configuration file must contain a mapping: {config_path}")

        self.config = loaded
        self._validate_config()

        return self.config

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g. 'training.optimizer.type')."""
        value = self.config

        try:
            for k in key.split('.'):
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any) -> None:
        """Set configuration value using dot notation, creating sections as needed."""
        keys = key.split('.')
        section = self.config

        for k in keys[:-1]:
            if k not in section or not isinstance(section[k], dict):
                section[k] = {}
            section = section[k]

        section[keys[-1]] = value

    def save_config(self, output_path: str) -> None:
        """Save current configuration to YAML file."""
        directory = os.path.dirname(output_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(output_path, 'w') as f:
            yaml.safe_dump(self.config, f, default_flow_style=False, indent=2, sort_keys=False)

    def _validate_config(self) -> None:
        """Validate configuration parameters."""
        for section in ('task', 'data', 'model', 'training'):
            if section not in self.config:
                raise ValueError(f"Missing required configuration section: {section}")

        task = self.config['task']
        if task not in SUPPORTED_TASKS:
            raise ValueError(f"Unknown task '{task}', expected one of {list(SUPPORTED_TASKS)}")

        model_config = self.config.get('model') or {}
        if 'model_type' not in model_config:
            raise ValueError("Missing 'model.model_type' in configuration")

        training_config = self.config.get('training') or {}
        if 'epochs' not in training_config:
            raise ValueError("Missing 'training.epochs' in configuration")
        epochs = training_config['epochs']
        if isinstance(epochs, bool) or not isinstance(epochs, int) or epochs <= 0:
            raise ValueError("'training.epochs' must be a positive integer")

        if task == 'speech_commands':
            data_config = self.config.get('data') or {}
            if 'root' not in data_config:
                raise ValueError("Missing 'data.root' in configuration")

    @property
    def task(self) -> str:
        return self.config['task']

    def get_data_config(self) -> Dict[str, Any]:
        """Get data configuration section."""
        return self.config.get('data') or {}

    def get_model_config(self) -> Dict[str, Any]:
        """Get model configuration section."""
        return self.config.get('model') or {}

    def get_training_config(self) -> Dict[str, Any]:
        """Get training configuration section."""
        return self.config.get('training') or {}

    def get_experiment_config(self) -> Dict[str, Any]:
        """Get experiment configuration section."""
        return self.config.get('experiment') or {}
