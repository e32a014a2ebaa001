"""Output directory layout for recipe runs."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Union


class DirectoryManager:
    """Creates and exposes the per-experiment output directories.

    Layout::

        <root_dir>/
            checkpoints/
            logs/
            plots/
    """

    def __init__(self, root_dir: Union[str, Path], create_dirs: bool = True):
        self.root_dir = Path(root_dir)
        self.logger = logging.getLogger('recipes')

        self.checkpoints_dir = self.root_dir / "checkpoints"
        self.logs_dir = self.root_dir / "logs"
        self.plots_dir = self.root_dir / "plots"

        if create_dirs:
            self.create_directories()

    @classmethod
    def for_experiment(
        cls,
        output_dir: Union[str, Path],
        experiment_name: Optional[str] = None,
        task: str = 'experiment'
    ) -> 'DirectoryManager':
        """Build a manager under ``output_dir``, naming the run by timestamp when no name is given."""
        if not experiment_name:
            experiment_name = f"{task}_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
        return cls(Path(output_dir) / experiment_name, create_dirs=True)

    def create_directories(self) -> None:
        for directory in (self.root_dir, self.checkpoints_dir, self.logs_dir, self.plots_dir):
            directory.mkdir(parents=True, exist_ok=True)

        self.logger.info(f"Created directories under: {self.root_dir}")

    def get_directory_paths(self) -> Dict[str, Path]:
        return {
            'root': self.root_dir,
            'checkpoints': self.checkpoints_dir,
            'logs': self.logs_dir,
            'plots': self.plots_dir
        }

    def __repr__(self) -> str:
        return f"DirectoryManager(root={self.root_dir})"
