"""Configuration file backup/restore exporter."""

import shutil
from pathlib import Path
from typing import Dict, List

from ..._utils import logger


class ConfigExporter:
    """Copy the stack's config and credentials files in and out of ``configs/``.

    Missing files are skipped on both sides.
    """

    def __init__(self, files: Dict[str, str]):
        """Initialize exporter.

        Args:
            files: Mapping of archive name (e.g. ``config.json``) to live path
        """
        self.files = files

    def export(self, output_dir: Path) -> List[str]:
        configs_dir = output_dir / "configs"
        configs_dir.mkdir(parents=True, exist_ok=True)

        copied = []
        for name, source in self.files.items():
            source_path = Path(source)
            if not source_path.is_file():
                logger.debug(f"Config file not present, skipping: {source_path}")
                continue
            try:
                shutil.copyfile(source_path, configs_dir / name)
                copied.append(name)
            except OSError as e:
                logger.warning(f"Could not copy {source_path}: {e}")

        logger.info(f"Config export complete: {', '.join(copied) or 'no files'}")
        return copied

    def restore(self, input_dir: Path) -> List[str]:
        configs_dir = input_dir / "configs"
        if not configs_dir.is_dir():
            return []

        restored = []
        for name, destination in self.files.items():
            source_path = configs_dir / name
            if not source_path.is_file():
                continue
            try:
                destination_path = Path(destination)
                destination_path.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(source_path, destination_path)
                restored.append(name)
            except OSError as e:
                logger.warning(f"Could not restore {name} to {destination}: {e}")

        logger.info(f"Config restore complete: {', '.join(restored) or 'no files'}")
        return restored
