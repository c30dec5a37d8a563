"""Target object loading from exported JSON/YAML files."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterator

import yaml

from tenantguard.errors import TargetLoadError
from tenantguard.models import TargetObject

logger = logging.getLogger(__name__)

TARGET_EXTENSIONS = {".json", ".yml", ".yaml"}


class TargetLoader:
    """Read already-fetched configuration objects from disk.

    A file holds a list of objects, a mapping with an ``objects`` list, or a
    single object.
    """

    def load_file(self, filepath: str | Path) -> list[TargetObject]:
        filepath = Path(filepath)
        if not filepath.is_file():
            raise TargetLoadError(f"Target file not found: {filepath}")
        text = filepath.read_text(encoding="utf-8-sig")
        try:
            if filepath.suffix.lower() == ".json":
                data = json.loads(text)
            else:
                data = yaml.safe_load(text)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise TargetLoadError(f"Cannot parse {filepath}: {e}") from e

        objects = self.parse(data, source=str(filepath))
        logger.info("Loaded %d objects from %s", len(objects), filepath.name)
        return objects

    def load_directory(self, directory: str | Path, recursive: bool = True) -> list[TargetObject]:
        """Load every supported file under ``directory`` in sorted order."""
        directory = Path(directory)
        if not directory.is_dir():
            raise NotADirectoryError(f"Not a directory: {directory}")
        objects: list[TargetObject] = []
        for filepath in self._find_files(directory, recursive):
            objects.extend(self.load_file(filepath))
        return objects

    def load(self, path: str | Path) -> list[TargetObject]:
        path = Path(path)
        if path.is_dir():
            return self.load_directory(path)
        return self.load_file(path)

    def parse(self, data: Any, source: str = "<memory>") -> list[TargetObject]:
        if data is None:
            return []
        if isinstance(data, dict) and "objects" in data:
            data = data["objects"]
        if isinstance(data, dict):
            return [data]
        if not isinstance(data, list):
            raise TargetLoadError(f"{source}: expected an object or a list of objects")
        for i, item in enumerate(data):
            if not isinstance(item, dict):
                raise TargetLoadError(f"{source}: item #{i + 1} is not an object")
        return data

    def _find_files(self, directory: Path, recursive: bool) -> Iterator[Path]:
        pattern = "**/*" if recursive else "*"
        for filepath in sorted(directory.glob(pattern)):
            if filepath.is_file() and filepath.suffix.lower() in TARGET_EXTENSIONS:
                yield filepath
