"""Settings and checkpoint persistence for the harvester."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from ..errors import ConfigError, PersistenceError
from .models import Checkpoint, HarvestConfig

CHECKPOINT_FILENAME = "TORRENTS.JSON"
SETTINGS_FILENAME = "harvester.yaml"


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_atomic(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as stream:
            stream.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


@dataclass(slots=True)
class ConfigLocator:
    """Resolve important paths from the output base directory."""

    base_path: Path
    logs_dir: Path = field(init=False)

    def __post_init__(self) -> None:
        self.base_path = Path(self.base_path).expanduser().resolve()
        self.logs_dir = self.base_path / "logs"

    def checkpoint_path(self) -> Path:
        return self.base_path / CHECKPOINT_FILENAME

    def settings_path(self) -> Path:
        return self.base_path / SETTINGS_FILENAME


class ConfigRepository:
    """Load ``HarvestConfig`` from the optional settings file plus overrides."""

    def __init__(self, locator: ConfigLocator) -> None:
        self.locator = locator

    def load(self, **overrides: Any) -> HarvestConfig:
        payload: dict[str, Any] = {}
        path = self.locator.settings_path()
        if path.exists():
            try:
                payload = _read_file(path)
            except (OSError, ValueError, yaml.YAMLError) as exc:
                raise ConfigError(f"Unreadable settings file {path}: {exc}") from exc
        payload.update({key: value for key, value in overrides.items() if value is not None})
        try:
            return HarvestConfig.model_validate(payload)
        except ValidationError as exc:
            raise ConfigError(f"Invalid settings in {path}: {exc}") from exc


class CheckpointStore:
    """Read and overwrite the checkpoint file wholesale."""

    def __init__(self, path: Path, logger: structlog.BoundLogger | None = None) -> None:
        self.path = path
        self.logger = logger or structlog.get_logger("torrent_harvester.checkpoint")

    def load(self) -> Checkpoint:
        """Return the stored checkpoint, or empty defaults if missing or corrupt."""

        if not self.path.exists():
            self.logger.info("checkpoint_missing", path=str(self.path))
            return Checkpoint()
        try:
            payload = _read_file(self.path)
            return Checkpoint.model_validate(payload)
        except (OSError, ValueError, ValidationError) as exc:
            self.logger.warning("checkpoint_reset", path=str(self.path), error=str(exc))
            return Checkpoint()

    def save(self, checkpoint: Checkpoint) -> None:
        text = self.dumps(checkpoint)
        try:
            _write_atomic(self.path, text)
        except OSError as exc:
            raise PersistenceError(f"Could not write checkpoint {self.path}: {exc}") from exc
        self.logger.info(
            "checkpoint_saved",
            path=str(self.path),
            max_pages=checkpoint.max_pages,
            entries=len(checkpoint.entries),
            torrents=len(checkpoint.torrents),
        )

    @staticmethod
    def dumps(checkpoint: Checkpoint) -> str:
        payload = checkpoint.model_dump(mode="json", by_alias=True)
        return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"


__all__ = [
    "CHECKPOINT_FILENAME",
    "CheckpointStore",
    "ConfigLocator",
    "ConfigRepository",
    "SETTINGS_FILENAME",
]
