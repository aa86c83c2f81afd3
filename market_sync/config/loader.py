"""Configuration loading helpers for market-sync."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from ..errors import ConfigurationError
from .models import SyncConfig

SETTINGS_FILENAME = "settings.yaml"
HOME_ENV = "MARKET_SYNC_HOME"
TOKEN_ENV = "MARKET_SYNC_API_TOKEN"


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, stream, indent=2, ensure_ascii=False)


@dataclass(slots=True)
class ConfigLocator:
    """Resolve important paths from project root."""

    project_root: Path | None = None
    data_dir: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        env_root = os.environ.get(HOME_ENV)
        if env_root:
            root = Path(env_root).expanduser().resolve()
        else:
            root = (self.project_root or Path.cwd()).resolve()
        self.project_root = root
        self.data_dir = (root / "data").resolve()
        self.logs_dir = (root / "logs").resolve()
        self.ensure_directories()

    def ensure_directories(self) -> None:
        for directory in (self.data_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def settings_path(self) -> Path:
        return self.data_dir / SETTINGS_FILENAME


class ConfigRepository:
    """Repository encapsulating settings IO and schema validation."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()
        self._cache: SyncConfig | None = None

    def load_settings(self) -> SyncConfig:
        if self._cache is not None:
            return self._cache
        path = self.locator.settings_path()
        if path.exists():
            payload = _read_file(path)
            try:
                settings = SyncConfig.model_validate(payload)
            except ValueError as exc:
                raise ConfigurationError(f"Invalid settings in {path}: {exc}") from exc
        else:
            settings = SyncConfig()
            self.save_settings(settings)
        token = os.environ.get(TOKEN_ENV)
        if token:
            settings.remote.api_token = token
        # Storage paths in the file are relative to the project root.
        settings.storage = settings.storage.resolve(self.locator.project_root)
        self._cache = settings
        return settings

    def save_settings(self, settings: SyncConfig) -> None:
        path = self.locator.settings_path()
        payload = settings.model_dump(mode="json", exclude={"remote": {"api_token"}})
        _write_file(path, payload)
        self._cache = None


__all__ = ["ConfigLocator", "ConfigRepository", "SETTINGS_FILENAME"]
