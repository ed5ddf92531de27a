"""Layered YAML configuration for Photo Albums."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import yaml


DEFAULT_CONFIG: dict[str, Any] = {
    "database": {
        "path": "photos.db",
    },
    "albums": {
        "group_by": "week",
        "validate_on_startup": True,
    },
    "photos": {
        "supported_formats": ["jpg", "jpeg", "png", "webp", "gif", "svg"],
    },
    "logging": {
        "level": "INFO",
        "log_to_file": False,
        "log_file": "photo_albums.log",
    },
}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base, returning a new dict."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _read_yaml(path: Path) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return data


def _write_yaml(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def get_db_config_path(db_path: str | Path) -> Path:
    """Return <db_dir>/<db_stem>.config.yaml for a given database path."""
    db_path = Path(db_path)
    return db_path.parent / f"{db_path.stem}.config.yaml"


class ConfigManager:
    """Album settings: DEFAULT_CONFIG with YAML files merged over it.

    Each merged file overrides the earlier layers key by key; ``sources``
    lists them in merge order.
    """

    def __init__(self, config_path: str | Path | None = None):
        self._path = Path(config_path) if config_path else None
        self._session_path: Path | None = None
        self._config: dict[str, Any] = {}
        self._sources: list[Path] = []
        self.reset()
        if self._path and self._path.exists():
            self.load()

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def config(self) -> dict[str, Any]:
        return self._config

    @property
    def sources(self) -> list[Path]:
        return list(self._sources)

    def load(self, config_path: str | Path | None = None) -> None:
        """Replace the current settings with DEFAULT <- ``config_path``."""
        self._path = self._require_path(config_path)
        self.reset()
        self._merge_file(self._path)

    def save(self, config_path: str | Path | None = None) -> None:
        self._path = self._require_path(config_path)
        _write_yaml(self._path, self._config)

    def get(self, dotted_key: str, default: Any = None) -> Any:
        """Look up a value by dotted key, e.g. ``albums.group_by``."""
        node: Any = self._config
        for key in dotted_key.split("."):
            if not isinstance(node, dict) or key not in node:
                return default
            node = node[key]
        return node

    def set(self, dotted_key: str, value: Any) -> None:
        """Set a value by dotted key, creating intermediate sections."""
        *sections, leaf = dotted_key.split(".")
        node = self._config
        for key in sections:
            child = node.get(key)
            if not isinstance(child, dict):
                child = node[key] = {}
            node = child
        node[leaf] = value

    def load_layered(
        self,
        db_config_path: str | Path | None = None,
        cli_config_path: str | Path | None = None,
    ) -> None:
        """Rebuild the settings as DEFAULT <- db_config <- cli_config.

        A missing db_config is written out with the defaults and becomes the
        target of save_session(). A missing cli_config is skipped.
        """
        self.reset()
        self._session_path = Path(db_config_path) if db_config_path else None
        if self._session_path is not None:
            if self._session_path.exists():
                self._merge_file(self._session_path)
            else:
                _write_yaml(self._session_path, self._config)
        if cli_config_path and Path(cli_config_path).exists():
            self._merge_file(Path(cli_config_path))

    def save_session(self) -> None:
        """Write the settings back to the per-database config, if there is one."""
        if self._session_path is not None:
            _write_yaml(self._session_path, self._config)

    def reset(self) -> None:
        """Drop every merged file and return to the defaults."""
        self._config = copy.deepcopy(DEFAULT_CONFIG)
        self._sources = []

    # --- Album settings ---

    @property
    def database_path(self) -> Path:
        return Path(self.get("database.path", DEFAULT_CONFIG["database"]["path"]))

    @property
    def group_by(self) -> str:
        return self.get("albums.group_by", DEFAULT_CONFIG["albums"]["group_by"])

    @property
    def supported_formats(self) -> list[str]:
        return list(self.get("photos.supported_formats", []))

    @property
    def log_file(self) -> Path | None:
        """The log file, or None unless ``logging.log_to_file`` is on."""
        if not self.get("logging.log_to_file", False):
            return None
        return Path(self.get("logging.log_file", DEFAULT_CONFIG["logging"]["log_file"]))

    def _require_path(self, config_path: str | Path | None) -> Path:
        path = Path(config_path) if config_path else self._path
        if path is None:
            raise ValueError("No config path specified")
        return path

    def _merge_file(self, path: Path) -> None:
        self._config = _deep_merge(self._config, _read_yaml(path))
        self._sources.append(path)
