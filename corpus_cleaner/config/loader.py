"""Configuration loading helpers for the corpus cleaner."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

import yaml
from pydantic import ValidationError

from ..errors import ConfigurationError
from .models import RefineryConfig

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
DEFAULT_CONFIG_FILENAME = "corpus_cleaner.yaml"


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text) or {}
        else:
            data = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Configuration file is not valid {path.suffix[1:]}: {path}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, stream, indent=2, ensure_ascii=False)


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "config"
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts)


@dataclass(slots=True)
class ConfigLocator:
    """Resolve the default configuration and log locations."""

    project_root: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        env_root = os.environ.get("CORPUS_CLEANER_HOME")
        if env_root:
            root = Path(env_root).expanduser().resolve()
        else:
            root = (self.project_root or Path.cwd()).resolve()
        self.project_root = root
        env_logs = os.environ.get("CORPUS_CLEANER_LOG_DIR")
        self.logs_dir = Path(env_logs).expanduser().resolve() if env_logs else (root / "logs").resolve()

    def default_config_path(self) -> Path:
        return self.project_root / DEFAULT_CONFIG_FILENAME


class ConfigRepository:
    """Repository encapsulating config IO and schema validation."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()

    def load(self, path: Path | None = None, **overrides: object) -> RefineryConfig:
        """Load a run configuration, applying non-None ``overrides`` on top.

        Without an explicit path the default file is used when it exists,
        otherwise the built-in defaults apply.
        """

        payload: dict = {}
        if path is not None:
            if not path.exists():
                raise ConfigurationError(f"Configuration file not found: {path}")
            if path.suffix not in CONFIG_EXTENSIONS:
                raise ConfigurationError(f"Unsupported configuration format: {path.suffix}")
            payload = _read_file(path)
        elif self.locator.default_config_path().exists():
            payload = _read_file(self.locator.default_config_path())
        return self.validate(_merge(payload, overrides))

    def dump(self, config: RefineryConfig, path: Path | None = None) -> Path:
        target = path or self.locator.default_config_path()
        if target.suffix not in CONFIG_EXTENSIONS:
            raise ConfigurationError(f"Unsupported configuration format: {target.suffix}")
        _write_file(target, config.model_dump(mode="json"))
        return target

    @staticmethod
    def validate(payload: dict) -> RefineryConfig:
        try:
            return RefineryConfig.model_validate(payload)
        except ValidationError as exc:
            raise ConfigurationError(_format_validation_error(exc)) from exc


def _merge(payload: dict, overrides: dict[str, object]) -> dict:
    """Apply dotted-key overrides such as ``scheduler.threads`` onto a payload."""

    merged = json.loads(json.dumps(payload, default=str))
    for dotted, value in overrides.items():
        if value is None:
            continue
        keys = dotted.split("__") if "__" in dotted else dotted.split(".")
        cursor = merged
        for key in keys[:-1]:
            nested = cursor.get(key)
            if not isinstance(nested, dict):
                nested = {}
                cursor[key] = nested
            cursor = nested
        cursor[keys[-1]] = str(value) if isinstance(value, Path) else value
    return merged


__all__ = ["CONFIG_EXTENSIONS", "ConfigLocator", "ConfigRepository"]
