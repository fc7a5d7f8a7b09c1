from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .exceptions import PermanentError

logger = logging.getLogger("chatgate.core.config")

CONFIG_ENV_VAR = "CHATGATE_CONFIG"
DEFAULT_CONFIG_FILENAME = "chatgate.yml"


class ConfigError(PermanentError):
    """Raised when a configuration document is structurally invalid."""


def camel_case(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def config_value(raw: Mapping[str, Any], key: str, *aliases: str) -> Any:
    """Look up a snake_case key, then its camelCase spelling, then aliases."""
    for candidate in (key, camel_case(key), *aliases):
        if candidate in raw:
            return raw[candidate]
    return None


def config_section(
    raw: Mapping[str, Any], key: str, *aliases: str, path: str
) -> dict[str, Any]:
    value = config_value(raw, key, *aliases)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"{path}.{key} must be a mapping")
    return dict(value)


def config_bool(value: Any, *, key: str) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "on", "1"}:
            return True
        if lowered in {"false", "no", "off", "0"}:
            return False
    raise ConfigError(f"{key} must be a boolean")


def load_yaml_dict(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Unable to read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a mapping: {path}")
    return data


def resolve_config_path(
    path: Optional[Path], *, env: Optional[Mapping[str, str]] = None
) -> Path:
    if path is not None:
        return path.expanduser()
    env_path = (env or {}).get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return Path.cwd() / DEFAULT_CONFIG_FILENAME
