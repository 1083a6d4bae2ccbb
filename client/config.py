from __future__ import annotations
from dataclasses import dataclass, fields, replace
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from client.backoff import DEFAULT_BASE_DELAY_MS, DEFAULT_MAX_ATTEMPTS
from shared.log import get_logger

logger = get_logger(__name__)

CONFIG_ENV = "ROOMCHAT_CONFIG"


class ConfigError(Exception):
    """Raised when a client config file is malformed."""
    pass


@dataclass(frozen=True)
class ClientConfig:
    """Where to reach the chat server and how hard to retry."""
    scheme: str = "ws"
    host: str = "localhost"
    port: int = 8080
    path: str = "/ws-chat-message"
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS
    open_timeout: Optional[float] = 10.0
    ping_interval: Optional[float] = 15.0
    ping_timeout: Optional[float] = 45.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ClientConfig':
        """Build from a mapping; unknown keys are ignored, known keys are type checked"""
        known = {f.name: f for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                logger.debug("Ignoring unknown config key %r", key)
                continue
            values[key] = _coerce(key, value, getattr(cls, key))
        config = cls(**values)
        config.validate()
        return config

    def validate(self) -> None:
        if self.scheme not in ("ws", "wss"):
            raise ConfigError(f"scheme must be 'ws' or 'wss', got {self.scheme!r}")
        if not 0 < self.port <= 65535:
            raise ConfigError(f"port out of range: {self.port}")
        if self.max_attempts < 0:
            raise ConfigError("max_attempts must not be negative")
        if self.base_delay_ms < 0:
            raise ConfigError("base_delay_ms must not be negative")

    def with_overrides(self, **overrides: Any) -> 'ClientConfig':
        """Copy with the non-None overrides applied"""
        changes = {k: v for k, v in overrides.items() if v is not None}
        config = replace(self, **changes)
        config.validate()
        return config


def _coerce(key: str, value: Any, default: Any) -> Any:
    if value is None:
        if default is None or isinstance(default, float):
            return None
        raise ConfigError(f"'{key}' must not be null")
    if isinstance(default, bool) or isinstance(value, bool):
        raise ConfigError(f"'{key}' has invalid value {value!r}")
    if isinstance(default, str):
        if not isinstance(value, str):
            raise ConfigError(f"'{key}' must be a string")
        return value
    if isinstance(default, int):
        if not isinstance(value, int):
            raise ConfigError(f"'{key}' must be an integer")
        return value
    if not isinstance(value, (int, float)):
        raise ConfigError(f"'{key}' must be a number")
    return float(value)


def default_config_path() -> Optional[Path]:
    value = os.getenv(CONFIG_ENV)
    return Path(value).expanduser() if value else None


def load_config(path: Optional[Union[str, Path]] = None) -> ClientConfig:
    """
    Load client settings from YAML.

    The file may hold the settings at top level or under a 'client:' mapping.
    A missing file (or no path at all) yields the defaults.
    """
    if path is None:
        path = default_config_path()
    if path is None:
        return ClientConfig()
    path = Path(path)
    if not path.exists():
        logger.info("No config file at %s; using defaults", path)
        return ClientConfig()
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Error reading {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")
    section = data.get("client", data)
    if not isinstance(section, dict):
        raise ConfigError(f"'client' section of {path} must be a mapping")
    return ClientConfig.from_dict(section)
