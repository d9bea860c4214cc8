from __future__ import annotations
from dataclasses import dataclass, fields
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from pow_shared.errors import ConfigError
from pow_shared.log import get_logger
from pow_shared.messages import RemoteDescriptor

logger = get_logger(__name__)

TRANSPORTS = ("ws", "http")

# environment variable -> config field
_ENV_OVERRIDES: Dict[str, str] = {
    "POW_SERVER": "server",
    "POW_TOKEN": "token",
    "POW_TRANSPORT": "transport",
    "POW_POLL_INTERVAL": "poll_interval",
    "POW_CLOSE_TIMEOUT": "close_timeout",
    "POW_HTTP_POLL_INTERVAL": "http_poll_interval",
    "POW_LOG_LEVEL": "log_level",
}

_FLOAT_FIELDS = {"poll_interval", "close_timeout", "http_poll_interval", "ping_interval", "ping_timeout"}


@dataclass
class ClientConfig:
    server: str = "ws://localhost:3000"
    token: Optional[str] = None
    transport: str = "ws"

    # stuck-close watchdog
    poll_interval: float = 0.1
    close_timeout: float = 0.5

    # http transport
    http_poll_interval: float = 0.5

    # websocket keepalive
    ping_interval: float = 15.0
    ping_timeout: float = 45.0

    log_level: Optional[str] = None

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if self.transport not in TRANSPORTS:
            raise ConfigError(f"transport must be one of {', '.join(TRANSPORTS)}, got {self.transport!r}")
        for name in _FLOAT_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"{name} must be a number, got {value!r}")
            if value <= 0:
                raise ConfigError(f"{name} must be positive, got {value!r}")

    def remote(self) -> RemoteDescriptor:
        return RemoteDescriptor(url=self.server, token=self.token)

    def as_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def default_config_path() -> Path:
    return Path.home() / ".pow" / "config.yaml"


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Error reading {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    return data


def _coerce(name: str, value: Any) -> Any:
    if name in _FLOAT_FIELDS and isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            raise ConfigError(f"{name} must be a number, got {value!r}")
    return value


def load_config(path: Optional[Path] = None, **overrides: Any) -> ClientConfig:
    """
    Build the effective client configuration.

    Precedence (lowest to highest): defaults, YAML file, environment
    variables, explicit keyword overrides whose value is not None.
    """
    known = {f.name for f in fields(ClientConfig)}
    values: Dict[str, Any] = {}

    if path is None and os.getenv("POW_CONFIG"):
        path = Path(os.environ["POW_CONFIG"])
    if path is None and default_config_path().exists():
        path = default_config_path()

    if path is not None:
        for key, value in _read_yaml(path).items():
            if key not in known:
                logger.warning("Ignoring unknown config key %r in %s", key, path)
                continue
            values[key] = _coerce(key, value)
        logger.debug("Loaded config from %s", path)

    for env, name in _ENV_OVERRIDES.items():
        value = os.getenv(env)
        if value:
            values[name] = _coerce(name, value)

    for name, value in overrides.items():
        if name not in known:
            raise ConfigError(f"Unknown config option {name!r}")
        if value is not None:
            values[name] = value

    return ClientConfig(**values)
