"""Configuration management for devpair."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import yaml


DEFAULT_SERVICE_URL = "http://127.0.0.1:42715"


@dataclass
class ServiceConfig:
    """Peer-networking service connection settings."""

    base_url: str = DEFAULT_SERVICE_URL
    request_timeout: float = 10.0  # seconds
    reconnect_delay: float = 5.0  # seconds between event stream reconnects


@dataclass
class PairingConfig:
    """Pairing coordinator settings."""

    return_delay: float = 2.0  # seconds a success/failure stays on screen


@dataclass
class Config:
    """devpair configuration."""

    log_level: str = "INFO"
    log_file: str | None = None
    service: ServiceConfig = field(default_factory=ServiceConfig)
    pairing: PairingConfig = field(default_factory=PairingConfig)


def get_config_path(custom_path: Path | None = None) -> Path:
    """Get the configuration file path.

    Args:
        custom_path: Override path. If None, returns default.

    Returns:
        Path to config file.
    """
    if custom_path is not None:
        return custom_path
    return Path.home() / ".config" / "devpair" / "config.yaml"


def _default_file_reader(path: Path) -> dict[str, Any] | None:
    """Default file reader that loads YAML from disk."""
    if not path.exists():
        return None
    try:
        content = path.read_text()
        if not content.strip():
            return None
        data = yaml.safe_load(content)
    except yaml.YAMLError:
        return None
    # A scalar or list at the top level is not a usable config
    if not isinstance(data, dict):
        return None
    return data


def load_config(
    path: Path | None = None,
    file_reader: Callable[[Path], dict[str, Any] | None] | None = None,
) -> Config:
    """Load configuration from file.

    Args:
        path: Path to config file. If None, uses default path.
        file_reader: Injectable file reader for testing.

    Returns:
        Config object with values from file or defaults.
    """
    config_path = get_config_path(path)
    reader = file_reader or _default_file_reader

    data = reader(config_path)

    if data is None:
        return Config()

    service_data = data.get("service") or {}
    service_config = ServiceConfig(
        base_url=service_data.get("base_url", ServiceConfig.base_url),
        request_timeout=float(
            service_data.get("request_timeout", ServiceConfig.request_timeout)
        ),
        reconnect_delay=float(
            service_data.get("reconnect_delay", ServiceConfig.reconnect_delay)
        ),
    )

    pairing_data = data.get("pairing") or {}
    pairing_config = PairingConfig(
        return_delay=float(
            pairing_data.get("return_delay", PairingConfig.return_delay)
        ),
    )

    return Config(
        log_level=data.get("log_level", Config.log_level),
        log_file=data.get("log_file", Config.log_file),
        service=service_config,
        pairing=pairing_config,
    )
