"""Configuration loading for taskwatch."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml

from .errors import ConfigurationInvalid

TRANSPORTS = ("poll", "push")


@dataclass
class ServerConfig:
    api_url: str = "http://localhost:8081"
    websocket_url: str = "ws://localhost:8082"
    request_timeout_seconds: float = 10.0


@dataclass
class PollConfig:
    """Configuration for the polling engine."""

    interval_seconds: float = 3.0  # Flat interval between successful cycles
    max_failures: int = 5  # Consecutive failures before the terminal error


@dataclass
class BackoffConfig:
    """Configuration shared by poll retries and push reconnects."""

    base_delay_seconds: float = 5.0
    growth_factor: float = 1.5
    max_delay_seconds: float = 30.0
    attempt_cap: int = 10


@dataclass
class PushConfig:
    """Configuration for the WebSocket engine."""

    keepalive_interval_seconds: float = 30.0
    open_timeout_seconds: float = 10.0


@dataclass
class Config:
    transport: str = "poll"
    server: ServerConfig = field(default_factory=ServerConfig)
    poll: PollConfig = field(default_factory=PollConfig)
    backoff: BackoffConfig = field(default_factory=BackoffConfig)
    push: PushConfig = field(default_factory=PushConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with TASKWATCH_ prefix."""
    return os.environ.get(f"TASKWATCH_{key}", default)


def _section(data: dict, name: str) -> dict:
    """Return a top-level YAML section, which must be a mapping."""
    section = data[name]
    if not isinstance(section, dict):
        raise ConfigurationInvalid(
            f"Config section {name!r} must be a mapping, got {section!r}"
        )
    return section


def _number(section: dict, dotted_key: str, default: Any, cast: type = float) -> Any:
    """Read a numeric setting, converting it with ``cast``."""
    value = section.get(dotted_key.rsplit(".", 1)[-1], default)
    if isinstance(value, bool):
        raise ConfigurationInvalid(f"{dotted_key} must be a number, got {value!r}")
    try:
        return cast(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationInvalid(
            f"{dotted_key} must be a number, got {value!r}"
        ) from e


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    if transport := _get_env("TRANSPORT"):
        config.transport = transport.lower()

    # Server overrides
    if api_url := _get_env("API_URL"):
        config.server.api_url = api_url
    if websocket_url := _get_env("WEBSOCKET_URL"):
        config.server.websocket_url = websocket_url

    # Poll overrides
    try:
        if interval := _get_env("POLL_INTERVAL"):
            config.poll.interval_seconds = float(interval)
        if max_failures := _get_env("MAX_FAILURES"):
            config.poll.max_failures = int(max_failures)
    except ValueError as e:
        raise ConfigurationInvalid(f"Invalid environment override: {e}") from e

    return config


def validate_config(config: Config) -> Config:
    """Check that a configuration can drive an engine.

    Raises:
        ConfigurationInvalid: On the first problem found.
    """
    if config.transport not in TRANSPORTS:
        raise ConfigurationInvalid(
            f"Unknown transport {config.transport!r}, expected one of {TRANSPORTS}"
        )

    api = urlparse(config.server.api_url)
    if api.scheme not in ("http", "https") or not api.netloc:
        raise ConfigurationInvalid(f"Invalid API URL: {config.server.api_url!r}")

    ws = urlparse(config.server.websocket_url)
    if ws.scheme not in ("ws", "wss") or not ws.netloc:
        raise ConfigurationInvalid(
            f"Invalid WebSocket URL: {config.server.websocket_url!r}"
        )

    if config.server.request_timeout_seconds <= 0:
        raise ConfigurationInvalid("request_timeout_seconds must be positive")
    if config.poll.interval_seconds <= 0:
        raise ConfigurationInvalid("poll interval_seconds must be positive")
    if config.poll.max_failures < 0:
        raise ConfigurationInvalid("poll max_failures must not be negative")

    backoff = config.backoff
    if backoff.base_delay_seconds <= 0:
        raise ConfigurationInvalid("backoff base_delay_seconds must be positive")
    if backoff.growth_factor < 1:
        raise ConfigurationInvalid("backoff growth_factor must be at least 1")
    if backoff.max_delay_seconds < backoff.base_delay_seconds:
        raise ConfigurationInvalid(
            "backoff max_delay_seconds must not be below base_delay_seconds"
        )
    if backoff.attempt_cap < 0:
        raise ConfigurationInvalid("backoff attempt_cap must not be negative")

    if config.push.keepalive_interval_seconds <= 0:
        raise ConfigurationInvalid("push keepalive_interval_seconds must be positive")
    if config.push.open_timeout_seconds <= 0:
        raise ConfigurationInvalid("push open_timeout_seconds must be positive")

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded and validated Config object.

    Raises:
        ConfigurationInvalid: If the file cannot be parsed or a value is
            out of range.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            try:
                with open(path) as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationInvalid(f"Cannot parse {path}: {e}") from e

            if not isinstance(data, dict):
                raise ConfigurationInvalid(f"{path} must contain a mapping")

            if "transport" in data:
                config.transport = str(data["transport"]).lower()

            # Parse server config
            if "server" in data:
                server_data = _section(data, "server")
                config.server = ServerConfig(
                    api_url=str(server_data.get("api_url", config.server.api_url)),
                    websocket_url=str(
                        server_data.get("websocket_url", config.server.websocket_url)
                    ),
                    request_timeout_seconds=_number(
                        server_data,
                        "server.request_timeout_seconds",
                        config.server.request_timeout_seconds,
                    ),
                )

            # Parse poll config
            if "poll" in data:
                poll_data = _section(data, "poll")
                config.poll = PollConfig(
                    interval_seconds=_number(
                        poll_data, "poll.interval_seconds", config.poll.interval_seconds
                    ),
                    max_failures=_number(
                        poll_data, "poll.max_failures", config.poll.max_failures, int
                    ),
                )

            # Parse backoff config
            if "backoff" in data:
                backoff_data = _section(data, "backoff")
                config.backoff = BackoffConfig(
                    base_delay_seconds=_number(
                        backoff_data,
                        "backoff.base_delay_seconds",
                        config.backoff.base_delay_seconds,
                    ),
                    growth_factor=_number(
                        backoff_data,
                        "backoff.growth_factor",
                        config.backoff.growth_factor,
                    ),
                    max_delay_seconds=_number(
                        backoff_data,
                        "backoff.max_delay_seconds",
                        config.backoff.max_delay_seconds,
                    ),
                    attempt_cap=_number(
                        backoff_data,
                        "backoff.attempt_cap",
                        config.backoff.attempt_cap,
                        int,
                    ),
                )

            # Parse push config
            if "push" in data:
                push_data = _section(data, "push")
                config.push = PushConfig(
                    keepalive_interval_seconds=_number(
                        push_data,
                        "push.keepalive_interval_seconds",
                        config.push.keepalive_interval_seconds,
                    ),
                    open_timeout_seconds=_number(
                        push_data,
                        "push.open_timeout_seconds",
                        config.push.open_timeout_seconds,
                    ),
                )

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    return validate_config(config)
