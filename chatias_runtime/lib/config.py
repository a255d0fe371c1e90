"""Configuration loader for the runtime bridge.

Settings come from environment variables (optionally seeded from a .env file)
and from config/runtime.yaml, which holds the ordered remote model list.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from chatias_runtime.core.errors import DEFAULT_CONNECTION_TOKENS
from chatias_runtime.models.remote_model import RemoteModel

logger = logging.getLogger(__name__)

DEFAULT_SESSION_LABEL = "ChatIAS Web Console"
DEFAULT_SESSION_METADATA = {"source": "chatias-web"}


@dataclass(frozen=True)
class RuntimeSettings:
    """Immutable runtime bridge settings. Durations ending in _ms are milliseconds."""

    auto_connect: bool = True
    hostname: str = "127.0.0.1"
    port: int = 4096
    startup_timeout_ms: int = 20000
    retry_delay_ms: int = 5000
    retry_max_delay_ms: int = 60000
    session_label: str = DEFAULT_SESSION_LABEL
    session_metadata: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_SESSION_METADATA))
    spawn_server: bool = False
    server_command: str = "opencode"
    request_timeout_s: float = 120.0
    health_path: str = "/config"
    remote_models: tuple[RemoteModel, ...] = ()
    connection_error_tokens: tuple[str, ...] = DEFAULT_CONNECTION_TOKENS
    log_level: str = "INFO"
    log_structured: bool = False
    log_file: str | None = None

    @property
    def base_url(self) -> str:
        return f"http://{self.hostname}:{self.port}"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() not in ("false", "0", "no", "off")


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        number = int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={value!r}, using {default}")
        return default
    if number < minimum:
        logger.warning(f"Ignoring {name}={number} (must be at least {minimum}), using {default}")
        return default
    return number


class ConfigLoader:
    """Loads RuntimeSettings from the environment and runtime.yaml."""

    def __init__(self, config_dir: str | None = None, env_file: str | None = None):
        """Initialize configuration loader.

        Args:
            config_dir: Directory containing runtime.yaml (default: ./config)
            env_file: Path to .env file (default: ./.env)
        """
        self.config_dir = Path(config_dir or os.getenv("CHATIAS_CONFIG_DIR", "config"))
        self.env_file = Path(env_file or ".env")

        if self.env_file.exists():
            load_dotenv(self.env_file)
            logger.info(f"Loaded environment from {self.env_file}")
        else:
            logger.debug(f"Environment file not found: {self.env_file}")

    def _load_yaml(self) -> dict[str, Any]:
        runtime_file = self.config_dir / "runtime.yaml"
        if not runtime_file.exists():
            logger.warning(f"Runtime config not found: {runtime_file}")
            return {}

        with open(runtime_file) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{runtime_file} must contain a mapping, got {type(data).__name__}")
        return data

    def _load_remote_models(self, data: dict[str, Any]) -> tuple[RemoteModel, ...]:
        from_env = os.getenv("SDK_REMOTE_MODELS")
        if from_env:
            models = tuple(RemoteModel.parse(item) for item in from_env.split(",") if item.strip())
        else:
            models = tuple(RemoteModel.from_dict(item) for item in data.get("remote_models") or [])

        if models:
            logger.info(f"Loaded {len(models)} remote models: {', '.join(str(m) for m in models)}")
        else:
            logger.info("No remote models configured; summarization disabled")
        return models

    def load(self) -> RuntimeSettings:
        data = self._load_yaml()
        metadata = data.get("session_metadata") or DEFAULT_SESSION_METADATA
        tokens = data.get("connection_error_tokens") or DEFAULT_CONNECTION_TOKENS

        retry_delay_ms = _env_int("SDK_RETRY_DELAY", 5000)
        retry_max_delay_ms = _env_int("SDK_RETRY_MAX_DELAY", 60000)
        if retry_max_delay_ms < retry_delay_ms:
            logger.warning(
                f"SDK_RETRY_MAX_DELAY={retry_max_delay_ms} is below SDK_RETRY_DELAY={retry_delay_ms}; "
                "capping retries at the base delay"
            )
            retry_max_delay_ms = retry_delay_ms

        settings = RuntimeSettings(
            auto_connect=_env_bool("SDK_AUTO_CONNECT", True),
            hostname=os.getenv("SDK_HOSTNAME", "127.0.0.1"),
            port=_env_int("SDK_PORT", 4096),
            startup_timeout_ms=_env_int("SDK_STARTUP_TIMEOUT", 20000),
            retry_delay_ms=retry_delay_ms,
            retry_max_delay_ms=retry_max_delay_ms,
            session_label=os.getenv("SDK_SESSION_LABEL", DEFAULT_SESSION_LABEL),
            session_metadata=dict(metadata),
            spawn_server=_env_bool("SDK_SPAWN_SERVER", False),
            server_command=os.getenv("SDK_SERVER_COMMAND", "opencode"),
            request_timeout_s=float(_env_int("SDK_REQUEST_TIMEOUT", 120)),
            health_path=os.getenv("SDK_HEALTH_PATH", "/config"),
            remote_models=self._load_remote_models(data),
            connection_error_tokens=tuple(str(token).lower() for token in tokens),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_structured=_env_bool("LOG_STRUCTURED", False),
            log_file=os.getenv("LOG_FILE") or None,
        )

        logger.info(
            f"Runtime bridge configured for {settings.base_url} "
            f"(mode={'auto' if settings.auto_connect else 'manual'})"
        )
        return settings
