"""App configuration loading helpers."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import tomllib

from pydantic import BaseModel, Field, ValidationError

LOG = logging.getLogger(__name__)

CONFIG_FILE = Path.home() / ".config" / "rowshape" / "config.toml"

ENV_ENVIRONMENT = "ROWSHAPE_ENV"
ENV_ALLOW_LOCALHOST = "ROWSHAPE_ALLOW_LOCALHOST"

_TRUTHY = {"1", "true", "yes", "on"}


class RegistryConfig(BaseModel):
    """Limits applied by the session registry and its pools."""

    max_sessions: int = Field(default=100, ge=1)
    pool_max_size: int = Field(default=5, ge=1)
    connect_timeout: float = Field(default=10.0, gt=0)
    statement_timeout: float = Field(default=30.0, gt=0)
    session_ttl: float = Field(default=30 * 60.0, gt=0)
    sweep_interval: float = Field(default=60.0, gt=0)


class AppConfig(BaseModel):
    """Shape of the application configuration file."""

    environment: str = "development"
    allow_localhost: bool = False
    log_level: str = "INFO"
    registry: RegistryConfig = Field(default_factory=RegistryConfig)

    @property
    def production(self) -> bool:
        """Production-like deployments hide infrastructure detail in error messages."""

        return self.environment == "production"

    @property
    def security_bypass(self) -> bool:
        """Private and loopback targets are only reachable in an opted-in development setup."""

        return self.environment == "development" and self.allow_localhost

    def with_registry(self, **updates: object) -> AppConfig:
        """Return a copy with registry limits changed."""

        registry = self.registry.model_copy(update=updates)
        return self.model_copy(update={"registry": registry})


def load_config(environ: dict[str, str] | None = None) -> AppConfig:
    """Load configuration from disk and the environment; fall back to defaults."""

    try:
        data = _read_config_file()
    except FileNotFoundError:
        data = {}
    except (tomllib.TOMLDecodeError, OSError):
        data = {}

    env = os.environ if environ is None else environ
    environment = env.get(ENV_ENVIRONMENT)
    if environment:
        data["environment"] = environment.strip().lower()
    allow_localhost = env.get(ENV_ALLOW_LOCALHOST)
    if allow_localhost is not None:
        data["allow_localhost"] = allow_localhost.strip().lower() in _TRUTHY

    return AppConfig(
        environment=data.get("environment", AppConfig.model_fields["environment"].default),
        allow_localhost=data.get(
            "allow_localhost", AppConfig.model_fields["allow_localhost"].default
        ),
        log_level=data.get("log_level", AppConfig.model_fields["log_level"].default),
        registry=data.get("registry", RegistryConfig()),
    )


def _read_config_file() -> dict[str, object]:
    with CONFIG_FILE.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    if isinstance(raw, dict):
        environment = raw.get("environment")
        if isinstance(environment, str):
            data["environment"] = environment.strip().lower()
        allow_localhost = raw.get("allow_localhost")
        if isinstance(allow_localhost, bool):
            data["allow_localhost"] = allow_localhost
        log_level = raw.get("log_level")
        if isinstance(log_level, str):
            data["log_level"] = log_level.upper()
        registry = raw.get("registry")
        if isinstance(registry, dict):
            limits: dict[str, object] = {}
            for key in ("max_sessions", "pool_max_size"):
                value = registry.get(key)
                if isinstance(value, int) and not isinstance(value, bool):
                    limits[key] = value
            for key in ("connect_timeout", "statement_timeout", "session_ttl", "sweep_interval"):
                value = registry.get(key)
                if isinstance(value, (int, float)) and not isinstance(value, bool):
                    limits[key] = float(value)
            try:
                data["registry"] = RegistryConfig(**limits)
            except ValidationError as exc:
                LOG.warning(
                    "Ignoring invalid registry limits in config file",
                    extra={"path": str(CONFIG_FILE), "errors": exc.error_count()},
                )
    return data


__all__ = [
    "AppConfig",
    "CONFIG_FILE",
    "ENV_ALLOW_LOCALHOST",
    "ENV_ENVIRONMENT",
    "RegistryConfig",
    "load_config",
]
