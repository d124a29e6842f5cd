"""App configuration loading helpers."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import tomllib

from pydantic import BaseModel, Field, ValidationError

from .db.tls import SslMode, TlsOptions

CONFIG_DIR = Path.home() / ".config" / "pgbossui"
CONFIG_FILE = CONFIG_DIR / "config.toml"
LOG_FILE = CONFIG_DIR / "pgbossui.log"

DEFAULT_SCHEMA = "pgboss"

LOG = logging.getLogger(__name__)


class ThresholdLevel(BaseModel):
    """Counts above which a queue is flagged."""

    failed: int = 10
    pending: int = 100


class HealthThresholds(BaseModel):
    """Warning/critical thresholds used by the queue health badges."""

    warning: ThresholdLevel = Field(default_factory=ThresholdLevel)
    critical: ThresholdLevel = Field(default_factory=lambda: ThresholdLevel(failed=100, pending=1000))


class ConnectionProfileConfig(BaseModel):
    """Connection profile configuration stored in config.toml."""

    name: str
    connection_string: str
    schema_name: str = DEFAULT_SCHEMA
    allow_self_signed_cert: bool = False
    ca_certificate: str | None = None
    ssl_mode: SslMode | None = None

    def tls_options(self) -> TlsOptions:
        return TlsOptions(
            allow_self_signed_cert=self.allow_self_signed_cert,
            ca_certificate=self.ca_certificate,
            ssl_mode=self.ssl_mode,
        )


class AppConfig(BaseModel):
    """Shape of the application configuration file."""

    theme: str = "dark"
    log_level: str = "INFO"
    refresh_interval: float = 5.0
    profiles: list[ConnectionProfileConfig] = Field(default_factory=lambda: list(_default_profiles()))
    active_profile: str | None = None
    health: HealthThresholds = Field(default_factory=HealthThresholds)

    def profile(self, name: str) -> ConnectionProfileConfig | None:
        for profile in self.profiles:
            if profile.name == name:
                return profile
        return None

    def with_active_profile(self, name: str | None) -> AppConfig:
        """Return a copy with the active profile updated."""

        return self.model_copy(update={"active_profile": name})

    def with_profile(self, profile: ConnectionProfileConfig) -> AppConfig:
        """Return a copy with ``profile`` added or replacing one of the same name."""

        profiles = [entry for entry in self.profiles if entry.name != profile.name]
        profiles.append(profile)
        return self.model_copy(update={"profiles": profiles})

    def with_health(self, thresholds: HealthThresholds) -> AppConfig:
        return self.model_copy(update={"health": thresholds})


def load_config() -> AppConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    try:
        data = _read_config_file()
    except FileNotFoundError:
        return AppConfig()
    except (tomllib.TOMLDecodeError, OSError):
        LOG.warning("Could not read %s; using defaults", CONFIG_FILE, exc_info=True)
        return AppConfig()
    try:
        return AppConfig(**data)
    except ValidationError:
        LOG.warning("Invalid configuration in %s; using defaults", CONFIG_FILE, exc_info=True)
        return AppConfig()


def save_config(config: AppConfig) -> None:
    """Persist configuration to disk."""

    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    lines: list[str] = [
        f"theme = {_quote(config.theme)}",
        f"log_level = {_quote(config.log_level)}",
        f"refresh_interval = {config.refresh_interval}",
    ]
    if config.active_profile:
        lines.append(f"active_profile = {_quote(config.active_profile)}")
    for level in ("warning", "critical"):
        threshold: ThresholdLevel = getattr(config.health, level)
        lines.append("")
        lines.append(f"[health.{level}]")
        lines.append(f"failed = {threshold.failed}")
        lines.append(f"pending = {threshold.pending}")
    if config.profiles:
        lines.append("")
        for profile in config.profiles:
            lines.append("[[profiles]]")
            lines.append(f"name = {_quote(profile.name)}")
            lines.append(f"connection_string = {_quote(profile.connection_string)}")
            lines.append(f"schema_name = {_quote(profile.schema_name)}")
            if profile.allow_self_signed_cert:
                lines.append("allow_self_signed_cert = true")
            if profile.ssl_mode is not None:
                lines.append(f"ssl_mode = {_quote(profile.ssl_mode.value)}")
            if profile.ca_certificate:
                lines.append(f"ca_certificate = {_quote(profile.ca_certificate)}")
            lines.append("")
    CONFIG_FILE.write_text("\n".join(lines) + "\n")


def _quote(value: str) -> str:
    # JSON string escapes are a subset of TOML basic-string escapes.
    return json.dumps(value)


def _read_config_file() -> dict[str, object]:
    with CONFIG_FILE.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    for key in ("theme", "log_level", "active_profile"):
        value = raw.get(key)
        if isinstance(value, str):
            data[key] = value
    interval = raw.get("refresh_interval")
    if isinstance(interval, (int, float)) and not isinstance(interval, bool) and interval > 0:
        data["refresh_interval"] = float(interval)
    health = raw.get("health")
    if isinstance(health, dict):
        levels: dict[str, ThresholdLevel] = {}
        for level in ("warning", "critical"):
            entry = health.get(level)
            if isinstance(entry, dict):
                levels[level] = ThresholdLevel(
                    **{key: value for key, value in entry.items() if key in ("failed", "pending") and isinstance(value, int)}
                )
        data["health"] = HealthThresholds(**levels)
    profiles = raw.get("profiles")
    if isinstance(profiles, list):
        parsed_profiles: list[dict[str, object]] = []
        for profile in profiles:
            if not isinstance(profile, dict):
                continue
            parsed: dict[str, object] = {}
            for key in ("name", "connection_string", "schema_name", "ca_certificate", "ssl_mode"):
                value = profile.get(key)
                if isinstance(value, str):
                    parsed[key] = value
            allow_self_signed = profile.get("allow_self_signed_cert")
            if isinstance(allow_self_signed, bool):
                parsed["allow_self_signed_cert"] = allow_self_signed
            if parsed.get("name") and parsed.get("connection_string"):
                parsed_profiles.append(parsed)
        data["profiles"] = parsed_profiles
    return data


def _default_profiles() -> tuple[ConnectionProfileConfig, ...]:
    """Default profile shown on first run before config is customized."""

    return (
        ConnectionProfileConfig(
            name="Local pg-boss",
            connection_string="postgresql://postgres@localhost:5432/postgres",
        ),
    )


__all__ = [
    "AppConfig",
    "CONFIG_FILE",
    "ConnectionProfileConfig",
    "DEFAULT_SCHEMA",
    "HealthThresholds",
    "LOG_FILE",
    "ThresholdLevel",
    "load_config",
    "save_config",
]
