"""Configuration management for the audit management service."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

from .database import resolve_database_path

DEFAULT_CORS_ORIGINS: Tuple[str, ...] = ("http://localhost:4200", "http://127.0.0.1:4200")
_LOG_LEVELS = {"critical", "error", "warning", "info", "debug"}


def _split_csv(value: object) -> Tuple[str, ...]:
    if isinstance(value, (list, tuple)):
        items = [str(item) for item in value]
    else:
        items = str(value).split(",")
    return tuple(item.strip() for item in items if item.strip())


def _parse_port(value: object, source: str) -> int:
    try:
        port = int(str(value).strip())
    except ValueError as exc:
        raise ValueError(f"Invalid port {value!r} in {source}") from exc
    if not 1 <= port <= 65535:
        raise ValueError(f"Port {port} in {source} must be between 1 and 65535")
    return port


def _parse_log_level(value: object, source: str) -> str:
    level = str(value).strip().lower()
    if level not in _LOG_LEVELS:
        raise ValueError(
            f"Invalid log level {value!r} in {source}; expected one of {', '.join(sorted(_LOG_LEVELS))}"
        )
    return level


def _resolve_path(raw: object, base_path: Path | None) -> Path:
    candidate = Path(str(raw)).expanduser()
    if not candidate.is_absolute() and base_path is not None:
        candidate = base_path / candidate
    return candidate.resolve(strict=False)


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the HTTP service and the CLI."""

    database_path: Path
    host: str = "0.0.0.0"
    port: int = 8081
    log_level: str = "info"
    cors_origins: Tuple[str, ...] = DEFAULT_CORS_ORIGINS
    trusted_proxies: Tuple[str, ...] = ("*",)

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from the mapping loaded from a YAML file."""

        source = "configuration file"
        raw_db = data.get("database_path")
        database_path = (
            _resolve_path(raw_db, base_path) if raw_db else resolve_database_path(None)
        )

        kwargs: Dict[str, object] = {"database_path": database_path}
        if data.get("host"):
            kwargs["host"] = str(data["host"]).strip()
        if data.get("port") is not None:
            kwargs["port"] = _parse_port(data["port"], source)
        if data.get("log_level"):
            kwargs["log_level"] = _parse_log_level(data["log_level"], source)
        if data.get("cors_origins") is not None:
            kwargs["cors_origins"] = _split_csv(data["cors_origins"])
        if data.get("trusted_proxies") is not None:
            kwargs["trusted_proxies"] = _split_csv(data["trusted_proxies"]) or ("*",)
        return Settings(**kwargs)  # type: ignore[arg-type]

    def with_env_overrides(self, environ: Mapping[str, str]) -> "Settings":
        """Return a copy with values from ``AUDIT_*`` environment variables applied."""

        overrides: Dict[str, object] = {}
        if environ.get("AUDIT_DB_PATH"):
            overrides["database_path"] = resolve_database_path(environ["AUDIT_DB_PATH"])
        if environ.get("AUDIT_HOST"):
            overrides["host"] = environ["AUDIT_HOST"].strip()
        if environ.get("AUDIT_PORT"):
            overrides["port"] = _parse_port(environ["AUDIT_PORT"], "AUDIT_PORT")
        if environ.get("AUDIT_LOG_LEVEL"):
            overrides["log_level"] = _parse_log_level(environ["AUDIT_LOG_LEVEL"], "AUDIT_LOG_LEVEL")
        if environ.get("AUDIT_CORS_ORIGINS") is not None:
            overrides["cors_origins"] = _split_csv(environ["AUDIT_CORS_ORIGINS"])
        if environ.get("AUDIT_TRUSTED_PROXIES"):
            overrides["trusted_proxies"] = _split_csv(environ["AUDIT_TRUSTED_PROXIES"]) or ("*",)
        if not overrides:
            return self
        return replace(self, **overrides)  # type: ignore[arg-type]


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "settings.yaml").resolve(strict=False)
    return candidate


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from a YAML file, then apply environment overrides.

    A missing file is not an error: defaults are used instead.
    """

    env = os.environ if environ is None else environ
    if config_path is None:
        config_path = resolve_config_path(env.get("AUDIT_CONFIG_PATH"))

    raw: Mapping[str, object] = {}
    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Configuration file {config_path} must contain a mapping")
        raw = loaded

    settings = Settings.from_dict(raw, base_path=config_path.parent)
    return settings.with_env_overrides(env)


__all__ = ["DEFAULT_CORS_ORIGINS", "Settings", "load_settings", "resolve_config_path"]
