"""Targets configuration for the login monitor."""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Optional

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigLoadError


logger = structlog.get_logger(__name__)

DEFAULT_CHECK_INTERVAL_MS = 300_000

_ENV_REF_RE = re.compile(r"\$\{([A-Z0-9_]{1,64})\}")


class SelectorConfig(BaseModel):
    """Where the login form lives and how success is recognised."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    username_field: str = Field(alias="usernameField", min_length=1)
    password_field: str = Field(alias="passwordField", min_length=1)
    submit_button: str = Field(alias="submitButton", min_length=1)
    success_by_css: bool = Field(default=False, alias="successByCss")
    success_by_url: bool = Field(default=False, alias="successByUrl")
    success_value: str = Field(alias="successValue", min_length=1)

    @model_validator(mode="after")
    def _exactly_one_success_mode(self) -> "SelectorConfig":
        if self.success_by_css == self.success_by_url:
            raise ValueError("exactly one of successByCss/successByUrl must be true")
        return self


class Credentials(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: str
    password: str = Field(repr=False)


class Target(BaseModel):
    """One monitored login flow."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(min_length=1, description="Metrics label and log correlation key")
    login_url: str = Field(alias="loginUrl", min_length=1)
    selectors: SelectorConfig
    credentials: Credentials
    check_interval_ms: int = Field(
        default=DEFAULT_CHECK_INTERVAL_MS,
        alias="checkInterval",
        gt=0,
        description="Milliseconds between check starts",
    )

    @field_validator("check_interval_ms", mode="before")
    @classmethod
    def _default_when_null(cls, value: Any) -> Any:
        if value is None:
            return DEFAULT_CHECK_INTERVAL_MS
        return value

    @property
    def check_interval_seconds(self) -> float:
        return self.check_interval_ms / 1000.0


class MonitorConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    targets: list[Target] = Field(min_length=1)

    @field_validator("targets")
    @classmethod
    def _unique_names(cls, targets: list[Target]) -> list[Target]:
        seen: set[str] = set()
        for t in targets:
            if t.name in seen:
                raise ValueError(f"duplicate target name: {t.name!r}")
            seen.add(t.name)
        return targets


def substitute_env_refs(text: str) -> str:
    """Expand ``${VAR}`` references; a reference to an unset variable is an error."""
    s = str(text or "")
    if "${" not in s:
        return s

    missing: list[str] = []

    def _lookup(m: re.Match[str]) -> str:
        value = os.getenv(m.group(1))
        if value is None:
            missing.append(m.group(1))
            return ""
        return value

    out = _ENV_REF_RE.sub(_lookup, s)
    if missing:
        raise ValueError(f"Credential references unset environment variables: {sorted(set(missing))}")
    return out


def _resolve_credentials(raw_targets: list[Any]) -> None:
    for entry in raw_targets:
        if not isinstance(entry, dict):
            continue
        creds = entry.get("credentials")
        if not isinstance(creds, dict):
            continue
        for key in ("username", "password"):
            if isinstance(creds.get(key), str):
                creds[key] = substitute_env_refs(creds[key])


def parse_config(data: Any) -> MonitorConfig:
    if not isinstance(data, dict):
        raise ConfigLoadError("Config document must be a mapping with a 'targets' list")
    raw_targets = data.get("targets")
    if isinstance(raw_targets, list):
        try:
            _resolve_credentials(raw_targets)
        except ValueError as exc:
            raise ConfigLoadError(str(exc)) from exc
    try:
        return MonitorConfig(**data)
    except ValidationError as exc:
        raise ConfigLoadError(f"Invalid configuration: {exc}") from exc


YAML_SUFFIXES = (".yaml", ".yml")


def _read_document(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        if path.suffix.lower() in YAML_SUFFIXES:
            return yaml.safe_load(f) or {}
        return json.load(f)


def load_config(config_path: Optional[str | Path] = None) -> MonitorConfig:
    """Load the targets document once, at startup.

    ``.yaml``/``.yml`` files are read with PyYAML; anything else is JSON.
    """
    if config_path is None:
        config_path = os.getenv("SYNTHETIC_MONITOR_CONFIG_FILE", "/etc/synthetic-monitor/config.json")
    path = Path(config_path)
    logger.info("Loading configuration", config_file=str(path))

    try:
        config = parse_config(_read_document(path))
    except ConfigLoadError as exc:
        logger.error("Failed to load configuration", config_file=str(path), error=str(exc))
        raise
    except (OSError, ValueError, yaml.YAMLError) as exc:
        logger.error("Failed to load configuration", config_file=str(path), error=str(exc))
        raise ConfigLoadError(f"{type(exc).__name__}: {exc}") from exc

    logger.info(
        "Configuration loaded successfully",
        target_count=len(config.targets),
        targets=[{"name": t.name, "url": t.login_url} for t in config.targets],
    )
    return config
