from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off"})


def _env(name: str) -> str | None:
    value = os.environ.get(name, "").strip()
    return value or None


def _env_bool(name: str, default: bool) -> bool:
    value = (_env(name) or "").lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    return default


def _env_int(name: str, default: int) -> int:
    value = _env(name)
    if value is None or not value.lstrip("-").isdigit():
        return default
    return int(value)


def _env_str(name: str, default: str) -> str:
    return _env(name) or default


CHROMIUM_CANDIDATES = (
    "/usr/bin/chromium",
    "/usr/bin/chromium-browser",
    "/usr/bin/google-chrome",
    "/usr/bin/google-chrome-stable",
)


def find_chromium_executable() -> str | None:
    """Browser binary to launch, or None to use Playwright's bundled Chromium."""
    explicit = [_env("PUPPETEER_EXECUTABLE_PATH"), _env("CHROMIUM_PATH")]
    for path in [p for p in explicit if p] + list(CHROMIUM_CANDIDATES):
        if Path(path).exists():
            return path
    return None


@dataclass(frozen=True)
class RuntimeSettings:
    config_file: str = field(
        default_factory=lambda: _env_str("SYNTHETIC_MONITOR_CONFIG_FILE", "/etc/synthetic-monitor/config.json")
    )
    host: str = field(default_factory=lambda: _env_str("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: _env_int("PORT", 3000))

    browser_executable: str | None = field(default_factory=find_chromium_executable)
    browser_headless: bool = field(default_factory=lambda: _env_bool("BROWSER_HEADLESS", True))
    screenshot_dir: str = field(default_factory=lambda: _env_str("SYNTHETIC_MONITOR_SCREENSHOT_DIR", "screenshots"))

    log_level: str = field(default_factory=lambda: _env_str("LOG_LEVEL", "INFO").upper())
    # json|console
    log_format: str = field(default_factory=lambda: _env_str("LOG_FORMAT", "json").lower())
