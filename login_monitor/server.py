from __future__ import annotations

import argparse
from typing import Sequence

import structlog
import uvicorn

from .app import create_app
from .browser import LaunchOptions, PlaywrightDriver
from .config import load_config
from .errors import ConfigLoadError
from .logging_setup import configure_logging, normalize_level
from .metrics import MetricsRegistry
from .runner import CheckRunner
from .scheduler import Scheduler
from .settings import RuntimeSettings


logger = structlog.get_logger(__name__)


def main(argv: Sequence[str] | None = None) -> int:
    settings = RuntimeSettings()

    parser = argparse.ArgumentParser(description="Synthetic login monitor")
    parser.add_argument("--config", default=settings.config_file, help="Path to the targets JSON/YAML file")
    parser.add_argument("--host", default=settings.host)
    parser.add_argument("--port", type=int, default=settings.port)
    parser.add_argument(
        "--log-level",
        type=normalize_level,
        default=settings.log_level,
        help="Logging level (INFO, DEBUG, WARN, ...)",
    )
    parser.add_argument("--log-format", choices=("json", "console"), default=settings.log_format)
    args = parser.parse_args(argv)

    configure_logging(args.log_level, args.log_format)

    try:
        config = load_config(args.config)
    except ConfigLoadError:
        return 1

    metrics = MetricsRegistry()
    runner = CheckRunner(
        PlaywrightDriver(),
        launch_options=LaunchOptions(
            headless=settings.browser_headless,
            executable_path=settings.browser_executable,
        ),
        screenshot_dir=settings.screenshot_dir,
    )
    scheduler = Scheduler(runner, metrics)
    app = create_app(metrics, scheduler, config.targets)

    logger.info("Server starting", host=args.host, port=args.port)
    try:
        uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())
    finally:
        metrics.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
