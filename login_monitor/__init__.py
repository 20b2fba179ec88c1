"""Synthetic login monitor: scheduled browser login checks exposed as Prometheus metrics."""

from .config import MonitorConfig, Target, load_config
from .errors import CheckError, ConfigLoadError
from .metrics import MetricsRegistry
from .runner import CheckOutcome, CheckResult, CheckRunner, StepTimeouts
from .scheduler import Scheduler, Ticker

__all__ = [
    "CheckError",
    "CheckOutcome",
    "CheckResult",
    "CheckRunner",
    "ConfigLoadError",
    "MetricsRegistry",
    "MonitorConfig",
    "Scheduler",
    "StepTimeouts",
    "Target",
    "Ticker",
    "load_config",
]
