"""Per-target check scheduling."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Dict, Iterable, Optional, Protocol

import structlog

from .config import Target
from .errors import CheckError
from .metrics import MetricsRegistry
from .runner import CheckOutcome, CheckResult


logger = structlog.get_logger(__name__)


class Runner(Protocol):
    async def run(self, target: Target) -> CheckOutcome: ...


class Ticker:
    """Repeating start-to-start timer for one target.

    Fires ``action`` once immediately, then every ``interval_seconds`` measured
    from the previous start. Each firing runs in its own task, so a slow
    attempt never pushes back the next tick.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        action: Callable[[], Awaitable[None]],
        *,
        allow_overlap: bool = True,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.name = name
        self.interval_seconds = float(interval_seconds)
        self.allow_overlap = allow_overlap
        self.attempts = 0
        self.skipped = 0
        self._action = action
        self._clock = clock
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._in_flight: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=f"ticker:{self.name}")

    def cancel(self) -> None:
        """Stop future ticks. Attempts already started run to completion."""
        if self._task is not None:
            self._task.cancel()

    async def wait_idle(self) -> None:
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def join(self) -> None:
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    def _fire(self) -> None:
        if not self.allow_overlap and self._in_flight:
            self.skipped += 1
            logger.warning("Skipping tick, previous check still running", target=self.name)
            return
        self.attempts += 1
        task = asyncio.create_task(self._action(), name=f"check:{self.name}:{self.attempts}")
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _loop(self) -> None:
        next_start = self._clock()
        while True:
            self._fire()
            next_start += self.interval_seconds
            now = self._clock()
            if next_start <= now:
                # Stalled past one or more ticks: drop them and resume on the grid.
                missed = int((now - next_start) // self.interval_seconds) + 1
                next_start += missed * self.interval_seconds
            await self._sleep(next_start - now)


class Scheduler:
    """Owns one Ticker per target and forwards every outcome to the metrics."""

    def __init__(
        self,
        runner: Runner,
        metrics: MetricsRegistry,
        *,
        allow_overlap: bool = True,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.runner = runner
        self.metrics = metrics
        self.allow_overlap = allow_overlap
        self._clock = clock
        self._sleep = sleep
        self.tickers: Dict[str, Ticker] = {}
        self.running = False

    async def start(self, targets: Iterable[Target]) -> None:
        """Run every target once now, then on its own interval."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        for target in targets:
            if target.name in self.tickers:
                raise ValueError(f"Target already scheduled: {target.name!r}")
            ticker = Ticker(
                target.name,
                target.check_interval_seconds,
                self._make_action(target),
                allow_overlap=self.allow_overlap,
                clock=self._clock,
                sleep=self._sleep,
            )
            self.tickers[target.name] = ticker
            logger.info(
                "Scheduling checks for target",
                target=target.name,
                check_interval=target.check_interval_ms,
                initial_check=True,
            )

        for ticker in self.tickers.values():
            ticker.start()
        self.running = True
        logger.info("Scheduler started", target_count=len(self.tickers))

    async def stop(self, wait: bool = True) -> None:
        """Cancel every ticker; with ``wait`` also let in-flight checks finish."""
        if not self.running:
            return
        for ticker in self.tickers.values():
            ticker.cancel()
        for ticker in self.tickers.values():
            await ticker.join()
        if wait:
            for ticker in self.tickers.values():
                await ticker.wait_idle()
        self.running = False
        logger.info("Scheduler stopped")

    def _make_action(self, target: Target) -> Callable[[], Awaitable[None]]:
        async def _action() -> None:
            await self.run_once(target)

        return _action

    async def run_once(self, target: Target) -> CheckOutcome:
        """One attempt for ``target``, recorded in the metrics."""
        try:
            outcome = await self.runner.run(target)
        except Exception as exc:
            logger.exception("Check runner raised", target=target.name, error=str(exc))
            error = exc if isinstance(exc, CheckError) else CheckError("Unexpected check error", cause=exc)
            outcome = CheckOutcome(target=target.name, result=CheckResult.FAILURE, error=error)

        try:
            self.metrics.record(outcome)
        except Exception as exc:
            logger.error("Failed to record check outcome", target=target.name, error=str(exc))
        return outcome
