"""One login-check attempt against one target.

The attempt is a linear state machine::

    LAUNCH -> PAGE_READY -> NAVIGATE -> FILL_AND_SUBMIT -> SUCCESS_ASSERTION -> SUCCESS
                                    (any state) -> CLEANUP

Every state carries its own timeout so a hang is attributed to the step that
hung. Failures are classified into ``CheckError`` subclasses and returned as a
``CheckOutcome``; ``CheckRunner.run`` does not raise for check failures.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, TypeVar

import structlog

from .browser import BrowserDriver, BrowserPage, BrowserSession, LaunchOptions, is_browser_infra_error
from .config import Target
from .errors import (
    BrowserCloseFailure,
    BrowserLaunchError,
    CheckError,
    FormInteractionError,
    NavigationTimeout,
    SelectorTimeout,
    UrlAssertionError,
)


logger = structlog.get_logger(__name__)

T = TypeVar("T")

VIEWPORT_WIDTH = 1280
VIEWPORT_HEIGHT = 720


class CheckResult(str, Enum):
    SUCCESS = "Success"
    FAILURE = "Failure"


class CheckState(str, Enum):
    LAUNCH = "launch"
    PAGE_READY = "page_ready"
    NAVIGATE = "navigate"
    FILL_AND_SUBMIT = "fill_and_submit"
    SUCCESS_ASSERTION = "success_assertion"
    SUCCESS = "success"
    CLEANUP = "cleanup"


@dataclass(frozen=True)
class StepTimeouts:
    """Per-state budgets in milliseconds."""

    launch_ms: int = 30_000
    page_ms: int = 30_000
    navigation_ms: int = 30_000
    form_ms: int = 30_000
    post_submit_ms: int = 30_000
    selector_ms: int = 10_000
    screenshot_ms: int = 10_000
    close_ms: int = 10_000


@dataclass(frozen=True)
class CheckOutcome:
    target: str
    result: CheckResult
    duration_seconds: float | None = None
    error: CheckError | None = None
    failed_state: CheckState | None = None
    final_url: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.result is CheckResult.SUCCESS

    @property
    def failure_reason(self) -> str | None:
        return self.error.kind if self.error is not None else None


async def _bounded(
    error_cls: type[CheckError],
    what: str,
    call: Callable[[], Awaitable[T]],
    timeout_ms: int,
) -> T:
    """Run one driver operation under its step budget, classifying any failure."""
    try:
        return await asyncio.wait_for(call(), timeout_ms / 1000.0)
    except asyncio.TimeoutError as exc:
        raise error_cls(f"{what} timed out after {timeout_ms} ms", cause=exc) from exc
    except CheckError:
        raise
    except Exception as exc:
        raise error_cls(f"{what} failed", cause=exc) from exc


def _screenshot_name(target_name: str) -> str:
    safe = "".join(ch for ch in target_name if ch.isalnum() or ch in ("-", "_"))[:60] or "target"
    return f"{safe}-login.jpg"


class CheckRunner:
    """Runs login checks; one browser session per attempt."""

    def __init__(
        self,
        driver: BrowserDriver,
        *,
        launch_options: LaunchOptions | None = None,
        timeouts: StepTimeouts | None = None,
        screenshot_dir: str | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.driver = driver
        self.launch_options = launch_options or LaunchOptions()
        self.timeouts = timeouts or StepTimeouts()
        self.screenshot_dir = screenshot_dir
        self._clock = clock

    async def run(self, target: Target) -> CheckOutcome:
        log = logger.bind(target=target.name)
        log.info("Starting login check", url=target.login_url)

        state = CheckState.LAUNCH
        page: BrowserPage | None = None
        try:
            async with self._session(log) as session:
                state = CheckState.PAGE_READY
                page = await self._open_page(session)
                log.debug("New page created", state=state.value)

                state = CheckState.NAVIGATE
                started = self._clock()
                await self._navigate(target, page, log)

                state = CheckState.FILL_AND_SUBMIT
                await self._fill_and_submit(target, page, log)

                state = CheckState.SUCCESS_ASSERTION
                await self._assert_success(target, page, log)

                state = CheckState.SUCCESS
                elapsed = self._clock() - started
                final_url = _page_url(page)
                log.info("Login successful", duration_seconds=round(elapsed, 3), final_url=final_url)
                outcome = CheckOutcome(
                    target=target.name,
                    result=CheckResult.SUCCESS,
                    duration_seconds=elapsed,
                    final_url=final_url,
                )
        except CheckError as exc:
            outcome = self._failed(target, state, exc, page, log)
        return outcome

    @contextlib.asynccontextmanager
    async def _session(self, log: Any) -> AsyncIterator[BrowserSession]:
        session = await _bounded(
            BrowserLaunchError,
            "Browser launch",
            lambda: self.driver.launch(self.launch_options),
            self.timeouts.launch_ms,
        )
        log.debug("Browser launched", state=CheckState.LAUNCH.value)
        try:
            yield session
        finally:
            await self._close(session, log)

    async def _close(self, session: BrowserSession, log: Any) -> None:
        try:
            await asyncio.wait_for(session.close(), self.timeouts.close_ms / 1000.0)
        except Exception as exc:
            failure = BrowserCloseFailure("Failed to close browser", cause=exc)
            log.error(
                "Failed to close browser",
                state=CheckState.CLEANUP.value,
                reason=failure.kind,
                error=str(failure),
            )
        else:
            log.debug("Browser closed", state=CheckState.CLEANUP.value)

    async def _open_page(self, session: BrowserSession) -> BrowserPage:
        t = self.timeouts.page_ms
        page = await _bounded(BrowserLaunchError, "Page creation", session.new_page, t)
        await _bounded(
            BrowserLaunchError,
            "Set viewport",
            lambda: page.set_viewport(VIEWPORT_WIDTH, VIEWPORT_HEIGHT),
            t,
        )
        return page

    async def _navigate(self, target: Target, page: BrowserPage, log: Any) -> None:
        t = self.timeouts.navigation_ms
        log.debug("Navigating to login page", url=target.login_url, state=CheckState.NAVIGATE.value)
        await _bounded(
            NavigationTimeout,
            f"Navigation to {target.login_url}",
            lambda: page.goto(target.login_url, wait_until="domcontentloaded", timeout_ms=t),
            t,
        )
        await self._screenshot(target, page, log)
        log.debug("Navigation complete", current_url=_page_url(page))

    async def _screenshot(self, target: Target, page: BrowserPage, log: Any) -> None:
        if not self.screenshot_dir:
            return
        path = os.path.join(self.screenshot_dir, _screenshot_name(target.name))
        try:
            os.makedirs(self.screenshot_dir, exist_ok=True)
            await asyncio.wait_for(page.screenshot(path), self.timeouts.screenshot_ms / 1000.0)
        except Exception as exc:
            log.warning("Failed to capture screenshot", path=path, error=f"{type(exc).__name__}: {exc}")

    async def _fill_and_submit(self, target: Target, page: BrowserPage, log: Any) -> None:
        sel = target.selectors
        t = self.timeouts.form_ms
        log.debug(
            "Filling login form",
            state=CheckState.FILL_AND_SUBMIT.value,
            selectors={
                "username": sel.username_field,
                "password": sel.password_field,
                "submit": sel.submit_button,
            },
        )
        await _bounded(
            FormInteractionError,
            f"Fill {sel.username_field}",
            lambda: page.fill(sel.username_field, target.credentials.username, timeout_ms=t),
            t,
        )
        await _bounded(
            FormInteractionError,
            f"Fill {sel.password_field}",
            lambda: page.fill(sel.password_field, target.credentials.password, timeout_ms=t),
            t,
        )

        nav_t = self.timeouts.post_submit_ms
        # Arm the navigation waiter before clicking so a fast redirect is not missed.
        try:
            navigation = asyncio.ensure_future(
                page.wait_for_navigation(wait_until="networkidle", timeout_ms=nav_t)
            )
        except Exception as exc:
            raise FormInteractionError("Post-submit navigation failed", cause=exc) from exc
        await asyncio.sleep(0)
        try:
            await _bounded(
                FormInteractionError,
                f"Click {sel.submit_button}",
                lambda: page.click(sel.submit_button, timeout_ms=t),
                t,
            )
        except BaseException:
            navigation.cancel()
            await asyncio.gather(navigation, return_exceptions=True)
            raise
        await _bounded(FormInteractionError, "Post-submit navigation", lambda: navigation, nav_t)

    async def _assert_success(self, target: Target, page: BrowserPage, log: Any) -> None:
        sel = target.selectors
        log.debug(
            "Waiting for success indicator",
            state=CheckState.SUCCESS_ASSERTION.value,
            mode="css" if sel.success_by_css else "url",
            selector=sel.success_value,
        )
        if sel.success_by_css:
            t = self.timeouts.selector_ms
            await _bounded(
                SelectorTimeout,
                f"Success selector {sel.success_value}",
                lambda: page.wait_for_selector(sel.success_value, timeout_ms=t),
                t,
            )
            return

        try:
            current = page.url
        except Exception as exc:
            raise UrlAssertionError(sel.success_value, "", cause=exc) from exc
        if current != sel.success_value:
            raise UrlAssertionError(sel.success_value, current)

    def _failed(
        self,
        target: Target,
        state: CheckState,
        exc: CheckError,
        page: BrowserPage | None,
        log: Any,
    ) -> CheckOutcome:
        details: dict[str, Any] = {}
        if isinstance(exc, UrlAssertionError):
            details = {"expected_url": exc.expected, "actual_url": exc.actual}
        final_url = _page_url(page) if page is not None else None
        infra = is_browser_infra_error(exc.cause) if exc.cause is not None else False
        log.error(
            "Login check failed",
            state=state.value,
            reason=exc.kind,
            error=str(exc),
            browser_infra_error=infra,
            final_url=final_url,
            **details,
        )
        return CheckOutcome(
            target=target.name,
            result=CheckResult.FAILURE,
            error=exc,
            failed_state=state,
            final_url=final_url,
            details={**details, "browser_infra_error": infra},
        )


def _page_url(page: BrowserPage) -> str | None:
    try:
        return page.url or None
    except Exception:
        return None
