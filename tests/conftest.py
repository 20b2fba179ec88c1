from __future__ import annotations

import asyncio
import heapq
from typing import Any, Callable

import pytest

from login_monitor.browser import LaunchOptions
from login_monitor.config import Target


async def settle(rounds: int = 20) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


class StubPage:
    """In-memory page: navigation only changes ``url``; selectors are a set."""

    def __init__(
        self,
        *,
        url_after_submit: str | None = None,
        rendered_selectors: tuple[str, ...] = (),
        fail: dict[str, BaseException] | None = None,
        hang: tuple[str, ...] = (),
        goto_delay: float = 0.01,
    ) -> None:
        self._url = "about:blank"
        self.url_after_submit = url_after_submit
        self.rendered_selectors = set(rendered_selectors)
        self.fail = dict(fail or {})
        self.hang = set(hang)
        self.goto_delay = goto_delay
        self.calls: list[tuple[str, Any]] = []
        self.filled: dict[str, str] = {}
        self.screenshots: list[str] = []
        self._clicked = asyncio.Event()

    @property
    def url(self) -> str:
        return self._url

    async def _op(self, name: str, arg: Any = None) -> None:
        self.calls.append((name, arg))
        if name in self.fail:
            raise self.fail[name]
        if name in self.hang:
            await asyncio.Event().wait()

    async def set_viewport(self, width: int, height: int) -> None:
        await self._op("set_viewport", (width, height))

    async def goto(self, url: str, *, wait_until: str, timeout_ms: int) -> None:
        await self._op("goto", url)
        await asyncio.sleep(self.goto_delay)
        self._url = url

    async def screenshot(self, path: str) -> None:
        await self._op("screenshot", path)
        self.screenshots.append(path)

    async def fill(self, selector: str, text: str, *, timeout_ms: int) -> None:
        await self._op("fill", selector)
        self.filled[selector] = text

    async def click(self, selector: str, *, timeout_ms: int) -> None:
        await self._op("click", selector)
        self._clicked.set()

    async def wait_for_navigation(self, *, wait_until: str, timeout_ms: int) -> None:
        await self._op("wait_for_navigation", wait_until)
        await self._clicked.wait()
        if self.url_after_submit is not None:
            self._url = self.url_after_submit

    async def wait_for_selector(self, selector: str, *, timeout_ms: int) -> None:
        await self._op("wait_for_selector", selector)
        if selector not in self.rendered_selectors:
            raise TimeoutError(f"Timeout {timeout_ms}ms exceeded waiting for {selector}")


class StubSession:
    def __init__(self, page: StubPage, *, new_page_error: BaseException | None = None,
                 close_error: BaseException | None = None) -> None:
        self.page = page
        self.new_page_error = new_page_error
        self.close_error = close_error
        self.closed = False

    async def new_page(self) -> StubPage:
        if self.new_page_error is not None:
            raise self.new_page_error
        return self.page

    async def close(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


class StubDriver:
    def __init__(
        self,
        page_factory: Callable[[], StubPage] = StubPage,
        *,
        launch_error: BaseException | None = None,
        new_page_error: BaseException | None = None,
        close_error: BaseException | None = None,
    ) -> None:
        self.page_factory = page_factory
        self.launch_error = launch_error
        self.new_page_error = new_page_error
        self.close_error = close_error
        self.launch_options: list[LaunchOptions] = []
        self.sessions: list[StubSession] = []

    async def launch(self, options: LaunchOptions) -> StubSession:
        self.launch_options.append(options)
        if self.launch_error is not None:
            raise self.launch_error
        session = StubSession(
            self.page_factory(),
            new_page_error=self.new_page_error,
            close_error=self.close_error,
        )
        self.sessions.append(session)
        return session


class FakeClock:
    """Simulated monotonic clock with a matching ``sleep``."""

    def __init__(self) -> None:
        self.now = 0.0
        self._sleepers: list[tuple[float, int, asyncio.Future]] = []
        self._seq = 0

    def time(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        fut = asyncio.get_running_loop().create_future()
        heapq.heappush(self._sleepers, (self.now + delay, self._seq, fut))
        self._seq += 1
        await fut

    async def advance(self, seconds: float) -> None:
        end = self.now + seconds
        await settle()
        while self._sleepers and self._sleepers[0][0] <= end:
            deadline, _, fut = heapq.heappop(self._sleepers)
            self.now = deadline
            if not fut.done():
                fut.set_result(None)
            await settle()
        self.now = end


def make_target(
    name: str = "siteA",
    *,
    by: str = "url",
    success_value: str = "https://a.example/dashboard",
    check_interval: int | None = None,
) -> Target:
    raw: dict[str, Any] = {
        "name": name,
        "loginUrl": f"https://{name.lower()}.example/login",
        "selectors": {
            "usernameField": "#username",
            "passwordField": "#password",
            "submitButton": "button[type=submit]",
            "successByCss": by == "css",
            "successByUrl": by == "url",
            "successValue": success_value,
        },
        "credentials": {"username": "monitor", "password": "s3cret"},
    }
    if check_interval is not None:
        raw["checkInterval"] = check_interval
    return Target.model_validate(raw)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
