"""Browser capability used by the login check.

The check only talks to the small ``BrowserDriver``/``BrowserSession``/
``BrowserPage`` surface below. ``PlaywrightDriver`` is the production
implementation; tests plug in stubs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from playwright.async_api import Browser, Page, Playwright, async_playwright


DEFAULT_BROWSER_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-gpu",
    # Avoid renderer crashes when /dev/shm is tiny.
    "--disable-dev-shm-usage",
)


@dataclass(frozen=True)
class LaunchOptions:
    headless: bool = True
    executable_path: str | None = None
    args: tuple[str, ...] = field(default=DEFAULT_BROWSER_ARGS)


class BrowserPage(Protocol):
    @property
    def url(self) -> str: ...

    async def set_viewport(self, width: int, height: int) -> None: ...

    async def goto(self, url: str, *, wait_until: str, timeout_ms: int) -> None: ...

    async def screenshot(self, path: str) -> None: ...

    async def fill(self, selector: str, text: str, *, timeout_ms: int) -> None: ...

    async def click(self, selector: str, *, timeout_ms: int) -> None: ...

    async def wait_for_navigation(self, *, wait_until: str, timeout_ms: int) -> None: ...

    async def wait_for_selector(self, selector: str, *, timeout_ms: int) -> None: ...


class BrowserSession(Protocol):
    async def new_page(self) -> BrowserPage: ...

    async def close(self) -> None: ...


class BrowserDriver(Protocol):
    async def launch(self, options: LaunchOptions) -> BrowserSession: ...


_BROWSER_GONE_MARKERS = (
    "browser has been closed",
    "page crashed",
    "target crashed",
    "connection closed while reading from the driver",
    "connection closed while writing to the driver",
    "pipe closed by peer",
)


def is_browser_infra_error(exc: BaseException) -> bool:
    """Whether ``exc`` means the local Chromium died rather than the target site failing."""
    if type(exc).__name__ == "TargetClosedError":
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _BROWSER_GONE_MARKERS)


def default_selector_state(selector: str) -> str:
    sel = selector.lstrip()
    if sel.startswith(("meta", "script", "link", "title")):
        return "attached"
    return "visible"


class PlaywrightPage:
    def __init__(self, page: Page) -> None:
        self._page = page

    @property
    def url(self) -> str:
        return self._page.url

    async def set_viewport(self, width: int, height: int) -> None:
        await self._page.set_viewport_size({"width": width, "height": height})

    async def goto(self, url: str, *, wait_until: str, timeout_ms: int) -> None:
        await self._page.goto(url, wait_until=wait_until, timeout=timeout_ms)

    async def screenshot(self, path: str) -> None:
        await self._page.screenshot(path=path)

    async def fill(self, selector: str, text: str, *, timeout_ms: int) -> None:
        await self._page.fill(selector, text, timeout=timeout_ms)

    async def click(self, selector: str, *, timeout_ms: int) -> None:
        await self._page.click(selector, timeout=timeout_ms)

    async def wait_for_navigation(self, *, wait_until: str, timeout_ms: int) -> None:
        # The waiter registers on entry; the exit awaits the next navigation.
        async with self._page.expect_navigation(wait_until=wait_until, timeout=timeout_ms):
            pass

    async def wait_for_selector(self, selector: str, *, timeout_ms: int) -> None:
        await self._page.wait_for_selector(
            selector,
            state=default_selector_state(selector),
            timeout=timeout_ms,
        )


class PlaywrightSession:
    def __init__(self, playwright: Playwright, browser: Browser) -> None:
        self._playwright = playwright
        self._browser = browser

    async def new_page(self) -> PlaywrightPage:
        page = await self._browser.new_page()
        return PlaywrightPage(page)

    async def close(self) -> None:
        try:
            await self._browser.close()
        finally:
            await self._playwright.stop()


class PlaywrightDriver:
    """Launches one Chromium process per session."""

    async def launch(self, options: LaunchOptions) -> PlaywrightSession:
        playwright = await async_playwright().start()
        try:
            browser = await playwright.chromium.launch(
                headless=options.headless,
                executable_path=options.executable_path,
                args=list(options.args),
            )
        except BaseException:
            await playwright.stop()
            raise
        return PlaywrightSession(playwright, browser)
