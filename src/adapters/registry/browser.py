"""
Managed pool of isolated browser contexts.

One Playwright runtime and one Chromium process per application process;
every lookup gets its own BrowserContext (separate cookies, storage and
pages), so concurrent lookups never share page state. A semaphore bounds
the number of live contexts. Callers that cannot be admitted within the
admission window are rejected with a retry hint instead of queueing
indefinitely.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright

from src.domain.exceptions import RateLimitedError

logger = logging.getLogger(__name__)


class BrowserPool:
    def __init__(
        self,
        headless: bool = True,
        user_agent: str | None = None,
        max_concurrent: int = 3,
        admission_timeout: float = 5.0,
        retry_after: int = 30,
    ) -> None:
        self.headless = headless
        self.user_agent = user_agent
        self.max_concurrent = max_concurrent
        self.admission_timeout = admission_timeout
        self.retry_after = retry_after
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._launch_lock = asyncio.Lock()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None

    async def _ensure_browser(self) -> Browser:
        """Launch the browser on first use, or again if it disconnected."""
        async with self._launch_lock:
            if self._browser is not None and self._browser.is_connected():
                return self._browser
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            logger.info("Launching registry browser (headless=%s)", self.headless)
            self._browser = await self._playwright.chromium.launch(headless=self.headless)
            return self._browser

    @asynccontextmanager
    async def context(self) -> AsyncIterator[BrowserContext]:
        """
        Acquire an isolated browser context.

        The context is closed on every exit path, including cancellation
        by the caller's deadline.

        Raises:
            RateLimitedError: No slot freed up within the admission window
        """
        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=self.admission_timeout)
        except asyncio.TimeoutError:
            logger.warning("Registry lookup rejected: %d lookups in flight", self.max_concurrent)
            raise RateLimitedError(
                "Registry lookup capacity exhausted", retry_after=self.retry_after
            ) from None

        try:
            browser = await self._ensure_browser()
            context = await browser.new_context(user_agent=self.user_agent)
            try:
                yield context
            finally:
                await context.close()
        finally:
            self._semaphore.release()

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
