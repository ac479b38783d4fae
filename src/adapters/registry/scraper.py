"""
SACS registry scraper - Implements RegistryScraper protocol.

Drives the public professional registry search page through Playwright.
Every step has its own timeout and the whole lookup runs under a single
overall deadline; any timeout, navigation error or unparseable page
becomes a Failed outcome instead of an exception. The only error raised
to callers is RateLimitedError, when no browser context can be admitted.
"""

import asyncio
import logging
import random

from playwright.async_api import BrowserContext, Page
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from src.domain.documents import mask_document
from src.domain.exceptions import RateLimitedError
from src.domain.models import Failed, RegistryOutcome

from .browser import BrowserPool
from .parsing import build_outcome, find_specialty, parse_rows

logger = logging.getLogger(__name__)

RESULT_ROWS = "table tr"
NO_RESULTS = ":text-matches('no se encontr|no existe|no (hay|posee) registro', 'i')"
RESULTS_SETTLED = f"{RESULT_ROWS}, {NO_RESULTS}"
SEARCH_INPUT = "input[type='text']"
SEARCH_SUBMIT = "input[type='submit'], button[type='submit'], input[type='button']"
POSTGRADUATE_CONTROL = (
    "button:has-text('Postgrado'), a:has-text('Postgrado'), "
    "input[type='button'][value*='Postgrado' i]"
)
SPECIALTY_CELL = "text=/especialista en/i"

XAJAX_AVAILABLE = "() => typeof window.xajax_getPrfsnalByCed === 'function'"
XAJAX_SEARCH = "(cedula) => window.xajax_getPrfsnalByCed(cedula)"
READ_ROWS = (
    "rows => rows.map(row => Array.from(row.querySelectorAll('td, th'))"
    ".map(cell => (cell.textContent || '').trim()))"
)


def backoff_delay(attempt: int, base: float, maximum: float) -> float:
    """Full-jitter exponential backoff for the given 1-based attempt."""
    return random.uniform(0, min(maximum, base * 2 ** (attempt - 1)))


class SacsRegistryScraper:
    def __init__(
        self,
        pool: BrowserPool,
        url: str,
        navigation_timeout: float = 30.0,
        step_timeout: float = 10.0,
        results_timeout: float = 15.0,
        specialty_timeout: float = 15.0,
        deadline: float = 90.0,
        max_retries: int = 3,
        backoff_base: float = 2.0,
        backoff_max: float = 30.0,
    ) -> None:
        self.pool = pool
        self.url = url
        self.navigation_timeout = navigation_timeout
        self.step_timeout = step_timeout
        self.results_timeout = results_timeout
        self.specialty_timeout = specialty_timeout
        self.deadline = deadline
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max

    async def fetch(self, document_type: str, document_number: str) -> RegistryOutcome:
        """
        Query the registry for a normalized document number.

        Returns within the overall deadline with Found, NotFound or Failed.

        Raises:
            RateLimitedError: Browser pool saturated
        """
        masked = mask_document(document_number)
        try:
            async with self.pool.context() as context:
                return await asyncio.wait_for(
                    self._scrape(context, document_number), timeout=self.deadline
                )
        except RateLimitedError:
            raise
        except asyncio.TimeoutError:
            logger.warning("Registry lookup for %s exceeded %.0fs deadline", masked, self.deadline)
            return Failed(f"registry lookup exceeded the {self.deadline:.0f}s deadline")
        except PlaywrightTimeoutError as e:
            logger.warning("Registry step timed out for %s: %s", masked, e)
            return Failed(f"registry step timed out: {e.message}")
        except PlaywrightError as e:
            logger.warning("Registry browser error for %s: %s", masked, e)
            return Failed(f"registry unreachable: {e.message}")
        except Exception as e:
            logger.exception("Unexpected registry failure for %s", masked)
            return Failed(f"registry lookup failed: {e}")

    async def _scrape(self, context: BrowserContext, document_number: str) -> RegistryOutcome:
        page = await context.new_page()
        page.set_default_timeout(self.step_timeout * 1000)
        await self._navigate(page)
        await self._submit(page, document_number)

        try:
            await page.wait_for_selector(RESULTS_SETTLED, timeout=self.results_timeout * 1000)
        except PlaywrightTimeoutError:
            return Failed("registry results did not load")

        rows = await page.eval_on_selector_all(RESULT_ROWS, READ_ROWS)
        parsed = parse_rows(rows)
        if not parsed.has_professional:
            return build_outcome(parsed, specialty=None, postgraduate_control=False)

        specialty, control_present = await self._probe_specialty(page)
        return build_outcome(parsed, specialty=specialty, postgraduate_control=control_present)

    async def _navigate(self, page: Page) -> None:
        """Load the search form, retrying with jittered backoff."""
        for attempt in range(1, self.max_retries + 1):
            try:
                await page.goto(
                    self.url,
                    timeout=self.navigation_timeout * 1000,
                    wait_until="domcontentloaded",
                )
                return
            except PlaywrightError as e:
                if attempt == self.max_retries:
                    raise
                delay = backoff_delay(attempt, self.backoff_base, self.backoff_max)
                logger.warning(
                    "Registry navigation failed (attempt %d/%d): %s; retrying in %.1fs",
                    attempt,
                    self.max_retries,
                    e.message,
                    delay,
                )
                await asyncio.sleep(delay)

    async def _submit(self, page: Page, document_number: str) -> None:
        """Run the search through the page's xajax call, or the form as a fallback."""
        if await page.evaluate(XAJAX_AVAILABLE):
            await page.evaluate(XAJAX_SEARCH, document_number)
            return
        await page.fill(SEARCH_INPUT, document_number)
        await page.click(SEARCH_SUBMIT)

    async def _probe_specialty(self, page: Page) -> tuple[str | None, bool]:
        """
        Look for the optional postgraduate control.

        Returns (specialty, control_present). Absence of the control is
        the normal case for professionals without a postgraduate title;
        the probe gives up after specialty_timeout.
        """
        timeout_ms = self.specialty_timeout * 1000
        try:
            control = await page.wait_for_selector(POSTGRADUATE_CONTROL, state="visible", timeout=timeout_ms)
        except PlaywrightTimeoutError:
            return None, False
        if control is None:
            return None, False

        await control.click()
        try:
            await page.wait_for_selector(SPECIALTY_CELL, timeout=timeout_ms)
        except PlaywrightTimeoutError:
            logger.info("Postgraduate control present but no specialty appeared")
            return None, True

        rows = await page.eval_on_selector_all(RESULT_ROWS, READ_ROWS)
        return find_specialty(rows), True
