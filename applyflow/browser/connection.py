"""Browser session lifecycle: attach over CDP or launch Chromium."""
import logging
import time
from types import TracebackType
from typing import Optional

import httpx
from playwright.sync_api import Browser, BrowserContext, Playwright, sync_playwright
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page as PlaywrightPageHandle

from ..core.config import BrowserConfig
from ..core.errors import BrowserUnavailable

logger = logging.getLogger(__name__)


class BrowserSession:
    """One browser session per workflow run.

    Use as a context manager; the session is released on exit, including when
    the run raises. With ``cdp_port`` configured it attaches to a running
    Chrome with exponential backoff, otherwise it launches Chromium.
    """

    def __init__(self, config: Optional[BrowserConfig] = None) -> None:
        self.config = config or BrowserConfig()
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._owns_browser = False

    @property
    def browser(self) -> Browser:
        """Get the connected browser instance.

        Raises:
            RuntimeError: If not connected.
        """
        if not self._browser:
            raise RuntimeError("Not connected. Call connect() first.")
        return self._browser

    def __enter__(self) -> "BrowserSession":
        if not self.connect():
            raise BrowserUnavailable("Could not start a browser session")
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.disconnect()

    def _check_cdp_endpoint(self) -> bool:
        """Verify CDP endpoint is responding."""
        try:
            url = f"http://127.0.0.1:{self.config.cdp_port}/json/version"
            resp = httpx.get(url, timeout=5)
            resp.raise_for_status()
            logger.debug(f"CDP ready: {resp.json().get('Browser', 'unknown')}")
            return True
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"CDP not ready: {e}")
            return False

    def connect(self) -> bool:
        """Start the browser session.

        Returns:
            True if a browser is available, False otherwise.
        """
        if self.config.cdp_port is None:
            return self._launch()
        return self._attach()

    def _launch(self) -> bool:
        try:
            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(headless=self.config.headless)
            self._owns_browser = True
            logger.info(f"Launched Chromium (headless={self.config.headless})")
            return True
        except PlaywrightError as e:
            logger.error(f"Browser launch failed: {e}")
            self._cleanup()
            return False

    def _attach(self) -> bool:
        """Connect to Chrome with exponential backoff retry."""
        for attempt in range(self.config.connect_retries):
            wait_time = min(self.config.retry_delay * (2**attempt), 30)

            if not self._check_cdp_endpoint():
                logger.info(
                    f"Attempt {attempt + 1}/{self.config.connect_retries}: "
                    f"CDP not ready, waiting {wait_time:.1f}s"
                )
                time.sleep(wait_time)
                continue

            try:
                self._playwright = sync_playwright().start()
                self._browser = self._playwright.chromium.connect_over_cdp(
                    f"http://127.0.0.1:{self.config.cdp_port}"
                )
                logger.info("Connected to Chrome successfully")
                return True
            except PlaywrightError as e:
                logger.warning(f"Connection failed: {e}")
                self._cleanup()
                time.sleep(wait_time)

        logger.error("Failed to connect after all retries")
        return False

    def new_page(self) -> PlaywrightPageHandle:
        """Open a page in an isolated context owned by this session."""
        if self._context is None:
            self._context = self.browser.new_context()
        page = self._context.new_page()
        page.set_default_timeout(self.config.timeout)
        return page

    def _cleanup(self) -> None:
        """Clean up playwright resources."""
        if self._context:
            try:
                self._context.close()
            except PlaywrightError as e:
                logger.debug(f"Context close failed: {e}")
        if self._browser and self._owns_browser:
            try:
                self._browser.close()
            except PlaywrightError as e:
                logger.debug(f"Browser close failed: {e}")
        if self._playwright:
            try:
                self._playwright.stop()
            except PlaywrightError as e:
                logger.debug(f"Playwright stop failed: {e}")
        self._playwright = None
        self._browser = None
        self._context = None
        self._owns_browser = False

    def disconnect(self) -> None:
        """Close the browser session."""
        logger.info("Closing browser session")
        self._cleanup()
