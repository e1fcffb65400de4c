"""Playwright page adapter for workflow steps."""
import logging
from pathlib import Path
from typing import Any, Optional, TypeVar

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page as PlaywrightPageHandle
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from pydantic import BaseModel

from ..agent.models import (
    EXTRACTION_TIMEOUT_MS,
    MAX_NAVIGATION_RETRIES,
    MAX_PAGE_ELEMENTS,
    MAX_PAGE_TEXT_CHARS,
    MEDIUM_WAIT_MS,
    PAGE_LOAD_TIMEOUT_MS,
    UPLOAD_TIMEOUT_MS,
)
from ..agent.prompts import build_extraction_prompt
from ..core.errors import (
    ExtractionTimeout,
    InferenceError,
    NavigationError,
    ScriptError,
)
from ..workflow.ports import InferenceCapability, NavigationResult

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)

INTERACTIVE_ELEMENTS_SCRIPT = """
(limit) => {
    const out = [];
    const nodes = document.querySelectorAll(
        'a[href], button, input, select, textarea, [role="button"], [role="dialog"], iframe'
    );
    for (const el of nodes) {
        if (out.length >= limit) break;
        const r = el.getBoundingClientRect();
        if (r.width === 0 && r.height === 0 && el.type !== 'file') continue;
        out.push({
            tag: el.tagName.toLowerCase(),
            type: el.type || el.getAttribute('role') || null,
            name: el.name || el.id || null,
            label: el.getAttribute('aria-label') || el.placeholder || null,
            href: el.href || el.src || null,
            text: (el.innerText || el.value || '').trim().slice(0, 80)
        });
    }
    return out;
}
"""


class PlaywrightPage:
    """Implements the page capability on top of a Playwright page.

    ``extract`` snapshots the visible page and hands it to the inference
    backend together with the instruction.
    """

    def __init__(
        self,
        page: PlaywrightPageHandle,
        inference: Optional[InferenceCapability] = None,
        max_retries: int = MAX_NAVIGATION_RETRIES,
    ) -> None:
        """Initialize page adapter.

        Args:
            page: Playwright Page instance.
            inference: Backend used by ``extract``.
            max_retries: Navigation attempts before giving up.
        """
        self._page = page
        self._inference = inference
        self._max_retries = max_retries

    @property
    def url(self) -> str:
        """Get current page URL."""
        return self._page.url

    @property
    def raw(self) -> PlaywrightPageHandle:
        """Access underlying Playwright page for advanced operations."""
        return self._page

    def navigate(self, url: str) -> NavigationResult:
        """Navigate to URL with retry logic.

        Raises:
            NavigationError: If every attempt failed.
        """
        last_error: Optional[Exception] = None
        for attempt in range(self._max_retries):
            try:
                logger.info(f"Navigating to: {url} (attempt {attempt + 1})")
                response = self._page.goto(
                    url, wait_until="domcontentloaded", timeout=PAGE_LOAD_TIMEOUT_MS
                )
                ok = response is None or response.status < 400
                if not ok:
                    logger.warning(f"{url} answered HTTP {response.status}")
                return NavigationResult(ok=ok, final_url=self._page.url)
            except PlaywrightError as e:
                last_error = e
                if self._recovered_from_abort(e, url, attempt):
                    return NavigationResult(ok=True, final_url=self._page.url)

        logger.error(f"Navigation failed after {self._max_retries} attempts: {last_error}")
        raise NavigationError(f"Could not load {url}: {last_error}")

    def _recovered_from_abort(self, error: Exception, url: str, attempt: int) -> bool:
        """True when an aborted navigation still landed on the requested page."""
        error_msg = str(error).lower()
        self.wait(MEDIUM_WAIT_MS)
        if "aborted" in error_msg and url.split("?")[0] in self._page.url:
            logger.info("Navigation succeeded despite abort")
            return True
        logger.warning(f"Navigation failed (attempt {attempt + 1}): {error}")
        return False

    def extract(self, instruction: str, schema: type[SchemaT]) -> SchemaT:
        """AI-backed extraction from the current page.

        Raises:
            ExtractionTimeout: If the page could not be read in time.
            InferenceError: If no backend is configured or it fails.
        """
        if self._inference is None:
            raise InferenceError("No inference backend configured for page extraction")
        try:
            text = self._page.inner_text("body", timeout=EXTRACTION_TIMEOUT_MS)
            title = self._page.title()
            elements = self._page.evaluate(INTERACTIVE_ELEMENTS_SCRIPT, MAX_PAGE_ELEMENTS)
        except PlaywrightTimeoutError as e:
            raise ExtractionTimeout(f"Timed out reading page: {e}") from e
        except PlaywrightError as e:
            raise ScriptError(f"Could not snapshot page: {e}") from e

        prompt = build_extraction_prompt(
            instruction,
            self._page.url,
            title,
            text[:MAX_PAGE_TEXT_CHARS],
            elements or [],
        )
        return self._inference.classify(prompt, schema)

    def evaluate(self, script: str, arg: Any = None) -> Any:
        """Run a script in the page.

        Raises:
            ScriptError: If the script throws or the page is gone.
        """
        try:
            if arg is None:
                return self._page.evaluate(script)
            return self._page.evaluate(script, arg)
        except PlaywrightError as e:
            raise ScriptError(f"Script failed: {e}") from e

    def upload(self, selector: str, path: Path) -> None:
        """Attach a file to a file input.

        Raises:
            ScriptError: If the input is missing or rejects the file.
        """
        try:
            self._page.set_input_files(selector, str(path), timeout=UPLOAD_TIMEOUT_MS)
            logger.info(f"Uploaded {path.name} to {selector}")
        except PlaywrightError as e:
            raise ScriptError(f"Upload to {selector} failed: {e}") from e

    def wait(self, ms: int) -> None:
        """Wait for specified milliseconds."""
        self._page.wait_for_timeout(ms)
