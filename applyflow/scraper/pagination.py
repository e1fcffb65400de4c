"""Next-page detection for job listing pages."""
import logging
from dataclasses import dataclass
from typing import Optional, Sequence
from urllib.parse import urlparse, urlunparse

from ..agent.prompts import NEXT_PAGE_INSTRUCTION
from ..agent.schemas import NextPageAnswer
from ..core.errors import CapabilityError
from ..extractor.page_scripts import NEXT_LINK_SCRIPT
from ..workflow.ports import PageCapability

logger = logging.getLogger(__name__)

# Tried in order; "text:" entries match the visible text of links and buttons.
NEXT_PAGE_SELECTORS: tuple[str, ...] = (
    "text:Next",
    "text:Next page",
    "text:Next »",
    "text:›",
    "text:»",
    'a[rel="next"]',
    'link[rel="next"]',
    'a[aria-label*="next" i]',
    'button[aria-label*="next" i]',
    '[data-testid*="next"]',
    '[data-pagination*="next"]',
    ".pagination-next a",
    ".pagination-next",
    ".pagination a.next",
    ".next-page",
    "li.next a",
    "a.next",
    ".pager-next a",
    'a[title*="next" i]',
)


@dataclass(frozen=True)
class PaginationDecision:
    """Outcome of a next-page lookup."""

    has_more_pages: bool
    next_page_url: Optional[str] = None
    strategy: str = "none"
    reasoning: str = ""
    error: Optional[str] = None


def normalize_url(url: str) -> str:
    """Drop fragment and trailing slash so equivalent URLs compare equal."""
    parsed = urlparse(url.strip())
    path = parsed.path.rstrip("/")
    return urlunparse(
        (parsed.scheme.lower(), parsed.netloc.lower(), path, parsed.params, parsed.query, "")
    )


def is_valid_next_url(candidate: Optional[str], current_url: str) -> bool:
    """True for an absolute http(s) URL that leads somewhere other than ``current_url``."""
    if not candidate:
        return False
    parsed = urlparse(candidate.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return False
    return normalize_url(candidate) != normalize_url(current_url)


class PaginationController:
    """Decides whether a listing page has a next page and where it is.

    AI extraction is consulted first, then a fixed list of selectors. A URL is
    only accepted when it is absolute and differs from the current one, so a
    listing can never paginate onto itself.
    """

    def __init__(
        self,
        selectors: Sequence[str] = NEXT_PAGE_SELECTORS,
        use_extraction: bool = True,
    ) -> None:
        self._selectors = tuple(selectors)
        self._use_extraction = use_extraction

    def next_page(
        self,
        page: PageCapability,
        current_url: str,
        current_page_number: int,
        max_pages: int,
    ) -> PaginationDecision:
        """Find the next results page.

        Args:
            page: Page showing the listing at ``current_url``.
            current_url: URL of the listing page currently loaded.
            current_page_number: One-based number of the current page.
            max_pages: Hard upper bound on pages per listing.

        Returns:
            PaginationDecision; capability failures yield ``has_more_pages=False``
            with ``error`` set.
        """
        if current_page_number >= max_pages:
            logger.info(f"Reached max pages ({max_pages}) for {current_url}")
            return PaginationDecision(
                has_more_pages=False,
                strategy="limit",
                reasoning=f"Reached maximum of {max_pages} pages",
            )

        errors: list[str] = []

        if self._use_extraction:
            try:
                answer = page.extract(
                    NEXT_PAGE_INSTRUCTION.format(
                        page_number=current_page_number,
                        next_number=current_page_number + 1,
                        current_url=current_url,
                    ),
                    NextPageAnswer,
                )
                if answer.has_more_pages and is_valid_next_url(answer.next_page_url, current_url):
                    logger.info(f"Next page via extraction: {answer.next_page_url}")
                    return PaginationDecision(
                        has_more_pages=True,
                        next_page_url=answer.next_page_url.strip(),
                        strategy="extraction",
                        reasoning=answer.reasoning,
                    )
                if answer.next_page_url:
                    logger.debug(f"Rejected next page candidate: {answer.next_page_url}")
            except CapabilityError as e:
                logger.warning(f"Next page extraction failed: {e}")
                errors.append(f"extraction: {e}")

        for selector in self._selectors:
            try:
                href = page.evaluate(NEXT_LINK_SCRIPT, selector)
            except CapabilityError as e:
                logger.warning(f"Next page selector lookup failed: {e}")
                errors.append(f"selector: {e}")
                break
            if isinstance(href, str) and is_valid_next_url(href, current_url):
                logger.info(f"Next page via selector {selector}: {href}")
                return PaginationDecision(
                    has_more_pages=True,
                    next_page_url=href,
                    strategy="selector",
                    reasoning=f"Matched {selector}",
                    error="; ".join(errors) or None,
                )

        return PaginationDecision(
            has_more_pages=False,
            strategy="none",
            reasoning="No next page control found",
            error="; ".join(errors) or None,
        )
