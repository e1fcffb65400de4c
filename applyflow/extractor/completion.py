"""Success detection for submitted applications."""
import logging
from dataclasses import dataclass
from enum import Enum

from ..core.errors import CapabilityError
from ..workflow.ports import PageCapability
from .page_scripts import PAGE_SNAPSHOT_SCRIPT

logger = logging.getLogger(__name__)


class CompletionSignal(Enum):
    """Type of completion signal detected."""
    URL_PATTERN = "url_pattern"
    TEXT_CONTENT = "text_content"
    FORM_DISAPPEARED = "form_disappeared"
    NONE = "none"


@dataclass
class CompletionResult:
    """Result of completion check."""
    is_complete: bool
    signal: CompletionSignal
    details: str


SUCCESS_URL_PATTERNS: list[str] = [
    "post-apply",
    "postapplyjobid",
    "/confirmation",
    "/thank",
    "/success",
    "/submitted",
    "/complete",
    "/applied",
    "application-submitted",
    "apply/success",
]

SUCCESS_TEXT_PATTERNS: list[str] = [
    "thank you for applying",
    "application submitted",
    "application received",
    "application was sent",
    "your application has been submitted",
    "we have received your application",
    "successfully submitted",
    "thanks for applying",
    "application complete",
    "you have applied",
]

AUTH_URL_WORDS: tuple[str, ...] = ("login", "signin", "register")


def detect_completion(page: PageCapability) -> CompletionResult:
    """Check the current page for signs that an application went through.

    URL patterns win over text patterns; a form that has all but vanished
    counts as a weak signal unless the page is an auth page.
    """
    try:
        snapshot = page.evaluate(PAGE_SNAPSHOT_SCRIPT) or {}
    except CapabilityError as e:
        logger.debug(f"Completion check failed: {e}")
        return CompletionResult(False, CompletionSignal.NONE, str(e))

    url = str(snapshot.get("url", "")).lower()
    for pattern in SUCCESS_URL_PATTERNS:
        if pattern in url:
            logger.info(f"SUCCESS via URL: contains '{pattern}'")
            return CompletionResult(True, CompletionSignal.URL_PATTERN, f"URL contains '{pattern}'")

    text = str(snapshot.get("text", "")).lower()
    for pattern in SUCCESS_TEXT_PATTERNS:
        if pattern in text:
            logger.info(f"SUCCESS via text: '{pattern}'")
            return CompletionResult(True, CompletionSignal.TEXT_CONTENT, f"Page contains '{pattern}'")

    inputs = snapshot.get("inputCount")
    if isinstance(inputs, int) and inputs <= 2 and not any(w in url for w in AUTH_URL_WORDS):
        return CompletionResult(
            True, CompletionSignal.FORM_DISAPPEARED, f"Only {inputs} form inputs remain"
        )

    return CompletionResult(False, CompletionSignal.NONE, "")
