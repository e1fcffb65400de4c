"""Job posting link classification for listing pages."""
import logging
import re
from typing import Any, Optional, Sequence
from urllib.parse import urlparse

from ..agent.prompts import build_job_links_prompt
from ..agent.schemas import JobLinkSelection
from ..core.errors import CapabilityError
from ..extractor.models import PageLink
from ..workflow.ports import InferenceCapability
from .pagination import normalize_url

logger = logging.getLogger(__name__)

MAX_LINKS_FOR_INFERENCE = 300

JOB_DETAIL_URL_PATTERNS: list[str] = [
    "/job-detail",
    "/viewjob",
    "/jobs/view",
    "/careers/job",
    "/job/",
    "/jobs/",
    "/posting/",
    "/postings/",
    "/requisition/",
    "/position/",
    "/positions/",
    "/vacancy/",
    "/opening/",
    "gh_jid=",
    "jobid=",
    "job_id=",
    "jk=",
]

NON_DETAIL_URL_PATTERNS: list[str] = [
    "/search",
    "/login",
    "/signin",
    "/sign-in",
    "/signup",
    "/register",
    "/alerts",
    "/saved",
    "page=",
    "/company/",
    "/companies/",
    "/cmp/",
    "/privacy",
    "/terms",
]

KNOWN_COMPANY_HOSTS: dict[str, str] = {
    "careers.microsoft.com": "Microsoft",
    "jobs.apple.com": "Apple",
    "careers.google.com": "Google",
    "amazon.jobs": "Amazon",
    "jobs.netflix.com": "Netflix",
    "careers.meta.com": "Meta",
}

# ATS hosts where the company slug is the first path segment
ATS_PATH_HOSTS: tuple[str, ...] = (
    "greenhouse.io",
    "lever.co",
    "ashbyhq.com",
    "workable.com",
    "smartrecruiters.com",
)

UNKNOWN_COMPANY = "Unknown Company"


def _titleize(slug: str) -> str:
    return re.sub(r"[-_]+", " ", slug).strip().title()


def extract_company_from_url(url: str) -> str:
    """Best-effort company name from a job or listing URL."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return UNKNOWN_COMPANY
    host = (parsed.hostname or "").lower()
    if not host:
        return UNKNOWN_COMPANY
    parts = [p for p in parsed.path.split("/") if p]

    for known_host, company in KNOWN_COMPANY_HOSTS.items():
        if known_host in host:
            return company

    for marker_host, marker in (
        ("linkedin.com", "company"),
        ("indeed.com", "cmp"),
        ("glassdoor.com", "Overview"),
    ):
        if marker_host in host:
            if marker in parts and parts.index(marker) + 1 < len(parts):
                return _titleize(parts[parts.index(marker) + 1])
            return UNKNOWN_COMPANY

    if any(ats in host for ats in ATS_PATH_HOSTS) and parts:
        return _titleize(parts[0])

    labels = host.removeprefix("www.").split(".")
    if len(labels) < 2:
        return UNKNOWN_COMPANY
    name = labels[-2]
    # second-level suffixes like acme.co.uk
    if name in ("co", "com", "org", "ac", "gov") and len(labels) > 2:
        name = labels[-3]
    return _titleize(name)


def looks_like_job_detail(url: str) -> bool:
    """URL heuristic for a single job posting page."""
    lowered = url.lower()
    if any(pattern in lowered for pattern in NON_DETAIL_URL_PATTERNS):
        return False
    return any(pattern in lowered for pattern in JOB_DETAIL_URL_PATTERNS)


def parse_links(raw_links: Any) -> list[PageLink]:
    """Validate the output of COLLECT_LINKS_SCRIPT."""
    if not isinstance(raw_links, list):
        return []
    links = []
    for raw in raw_links:
        if isinstance(raw, dict) and isinstance(raw.get("href"), str):
            links.append(PageLink(href=raw["href"], text=str(raw.get("text") or "")))
    return links


def classify_job_links(
    listing_url: str,
    links: Sequence[PageLink],
    inference: Optional[InferenceCapability] = None,
) -> list[PageLink]:
    """Pick the links on a listing page that open individual job postings.

    The inference backend is asked first; only URLs that were actually on the
    page are kept from its answer. Without inference, or when it fails, the URL
    heuristic decides.
    """
    candidates = [
        link for link in links
        if normalize_url(link.href) != normalize_url(listing_url)
    ]
    if not candidates:
        return []

    if inference is not None:
        try:
            selection = inference.classify(
                build_job_links_prompt(
                    listing_url,
                    [link.model_dump() for link in candidates[:MAX_LINKS_FOR_INFERENCE]],
                ),
                JobLinkSelection,
            )
            chosen = {normalize_url(u) for u in selection.job_urls}
            picked = [link for link in candidates if normalize_url(link.href) in chosen]
            logger.info(f"Inference picked {len(picked)} job links on {listing_url}")
            return picked
        except CapabilityError as e:
            logger.warning(f"Job link classification failed, using URL patterns: {e}")

    picked = [link for link in candidates if looks_like_job_detail(link.href)]
    logger.info(f"URL patterns picked {len(picked)} job links on {listing_url}")
    return picked
