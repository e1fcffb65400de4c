"""Prompt templates for Claude inference calls."""
import json
from typing import Any, Optional, Sequence

SYSTEM_PROMPT = """You are a careful assistant supporting browser automation for job applications and job discovery.

You always answer by calling the provided tool exactly once. Never invent data:
if the page or the candidate record does not contain what is asked, say so through
the schema (false flags, null values, low confidence, empty lists).

## CONFIDENCE

- 0.9 and above: the answer is stated verbatim in the input
- 0.6 to 0.8: the answer follows directly from the input
- 0.5 and below: an educated guess
- 0.0: no basis for an answer
"""

BLOCKER_INSTRUCTION = """Inspect this page and report anything that prevents submitting a job application directly:
- a login form or sign-in wall
- a "Sign in with Google" (or other OAuth-only) requirement
- an email verification request
- a registration/account creation requirement
- a modal or overlay covering the application form
Only report what is actually visible."""

FORM_DISCOVERY_INSTRUCTION = """List every fillable field of the job application form on this page, in page order.
For each field give its name attribute (or id, or label when neither exists), its type
(one of: text, email, phone, textarea, select, file, date, number), its visible label,
the option texts for dropdowns, and whether it is required. Ignore search boxes,
newsletter signups and navigation."""

NEXT_PAGE_INSTRUCTION = """This is page {page_number} of job search results at {current_url}.
Find the control that leads to the next page of results (a "Next" link, an arrow,
or the link for page {next_number}). Return its absolute URL. If there is no next
page, set has_more_pages to false and next_page_url to null."""

EXTRACTION_PROMPT = """{instruction}

## PAGE
URL: {url}
Title: {title}

## VISIBLE TEXT
{text}

## INTERACTIVE ELEMENTS
{elements}"""


def build_extraction_prompt(
    instruction: str, url: str, title: str, text: str, elements: Sequence[dict]
) -> str:
    """Build a page extraction prompt from a snapshot of the current page."""
    lines = []
    for el in elements:
        parts = [el.get("tag", "?")]
        for key in ("type", "name", "label", "href"):
            if el.get(key):
                parts.append(f'{key}="{el[key]}"')
        if el.get("text"):
            parts.append(f'text="{el["text"]}"')
        lines.append(" ".join(parts))
    return EXTRACTION_PROMPT.format(
        instruction=instruction,
        url=url,
        title=title,
        text=text,
        elements="\n".join(lines) or "(none)",
    )


def build_field_prompt(
    field_name: str,
    field_type: str,
    label: Optional[str],
    options: Sequence[str],
    candidate: dict[str, Any],
) -> str:
    """Build the prompt asking for one field's value."""
    lines = [
        "Choose the value to enter in this job application field for the candidate below.",
        "",
        f"Field name: {field_name}",
        f"Field type: {field_type}",
    ]
    if label and label != field_name:
        lines.append(f"Field label: {label}")
    if options:
        lines.append("Options (answer with one of these exactly):")
        lines.extend(f"- {opt}" for opt in options)
    lines.extend(["", "## CANDIDATE", json.dumps(candidate, indent=2, ensure_ascii=False)])
    return "\n".join(lines)


def build_job_links_prompt(listing_url: str, links: Sequence[dict]) -> str:
    """Build the prompt for picking job posting links out of a listing page."""
    rendered = "\n".join(
        f"- {link.get('href')} | {link.get('text', '')}" for link in links
    )
    return (
        f"These links were found on the job listing page {listing_url}.\n"
        "Return the URLs that open an individual job posting (a job detail page). "
        "Exclude search result pages, filters, pagination, company pages, login and "
        "navigation links. Copy URLs exactly.\n\n"
        f"## LINKS\n{rendered}"
    )


def build_url_template_prompt(
    template: str, description: str, filters: dict[str, Any], domain: Optional[str]
) -> str:
    """Build the prompt for resolving a listing URL template."""
    return (
        "Fill in this job search URL template so it searches for the given filters. "
        "Replace every {placeholder} with a URL-encoded value and keep the rest of the "
        "URL unchanged.\n\n"
        f"Template: {template}\n"
        f"Site description: {description or 'n/a'}\n"
        f"Domain: {domain or 'n/a'}\n"
        f"Filters: {json.dumps(filters, ensure_ascii=False)}"
    )
