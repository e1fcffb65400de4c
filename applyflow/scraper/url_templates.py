"""Listing URL templates and their expansion into concrete search URLs."""
import logging
import re
from pathlib import Path
from typing import Any, Mapping, Optional
from urllib.parse import quote_plus, urlparse

import pandas as pd

from ..workflow.state import UrlTemplate

logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r"\{(\w+)\}")

REQUIRED_COLUMNS: tuple[str, ...] = ("url",)


def _safe_str(value: Any) -> str:
    """Convert a CSV cell to string, treating NaN and None as empty."""
    if value is None or pd.isna(value):
        return ""
    return str(value).strip()


def load_url_templates(path: Path) -> tuple[UrlTemplate, ...]:
    """Read URL templates from a CSV with ``url, description, company`` columns.

    Args:
        path: CSV file path.

    Returns:
        Templates in file order; rows without a URL are skipped.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file has no ``url`` column.
    """
    df = pd.read_csv(path, dtype=str, keep_default_na=False, skip_blank_lines=True)
    df.columns = [str(c).strip().lower() for c in df.columns]
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"{path} is missing columns: {', '.join(missing)}")

    templates = []
    for row in df.to_dict(orient="records"):
        url = _safe_str(row.get("url"))
        if not url:
            continue
        templates.append(
            UrlTemplate(
                url=url,
                description=_safe_str(row.get("description")),
                company=_safe_str(row.get("company")),
            )
        )
    logger.info(f"Loaded {len(templates)} URL templates from {path}")
    return tuple(templates)


def placeholders(template: str) -> list[str]:
    return PLACEHOLDER.findall(template)


def fill_url_template(
    template: str, filters: Mapping[str, Any], domain: Optional[str] = None
) -> Optional[str]:
    """Substitute ``{name}`` placeholders from filters.

    ``{domain}`` falls back to the run's domain. Returns None when any
    placeholder has no value; list values are joined with spaces.
    """
    values: dict[str, str] = {}
    for key, value in filters.items():
        if isinstance(value, (list, tuple)):
            value = " ".join(str(v) for v in value)
        if value is not None and str(value).strip():
            values[str(key)] = str(value).strip()
    if domain and "domain" not in values:
        values["domain"] = domain

    unresolved = [name for name in placeholders(template) if name not in values]
    if unresolved:
        logger.debug(f"Unresolved placeholders in {template}: {unresolved}")
        return None
    return PLACEHOLDER.sub(lambda m: quote_plus(values[m.group(1)]), template)


def is_absolute_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
