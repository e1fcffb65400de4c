"""Resume retrieval by id."""
import logging
import re
from pathlib import Path
from typing import Optional

import httpx

from ..core.errors import ResumeNotFound, TransferError

logger = logging.getLogger(__name__)

RESUME_EXTENSIONS: tuple[str, ...] = (".pdf", ".docx", ".doc")
SAFE_ID = re.compile(r"^[A-Za-z0-9._-]+$")


def _check_id(resume_id: str) -> str:
    if not resume_id or not SAFE_ID.match(resume_id) or resume_id.startswith("."):
        raise ResumeNotFound(f"Invalid resume id: {resume_id!r}")
    return resume_id


class LocalResumeStore:
    """Resumes kept in a directory as ``<id>.pdf`` (or .docx/.doc)."""

    def __init__(self, directory: Path) -> None:
        self._directory = directory

    def fetch_resume_blob(self, resume_id: str) -> Path:
        resume_id = _check_id(resume_id)
        for ext in RESUME_EXTENSIONS:
            path = self._directory / f"{resume_id}{ext}"
            if path.exists():
                return path
        raise ResumeNotFound(f"No resume '{resume_id}' in {self._directory}")


class HttpResumeStore:
    """Resumes served over HTTP at ``<base_url>/<id>``, downloaded per run."""

    def __init__(
        self,
        base_url: str,
        download_dir: Path = Path("/tmp"),
        client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._download_dir = download_dir
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    def fetch_resume_blob(self, resume_id: str) -> Path:
        resume_id = _check_id(resume_id)
        url = f"{self._base_url}/{resume_id}"
        logger.info(f"Downloading resume {resume_id}")
        try:
            response = self._client.get(url)
        except httpx.HTTPError as e:
            raise TransferError(f"Resume download failed: {e}") from e

        if response.status_code == 404:
            raise ResumeNotFound(f"Resume '{resume_id}' not found")
        if response.status_code >= 400:
            raise TransferError(f"Resume download returned HTTP {response.status_code}")

        path = self._download_dir / f"resume_{resume_id}.pdf"
        try:
            self._download_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(response.content)
        except OSError as e:
            raise TransferError(f"Could not save resume: {e}") from e
        return path
