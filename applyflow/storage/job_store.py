"""Job record persistence in a JSON file."""
import json
import logging
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Any, Literal, Optional, Sequence

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

JobStatus = Literal["discovered", "processing", "applied", "failed"]


class JobRecord(BaseModel):
    """A job posting known to the system."""

    id: str
    url: str
    status: JobStatus = "discovered"
    title: str = ""
    company: str = ""
    domain: Optional[str] = None
    filters: dict[str, Any] = Field(default_factory=dict)
    discovered_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    error: Optional[str] = None


class JsonJobStore:
    """Stores job records keyed by id in a single JSON file.

    Safe to share between the threads of a batch run; every write rewrites
    the file under a lock.
    """

    DEFAULT_PATH = Path("data/jobs.json")

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path or self.DEFAULT_PATH
        self._records: dict[str, JobRecord] = {}
        self._lock = Lock()
        self._load()

    def get_record(self, record_id: str) -> Optional[JobRecord]:
        """Fetch one record by id."""
        with self._lock:
            record = self._records.get(record_id)
            return record.model_copy() if record else None

    def put_records(self, records: Sequence[JobRecord]) -> list[str]:
        """Insert or replace records, returning their ids in order."""
        with self._lock:
            ids = []
            for record in records:
                self._records[record.id] = record.model_copy()
                ids.append(record.id)
            self._save()
        logger.info(f"Saved {len(ids)} job records")
        return ids

    def update_status(self, record_id: str, status: JobStatus, error: Optional[str] = None) -> bool:
        """Set a record's status. Returns False if the record does not exist."""
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                return False
            self._records[record_id] = record.model_copy(update={
                "status": status,
                "error": error,
                "updated_at": datetime.now(),
            })
            self._save()
            return True

    def get_all(self, status: Optional[JobStatus] = None) -> list[JobRecord]:
        with self._lock:
            return [
                r.model_copy() for r in self._records.values()
                if status is None or r.status == status
            ]

    def stats(self) -> dict:
        """Count records per status."""
        with self._lock:
            records = list(self._records.values())
            return {
                "total": len(records),
                "discovered": sum(1 for r in records if r.status == "discovered"),
                "processing": sum(1 for r in records if r.status == "processing"),
                "applied": sum(1 for r in records if r.status == "applied"),
                "failed": sum(1 for r in records if r.status == "failed"),
            }

    def _save(self) -> None:
        """Write all records to disk."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = [r.model_dump(mode="json") for r in self._records.values()]
        with open(self._path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def _load(self) -> None:
        """Load records from disk, skipping entries that no longer validate."""
        if not self._path.exists():
            return

        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load job store: {e}")
            return

        for entry in data:
            try:
                record = JobRecord(**entry)
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed job record: {e}")
                continue
            self._records[record.id] = record

        logger.info(f"Loaded {len(self._records)} job records")
