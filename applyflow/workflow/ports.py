"""Capability contracts used by workflow steps.

Steps only talk to the outside world through these protocols. Concrete
adapters live in ``applyflow.browser``, ``applyflow.agent`` and
``applyflow.storage``; tests pass stubs.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional, Protocol, Sequence, TypeVar

from pydantic import BaseModel

from ..core.config import WorkflowConfig

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class NavigationResult(BaseModel):
    ok: bool
    final_url: str


class PageCapability(Protocol):
    """A live browser page."""

    def navigate(self, url: str) -> NavigationResult:
        """Load ``url``. Raises NavigationError when the page cannot load."""
        ...

    def extract(self, instruction: str, schema: type[SchemaT]) -> SchemaT:
        """AI-backed extraction of structured data from the current page."""
        ...

    def evaluate(self, script: str, arg: Any = None) -> Any:
        """Run a script in the page. Raises ScriptError on failure."""
        ...

    def upload(self, selector: str, path: Path) -> None:
        """Attach a file to the file input at ``selector``."""
        ...


class InferenceCapability(Protocol):
    """Schema-validated language model answers."""

    def classify(self, instruction: str, schema: type[SchemaT]) -> SchemaT:
        """Answer ``instruction`` as an instance of ``schema``."""
        ...


class ResumeStore(Protocol):
    def fetch_resume_blob(self, resume_id: str) -> Path:
        """Return a local path to the resume. Raises ResumeNotFound or TransferError."""
        ...


class JobRecordStore(Protocol):
    def get_record(self, record_id: str) -> Optional[BaseModel]:
        ...

    def put_records(self, records: Sequence[BaseModel]) -> list[str]:
        ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RunContext:
    """Everything a step may use besides the envelope.

    One context is built per run and never shared between concurrent runs.
    """

    page: Optional[PageCapability] = None
    inference: Optional[InferenceCapability] = None
    resume_store: Optional[ResumeStore] = None
    job_store: Optional[JobRecordStore] = None
    config: WorkflowConfig = field(default_factory=WorkflowConfig)
    clock: Callable[[], datetime] = utc_now
