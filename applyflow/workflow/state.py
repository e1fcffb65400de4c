"""Typed state envelopes threaded through workflow graphs.

Envelopes are frozen. Steps never modify the envelope they receive; they return
``state.model_copy(update=...)`` with their own result fields set. Collections
are tuples so nothing can be appended in place.
"""
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

FieldType = Literal["text", "email", "phone", "textarea", "select", "file", "date", "number"]

FIELD_TYPES: tuple[str, ...] = (
    "text", "email", "phone", "textarea", "select", "file", "date", "number",
)


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class ErrorRecord(FrozenModel):
    """A failure attributed to one step."""

    step: str
    error: str
    timestamp: datetime


class Target(FrozenModel):
    """What a run is pointed at."""

    url: str = ""
    filters: dict[str, Any] = Field(default_factory=dict)
    domain: Optional[str] = None


class StateEnvelope(FrozenModel):
    """Fields shared by every workflow state."""

    target: Target = Field(default_factory=Target)
    candidate: dict[str, Any] = Field(default_factory=dict)
    errors: tuple[ErrorRecord, ...] = ()
    current_step: str = "initialized"
    status: str = "pending"
    history: tuple[str, ...] = ()

    def with_error(self, step: str, error: str, timestamp: datetime, **update: Any):
        """Return a copy with one more error record and any extra updates."""
        record = ErrorRecord(step=step, error=error, timestamp=timestamp)
        return self.model_copy(update={"errors": self.errors + (record,), **update})


# Application workflow


class Blockers(FrozenModel):
    has_login_required: bool = False
    has_google_oauth: bool = False
    has_email_verification: bool = False
    has_registration_required: bool = False
    has_blocking_modal: bool = False
    reasoning: str = ""

    @property
    def detected(self) -> bool:
        return (
            self.has_login_required
            or self.has_google_oauth
            or self.has_email_verification
            or self.has_registration_required
            or self.has_blocking_modal
        )


class PageState(FrozenModel):
    """Result of loading the target page."""

    is_loaded: bool = False
    has_form: bool = False
    form_type: Optional[str] = None
    final_url: Optional[str] = None
    blockers: Blockers = Field(default_factory=Blockers)
    error: Optional[str] = None


class FormField(FrozenModel):
    """One detected form field."""

    name: str
    type: FieldType = "text"
    options: tuple[str, ...] = ()
    label: Optional[str] = None
    selector: Optional[str] = None
    required: bool = False


class FormModel(FrozenModel):
    """Ordered fields found on the application form."""

    success: bool = False
    fields: tuple[FormField, ...] = ()
    source: Optional[str] = None
    error: Optional[str] = None


class FieldMapping(FrozenModel):
    """Candidate value chosen for one form field."""

    field_name: str
    field_type: FieldType
    mapped: bool
    value: Optional[str] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    reason: str = ""
    source: Literal["pattern", "semantic", "inference", "none"] = "none"
    low_confidence: bool = False


class UnfilledField(FrozenModel):
    field_name: str
    field_type: FieldType
    reason: str


class MappingResult(FrozenModel):
    success: bool = False
    mappings: tuple[FieldMapping, ...] = ()
    unfilled_fields: tuple[UnfilledField, ...] = ()
    error: Optional[str] = None

    @property
    def mapped_count(self) -> int:
        return sum(1 for m in self.mappings if m.mapped)


class FieldFillOutcome(FrozenModel):
    field_name: str
    value: str
    success: bool
    reason: Optional[str] = None


class FillResult(FrozenModel):
    success: bool = False
    fields_filled: int = 0
    outcomes: tuple[FieldFillOutcome, ...] = ()
    error: Optional[str] = None


class SubmissionResult(FrozenModel):
    success: bool = False
    resume_uploaded: bool = False
    resume_error: Optional[str] = None
    submitted: bool = False
    confirmed: bool = False
    signal: Optional[str] = None
    error: Optional[str] = None


class ApplicationState(StateEnvelope):
    """Envelope for a single job application run."""

    resume_id: Optional[str] = None
    job_description: Optional[dict[str, Any]] = None
    page_state: Optional[PageState] = None
    form_model: Optional[FormModel] = None
    field_mapping: Optional[MappingResult] = None
    form_fill: Optional[FillResult] = None
    submission: Optional[SubmissionResult] = None

    @property
    def succeeded(self) -> bool:
        return (
            self.status == "completed"
            and self.submission is not None
            and self.submission.success
        )


# Discovery workflow


class UrlTemplate(FrozenModel):
    """A listing URL template, usually one row of the discovery CSV."""

    url: str
    description: str = ""
    company: str = ""


class ListingTarget(FrozenModel):
    """A concrete listing URL produced from a template."""

    original_template: str
    final_url: str
    description: str = ""
    company: str = ""
    domain: Optional[str] = None
    filters: dict[str, Any] = Field(default_factory=dict)


class Pagination(FrozenModel):
    current_page: int = Field(default=1, ge=1)
    has_more_pages: bool = False
    next_page_url: Optional[str] = None


class ScrapeResult(FrozenModel):
    success: bool = False
    url: str = ""
    page_number: int = 1
    jobs_found: int = 0
    error: Optional[str] = None


class ScrapedJob(FrozenModel):
    title: str
    url: str
    company: str = ""
    listing_url: str = ""
    page_number: int = 1
    scraped_at: datetime


class StorageResult(FrozenModel):
    success: bool = False
    stored: int = 0
    record_ids: tuple[str, ...] = ()
    error: Optional[str] = None


class DiscoveryState(StateEnvelope):
    """Envelope for a job discovery run."""

    config_path: Optional[str] = None
    templates: tuple[UrlTemplate, ...] = ()
    processed_urls: tuple[ListingTarget, ...] = ()
    cursor: int = Field(default=0, ge=0)
    current_target: Optional[ListingTarget] = None
    pagination: Pagination = Field(default_factory=Pagination)
    last_scrape: Optional[ScrapeResult] = None
    scraped_jobs: tuple[ScrapedJob, ...] = ()
    storage: Optional[StorageResult] = None
