"""Structured answers requested from the inference backend.

Each model doubles as the JSON schema sent to Claude and the validator for
its reply.
"""
from typing import Optional

from pydantic import BaseModel, Field


class BlockerReport(BaseModel):
    """Obstacles that stop an application before the form."""

    has_login_required: bool = Field(
        default=False, description="A login form or sign-in wall is shown"
    )
    has_google_oauth: bool = Field(
        default=False, description="Only 'Sign in with Google' or similar OAuth is offered"
    )
    has_email_verification: bool = Field(
        default=False, description="The page asks to verify an email before continuing"
    )
    has_registration_required: bool = Field(
        default=False, description="An account must be created before applying"
    )
    has_blocking_modal: bool = Field(
        default=False, description="A modal or overlay covers the application form"
    )
    reasoning: str = Field(default="", description="Short explanation of the findings")


class DiscoveredField(BaseModel):
    name: str
    type: str = Field(default="text", description="text, email, phone, textarea, select, file, date or number")
    label: Optional[str] = None
    options: list[str] = Field(default_factory=list)
    required: bool = False


class DiscoveredForm(BaseModel):
    """Form fields visible on the page."""

    fields: list[DiscoveredField] = Field(default_factory=list)


class FieldAnswer(BaseModel):
    """Candidate value for one form field."""

    value: Optional[str] = Field(default=None, description="Value to enter, or null if unknown")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    reasoning: str = ""


class NextPageAnswer(BaseModel):
    """Where the next page of listings lives."""

    has_more_pages: bool = False
    next_page_url: Optional[str] = Field(
        default=None, description="Absolute URL of the next results page"
    )
    reasoning: str = ""


class JobLinkSelection(BaseModel):
    """Links that point at individual job postings."""

    job_urls: list[str] = Field(default_factory=list)
    reasoning: str = ""


class FilledUrl(BaseModel):
    """A listing URL template with its placeholders resolved."""

    url: str
    reasoning: str = ""
