"""Data models for extracted page elements."""
from typing import Optional

from pydantic import BaseModel


class FormElement(BaseModel):
    """A single form element as reported by the extraction script."""

    selector: str
    tag: str
    type: Optional[str] = None
    name: Optional[str] = None
    id: Optional[str] = None
    label: Optional[str] = None
    placeholder: Optional[str] = None
    options: Optional[list[str]] = None
    required: bool = False
    visible: bool = True


class PageLink(BaseModel):
    """An anchor found on a listing page."""

    href: str
    text: str = ""
