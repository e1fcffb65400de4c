"""Request bodies for the HTTP API."""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..scraper.url_templates import is_absolute_url


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def check_job_url(value: str) -> str:
    value = value.strip()
    if not is_absolute_url(value):
        raise ValueError("must be an absolute http(s) URL")
    return value


class SingleApplicationRequest(ApiModel):
    job_url: str
    candidate_data: dict[str, Any] = Field(min_length=1)
    job_description: Optional[dict[str, Any]] = None
    resume_id: Optional[str] = None

    @field_validator("job_url")
    @classmethod
    def validate_job_url(cls, value: str) -> str:
        return check_job_url(value)


class BatchApplicationRequest(ApiModel):
    job_urls: list[str] = Field(min_length=1)
    candidate_data: dict[str, Any] = Field(min_length=1)
    resume_id: Optional[str] = None

    @field_validator("job_urls")
    @classmethod
    def validate_job_urls(cls, value: list[str]) -> list[str]:
        return [check_job_url(url) for url in value]


class DiscoveryRequest(ApiModel):
    domain: str = Field(min_length=1)
    filters: dict[str, Any] = Field(default_factory=dict)
    config_path: Optional[str] = None
