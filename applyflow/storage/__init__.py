"""Persistence: job records and resume files."""
from .job_store import JobRecord, JsonJobStore
from .resumes import HttpResumeStore, LocalResumeStore

__all__ = ["JobRecord", "JsonJobStore", "HttpResumeStore", "LocalResumeStore"]
