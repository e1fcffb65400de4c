"""Browser workflow engine for job applications and job discovery."""

__version__ = "0.1.0"
