"""Core utilities: configuration, logging and errors."""
from .config import (
    ApiConfig,
    BrowserConfig,
    ClaudeConfig,
    Settings,
    StorageConfig,
    WorkflowConfig,
)
from .logging import setup_logging

__all__ = [
    "Settings",
    "BrowserConfig",
    "ClaudeConfig",
    "WorkflowConfig",
    "StorageConfig",
    "ApiConfig",
    "setup_logging",
]
