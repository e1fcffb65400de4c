"""HTTP API over the application and discovery workflows."""
from .app import create_app

__all__ = ["create_app"]
