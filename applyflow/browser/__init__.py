"""Browser automation: session lifecycle and the Playwright page adapter."""
from .connection import BrowserSession
from .page import PlaywrightPage

__all__ = ["BrowserSession", "PlaywrightPage"]
