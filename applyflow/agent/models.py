"""Shared timeouts, retry counts and URL patterns for browser automation."""

# Timeouts
PAGE_LOAD_TIMEOUT_MS: int = 30000
EXTRACTION_TIMEOUT_MS: int = 15000
UPLOAD_TIMEOUT_MS: int = 20000
MEDIUM_WAIT_MS: int = 1500

# Retry counts
MAX_NAVIGATION_RETRIES: int = 3

# Page snapshot limits for extraction prompts
MAX_PAGE_TEXT_CHARS: int = 12000
MAX_PAGE_ELEMENTS: int = 150


LOGIN_URL_PATTERNS: dict[str, list[str]] = {
    "linkedin": [
        "linkedin.com/login",
        "linkedin.com/checkpoint",
        "linkedin.com/uas/login",
    ],
    "indeed": [
        "secure.indeed.com/auth",
        "indeed.com/account/login",
        "indeed.com/account/signin",
    ],
    "google": [
        "accounts.google.com/",
    ],
    "generic": [
        "/login",
        "/signin",
        "/sign-in",
        "/authenticate",
    ],
}
