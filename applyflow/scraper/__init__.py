"""Job discovery helpers: pagination, listing links and URL templates."""
from .pagination import PaginationController, PaginationDecision
from .url_templates import fill_url_template, load_url_templates

__all__ = [
    "PaginationController",
    "PaginationDecision",
    "fill_url_template",
    "load_url_templates",
]
