"""Candidate profile files."""
from .manager import load_candidate

__all__ = ["load_candidate"]
