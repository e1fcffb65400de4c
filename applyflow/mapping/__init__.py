"""Candidate normalization and form field mapping."""
from .candidate import NormalizedCandidate, normalize_candidate
from .field_mapper import FieldMapper, match_option

__all__ = ["NormalizedCandidate", "normalize_candidate", "FieldMapper", "match_option"]
