"""Candidate profile loading."""
import json
import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


def load_candidate(path: Path) -> dict[str, Any]:
    """Load raw candidate data from a YAML or JSON file.

    The data is returned as-is; normalization happens when a workflow maps
    it onto form fields, so any of the accepted key spellings may be used.

    Args:
        path: Path to a ``.yaml``, ``.yml`` or ``.json`` file.

    Returns:
        Candidate data as a dictionary.

    Raises:
        ValueError: If the file does not hold a mapping.
    """
    logger.info(f"Loading candidate profile from {path}")
    with open(path, encoding="utf-8") as f:
        if path.suffix.lower() == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Candidate profile {path} must contain a mapping")
    return data
