"""Startup selection of the canonical storage directory."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Sequence

logger = logging.getLogger(__name__)

PROBE_COLLECTION = "projects"


def _probe_records(directory: Path) -> int:
    """Number of projects stored in ``directory``; 0 when missing or unreadable."""
    path = directory / f"{PROBE_COLLECTION}.json"
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except FileNotFoundError:
        return 0
    except (OSError, ValueError) as exc:
        logger.warning("Skipping unreadable %s: %s", path, exc)
        return 0
    return len(data) if isinstance(data, list) else 0


def resolve_canonical_directory(candidates: Sequence[Path]) -> Path:
    """
    Pick the directory holding the most complete data.

    Candidates are checked in priority order; the first one whose projects
    collection is non-empty wins. Otherwise the highest-priority candidate is
    used, created first if no candidate exists at all.
    """
    if not candidates:
        raise ValueError("No candidate storage directories configured")
    paths = [Path(candidate) for candidate in candidates]

    for directory in paths:
        if not directory.is_dir():
            logger.debug("Candidate %s does not exist", directory)
            continue
        count = _probe_records(directory)
        if count:
            logger.info("Using %s as canonical data directory (%d projects)", directory, count)
            return directory

    primary = paths[0]
    if not any(directory.is_dir() for directory in paths):
        logger.info("No data directory found, creating %s", primary)
        primary.mkdir(parents=True, exist_ok=True)
    logger.info("No populated data directory found, using %s", primary)
    return primary
