"""Source revision lookup for run records."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)


def current_commit(cwd: Path | None = None) -> str | None:
    """Return HEAD's commit hash, or None outside a git checkout."""
    try:
        out = subprocess.check_output(
            ["git", "rev-parse", "HEAD"],
            cwd=cwd,
            text=True,
            stderr=subprocess.DEVNULL,
        )
    except (OSError, subprocess.CalledProcessError) as exc:
        logger.debug("No git revision available: %s", exc)
        return None
    return out.strip() or None
