"""Concurrency limit resolution for export runs."""

import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

# Ceiling applied to the CPU-derived default
MAX_AUTO_THROTTLE = 12


def resolve_throttle_limit(
    override: Optional[int] = None,
    configured: Optional[int] = None,
    cpu_count: Optional[int] = None,
) -> int:
    """Resolve how many export jobs may run at once.

    Priority: an explicit non-zero override, then a non-zero configured
    value, then the host's logical processor count capped at
    MAX_AUTO_THROTTLE.

    Args:
        override: Value passed on the command line (0/None = not set).
        configured: Value from the config file (0/None = auto).
        cpu_count: Processor count, detected from the host if None.

    Returns:
        Concurrency level, at least 1.
    """
    if override:
        limit = override
        source = "override"
    elif configured:
        limit = configured
        source = "config"
    else:
        detected = cpu_count if cpu_count is not None else os.cpu_count()
        limit = min(detected or 1, MAX_AUTO_THROTTLE)
        source = "auto"

    limit = max(1, limit)
    logger.debug(f"Throttle limit {limit} ({source})")
    return limit
