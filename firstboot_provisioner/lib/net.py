from __future__ import annotations

import logging

from .command import run_cmd

logger = logging.getLogger(__name__)


def is_online(host: str = "1.1.1.1") -> bool:
    """Best-effort online check (one ping, two second wait)."""

    try:
        r = run_cmd(["ping", "-c", "1", "-W", "2", host])
    except OSError as e:
        logger.info("Online check failed: %s", e)
        return False
    return r.returncode == 0
