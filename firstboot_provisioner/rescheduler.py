from __future__ import annotations

import logging
import os
import subprocess
import sys
import time
from pathlib import Path
from typing import Callable, Optional, TypeVar

from .readiness import ReadinessCheck

logger = logging.getLogger(__name__)

T = TypeVar("T")


def watcher_argv(reconciler: str, *, inherit_from: int, log_path: Optional[str] = None) -> list[str]:
    argv = [
        sys.executable,
        "-m",
        "firstboot_provisioner.main",
        reconciler,
        "--watch",
        "--inherit-lock",
        str(inherit_from),
    ]
    if log_path:
        argv += ["--log", log_path]
    return argv


def spawn_watcher(reconciler: str, *, log_path: Optional[str] = None) -> int:
    """Start a detached watcher process and return its pid.

    The child gets its own session so it survives the foreground exiting and
    the service manager cleaning up the foreground's process group.
    """

    argv = watcher_argv(reconciler, inherit_from=os.getpid(), log_path=log_path)
    out = subprocess.DEVNULL
    if log_path:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        out = open(log_path, "a", encoding="utf-8")
    try:
        proc = subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=out,
            stderr=out,
            close_fds=True,
            start_new_session=True,
        )
    finally:
        if out is not subprocess.DEVNULL:
            out.close()
    logger.info("Background watcher started (pid=%s): %s", proc.pid, " ".join(argv))
    return int(proc.pid)


def watch_until_ready(
    check: ReadinessCheck,
    on_ready: Callable[[], T],
    *,
    poll_interval_s: float,
    sleep: Callable[[float], None] = time.sleep,
    max_polls: Optional[int] = None,
) -> Optional[T]:
    """Sleep, probe, repeat until ready, then run `on_ready`.

    Unbounded unless `max_polls` is given; returns None if that bound is hit.
    """

    polls = 0
    while max_polls is None or polls < max_polls:
        sleep(poll_interval_s)
        polls += 1
        try:
            state = check()
        except Exception as e:
            logger.info("Watcher probe raised %s: %s", type(e).__name__, e)
            continue
        if state.ready:
            logger.info("Watcher ready after %d poll(s): %s", polls, state.reason)
            return on_ready()
        logger.info("Watcher poll %d: not ready (%s)", polls, state.reason)
    return None
