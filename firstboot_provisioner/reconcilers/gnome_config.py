from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from ..config import ReconcilerConfig
from ..executor import BatchExecutor
from ..lib.extensions import GnomeExtensions
from ..lib.gsettings import GSettingsBackend
from ..lib.session import detect_session, session_env
from ..models import ReadinessState
from ..readiness import ReadinessProber, all_of
from ..reconciler import Reconciler
from ..reporter import RunReporter
from ..rescheduler import spawn_watcher

logger = logging.getLogger(__name__)


def session_ready() -> ReadinessState:
    info = detect_session()
    if not info.bus_address:
        return ReadinessState(False, "no session bus address")
    if not info.graphical:
        return ReadinessState(False, "no graphical session")
    return ReadinessState(True, f"desktop session active ({info.session_type or 'display'})")


def settings_backend_ready() -> ReadinessState:
    # Built per probe: the bus address may only appear once the session starts.
    if GSettingsBackend(env=session_env()).is_responsive():
        return ReadinessState(True, "settings backend responsive")
    return ReadinessState(False, "settings backend not responding")


def make_executor() -> BatchExecutor:
    env = session_env()
    return BatchExecutor(settings=GSettingsBackend(env=env), extensions=GnomeExtensions(env=env))


def build_gnome_config(
    cfg: ReconcilerConfig,
    *,
    log_path: Optional[str] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Reconciler:
    return Reconciler(
        name=cfg.name,
        operations=cfg.operations,
        prober=ReadinessProber(all_of(session_ready, settings_backend_ready), cfg.readiness, sleep=sleep),
        executor_factory=make_executor,
        reporter=RunReporter(cfg.name, marker_path=cfg.marker_path, summary_path=cfg.summary_path),
        lock_path=cfg.lock_path,
        poll_interval_s=cfg.poll_interval_s,
        required_commands=cfg.required_commands,
        spawn=spawn_watcher,
        log_path=log_path or cfg.log_path,
        sleep=sleep,
    )
