from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from ..config import ReconcilerConfig
from ..diagnosis import classify_failure, describe
from ..executor import AppCatalog, BatchExecutor
from ..lib.flatpak import FlatpakCatalog
from ..lib.net import is_online
from ..models import ReadinessState
from ..readiness import ReadinessCheck, ReadinessProber
from ..reconciler import Reconciler
from ..reporter import RunReporter
from ..rescheduler import spawn_watcher

logger = logging.getLogger(__name__)

DEFAULT_REMOTE = "flathub"
DEFAULT_REMOTE_URL = "https://dl.flathub.org/repo/flathub.flatpakrepo"
DEFAULT_PROBE_APP = "com.github.tchx84.Flatseal"


def network_ready(host: str) -> ReadinessCheck:
    def check() -> ReadinessState:
        if is_online(host):
            return ReadinessState(True, f"network reachable ({host})")
        return ReadinessState(False, f"network unreachable ({host})")

    return check


def catalog_ready(catalog: AppCatalog, *, remote: str, url: str, probe_app: str) -> ReadinessCheck:
    """Register the remote if needed and verify it answers.

    A failed connectivity probe gets one repair attempt before the catalog is
    reported not ready.
    """

    def check() -> ReadinessState:
        if not catalog.has_remote(remote):
            logger.info("Adding flatpak remote %s (%s)", remote, url)
            added = catalog.add_remote(remote, url)
            if not added.ok:
                logger.warning("Could not add remote %s: %s", remote, added.stderr.strip())

        probe = catalog.query_remote(remote, probe_app)
        if probe.ok:
            return ReadinessState(True, f"remote {remote} reachable")

        logger.info("Remote %s probe failed (%s); repairing once", remote, describe(classify_failure(probe.stderr)))
        catalog.repair_remote(remote, url)

        probe = catalog.query_remote(remote, probe_app)
        if probe.ok:
            return ReadinessState(True, f"remote {remote} reachable after repair")
        return ReadinessState(
            False,
            f"remote {remote} unreachable after repair ({describe(classify_failure(probe.stderr))})",
        )

    return check


def build_flatpak_installer(
    cfg: ReconcilerConfig,
    *,
    log_path: Optional[str] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Reconciler:
    catalog_cfg = cfg.catalog
    catalog = FlatpakCatalog(installation=str(catalog_cfg.get("installation") or "system"))

    return Reconciler(
        name=cfg.name,
        operations=cfg.operations,
        prober=ReadinessProber(network_ready(cfg.network_host), cfg.readiness, sleep=sleep),
        executor_factory=lambda: BatchExecutor(catalog=catalog),
        reporter=RunReporter(cfg.name, marker_path=cfg.marker_path, summary_path=cfg.summary_path),
        lock_path=cfg.lock_path,
        poll_interval_s=cfg.poll_interval_s,
        required_commands=cfg.required_commands,
        prepare=catalog_ready(
            catalog,
            remote=str(catalog_cfg.get("remote") or DEFAULT_REMOTE),
            url=str(catalog_cfg.get("url") or DEFAULT_REMOTE_URL),
            probe_app=str(catalog_cfg.get("probe_app") or DEFAULT_PROBE_APP),
        ),
        spawn=spawn_watcher,
        log_path=log_path or cfg.log_path,
        sleep=sleep,
    )
