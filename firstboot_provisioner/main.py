from __future__ import annotations

import argparse
import logging
from typing import Optional

from .config import load_reconciler_config
from .logging_utils import configure_logging
from .reconcilers import BUILDERS
from .reporter import RunReporter

logger = logging.getLogger(__name__)


def show_status(name: str) -> int:
    cfg = load_reconciler_config(name)
    reporter = RunReporter(cfg.name, marker_path=cfg.marker_path, summary_path=cfg.summary_path)
    record = reporter.load_completion_marker()
    if record is None:
        print(f"{name}: not completed (no marker at {cfg.marker_path})")
        return 0
    counts = record.get("counts") or {}
    print(
        f"{name}: completed {record.get('completed_at_iso', '?')} "
        f"(success={counts.get('success', '?')} failure={counts.get('failure', '?')} "
        f"skipped={counts.get('skipped', '?')})"
    )
    for identity in record.get("failed_operations") or []:
        print(f"  failed: {identity}")
    return 0


def run(
    name: str,
    *,
    log_path: Optional[str] = None,
    force: bool = False,
    watch: bool = False,
    inherit_lock: Optional[int] = None,
) -> int:
    """Run one reconciler in the foreground, or as the background watcher."""

    cfg = load_reconciler_config(name)
    actual_log_path = configure_logging(log_path=log_path or cfg.log_path, also_console=not watch)
    reconciler = BUILDERS[name](cfg, log_path=actual_log_path)

    try:
        if watch:
            return reconciler.watch(inherit_from=inherit_lock)
        return reconciler.run(force=force)
    except Exception:
        logger.exception("%s failed", name)
        raise


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="firstboot-provision")
    p.add_argument("reconciler", choices=sorted(BUILDERS), help="Which provisioning batch to reconcile")
    p.add_argument("--log", default=None, help="Path to run log (default from manifest)")
    p.add_argument("--force", action="store_true", help="Ignore and replace an existing completion marker")
    p.add_argument("--status", action="store_true", help="Print the last completion record and exit")
    p.add_argument("--watch", action="store_true", help=argparse.SUPPRESS)
    p.add_argument("--inherit-lock", type=int, default=None, help=argparse.SUPPRESS)

    args = p.parse_args(argv)

    if args.status:
        return show_status(args.reconciler)

    return run(
        args.reconciler,
        log_path=args.log,
        force=bool(args.force),
        watch=bool(args.watch),
        inherit_lock=args.inherit_lock,
    )


def gnome_config_main() -> int:
    return main(["gnome-config"])


def flatpak_installer_main() -> int:
    return main(["flatpak-installer"])


if __name__ == "__main__":
    raise SystemExit(main())
