from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

FALLBACK_LOG_DIR = "~/.cache/firstboot-provisioner"


def configure_logging(
    log_path: str,
    level: int = logging.INFO,
    also_console: bool = True,
) -> str:
    """Configure logging.

    Every operation, its captured output and diagnosis end up in the run log.

    Notes:
    - The system-wide reconciler logs under /var/log, the per-user one under
      ~/.local/state. If the requested location is not writable we fall back
      to ~/.cache/firstboot-provisioner/<same file name> and report both
      paths in the log.
    - The detached watcher has no terminal, so it runs with also_console=False.

    Returns the actual file path being used.
    """

    logger = logging.getLogger()
    logger.setLevel(level)

    # Avoid duplicate handlers if configure_logging() is called multiple times.
    if getattr(logger, "_firstboot_configured", False):
        return getattr(logger, "_firstboot_log_path", log_path)

    chosen_path = log_path
    handlers: list[logging.Handler] = []

    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    file_handler: Optional[logging.Handler] = None
    try:
        Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
    except OSError:
        fallback_dir = Path(os.path.expanduser(FALLBACK_LOG_DIR))
        fallback_dir.mkdir(parents=True, exist_ok=True)
        chosen_path = str(fallback_dir / (Path(log_path).name or "firstboot-provisioner.log"))
        file_handler = logging.FileHandler(chosen_path)
    file_handler.setFormatter(fmt)
    handlers.append(file_handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        handlers.append(console)

    for h in handlers:
        logger.addHandler(h)

    setattr(logger, "_firstboot_configured", True)
    setattr(logger, "_firstboot_log_path", chosen_path)

    logging.getLogger(__name__).info(
        "Logging initialized (requested=%s, actual=%s)", log_path, chosen_path
    )
    return chosen_path
