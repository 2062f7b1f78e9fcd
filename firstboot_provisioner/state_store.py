from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"json", "yaml", "yml"}:
        return ext
    # Default to YAML for unknown extensions (readable by humans and yaml alike).
    return "yaml"


def load_marker(path: str) -> Optional[Dict[str, Any]]:
    """Return the stored completion record, or None if there is no marker."""

    p = Path(path)
    if not p.exists():
        return None

    text = p.read_text(encoding="utf-8")
    try:
        if _detect_format(p) == "json":
            data = json.loads(text) if text.strip() else {}
        else:
            data = yaml.safe_load(text) or {}
    except (ValueError, yaml.YAMLError) as e:
        # Still a marker; only its record is lost.
        logger.warning("Completion marker %s is unreadable (%s); treating it as present", p, e)
        return {}

    if not isinstance(data, dict):
        # A bare `touch`ed marker still counts as completed.
        logger.info("Completion marker %s has no structured content", p)
        return {}
    return data


def save_marker(path: str, record: Dict[str, Any], *, header: str = "") -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    if _detect_format(p) == "json":
        body = json.dumps(record, indent=2, sort_keys=True) + "\n"
    else:
        body = yaml.safe_dump(record, sort_keys=False)
        if header:
            body = "".join(f"# {line}\n" for line in header.splitlines()) + body

    tmp = p.with_name(p.name + ".tmp")
    tmp.write_text(body, encoding="utf-8")
    tmp.replace(p)


def clear_marker(path: str) -> bool:
    p = Path(path)
    if not p.exists():
        return False
    p.unlink()
    return True
