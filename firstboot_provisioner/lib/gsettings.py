from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Set

from .command import CmdResult, run_cmd

logger = logging.getLogger(__name__)


def _quote(text: str) -> str:
    return "'" + text.replace("\\", "\\\\").replace("'", "\\'") + "'"


def to_gvariant(value: Any) -> str:
    """Encode a manifest value as GVariant text for `gsettings set`."""

    if value is None:
        raise ValueError("None has no GVariant representation")
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        return _quote(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(to_gvariant(v) for v in value) + "]"
    if isinstance(value, dict):
        items = ", ".join(f"{to_gvariant(k)}: {to_gvariant(v)}" for k, v in value.items())
        return "{" + items + "}"
    raise ValueError(f"Unsupported settings value type: {type(value).__name__}")


def split_target(target: str) -> tuple[str, str]:
    """Split "<schema> <key>" into its parts."""

    parts = target.split()
    if len(parts) != 2:
        raise ValueError(f"Settings target must be '<schema> <key>', got {target!r}")
    return parts[0], parts[1]


class GSettingsBackend:
    """Settings key-value backend on top of the gsettings CLI."""

    def __init__(self, env: Optional[Mapping[str, str]] = None) -> None:
        self._env = dict(env or {})

    def get(self, schema: str, key: str) -> CmdResult:
        return run_cmd(["gsettings", "get", schema, key], env=self._env)

    def set(self, schema: str, key: str, value: Any) -> CmdResult:
        return run_cmd(["gsettings", "set", schema, key, to_gvariant(value)], env=self._env)

    def list_available_capabilities(self) -> Set[str]:
        r = run_cmd(["gsettings", "list-schemas"], env=self._env)
        if not r.ok:
            logger.info("Could not list schemas: %s", r.stderr.strip())
            return set()
        return {line.strip() for line in r.stdout.splitlines() if line.strip()}

    def is_responsive(self) -> bool:
        return self.get("org.gnome.desktop.interface", "color-scheme").ok
