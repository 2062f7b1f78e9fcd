from __future__ import annotations

from typing import Mapping, Optional

from .command import CmdResult, run_cmd


class GnomeExtensions:
    """GNOME Shell extension manager on top of the gnome-extensions CLI."""

    def __init__(self, env: Optional[Mapping[str, str]] = None) -> None:
        self._env = dict(env or {})

    def is_installed(self, uuid: str) -> bool:
        return run_cmd(["gnome-extensions", "info", uuid], env=self._env).ok

    def is_enabled(self, uuid: str) -> bool:
        r = run_cmd(["gnome-extensions", "list", "--enabled"], env=self._env)
        if not r.ok:
            return False
        return uuid in {line.strip() for line in r.stdout.splitlines()}

    def enable(self, uuid: str) -> CmdResult:
        return run_cmd(["gnome-extensions", "enable", uuid], env=self._env)
