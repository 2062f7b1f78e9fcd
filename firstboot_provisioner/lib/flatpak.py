from __future__ import annotations

import logging

from .command import CmdResult, run_cmd

logger = logging.getLogger(__name__)


class FlatpakCatalog:
    """Application catalog on top of the flatpak CLI.

    Works on the system installation unless `installation` is "user".
    """

    def __init__(self, installation: str = "system") -> None:
        if installation not in {"system", "user"}:
            raise ValueError(f"Unknown flatpak installation: {installation}")
        self._scope = f"--{installation}"

    def has_remote(self, name: str) -> bool:
        r = run_cmd(["flatpak", "remotes", self._scope, "--columns=name"])
        if not r.ok:
            return False
        return name in {line.strip() for line in r.stdout.splitlines()}

    def add_remote(self, name: str, url: str) -> CmdResult:
        return run_cmd(["flatpak", "remote-add", self._scope, "--if-not-exists", name, url])

    def query_remote(self, remote: str, app: str) -> CmdResult:
        """Connectivity probe: fetch metadata for one app from the remote."""

        return run_cmd(["flatpak", "remote-info", self._scope, remote, app])

    def repair_remote(self, name: str, url: str) -> CmdResult:
        """Re-register the remote and make sure it is enabled."""

        added = self.add_remote(name, url)
        if not added.ok:
            return added
        return run_cmd(["flatpak", "remote-modify", self._scope, "--enable", f"--url={url}", name])

    def is_installed(self, app: str) -> bool:
        return run_cmd(["flatpak", "info", self._scope, app]).ok

    def install(self, remote: str, app: str) -> CmdResult:
        return run_cmd(["flatpak", "install", self._scope, "-y", "--noninteractive", remote, app])
