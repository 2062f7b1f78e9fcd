from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

GRAPHICAL_SESSION_TYPES = {"wayland", "x11"}


@dataclass(frozen=True)
class SessionInfo:
    bus_address: Optional[str]
    display: Optional[str]
    wayland_display: Optional[str]
    session_type: Optional[str]

    @property
    def graphical(self) -> bool:
        return bool(self.display or self.wayland_display or self.session_type in GRAPHICAL_SESSION_TYPES)

    @property
    def active(self) -> bool:
        return bool(self.bus_address) and self.graphical


def _user_bus_address(uid: int, runtime_root: str = "/run/user") -> Optional[str]:
    bus = Path(runtime_root) / str(uid) / "bus"
    if bus.exists():
        return f"unix:path={bus}"
    return None


def detect_session(
    environ: Optional[Mapping[str, str]] = None,
    *,
    uid: Optional[int] = None,
    runtime_root: str = "/run/user",
) -> SessionInfo:
    """Derive desktop-session markers from the environment.

    Autostart entries inherit the session bus address; units started earlier may
    not, so the per-user bus socket is used as a fallback.
    """

    env = os.environ if environ is None else environ
    bus = env.get("DBUS_SESSION_BUS_ADDRESS") or None
    if not bus:
        bus = _user_bus_address(os.getuid() if uid is None else uid, runtime_root)

    session_type = (env.get("XDG_SESSION_TYPE") or "").strip().lower() or None
    return SessionInfo(
        bus_address=bus,
        display=env.get("DISPLAY") or None,
        wayland_display=env.get("WAYLAND_DISPLAY") or None,
        session_type=session_type,
    )


def session_env(info: Optional[SessionInfo] = None) -> Dict[str, str]:
    """Environment overrides for commands that talk to the session bus."""

    info = info or detect_session()
    env: Dict[str, str] = {}
    if info.bus_address:
        env["DBUS_SESSION_BUS_ADDRESS"] = info.bus_address
    return env
