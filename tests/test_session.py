from __future__ import annotations

from pathlib import Path

from firstboot_provisioner.lib.session import detect_session, session_env


def test_active_wayland_session() -> None:
    info = detect_session(
        {"DBUS_SESSION_BUS_ADDRESS": "unix:path=/run/user/1000/bus", "WAYLAND_DISPLAY": "wayland-0"},
        uid=1000,
    )
    assert info.active
    assert session_env(info) == {"DBUS_SESSION_BUS_ADDRESS": "unix:path=/run/user/1000/bus"}


def test_bus_socket_fallback(tmp_path: Path) -> None:
    (tmp_path / "1000").mkdir()
    (tmp_path / "1000" / "bus").touch()

    info = detect_session({"XDG_SESSION_TYPE": "Wayland"}, uid=1000, runtime_root=str(tmp_path))

    assert info.bus_address == f"unix:path={tmp_path / '1000' / 'bus'}"
    assert info.session_type == "wayland"
    assert info.active


def test_no_bus_is_not_active(tmp_path: Path) -> None:
    info = detect_session({"DISPLAY": ":0"}, uid=1000, runtime_root=str(tmp_path))
    assert info.graphical
    assert not info.active
    assert session_env(info) == {}


def test_tty_session_is_not_graphical(tmp_path: Path) -> None:
    info = detect_session(
        {"DBUS_SESSION_BUS_ADDRESS": "unix:path=/x", "XDG_SESSION_TYPE": "tty"},
        uid=1000,
        runtime_root=str(tmp_path),
    )
    assert not info.active
