from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

import pytest

from firstboot_provisioner import lock as lock_mod
from firstboot_provisioner.executor import BatchExecutor
from firstboot_provisioner.lock import read_pid
from firstboot_provisioner.models import Operation, OperationKind, Precondition, ReadinessState
from firstboot_provisioner.readiness import BackoffPolicy, ReadinessProber
from firstboot_provisioner.reconciler import EXIT_FATAL, Reconciler
from firstboot_provisioner.reconcilers.flatpak_installer import catalog_ready
from firstboot_provisioner.reporter import RunReporter
from tests.fakes import FakeCatalog, FakeExtensions, FakeSettings

CHILD_PID = 54321


class _Spawner:
    def __init__(self) -> None:
        self.calls: List[str] = []

    def __call__(self, name: str, *, log_path: Optional[str] = None) -> int:
        self.calls.append(name)
        return CHILD_PID


class _Check:
    def __init__(self, ready: bool) -> None:
        self.ready = ready
        self.calls = 0

    def __call__(self) -> ReadinessState:
        self.calls += 1
        return ReadinessState(self.ready, "up" if self.ready else "down")


def _ops() -> List[Operation]:
    return [
        Operation(kind=OperationKind.SET, target="org.gnome.desktop.interface color-scheme", desired_value="prefer-dark"),
        Operation(
            kind=OperationKind.ENABLE,
            target="ext-X",
            desired_value=True,
            precondition=Precondition("extension_installed", "ext-X"),
        ),
        Operation(
            kind=OperationKind.INSTALL,
            target="app.Y",
            desired_value="flathub",
            precondition=Precondition("remote_present", "flathub"),
        ),
    ]


def _make(
    tmp_path: Path,
    *,
    ready: bool = True,
    settings: Optional[FakeSettings] = None,
    catalog: Optional[FakeCatalog] = None,
    prepare=None,
    has_command=lambda name: True,
):
    settings = settings or FakeSettings()
    catalog = catalog or FakeCatalog(remotes={"flathub"}, installed={"app.Y"})
    check = _Check(ready)
    spawner = _Spawner()
    executors: List[BatchExecutor] = []
    sleeps: List[float] = []

    def factory() -> BatchExecutor:
        ex = BatchExecutor(settings=settings, extensions=FakeExtensions(), catalog=catalog)
        executors.append(ex)
        return ex

    reconciler = Reconciler(
        name="test",
        operations=_ops(),
        prober=ReadinessProber(check, BackoffPolicy(max_attempts=3, base_delay_s=1, cap_s=4), sleep=sleeps.append),
        executor_factory=factory,
        reporter=RunReporter(
            "test",
            marker_path=str(tmp_path / "test.done"),
            summary_path=str(tmp_path / "test.summary"),
        ),
        lock_path=str(tmp_path / "test.lock"),
        poll_interval_s=300,
        required_commands=["gsettings"],
        prepare=prepare,
        spawn=spawner,
        has_command=has_command,
        sleep=sleeps.append,
    )
    return reconciler, check, spawner, executors, settings, sleeps


def test_ready_run_applies_batch_and_exits_zero(tmp_path: Path) -> None:
    reconciler, _, spawner, executors, settings, _ = _make(tmp_path)

    assert reconciler.run() == 0

    assert len(executors) == 1
    assert spawner.calls == []
    assert settings.calls == ["org.gnome.desktop.interface color-scheme"]
    assert (tmp_path / "test.done").exists()
    assert (tmp_path / "test.summary").exists()
    assert not (tmp_path / "test.lock").exists()


def test_exit_code_counts_failures(tmp_path: Path) -> None:
    settings = FakeSettings(failures={"org.gnome.desktop.interface color-scheme": "No such key"})
    reconciler, *_ = _make(tmp_path, settings=settings)

    assert reconciler.run() == 1


def test_completion_marker_short_circuits_second_run(tmp_path: Path) -> None:
    reconciler, check, _, executors, settings, _ = _make(tmp_path)
    assert reconciler.run() == 0
    probes = check.calls

    assert reconciler.run() == 0

    assert len(executors) == 1
    assert check.calls == probes
    assert settings.calls == ["org.gnome.desktop.interface color-scheme"]


def test_force_invalidates_marker(tmp_path: Path) -> None:
    reconciler, _, _, executors, _, _ = _make(tmp_path)
    reconciler.run()

    assert reconciler.run(force=True) == 0
    assert len(executors) == 2


def test_lock_held_elsewhere_is_a_clean_noop(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    reconciler, check, spawner, executors, _, _ = _make(tmp_path)
    (tmp_path / "test.lock").write_text("4242\n", encoding="utf-8")
    monkeypatch.setattr(lock_mod, "pid_alive", lambda pid: pid == 4242)

    assert reconciler.run() == 0

    assert executors == []
    assert check.calls == 0
    assert spawner.calls == []
    assert read_pid(tmp_path / "test.lock") == 4242


def test_missing_required_command_is_fatal(tmp_path: Path) -> None:
    reconciler, check, _, executors, _, _ = _make(tmp_path, has_command=lambda name: False)

    assert reconciler.run() == EXIT_FATAL

    assert executors == []
    assert check.calls == 0
    assert not (tmp_path / "test.lock").exists()
    assert not (tmp_path / "test.done").exists()


def test_timeout_backgrounds_and_transfers_lock(tmp_path: Path) -> None:
    reconciler, check, spawner, executors, _, sleeps = _make(tmp_path, ready=False)

    assert reconciler.run() == 0

    assert check.calls == 3
    assert sleeps == [1, 2]
    assert spawner.calls == ["test"]
    assert executors == []
    assert read_pid(tmp_path / "test.lock") == CHILD_PID
    assert not (tmp_path / "test.done").exists()


def test_catalog_unreachable_after_repair_backgrounds(tmp_path: Path) -> None:
    catalog = FakeCatalog(reachable=False, reachable_after_repair=False)
    prepare = catalog_ready(catalog, remote="flathub", url="https://example.invalid/flathub.flatpakrepo", probe_app="app.Z")
    reconciler, _, spawner, executors, _, _ = _make(tmp_path, catalog=catalog, prepare=prepare)

    assert reconciler.run() == 0

    assert catalog.repair_calls == 1
    assert catalog.query_calls == 2
    assert spawner.calls == ["test"]
    assert executors == []
    assert catalog.install_calls == []


def test_raising_preparation_backgrounds_instead_of_crashing(tmp_path: Path) -> None:
    def prepare() -> ReadinessState:
        raise OSError("flatpak: cannot execute")

    reconciler, _, spawner, executors, _, _ = _make(tmp_path, prepare=prepare)

    assert reconciler.run() == 0

    assert spawner.calls == ["test"]
    assert executors == []
    assert read_pid(tmp_path / "test.lock") == CHILD_PID


def test_watcher_polls_until_ready_then_applies(tmp_path: Path) -> None:
    reconciler, check, _, executors, _, sleeps = _make(tmp_path, ready=False)
    (tmp_path / "test.lock").write_text("999999\n", encoding="utf-8")

    polls = {"n": 0}
    original = check.__call__

    def flip() -> ReadinessState:
        polls["n"] += 1
        if polls["n"] == 4:
            check.ready = True
        return original()

    reconciler.prober.check = flip

    assert reconciler.watch(inherit_from=999999) == 0

    assert sleeps == [300, 300, 300, 300]
    assert len(executors) == 1
    assert (tmp_path / "test.done").exists()
    assert not (tmp_path / "test.lock").exists()


def test_watcher_keeps_polling_without_bound(tmp_path: Path) -> None:
    reconciler, check, _, executors, _, sleeps = _make(tmp_path, ready=False)

    assert reconciler.watch(max_polls=50) == 0

    assert check.calls == 50
    assert len(sleeps) == 50
    assert executors == []
    assert not (tmp_path / "test.lock").exists()


def test_watcher_exits_when_someone_else_finished(tmp_path: Path) -> None:
    reconciler, check, _, executors, _, _ = _make(tmp_path)
    (tmp_path / "test.done").write_text("{}\n", encoding="utf-8")

    assert reconciler.watch(inherit_from=os.getppid()) == 0
    assert check.calls == 0
    assert executors == []
