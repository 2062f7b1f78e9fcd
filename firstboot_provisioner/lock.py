from __future__ import annotations

import contextlib
import logging
import os
import signal
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Union

from filelock import FileLock, Timeout

logger = logging.getLogger(__name__)

_RELEASE_SIGNALS = (signal.SIGTERM, signal.SIGHUP, signal.SIGINT)
RECLAIM_TIMEOUT_S = 10.0


def pid_alive(pid: Optional[int]) -> bool:
    if pid is None or pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except PermissionError:
        # Exists, owned by another user.
        return True
    except OSError:
        return False
    return True


def read_pid(path: Path) -> Optional[int]:
    try:
        raw = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return None
    if not raw.isdigit():
        return None
    return int(raw)


def _tmp_with_pid(path: Path, pid: int) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f"{path.name}.{os.getpid()}.tmp")
    tmp.write_text(f"{pid}\n", encoding="utf-8")
    return tmp


def _write_pid(path: Path, pid: int) -> None:
    _tmp_with_pid(path, pid).replace(path)


def _create_exclusive(path: Path, pid: int) -> bool:
    """Publish a complete lock file only if none exists (link is atomic)."""

    tmp = _tmp_with_pid(path, pid)
    try:
        os.link(tmp, path)
        return True
    except FileExistsError:
        return False
    finally:
        with contextlib.suppress(FileNotFoundError):
            tmp.unlink()


@dataclass(frozen=True)
class AlreadyLocked:
    owner_pid: int
    path: Path


@dataclass
class LockHandle:
    owner_pid: int
    path: Path
    released: bool = False

    def release(self) -> None:
        """Remove the lock file if it is still ours. Safe to call repeatedly."""

        if self.released:
            return
        self.released = True
        if read_pid(self.path) != self.owner_pid:
            logger.info("Lock %s no longer owned by pid %s; leaving it", self.path, self.owner_pid)
            return
        with contextlib.suppress(FileNotFoundError):
            self.path.unlink()
        logger.info("Released lock %s", self.path)

    def transfer(self, pid: int) -> None:
        """Hand the run slot to another process; this handle stops owning it."""

        _write_pid(self.path, pid)
        logger.info("Transferred lock %s from pid %s to pid %s", self.path, self.owner_pid, pid)
        self.owner_pid = pid
        self.released = True


def acquire(
    lock_path: Union[str, Path],
    *,
    inherit_from: Optional[int] = None,
) -> Union[LockHandle, AlreadyLocked]:
    """Take the run slot for this process.

    A live recorded owner wins, unless it is us or `inherit_from` (the process
    handing the slot over). Dead or unreadable owners are stale and reclaimed.
    Reclaiming happens under a guard file lock so only one contender can
    replace a stale record.
    """

    path = Path(lock_path)
    me = os.getpid()

    if not _create_exclusive(path, me):
        guard = FileLock(str(path.with_name(path.name + ".guard")), timeout=RECLAIM_TIMEOUT_S)
        try:
            with guard:
                if not _create_exclusive(path, me):
                    owner = read_pid(path)
                    if owner is not None and owner not in {me, inherit_from} and pid_alive(owner):
                        logger.info("Lock %s held by live pid %s", path, owner)
                        return AlreadyLocked(owner_pid=owner, path=path)
                    if owner not in {me, inherit_from}:
                        logger.info("Reclaiming stale lock %s (recorded pid=%s)", path, owner)
                    _write_pid(path, me)
        except Timeout:
            owner = read_pid(path) or 0
            logger.info("Lock %s is being reclaimed by another process (pid=%s)", path, owner)
            return AlreadyLocked(owner_pid=owner, path=path)

    logger.info("Acquired lock %s (pid=%s)", path, me)
    return LockHandle(owner_pid=me, path=path)


def release(handle: Optional[LockHandle]) -> None:
    if handle is not None:
        handle.release()


def _raise_exit(signum: int, frame: object) -> None:
    raise SystemExit(128 + signum)


@contextlib.contextmanager
def held_lock(
    lock_path: Union[str, Path],
    *,
    inherit_from: Optional[int] = None,
) -> Iterator[Union[LockHandle, AlreadyLocked]]:
    """Scoped acquisition; the lock is released on every exit path.

    Termination signals become SystemExit so the release in `finally` runs.
    """

    result = acquire(lock_path, inherit_from=inherit_from)
    previous = {}
    if isinstance(result, LockHandle) and threading.current_thread() is threading.main_thread():
        for sig in _RELEASE_SIGNALS:
            previous[sig] = signal.signal(sig, _raise_exit)
    try:
        yield result
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
        if isinstance(result, LockHandle):
            result.release()
