from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Sequence

from .errors import FatalPreconditionError
from .executor import BatchExecutor
from .lib.command import command_exists
from .lock import AlreadyLocked, LockHandle, held_lock
from .models import Operation, ReadinessState, RunSummary, WaitOutcome
from .readiness import ReadinessCheck, ReadinessProber, all_of
from .reporter import RunReporter
from .rescheduler import spawn_watcher, watch_until_ready

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 127

Spawner = Callable[..., int]


class Reconciler:
    """Readiness wait, then a locked batch apply, then reporting.

    When readiness is not reached in the foreground budget the work is handed
    to a detached watcher and the foreground exits 0.
    """

    def __init__(
        self,
        *,
        name: str,
        operations: Sequence[Operation],
        prober: ReadinessProber,
        executor_factory: Callable[[], BatchExecutor],
        reporter: RunReporter,
        lock_path: str,
        poll_interval_s: float,
        required_commands: Sequence[str] = (),
        prepare: Optional[ReadinessCheck] = None,
        spawn: Spawner = spawn_watcher,
        log_path: Optional[str] = None,
        has_command: Callable[[str], bool] = command_exists,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.name = name
        self.operations = list(operations)
        self.prober = prober
        self.executor_factory = executor_factory
        self.reporter = reporter
        self.lock_path = lock_path
        self.poll_interval_s = poll_interval_s
        self.required_commands = list(required_commands)
        self.prepare = prepare
        self.spawn = spawn
        self.log_path = log_path
        self._has_command = has_command
        self._sleep = sleep

    @property
    def background_check(self) -> ReadinessCheck:
        if self.prepare is None:
            return self.prober.probe
        return all_of(self.prober.probe, self.prepare)

    def check_required_commands(self) -> None:
        missing = [c for c in self.required_commands if not self._has_command(c)]
        if missing:
            raise FatalPreconditionError(missing)

    def run(self, *, force: bool = False) -> int:
        """Foreground entry point."""

        if force:
            self.reporter.invalidate()
        elif self._already_completed():
            return EXIT_OK

        with held_lock(self.lock_path) as lock:
            if isinstance(lock, AlreadyLocked):
                logger.info("%s already running (pid=%s); nothing to do", self.name, lock.owner_pid)
                return EXIT_OK
            if self._already_completed():
                return EXIT_OK

            try:
                self.check_required_commands()
            except FatalPreconditionError as e:
                logger.error("%s cannot run: %s", self.name, e)
                return EXIT_FATAL

            if self.prober.wait_until_ready() is WaitOutcome.READY:
                state = self._prepared()
                if state.ready:
                    return self.apply()
                logger.info("%s not prepared: %s", self.name, state.reason)

            return self._background(lock)

    def watch(self, *, inherit_from: Optional[int] = None, max_polls: Optional[int] = None) -> int:
        """Background entry point: poll without bound, then apply once."""

        with held_lock(self.lock_path, inherit_from=inherit_from) as lock:
            if isinstance(lock, AlreadyLocked):
                logger.info("%s watcher: lock held by pid %s; exiting", self.name, lock.owner_pid)
                return EXIT_OK
            if self._already_completed():
                return EXIT_OK

            try:
                self.check_required_commands()
            except FatalPreconditionError as e:
                logger.error("%s watcher cannot run: %s", self.name, e)
                return EXIT_FATAL

            logger.info("%s watcher polling every %.0fs", self.name, self.poll_interval_s)
            rc = watch_until_ready(
                self.background_check,
                self.apply,
                poll_interval_s=self.poll_interval_s,
                sleep=self._sleep,
                max_polls=max_polls,
            )
            return EXIT_OK if rc is None else rc

    def apply(self) -> int:
        summary = RunSummary(reconciler=self.name)
        executor = self.executor_factory()
        executor.execute(self.operations, summary)
        self.reporter.finalize(summary)
        self.reporter.write_summary(summary)
        self.reporter.persist_completion_marker(summary)
        return self.reporter.exit_code(summary)

    def _prepared(self) -> ReadinessState:
        if self.prepare is None:
            return ReadinessState(True, "nothing to prepare")
        try:
            return self.prepare()
        except Exception as e:
            logger.warning("%s preparation raised %s: %s", self.name, type(e).__name__, e)
            return ReadinessState(False, f"preparation error: {e}")

    def _already_completed(self) -> bool:
        if self.reporter.has_completion_marker():
            logger.info("%s already completed (marker %s); skipping", self.name, self.reporter.marker_path)
            return True
        return False

    def _background(self, lock: LockHandle) -> int:
        child = self.spawn(self.name, log_path=self.log_path)
        lock.transfer(child)
        logger.info("%s backgrounded to pid %s", self.name, child)
        return EXIT_OK
