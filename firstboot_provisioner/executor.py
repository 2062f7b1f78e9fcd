from __future__ import annotations

import logging
from typing import Any, List, Optional, Protocol, Sequence, Set

from .diagnosis import classify_failure, describe
from .lib.command import CmdResult
from .lib.gsettings import split_target
from .models import (
    Diagnosis,
    Operation,
    OperationKind,
    OperationResult,
    OperationStatus,
    Precondition,
    RunSummary,
)

logger = logging.getLogger(__name__)


class SettingsBackend(Protocol):
    def get(self, schema: str, key: str) -> CmdResult:
        ...

    def set(self, schema: str, key: str, value: Any) -> CmdResult:
        ...

    def list_available_capabilities(self) -> Set[str]:
        ...


class ExtensionManager(Protocol):
    def is_installed(self, uuid: str) -> bool:
        ...

    def is_enabled(self, uuid: str) -> bool:
        ...

    def enable(self, uuid: str) -> CmdResult:
        ...


class AppCatalog(Protocol):
    def has_remote(self, name: str) -> bool:
        ...

    def add_remote(self, name: str, url: str) -> CmdResult:
        ...

    def query_remote(self, remote: str, app: str) -> CmdResult:
        ...

    def is_installed(self, app: str) -> bool:
        ...

    def install(self, remote: str, app: str) -> CmdResult:
        ...

    def repair_remote(self, name: str, url: str) -> CmdResult:
        ...


class BackendMissing(Exception):
    pass


class BatchExecutor:
    """Apply operations in declaration order, recording every outcome.

    One failing operation never stops the batch; partial application is an
    expected outcome.
    """

    def __init__(
        self,
        *,
        settings: Optional[SettingsBackend] = None,
        extensions: Optional[ExtensionManager] = None,
        catalog: Optional[AppCatalog] = None,
    ) -> None:
        self.settings = settings
        self.extensions = extensions
        self.catalog = catalog
        self._schemas: Optional[Set[str]] = None

    def execute(
        self,
        operations: Sequence[Operation],
        summary: Optional[RunSummary] = None,
    ) -> List[OperationResult]:
        self._schemas = None
        results: List[OperationResult] = []
        total = len(operations)
        for index, op in enumerate(operations, start=1):
            logger.info("[%d/%d] %s", index, total, op.identity)
            result = self._execute_one(op)
            self._log_result(result)
            results.append(result)
            if summary is not None:
                summary.record(result)
        return results

    def _execute_one(self, op: Operation) -> OperationResult:
        if op.precondition is not None:
            try:
                satisfied = self._precondition_holds(op.precondition)
            except Exception as e:
                return OperationResult(
                    operation=op,
                    status=OperationStatus.FAILURE,
                    stderr=str(e),
                    diagnosis=classify_failure(str(e)),
                    reason=f"precondition {op.precondition.describe()} could not be checked",
                )
            if not satisfied:
                return OperationResult(
                    operation=op,
                    status=OperationStatus.SKIPPED,
                    reason=f"precondition {op.precondition.describe()} not met",
                )

        try:
            if op.kind is OperationKind.INSTALL and self._catalog().is_installed(op.target):
                return OperationResult(operation=op, status=OperationStatus.SKIPPED, reason="already installed")
            cmd = self._apply(op)
        except Exception as e:
            return OperationResult(
                operation=op,
                status=OperationStatus.FAILURE,
                stderr=str(e),
                diagnosis=classify_failure(str(e)),
                reason=str(e),
            )

        if cmd.ok:
            return OperationResult(
                operation=op,
                status=OperationStatus.SUCCESS,
                stdout=cmd.stdout,
                stderr=cmd.stderr,
                exit_code=cmd.returncode,
            )
        return OperationResult(
            operation=op,
            status=OperationStatus.FAILURE,
            stdout=cmd.stdout,
            stderr=cmd.stderr,
            exit_code=cmd.returncode,
            diagnosis=classify_failure(cmd.stderr, cmd.stdout),
        )

    def _apply(self, op: Operation) -> CmdResult:
        if op.kind is OperationKind.SET:
            schema, key = split_target(op.target)
            return self._settings().set(schema, key, op.desired_value)
        if op.kind is OperationKind.ENABLE:
            return self._extensions().enable(op.target)
        if op.kind is OperationKind.INSTALL:
            if not op.desired_value:
                raise ValueError(f"Install of {op.target} names no remote")
            return self._catalog().install(str(op.desired_value), op.target)
        raise ValueError(f"Unsupported operation kind: {op.kind}")

    def _precondition_holds(self, pre: Precondition) -> bool:
        if pre.check == "extension_installed":
            return self._extensions().is_installed(pre.subject)
        if pre.check == "extension_enabled":
            return self._extensions().is_enabled(pre.subject)
        if pre.check == "schema_available":
            if self._schemas is None:
                self._schemas = set(self._settings().list_available_capabilities())
            return pre.subject in self._schemas
        if pre.check == "remote_present":
            return self._catalog().has_remote(pre.subject)
        raise ValueError(f"Unknown precondition check: {pre.check}")

    def _settings(self) -> SettingsBackend:
        if self.settings is None:
            raise BackendMissing("no settings backend configured")
        return self.settings

    def _extensions(self) -> ExtensionManager:
        if self.extensions is None:
            raise BackendMissing("no extension manager configured")
        return self.extensions

    def _catalog(self) -> AppCatalog:
        if self.catalog is None:
            raise BackendMissing("no application catalog configured")
        return self.catalog

    def _log_result(self, result: OperationResult) -> None:
        op = result.operation
        if result.stdout.strip():
            logger.info("  stdout: %s", result.stdout.strip())
        if result.stderr.strip():
            logger.info("  stderr: %s", result.stderr.strip())
        if result.status is OperationStatus.SUCCESS:
            logger.info("  SUCCESS %s", op.identity)
        elif result.status is OperationStatus.SKIPPED:
            logger.info("  SKIPPED %s (%s)", op.identity, result.reason)
        else:
            label = describe(result.diagnosis) if result.diagnosis is not Diagnosis.NONE else "no diagnosis"
            logger.warning(
                "  FAILURE %s (exit=%s, diagnosis=%s)%s",
                op.identity,
                result.exit_code,
                label,
                f": {result.reason}" if result.reason else "",
            )
