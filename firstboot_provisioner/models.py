from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class OperationKind(str, Enum):
    SET = "set"
    ENABLE = "enable"
    INSTALL = "install"


class OperationStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class Diagnosis(str, Enum):
    NONE = "none"
    MISSING_RESOURCE = "missing_resource"
    MISSING_SCHEMA = "missing_schema"
    BACKEND_COMMUNICATION = "backend_communication"
    PERMISSION_DENIED = "permission_denied"
    UNKNOWN = "unknown"


class WaitOutcome(str, Enum):
    READY = "ready"
    TIMED_OUT = "timed_out"


PRECONDITION_CHECKS = (
    "extension_installed",
    "extension_enabled",
    "schema_available",
    "remote_present",
)


@dataclass(frozen=True)
class Precondition:
    check: str
    subject: str

    def describe(self) -> str:
        return f"{self.check}({self.subject})"


@dataclass(frozen=True)
class Operation:
    """A single desired-state mutation.

    - SET: target is "<schema> <key>", desired_value is a Python value.
    - ENABLE: target is an extension UUID.
    - INSTALL: target is an application id, desired_value is the remote name.
    """

    kind: OperationKind
    target: str
    desired_value: Any = None
    precondition: Optional[Precondition] = None
    description: str = ""

    @property
    def identity(self) -> str:
        return f"{self.kind.value} {self.target}"


@dataclass(frozen=True)
class OperationResult:
    operation: Operation
    status: OperationStatus
    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None
    diagnosis: Diagnosis = Diagnosis.NONE
    reason: str = ""


@dataclass(frozen=True)
class ReadinessState:
    ready: bool
    reason: str

    def __bool__(self) -> bool:
        return self.ready


@dataclass
class RunSummary:
    """Aggregate over one invocation's results.

    Created empty at run start, fed by the executor, finalized by the reporter.
    """

    reconciler: str
    started_at: float = field(default_factory=time.time)
    results: List[OperationResult] = field(default_factory=list)
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    failed_operations: List[Operation] = field(default_factory=list)
    duration_s: Optional[float] = None
    completed_at: Optional[float] = None

    def record(self, result: OperationResult) -> None:
        self.results.append(result)
        if result.status is OperationStatus.SUCCESS:
            self.succeeded += 1
        elif result.status is OperationStatus.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1
            self.failed_operations.append(result.operation)

    def finalize(self, now: Optional[float] = None) -> "RunSummary":
        if self.completed_at is None:
            self.completed_at = time.time() if now is None else now
            self.duration_s = max(0.0, self.completed_at - self.started_at)
        return self

    @property
    def total(self) -> int:
        return len(self.results)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "reconciler": self.reconciler,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "duration_s": self.duration_s,
            "counts": {
                "total": self.total,
                "success": self.succeeded,
                "failure": self.failed,
                "skipped": self.skipped,
            },
            "failed_operations": [op.identity for op in self.failed_operations],
        }
