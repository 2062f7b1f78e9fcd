"""Best-effort classification of failed command output.

The result is advisory text for logs and summaries. Nothing branches on it.
"""

from __future__ import annotations

from typing import Tuple

from .models import Diagnosis

# Checked in order; the first category with a matching substring wins.
_PATTERNS: Tuple[Tuple[Diagnosis, Tuple[str, ...]], ...] = (
    (
        Diagnosis.MISSING_SCHEMA,
        ("no such schema", "no such key", "schema", "is not installed"),
    ),
    (
        Diagnosis.PERMISSION_DENIED,
        ("permission denied", "not authorized", "operation not permitted", "not allowed"),
    ),
    (
        Diagnosis.BACKEND_COMMUNICATION,
        (
            "dbus",
            "d-bus",
            "could not connect",
            "failed to connect",
            "unable to connect",
            "connection refused",
            "couldn't resolve",
            "while fetching",
            "timed out",
        ),
    ),
    (
        Diagnosis.MISSING_RESOURCE,
        (
            "not found",
            "no such",
            "does not exist",
            "doesn't exist",
            "nothing matches",
            "no remote refs found",
        ),
    ),
)

_LABELS = {
    Diagnosis.NONE: "no error output",
    Diagnosis.MISSING_RESOURCE: "missing resource",
    Diagnosis.MISSING_SCHEMA: "schema missing",
    Diagnosis.BACKEND_COMMUNICATION: "D-Bus/backend communication error",
    Diagnosis.PERMISSION_DENIED: "permission denied",
    Diagnosis.UNKNOWN: "unknown error",
}


def classify_failure(stderr: str, stdout: str = "") -> Diagnosis:
    text = f"{stderr or ''}\n{stdout or ''}".strip().lower()
    if not text:
        return Diagnosis.NONE
    for diagnosis, needles in _PATTERNS:
        if any(n in text for n in needles):
            return diagnosis
    return Diagnosis.UNKNOWN


def describe(diagnosis: Diagnosis) -> str:
    return _LABELS[diagnosis]
