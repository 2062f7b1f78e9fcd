from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

from .diagnosis import describe
from .models import OperationResult, OperationStatus, RunSummary
from .state_store import clear_marker, load_marker, save_marker

logger = logging.getLogger(__name__)

# Keeps the exit status clear of 126/127 and of 8-bit wraparound.
MAX_EXIT_CODE = 125


def _iso(ts: Optional[float]) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(timespec="seconds")


class RunReporter:
    """Tally results, write the summary, and own the completion marker."""

    def __init__(self, name: str, *, marker_path: str, summary_path: Optional[str] = None) -> None:
        self.name = name
        self.marker_path = marker_path
        self.summary_path = summary_path

    def finalize(self, results: Union[RunSummary, Sequence[OperationResult]]) -> RunSummary:
        if isinstance(results, RunSummary):
            summary = results
        else:
            summary = RunSummary(reconciler=self.name)
            for r in results:
                summary.record(r)
        summary.finalize()
        logger.info(
            "%s finished: %d succeeded, %d failed, %d skipped (%.1fs)",
            self.name,
            summary.succeeded,
            summary.failed,
            summary.skipped,
            summary.duration_s or 0.0,
        )
        for op in summary.failed_operations:
            logger.warning("Failed: %s", op.identity)
        return summary

    def render(self, summary: RunSummary) -> str:
        lines = [
            f"{self.name} provisioning summary",
            f"completed: {_iso(summary.completed_at)}",
            f"duration:  {summary.duration_s or 0.0:.1f}s",
            f"total:     {summary.total}",
            f"succeeded: {summary.succeeded}",
            f"failed:    {summary.failed}",
            f"skipped:   {summary.skipped}",
        ]
        failures = [r for r in summary.results if r.status is OperationStatus.FAILURE]
        if failures:
            lines.append("")
            lines.append("Failed operations:")
            for r in failures:
                detail = (r.stderr or r.reason).strip().splitlines()
                lines.append(f"  - {r.operation.identity} [{describe(r.diagnosis)}]")
                if detail:
                    lines.append(f"      {detail[0]}")
        skipped = [r for r in summary.results if r.status is OperationStatus.SKIPPED]
        if skipped:
            lines.append("")
            lines.append("Skipped operations:")
            for r in skipped:
                lines.append(f"  - {r.operation.identity} ({r.reason})")
        return "\n".join(lines) + "\n"

    def write_summary(self, summary: RunSummary) -> Optional[str]:
        if not self.summary_path:
            return None
        p = Path(self.summary_path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(self.render(summary), encoding="utf-8")
        logger.info("Summary written to %s", p)
        return str(p)

    def persist_completion_marker(self, summary: RunSummary) -> None:
        record: Dict[str, Any] = summary.as_dict()
        record["completed_at_iso"] = _iso(summary.completed_at)
        save_marker(
            self.marker_path,
            record,
            header=f"{self.name} completed {_iso(summary.completed_at)}; delete this file (or run with --force) to provision again",
        )
        logger.info("Completion marker written to %s", self.marker_path)

    def has_completion_marker(self) -> bool:
        return load_marker(self.marker_path) is not None

    def load_completion_marker(self) -> Optional[Dict[str, Any]]:
        return load_marker(self.marker_path)

    def invalidate(self) -> bool:
        removed = clear_marker(self.marker_path)
        if removed:
            logger.info("Completion marker %s invalidated", self.marker_path)
        return removed

    @staticmethod
    def exit_code(summary: RunSummary) -> int:
        return min(summary.failed, MAX_EXIT_CODE)
