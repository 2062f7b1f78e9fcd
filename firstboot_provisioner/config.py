from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .errors import ManifestError
from .lib.manifests import load_manifest
from .models import PRECONDITION_CHECKS, Operation, OperationKind, Precondition
from .readiness import BackoffPolicy

DEFAULT_STATE_DIR = "~/.local/state/firstboot"
DEFAULT_POLL_INTERVAL_S = 60.0

_KIND_KEYS = {
    "set": OperationKind.SET,
    "enable": OperationKind.ENABLE,
    "install": OperationKind.INSTALL,
}


def _expand(path: str) -> str:
    return os.path.expanduser(os.path.expandvars(path))


def parse_precondition(raw: Any) -> Optional[Precondition]:
    if raw is None:
        return None
    if not isinstance(raw, dict) or len(raw) != 1:
        raise ManifestError(f"'when' must be a single-key mapping, got {raw!r}")
    check, subject = next(iter(raw.items()))
    if check not in PRECONDITION_CHECKS:
        raise ManifestError(f"Unknown precondition {check!r} (expected one of {', '.join(PRECONDITION_CHECKS)})")
    return Precondition(check=str(check), subject=str(subject))


def parse_operation(raw: Any) -> Operation:
    if not isinstance(raw, dict):
        raise ManifestError(f"Operation must be a mapping, got {raw!r}")

    kinds = [k for k in _KIND_KEYS if k in raw]
    if len(kinds) != 1:
        raise ManifestError(f"Operation needs exactly one of set/enable/install: {raw!r}")
    kind = _KIND_KEYS[kinds[0]]
    target = str(raw[kinds[0]]).strip()
    if not target:
        raise ManifestError(f"Operation target is empty: {raw!r}")

    if kind is OperationKind.SET:
        if "value" not in raw:
            raise ManifestError(f"Settings operation {target!r} has no value")
        if len(target.split()) != 2:
            raise ManifestError(f"Settings target must be '<schema> <key>': {target!r}")
        desired = raw["value"]
    elif kind is OperationKind.ENABLE:
        desired = True
    else:
        desired = raw.get("remote")
        if not desired:
            raise ManifestError(f"Install operation {target!r} has no remote")

    return Operation(
        kind=kind,
        target=target,
        desired_value=desired,
        precondition=parse_precondition(raw.get("when")),
        description=str(raw.get("description") or ""),
    )


@dataclass(frozen=True)
class ReconcilerConfig:
    raw: Dict[str, Any]

    @property
    def name(self) -> str:
        return str(self.raw.get("name") or "")

    def _path(self, key: str, suffix: str) -> str:
        paths = self.raw.get("paths") or {}
        value = paths.get(key) or f"{DEFAULT_STATE_DIR}/{self.name}{suffix}"
        return _expand(str(value))

    @property
    def lock_path(self) -> str:
        return self._path("lock", ".lock")

    @property
    def marker_path(self) -> str:
        return self._path("marker", ".done")

    @property
    def summary_path(self) -> str:
        return self._path("summary", ".summary")

    @property
    def log_path(self) -> str:
        return self._path("log", ".log")

    @property
    def required_commands(self) -> List[str]:
        return [str(c) for c in (self.raw.get("required_commands") or [])]

    @property
    def readiness(self) -> BackoffPolicy:
        r = self.raw.get("readiness") or {}
        base = float(r.get("base_delay_s", 10))
        return BackoffPolicy(
            max_attempts=int(r.get("max_attempts", 12)),
            base_delay_s=base,
            cap_s=float(r.get("cap_s", base)),
            factor=float(r.get("factor", 1)),
        )

    @property
    def poll_interval_s(self) -> float:
        return float((self.raw.get("background") or {}).get("poll_interval_s", DEFAULT_POLL_INTERVAL_S))

    @property
    def catalog(self) -> Dict[str, Any]:
        return dict(self.raw.get("catalog") or {})

    @property
    def network_host(self) -> str:
        return str((self.raw.get("network") or {}).get("host") or "1.1.1.1")

    @property
    def operations(self) -> List[Operation]:
        ops = self.raw.get("operations") or []
        if not isinstance(ops, list):
            raise ManifestError(f"{self.name}: operations must be a list")
        return [parse_operation(o) for o in ops]

    def validate(self) -> None:
        seen: set[str] = set()
        for op in self.operations:
            if op.identity in seen:
                raise ManifestError(f"{self.name}: duplicate operation {op.identity!r}")
            seen.add(op.identity)
        try:
            _ = self.readiness
        except (TypeError, ValueError) as e:
            raise ManifestError(f"{self.name}: invalid readiness policy: {e}") from e
        if self.poll_interval_s <= 0:
            raise ManifestError(f"{self.name}: background poll interval must be positive")


def load_reconciler_config(name: str) -> ReconcilerConfig:
    raw = load_manifest(name)
    raw.setdefault("name", name)
    cfg = ReconcilerConfig(raw=raw)
    # Fail on a malformed manifest before any lock or probe.
    cfg.validate()
    return cfg
