from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict

import yaml

from ..errors import ManifestError

MANIFEST_DIR_ENV = "FIRSTBOOT_MANIFEST_DIR"


def manifest_dir() -> Path:
    override = os.environ.get(MANIFEST_DIR_ENV)
    if override:
        return Path(override)
    # firstboot_provisioner/lib/manifests.py -> firstboot_provisioner/manifests
    return Path(__file__).resolve().parents[1] / "manifests"


def load_yaml(path: Path) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ManifestError(f"Manifest is not valid YAML: {path}: {e}") from e
    if not isinstance(data, dict):
        raise ManifestError(f"Manifest must be a mapping/dict: {path}")
    return data


def load_manifest(name: str) -> Dict[str, Any]:
    p = manifest_dir() / f"{name}.yaml"
    if not p.exists():
        raise ManifestError(f"No manifest for reconciler {name!r} at {p}")
    return load_yaml(p)
