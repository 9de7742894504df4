#!/usr/bin/env python3
from __future__ import annotations

import json
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

ArtifactsPathLike = Optional[Union[str, Path]]


def _safe_token(value: str, *, fallback: str) -> str:
    token = re.sub(r"[^A-Za-z0-9._-]+", "-", (value or "").strip()).strip("-")
    return token or fallback


def resolve_artifacts_dir(artifacts_dir: ArtifactsPathLike = None) -> Path:
    """Resolve artifacts base dir using args/env defaults and ensure it exists.

    Resolution order:
    1) explicit argument
    2) SUNAT_ARTIFACTS_DIR
    3) ARTIFACTS_DIR
    4) ./artifacts
    """
    raw = str(artifacts_dir).strip() if artifacts_dir is not None else ""
    if not raw:
        raw = (
            (os.getenv("SUNAT_ARTIFACTS_DIR") or "").strip()
            or (os.getenv("ARTIFACTS_DIR") or "").strip()
            or "artifacts"
        )

    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = Path.cwd() / path
    path = path.resolve()
    path.mkdir(parents=True, exist_ok=True)
    return path


def make_run_dir(
    prefix: str,
    env: str,
    *,
    document_id: Optional[str] = None,
    ticket: Optional[str] = None,
    artifacts_dir: ArtifactsPathLike = None,
) -> Path:
    """Create and return a per-run artifacts directory."""
    base_dir = resolve_artifacts_dir(artifacts_dir)
    ts = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    parts = [
        "run",
        ts,
        _safe_token(prefix, fallback="send"),
        _safe_token(env, fallback="env"),
    ]
    if document_id:
        parts.append(f"doc_{_safe_token(str(document_id), fallback='doc')}")
    if ticket:
        parts.append(f"ticket_{_safe_token(str(ticket), fallback='ticket')}")

    run_dir = base_dir / "_".join(parts)
    run_dir.mkdir(parents=True, exist_ok=True)
    return run_dir


def write_bytes(run_dir: Path, name: str, data: bytes) -> Path:
    path = run_dir / name
    path.write_bytes(data)
    return path


def write_json(run_dir: Path, name: str, payload: Dict[str, Any]) -> Path:
    path = run_dir / name
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    return path
