from __future__ import annotations

import shutil
import time
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from .types import Block
from .utils import append_jsonl, ensure_dir, load_json, utc_now_iso, write_json


@dataclass
class JobPaths:
    job_dir: Path
    input_dir: Path
    uploads_dir: Path
    blocks_json: Path
    metrics_json: Path
    errors_jsonl: Path

    @classmethod
    def for_job_dir(cls, job_dir: str | Path) -> JobPaths:
        job_dir = Path(job_dir)
        return cls(
            job_dir=job_dir,
            input_dir=job_dir / "input",
            uploads_dir=job_dir / "uploads",
            blocks_json=job_dir / "blocks.json",
            metrics_json=job_dir / "metrics.json",
            errors_jsonl=job_dir / "errors.jsonl",
        )


def create_job_dirs(workspace: str | Path, job_id: str) -> JobPaths:
    paths = JobPaths.for_job_dir(Path(workspace) / "jobs" / job_id)
    for p in [paths.input_dir, paths.uploads_dir]:
        ensure_dir(p)
    return paths


def new_job_id(use_timeline: bool = True) -> str:
    """Job identifier, also used as the job's path under ``workspace/jobs``.

    Timeline ids (``YYYY-MM-DD/HH-MM-SS__<8 hex>``, UTC) group runs by day;
    with ``use_timeline=False`` a plain UUID4 string is returned.
    """
    if not use_timeline:
        return str(uuid.uuid4())

    now = datetime.now(timezone.utc)
    return f"{now.strftime('%Y-%m-%d')}/{now.strftime('%H-%M-%S')}__{uuid.uuid4().hex[:8]}"


def record_error(paths: JobPaths, page_id: str | None, stage: str, message: str) -> None:
    append_jsonl(paths.errors_jsonl, {"page_id": page_id, "stage": stage, "message": message})


def init_job_outputs(paths: JobPaths) -> None:
    # Always create output files, even if the run fails.
    write_json(paths.blocks_json, {"job": {}, "blocks": []})
    write_json(paths.metrics_json, {"created_at": utc_now_iso(), "finished": False, "completed_at": None})
    paths.errors_jsonl.parent.mkdir(parents=True, exist_ok=True)
    paths.errors_jsonl.touch(exist_ok=True)


def snapshot_input(paths: JobPaths, input_path: str | Path) -> Path:
    src = Path(input_path)
    dst = paths.input_dir / src.name
    shutil.copy2(src, dst)
    return dst


def upload_name() -> str:
    """``<epoch-ms>-<random>.png``, unique per call."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:10]}.png"


def persist_blocks(blocks: Sequence[Block], uploads_dir: str | Path, url_prefix: str = "/uploads") -> list[Block]:
    """Write every block buffer to ``uploads_dir`` and swap it for a URL.

    Returns new blocks; blocks without a buffer are passed through unchanged.
    """
    uploads_dir = Path(uploads_dir)
    ensure_dir(uploads_dir)
    prefix = url_prefix.rstrip("/")

    out: list[Block] = []
    for block in blocks:
        buf = getattr(block, "buffer", None)
        if not buf:
            out.append(block)
            continue
        name = upload_name()
        (uploads_dir / name).write_bytes(buf)
        out.append(replace(block, src=f"{prefix}/{name}", buffer=None))
    return out


def load_blocks(paths: JobPaths) -> list[dict[str, Any]]:
    data = load_json(paths.blocks_json)
    blocks = data.get("blocks", []) if isinstance(data, dict) else []
    return [b for b in blocks if isinstance(b, dict)]
