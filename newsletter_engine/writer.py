from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any, Sequence

from .job import JobPaths
from .types import Block, block_to_dict
from .utils import utc_now_iso, write_json


@dataclass
class JobWriter:
    """Final and failure outputs of one job directory."""

    paths: JobPaths

    def write_final(
        self,
        job_meta: dict[str, Any],
        blocks: Sequence[Block],
        metrics: dict[str, Any],
    ) -> None:
        finished_at = utc_now_iso()
        block_types = dict(Counter(b.type for b in blocks))

        # blocks.json goes first; metrics.json flips to finished only after it exists.
        write_json(
            self.paths.blocks_json,
            {
                "job": {**job_meta, "finished": True, "completed_at": finished_at, "block_types": block_types},
                "blocks": [block_to_dict(b) for b in blocks],
            },
        )
        write_json(self.paths.metrics_json, {**metrics, "finished": True, "completed_at": finished_at})

    def write_failed(self, job_meta: dict[str, Any], stage: str, message: str) -> None:
        write_json(
            self.paths.metrics_json,
            {
                "job": dict(job_meta),
                "finished": False,
                "failed_at": utc_now_iso(),
                "stage": stage,
                "message": message,
            },
        )
