from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from .errors import PipelineCancelled, PipelineTimeoutError


@dataclass
class Checkpoint:
    """Cancellation and wall-clock budget, polled between pages.

    The budget is ``base_s + per_page_s * page_count`` and starts counting when
    the Checkpoint is created; ``begin`` fixes the page count once known.
    A budget of ``base_s <= 0 and per_page_s <= 0`` disables the timeout.
    """

    cancel_event: threading.Event | None = None
    base_s: float = 0.0
    per_page_s: float = 0.0
    clock: Callable[[], float] = time.monotonic
    started_at: float = field(init=False)
    budget_s: float | None = field(init=False, default=None)

    def __post_init__(self) -> None:
        self.started_at = self.clock()
        if self.base_s > 0:
            self.budget_s = float(self.base_s)

    def begin(self, page_count: int) -> None:
        if self.base_s <= 0 and self.per_page_s <= 0:
            return
        self.budget_s = float(self.base_s) + float(self.per_page_s) * max(1, int(page_count))

    def elapsed(self) -> float:
        return self.clock() - self.started_at

    def check(self, stage: str) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise PipelineCancelled(stage)
        if self.budget_s is not None and self.elapsed() > self.budget_s:
            raise PipelineTimeoutError(stage, self.budget_s)
