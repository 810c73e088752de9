from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Iterator

from .errors import TargetBusy
from .model import utc_now
from .reconciler import CancelToken


@dataclass
class ActiveRun:
    target: str
    cancel: CancelToken = field(default_factory=CancelToken)
    started_at: str = field(default_factory=utc_now)


class RuntimeState:
    """In-memory bookkeeping of runs in progress, one per target."""

    def __init__(self) -> None:
        self.lock = Lock()
        self.active: dict[str, ActiveRun] = {}  # target -> run

    @contextmanager
    def hold(self, target: str) -> Iterator[ActiveRun]:
        """Advisory lock keyed by target identity. Does not wait."""
        with self.lock:
            if target in self.active:
                raise TargetBusy(f"target '{target}' is already being reconciled")
            run = ActiveRun(target=target)
            self.active[target] = run
        try:
            yield run
        finally:
            with self.lock:
                self.active.pop(target, None)

    def cancel(self, target: str) -> bool:
        with self.lock:
            run = self.active.get(target)
        if not run:
            return False
        run.cancel.cancel()
        return True

    def list_active(self) -> list[ActiveRun]:
        with self.lock:
            return list(self.active.values())
