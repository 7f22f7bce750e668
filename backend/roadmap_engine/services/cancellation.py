"""Caller-driven cancellation and deadlines for a pipeline run."""
from __future__ import annotations

from threading import Event
from time import monotonic
from typing import Optional


class PipelineCancelled(RuntimeError):
    """The caller cancelled the run or its deadline passed; no later phase was started."""


class CancelScope:
    """Cancellation flag plus an optional deadline, checked before every phase.

    ``cancel()`` may be called from any thread. The remaining time also caps each
    generation call so a run never outlives its deadline by more than one call.
    """

    def __init__(self, timeout_s: Optional[float] = None, event: Optional[Event] = None) -> None:
        self._event = event or Event()
        self._deadline = monotonic() + timeout_s if timeout_s is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and monotonic() >= self._deadline

    def remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - monotonic())

    def raise_if_cancelled(self, stage: str = "pipeline") -> None:
        if self._event.is_set():
            raise PipelineCancelled(f"{stage} cancelled by caller")
        if self._deadline is not None and monotonic() >= self._deadline:
            raise PipelineCancelled(f"{stage} deadline exceeded")

    def call_timeout(self, ceiling: float) -> float:
        """Return the timeout for the next call: ``ceiling`` capped by the time left."""
        remaining = self.remaining()
        if remaining is None:
            return ceiling
        return max(0.001, min(ceiling, remaining))
