"""Per-request and per-run context utilities."""
from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator
from uuid import uuid4

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)
pipeline_run_ctx_var: ContextVar[str | None] = ContextVar("pipeline_run_id", default=None)


def get_request_id() -> str | None:
    """Return the current request id if available."""
    return request_id_ctx_var.get()


def get_pipeline_run_id() -> str | None:
    """Return the id of the pipeline run executing in this context, if any."""
    return pipeline_run_ctx_var.get()


@contextmanager
def pipeline_run_scope(run_id: str | None = None) -> Iterator[str]:
    """Bind a pipeline run id for the duration of one run so log lines can be correlated."""
    value = run_id or uuid4().hex[:12]
    token = pipeline_run_ctx_var.set(value)
    try:
        yield value
    finally:
        pipeline_run_ctx_var.reset(token)
