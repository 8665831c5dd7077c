# harvester/core/request_id.py
from __future__ import annotations

import uuid
from contextlib import contextmanager
from typing import Iterator, Optional
import contextvars

_run_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("run_id", default=None)
_target_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("ingest_target", default=None)

# -------- Run ID (one per CLI invocation) ------------------------------------

def get_run_id() -> Optional[str]:
    return _run_id_ctx.get()

@contextmanager
def with_run_id(run_id: Optional[str] = None) -> Iterator[str]:
    """
    Usage in workers:
        with with_run_id():
            ... do work ...
    """
    previous = _run_id_ctx.get()
    rid = run_id or uuid.uuid4().hex
    _run_id_ctx.set(rid)
    try:
        yield rid
    finally:
        # restore previous value (may be None)
        _run_id_ctx.set(previous)

# -------- Ingest target (per feed / outline task) ----------------------------

def get_ingest_target() -> Optional[str]:
    return _target_ctx.get()

@contextmanager
def with_ingest_target(target: Optional[str]) -> Iterator[Optional[str]]:
    token = _target_ctx.set(target)
    try:
        yield target
    finally:
        _target_ctx.reset(token)
