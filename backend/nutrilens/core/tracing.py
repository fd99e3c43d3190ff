"""
NutriLens AI - Opik Tracing Handle

Wraps the Opik client so every pipeline stage can open a named span
carrying its input, its output or error, its duration and a status.

Spans nest through a context variable: the first span opened in a task
becomes an Opik trace, later spans become its children. Concurrent
stages started with ``asyncio.gather`` inherit the parent trace.

Tracing is never allowed to break the pipeline. Every Opik call goes
through ``_safe``, which logs and swallows failures.
"""

import logging
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional

import opik
from pydantic import BaseModel

from nutrilens.config import Settings

logger = logging.getLogger(__name__)

_current_handle: ContextVar[Optional[Any]] = ContextVar("nutrilens_trace_handle", default=None)


def _as_payload(value: Any) -> dict:
    """Opik expects dict payloads; wrap everything else under ``data``."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, dict):
        return value
    if isinstance(value, (list, tuple)):
        return {
            "data": [
                v.model_dump(mode="json", by_alias=True) if isinstance(v, BaseModel) else v
                for v in value
            ]
        }
    return {"data": value}


@dataclass
class SpanRecord:
    """What a stage reports about one traced operation."""
    name: str
    input: Any = None
    metadata: dict = field(default_factory=dict)
    output: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    status: str = "pending"
    duration_ms: int = 0

    def set_output(self, output: Any) -> None:
        self.output = output


class Tracer:
    """
    Shared handle to the observability backend.

    Example:
        with tracer.span("food-recognition", {"imageProvided": True}) as span:
            items = await recognize(...)
            span.set_output(items)
    """

    def __init__(self, client: Optional[Any] = None):
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "Tracer":
        """Build the tracer; a disabled or broken Opik setup yields a no-op tracer."""
        if not settings.enable_tracing:
            logger.info("Tracing disabled")
            return cls(client=None)
        try:
            client = opik.Opik(
                project_name=settings.opik_project_name,
                workspace=settings.opik_workspace,
                host=settings.opik_url_override,
                api_key=settings.opik_api_key or None,
            )
        except Exception as e:
            logger.warning(f"⚠️ Opik initialization failed, tracing disabled: {e}")
            return cls(client=None)
        logger.info(f"📊 Opik tracing enabled - Project: {settings.opik_project_name}")
        return cls(client=client)

    @property
    def enabled(self) -> bool:
        return self._client is not None

    @contextmanager
    def span(
        self,
        name: str,
        input: Any = None,
        metadata: Optional[dict] = None,
        span_type: str = "general",
    ) -> Iterator[SpanRecord]:
        """
        Trace the enclosed block.

        The span is closed whether the block succeeds or raises; the
        block's exception is re-raised unchanged.
        """
        record = SpanRecord(name=name, input=input, metadata=dict(metadata or {}))
        parent = _current_handle.get()
        handle = self._safe(f"open span '{name}'", self._open_handle, record, parent, span_type)
        token = _current_handle.set(handle) if handle is not None else None

        start_time = time.perf_counter()
        try:
            yield record
        except Exception as e:
            record.duration_ms = int((time.perf_counter() - start_time) * 1000)
            record.status = "error"
            record.error = str(e)
            record.error_type = type(e).__name__
            raise
        else:
            record.duration_ms = int((time.perf_counter() - start_time) * 1000)
            record.status = "success"
        finally:
            if token is not None:
                _current_handle.reset(token)
            if handle is not None:
                self._safe(f"close span '{name}'", self._close_handle, handle, record)

    def log_event(
        self,
        name: str,
        input: Any,
        output: Any = None,
        metadata: Optional[dict] = None,
    ) -> None:
        """Record a one-shot trace (feedback, evaluation results)."""
        with self.span(name, input, metadata) as record:
            record.set_output(output)

    def flush(self) -> None:
        if self._client is not None:
            self._safe("flush", self._client.flush)

    # === Opik plumbing ===

    def _open_handle(self, record: SpanRecord, parent: Optional[Any], span_type: str) -> Optional[Any]:
        if self._client is None:
            return None
        payload = _as_payload(record.input) if record.input is not None else None
        if parent is None:
            return self._client.trace(name=record.name, input=payload, metadata=record.metadata)
        return parent.span(name=record.name, type=span_type, input=payload, metadata=record.metadata)

    def _close_handle(self, handle: Any, record: SpanRecord) -> None:
        metadata = {
            **record.metadata,
            "duration": record.duration_ms,
            "status": record.status,
        }
        if record.status == "error":
            metadata["errorType"] = record.error_type
            handle.end(output={"error": record.error}, metadata=metadata)
        else:
            output = _as_payload(record.output) if record.output is not None else None
            handle.end(output=output, metadata=metadata)

    def _safe(self, action: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except Exception as e:
            logger.warning(f"⚠️ Tracing failed to {action}: {e}")
            return None
