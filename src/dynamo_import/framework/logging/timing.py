"""
Timed steps.

``log_step`` wraps one unit of connector work (client build, entity init, a
single page request) in a span. The span id is visible to anything logged
inside the block and the closing ``<event>.end`` entry carries the duration
plus whatever counters the block recorded::

    with log_step("dynamo.page_fetch", level="debug", operation="scan") as span:
        page = client.scan(**request)
        span.add_metric("items", len(page["Items"]))
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from dynamo_import.framework.logging.context import get_context, get_logger, new_id, scoped_context

_log = get_logger("dynamo_import.steps")


class StepSpan:
    """Timing and counters for one step."""

    def __init__(self, step: str, parent_span_id: str | None = None, **metrics: Any):
        self.step = step
        self.span_id = new_id()
        self.parent_span_id = parent_span_id
        self.metrics: dict[str, Any] = dict(metrics)
        self.error: BaseException | None = None
        self._start = time.perf_counter()
        self._end: float | None = None

    @property
    def finished(self) -> bool:
        return self._end is not None

    @property
    def duration_ms(self) -> float:
        end = self._end if self._end is not None else time.perf_counter()
        return (end - self._start) * 1000

    def add_metric(self, key: str, value: Any) -> StepSpan:
        self.metrics[key] = value
        return self

    def finish(self, error: BaseException | None = None) -> None:
        if self._end is None:
            self._end = time.perf_counter()
        if error is not None:
            self.error = error

    def log_fields(self) -> dict[str, Any]:
        out: dict[str, Any] = {"span_id": self.span_id, "duration_ms": round(self.duration_ms, 2)}
        if self.parent_span_id:
            out["parent_span_id"] = self.parent_span_id
        out.update(self.metrics)
        if self.error is not None:
            out["status"] = "error"
            out["error_type"] = type(self.error).__name__
            out["error_message"] = str(self.error)
        return out


@contextmanager
def log_step(event: str, *, level: str = "info", log_start: bool = True, **metrics: Any) -> Iterator[StepSpan]:
    """
    Time the block as ``event``.

    On failure ``<event>.error`` is logged with the span fields and the
    exception propagates; otherwise ``<event>.end`` is logged at ``level``.
    """
    span = StepSpan(event, parent_span_id=get_context().span_id, **metrics)
    with scoped_context(step=event, span_id=span.span_id, parent_span_id=span.parent_span_id):
        if log_start:
            _log.debug(f"{event}.start", span_id=span.span_id, **metrics)
        try:
            yield span
        except Exception as e:
            span.finish(e)
            _log.error(f"{event}.error", **span.log_fields())
            raise
        finally:
            span.finish()
    getattr(_log, level)(f"{event}.end", **span.log_fields())
