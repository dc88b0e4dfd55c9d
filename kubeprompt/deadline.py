"""Best-effort calls bounded by a deadline."""

from __future__ import annotations

import threading
from typing import Callable, Optional, TypeVar

from .logging import get_logger

T = TypeVar("T")

UNKNOWN = "unknown"

_logger = get_logger("deadline")


def call_with_deadline(
    func: Callable[[], T],
    timeout: float,
    default: T,
    *,
    label: str = "call",
) -> T:
    """Run ``func`` on a daemon thread and return ``default`` if it misses ``timeout``.

    Exceptions raised by ``func`` also yield ``default``; the result is an
    enrichment, never a reason to fail the caller. A call that overruns keeps
    running in the background and its result is discarded.
    """
    result: list[T] = []
    error: list[BaseException] = []

    def _target() -> None:
        try:
            result.append(func())
        except Exception as exc:  # noqa: BLE001 - reported below
            error.append(exc)

    worker = threading.Thread(target=_target, name=f"deadline-{label}", daemon=True)
    worker.start()
    worker.join(timeout)

    if worker.is_alive():
        _logger.warning("%s did not finish within %.1fs; using %r", label, timeout, default)
        return default
    if error:
        _logger.warning("%s failed (%s); using %r", label, error[0], default)
        return default
    value: Optional[T] = result[0] if result else None
    if value is None:
        return default
    return value


__all__ = ["UNKNOWN", "call_with_deadline"]
