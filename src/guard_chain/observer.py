"""Observers receive trace and error events emitted by the chain.

``record`` is best-effort: observers must never raise into the request
path.  :class:`LoggingObserver` maps events onto the standard ``logging``
module as structured records.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChainEvent:
    """A single structured event.

    ``name`` is one of ``request.start``, ``request.end``, ``request.error``
    or ``guard.degraded`` (a recoverable failure such as a cache outage).
    """

    name: str
    trace_id: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class Observer(Protocol):
    def record(self, event: ChainEvent) -> None: ...


class NullObserver:
    """Discards every event."""

    def record(self, event: ChainEvent) -> None:
        return None


class LoggingObserver:
    """Writes events to a :mod:`logging` logger.

    Errors go out at ``ERROR`` when they are internal and ``WARNING``
    otherwise; degraded-guard events at ``WARNING``; everything else at
    *level*.
    """

    def __init__(self, log: logging.Logger | None = None, level: int = logging.INFO) -> None:
        self._log = log or logging.getLogger("guard_chain.events")
        self._level = level

    def _level_for(self, event: ChainEvent) -> int:
        if event.name == "request.error":
            return logging.ERROR if event.data.get("kind") == "internal" else logging.WARNING
        if event.name == "guard.degraded":
            return logging.WARNING
        return self._level

    def record(self, event: ChainEvent) -> None:
        try:
            level = self._level_for(event)
            if not self._log.isEnabledFor(level):
                return
            extra = {"event": event.name, "trace_id": event.trace_id, "data": event.data}
            self._log.log(level, "%s %s", event.name, _format_data(event.data), extra=extra)
        except Exception:  # observers are best-effort
            logger.debug("Observer failed to record %s", event.name, exc_info=True)


def safe_record(observer: Observer, event: ChainEvent) -> None:
    """Deliver *event* to *observer*, ignoring any failure it raises."""
    try:
        observer.record(event)
    except Exception:
        logger.debug("Observer %r raised while recording %s", observer, event.name, exc_info=True)


def _format_data(data: dict[str, Any]) -> str:
    return " ".join(f"{key}={value}" for key, value in data.items())
