"""Response sink abstraction and the snapshot stored by the response cache."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


class ResponseSink(Protocol):
    """Minimal write-side view of the host framework's response object."""

    def set_status(self, status: int) -> None: ...

    def set_header(self, name: str, value: str) -> None: ...

    def send_body(self, body: Any) -> None: ...


@dataclass
class Response:
    """In-memory :class:`ResponseSink` that simply records what was written.

    Used by the runner and by tests; host frameworks adapt their own
    response objects to the :class:`ResponseSink` protocol instead.
    """

    status: int = 200
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    sent: bool = False

    def set_status(self, status: int) -> None:
        self.status = status

    def set_header(self, name: str, value: str) -> None:
        self.headers[name] = value

    def send_body(self, body: Any) -> None:
        self.body = body
        self.sent = True

    def snapshot(self) -> StoredResponse:
        return StoredResponse(self.status, dict(self.headers), self.body)


@dataclass(frozen=True)
class StoredResponse:
    """Immutable response snapshot (status, headers, body)."""

    status: int = 200
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None

    def write_to(self, sink: ResponseSink, extra_headers: dict[str, str] | None = None) -> None:
        sink.set_status(self.status)
        for name, value in {**self.headers, **(extra_headers or {})}.items():
            sink.set_header(name, value)
        sink.send_body(self.body)

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "headers": dict(self.headers), "body": self.body}

    @staticmethod
    def from_dict(data: dict[str, Any]) -> StoredResponse:
        return StoredResponse(
            status=int(data.get("status", 200)),
            headers=dict(data.get("headers") or {}),
            body=data.get("body"),
        )
