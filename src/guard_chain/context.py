"""RequestContext — the mutable data object that flows through the guard chain."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

SECTIONS = ("body", "query", "params", "headers")


@dataclass(frozen=True)
class Principal:
    """An authenticated identity.

    Attributes:
        id:          Opaque identifier (user id, service name, key id).
        roles:       Roles held by the principal.
        permissions: Statically known permissions.  The authorizer may
                     extend these with a dynamic lookup.
        claims:      Raw data returned by the verifier (token claims, key
                     record, session record).
        expires_at:  Epoch seconds after which the credential that produced
                     this principal is no longer valid, if known.
    """

    id: str
    roles: frozenset[str] = frozenset()
    permissions: frozenset[str] = frozenset()
    claims: dict[str, Any] = field(default_factory=dict, compare=False)
    expires_at: float | None = None

    def has_role(self, *roles: str) -> bool:
        return any(role in self.roles for role in roles)

    def has_permissions(self, *permissions: str) -> bool:
        return all(p in self.permissions for p in permissions)


@dataclass
class RequestContext:
    """Per-request record that travels through every guard.

    Created by the host server (or by ``GuardChain.protect`` when none is
    supplied) and owned by exactly one in-flight request.

    Attributes:
        method:    HTTP method, upper-case.
        path:      Request path without the query string.
        headers:   Request headers.  Use :meth:`header` for case-insensitive
                   lookups.
        query:     Parsed query-string parameters.
        params:    Route parameters extracted by the host router.
        body:      Parsed request body (usually a ``dict``).
        cookies:   Parsed cookies.  Falls back to the ``Cookie`` header.
        client:    Source address of the caller.
        trace_id:  Correlation id assigned by the tracer.
        principal: Identity attached by the authenticator.
        state:     Shared scratchpad for inter-guard communication.
                   Guards may read **and write** here so that upstream
                   guards can pass data to downstream ones.
        response_headers: Headers guards want on the outgoing response
                   (correlation id, rate-limit quota).  The chain applies them
                   before any response is written.
        timestamp: When the request was created.  Auto-set to *now* (UTC).
    """

    method: str = "GET"
    path: str = "/"
    headers: dict[str, str] = field(default_factory=dict)
    query: dict[str, Any] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)
    body: Any = None
    cookies: dict[str, str] = field(default_factory=dict)
    client: str = ""
    trace_id: str = ""
    principal: Principal | None = None
    state: dict[str, Any] = field(default_factory=dict)
    response_headers: dict[str, str] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        self.method = self.method.upper()

    def header(self, name: str, default: str | None = None) -> str | None:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return default

    def cookie(self, name: str) -> str | None:
        if name in self.cookies:
            return self.cookies[name]
        raw = self.header("cookie")
        if not raw:
            return None
        for part in raw.split(";"):
            key, sep, value = part.strip().partition("=")
            if sep and key == name:
                return value
        return None

    def section(self, name: str) -> Any:
        """Return the payload section called *name* (body, query, params, headers)."""
        if name not in SECTIONS:
            raise KeyError(name)
        return getattr(self, name)

    @property
    def url(self) -> str:
        """Path plus a canonical (sorted) query string."""
        if not self.query:
            return self.path
        pairs = "&".join(f"{k}={self.query[k]}" for k in sorted(self.query))
        return f"{self.path}?{pairs}"
