"""Authentication strategies.

A strategy knows how to *find* a credential in the request (``extract``)
and how to *check* it (``verify``).  Returning ``None`` from ``extract``
means "not my kind of request" and lets the authenticator try the next
strategy; raising :class:`CredentialError` from ``verify`` rejects the
request outright.
"""

from __future__ import annotations

import hmac
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any

from guard_chain._internal.awaitables import resolve
from guard_chain.context import Principal
from guard_chain.exceptions import CredentialError

if TYPE_CHECKING:
    from guard_chain.auth.verifiers import TokenVerifier
    from guard_chain.context import RequestContext

# Lookups may be sync or async and return None for an unknown credential.
PrincipalLookup = Callable[[str], Principal | None | Awaitable[Principal | None]]


class AuthStrategy(ABC):
    """Base class for credential strategies."""

    _strategy_type = "base"

    def __init__(self, name: str) -> None:
        self.name = name

    @abstractmethod
    def extract(self, context: RequestContext) -> str | None:
        """Return the raw credential, or ``None`` if this request has none."""
        ...

    @abstractmethod
    async def verify(self, credential: str) -> Principal:
        """Return the principal for *credential* or raise :class:`CredentialError`."""
        ...

    def export(self) -> dict[str, Any]:
        return {"name": self.name, "type": self._strategy_type}


class BearerTokenStrategy(AuthStrategy):
    """``Authorization: Bearer <token>``, checked by a :class:`TokenVerifier`."""

    _strategy_type = "bearer"

    def __init__(
        self,
        verifier: TokenVerifier,
        *,
        header: str = "Authorization",
        scheme: str = "Bearer",
        name: str = "bearer",
    ) -> None:
        super().__init__(name)
        self.verifier = verifier
        self.header = header
        self.scheme = scheme

    def extract(self, context: RequestContext) -> str | None:
        raw = context.header(self.header)
        if not raw:
            return None
        scheme, _, token = raw.strip().partition(" ")
        if scheme.lower() != self.scheme.lower():
            return None
        return token.strip() or None

    async def verify(self, credential: str) -> Principal:
        return await self.verifier.verify(credential)

    def export(self) -> dict[str, Any]:
        return {**super().export(), "header": self.header, "scheme": self.scheme}


class ApiKeyStrategy(AuthStrategy):
    """API key from a header (or optionally a query parameter).

    Keys are resolved either from a static ``keys`` mapping (compared in
    constant time) or through a ``lookup`` callable.

    Parameters:
        keys:        Mapping of raw key → principal.
        lookup:      Callable ``(key) -> Principal | None``, sync or async.
        header:      Header carrying the key.
        query_param: Query parameter carrying the key, checked after the header.
    """

    _strategy_type = "api_key"

    def __init__(
        self,
        *,
        keys: Mapping[str, Principal] | None = None,
        lookup: PrincipalLookup | None = None,
        header: str = "X-API-Key",
        query_param: str | None = None,
        name: str = "api_key",
    ) -> None:
        if keys is None and lookup is None:
            raise ValueError("ApiKeyStrategy needs either 'keys' or 'lookup'")
        super().__init__(name)
        self._keys = dict(keys or {})
        self._lookup = lookup
        self.header = header
        self.query_param = query_param

    def extract(self, context: RequestContext) -> str | None:
        value = context.header(self.header)
        if not value and self.query_param:
            value = context.query.get(self.query_param)
        if not value:
            return None
        return str(value).strip() or None

    async def verify(self, credential: str) -> Principal:
        principal: Principal | None = None
        for key, candidate in self._keys.items():
            if hmac.compare_digest(key.encode(), credential.encode()):
                principal = candidate
        if principal is None and self._lookup is not None:
            principal = await resolve(self._lookup(credential))
        if principal is None:
            raise CredentialError("unknown API key", "INVALID_API_KEY")
        return principal

    def export(self) -> dict[str, Any]:
        return {
            **super().export(),
            "header": self.header,
            "query_param": self.query_param,
            "key_count": len(self._keys),
        }


class SessionCookieStrategy(AuthStrategy):
    """Session id from a cookie, resolved through a session lookup."""

    _strategy_type = "session"

    def __init__(
        self,
        lookup: PrincipalLookup,
        *,
        cookie: str = "session",
        name: str = "session",
    ) -> None:
        super().__init__(name)
        self._lookup = lookup
        self.cookie = cookie

    def extract(self, context: RequestContext) -> str | None:
        return context.cookie(self.cookie) or None

    async def verify(self, credential: str) -> Principal:
        principal = await resolve(self._lookup(credential))
        if principal is None:
            raise CredentialError("session is unknown or expired", "INVALID_SESSION")
        return principal

    def export(self) -> dict[str, Any]:
        return {**super().export(), "cookie": self.cookie}
