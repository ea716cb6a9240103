"""Token verifiers — turn a raw token into a Principal or reject it."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Protocol

import httpx
import jwt

from guard_chain.context import Principal
from guard_chain.exceptions import CredentialError

logger = logging.getLogger(__name__)


class TokenVerifier(Protocol):
    """Anything that can verify a raw token.

    Must raise :class:`CredentialError` when the token is rejected.  Any
    other exception is treated as an internal failure of the verifier.
    """

    async def verify(self, token: str) -> Principal: ...


def _as_set(value: Any) -> frozenset[str]:
    """Claims may hold a list or a space-separated string (OAuth ``scope``)."""
    if value is None:
        return frozenset()
    if isinstance(value, str):
        return frozenset(value.split())
    return frozenset(str(v) for v in value)


def principal_from_claims(
    claims: dict[str, Any],
    *,
    subject_claim: str = "sub",
    roles_claim: str = "roles",
    permissions_claim: str = "permissions",
) -> Principal:
    subject = claims.get(subject_claim)
    if not subject:
        raise CredentialError(f"token has no '{subject_claim}' claim", "INVALID_CREDENTIAL")
    permissions = _as_set(claims.get(permissions_claim))
    if permissions_claim != "scope":
        permissions |= _as_set(claims.get("scope"))
    exp = claims.get("exp")
    return Principal(
        id=str(subject),
        roles=_as_set(claims.get(roles_claim)),
        permissions=permissions,
        claims=dict(claims),
        expires_at=float(exp) if exp is not None else None,
    )


class JwtVerifier:
    """Verifies signed JWTs locally with PyJWT.

    Parameters:
        key:               HMAC secret or public key.
        algorithms:        Accepted signing algorithms.
        audience:          Expected ``aud`` claim, if any.
        issuer:            Expected ``iss`` claim, if any.
        leeway:            Clock-skew allowance in seconds for ``exp``/``nbf``.
        roles_claim:       Claim holding the principal's roles.
        permissions_claim: Claim holding the principal's permissions.
    """

    def __init__(
        self,
        key: str | bytes,
        *,
        algorithms: Sequence[str] = ("HS256",),
        audience: str | None = None,
        issuer: str | None = None,
        leeway: float = 0,
        roles_claim: str = "roles",
        permissions_claim: str = "permissions",
    ) -> None:
        self._key = key
        self.algorithms = list(algorithms)
        self.audience = audience
        self.issuer = issuer
        self.leeway = leeway
        self.roles_claim = roles_claim
        self.permissions_claim = permissions_claim

    async def verify(self, token: str) -> Principal:
        try:
            claims = jwt.decode(
                token,
                self._key,
                algorithms=self.algorithms,
                audience=self.audience,
                issuer=self.issuer,
                leeway=self.leeway,
            )
        except jwt.ExpiredSignatureError as exc:
            raise CredentialError("token has expired", "TOKEN_EXPIRED") from exc
        except jwt.InvalidTokenError as exc:
            logger.debug("JWT rejected: %s", exc)
            raise CredentialError(f"invalid token: {exc}", "INVALID_CREDENTIAL") from exc

        return principal_from_claims(
            claims,
            roles_claim=self.roles_claim,
            permissions_claim=self.permissions_claim,
        )


class IntrospectionVerifier:
    """Verifies opaque tokens against an OAuth 2.0 introspection endpoint.

    The endpoint receives ``token=<raw>`` as a form post and must answer
    with JSON containing ``active``.  Transport failures propagate (the
    chain reports them as internal errors) rather than being mistaken for
    a rejected credential.

    Parameters:
        url:           Introspection endpoint.
        client_id:     Optional basic-auth client id.
        client_secret: Optional basic-auth client secret.
        timeout:       HTTP timeout in seconds.
        client:        Shared ``httpx.AsyncClient``; one is created per call
                       when omitted.
    """

    def __init__(
        self,
        url: str,
        *,
        client_id: str | None = None,
        client_secret: str | None = None,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
        roles_claim: str = "roles",
        permissions_claim: str = "scope",
    ) -> None:
        self.url = url
        self._auth = (client_id, client_secret or "") if client_id else None
        self.timeout = timeout
        self._client = client
        self.roles_claim = roles_claim
        self.permissions_claim = permissions_claim

    async def _post(self, client: httpx.AsyncClient, token: str) -> httpx.Response:
        return await client.post(
            self.url,
            data={"token": token},
            auth=self._auth,
            timeout=self.timeout,
        )

    async def verify(self, token: str) -> Principal:
        if self._client is not None:
            response = await self._post(self._client, token)
        else:
            async with httpx.AsyncClient() as client:
                response = await self._post(client, token)

        if response.status_code in (400, 401):
            raise CredentialError("token rejected by introspection endpoint")
        response.raise_for_status()

        claims: dict[str, Any] = response.json()
        if not claims.get("active"):
            raise CredentialError("token is not active", "TOKEN_INACTIVE")
        return principal_from_claims(
            claims,
            roles_claim=self.roles_claim,
            permissions_claim=self.permissions_claim,
        )
