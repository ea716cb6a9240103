"""Tests for the JWT and introspection verifiers."""

import time

import httpx
import jwt
import pytest

from guard_chain import CredentialError
from guard_chain.auth import IntrospectionVerifier, JwtVerifier, principal_from_claims

SECRET = "test-secret-with-at-least-32-bytes!"


def make_token(**claims):
    payload = {"sub": "alice", "exp": int(time.time()) + 300, **claims}
    return jwt.encode(payload, SECRET, algorithm="HS256")


async def test_jwt_valid_token():
    token = make_token(roles=["admin"], permissions=["orders:read"], scope="orders:write")
    principal = await JwtVerifier(SECRET).verify(token)

    assert principal.id == "alice"
    assert principal.roles == frozenset({"admin"})
    assert principal.permissions == frozenset({"orders:read", "orders:write"})
    assert principal.expires_at is not None


async def test_jwt_expired_token():
    token = make_token(exp=int(time.time()) - 10)
    with pytest.raises(CredentialError) as info:
        await JwtVerifier(SECRET).verify(token)
    assert info.value.code == "TOKEN_EXPIRED"


async def test_jwt_bad_signature():
    token = jwt.encode({"sub": "alice"}, "another-secret-with-at-least-32-bytes", algorithm="HS256")
    with pytest.raises(CredentialError) as info:
        await JwtVerifier(SECRET).verify(token)
    assert info.value.code == "INVALID_CREDENTIAL"


async def test_jwt_audience_and_issuer():
    verifier = JwtVerifier(SECRET, audience="orders-api", issuer="https://idp.example")
    good = make_token(aud="orders-api", iss="https://idp.example")
    assert (await verifier.verify(good)).id == "alice"

    with pytest.raises(CredentialError):
        await verifier.verify(make_token(aud="billing-api", iss="https://idp.example"))


async def test_jwt_missing_subject():
    token = jwt.encode({"roles": ["admin"]}, SECRET, algorithm="HS256")
    with pytest.raises(CredentialError):
        await JwtVerifier(SECRET).verify(token)


def test_principal_from_claims_custom_claims():
    principal = principal_from_claims(
        {"uid": "42", "groups": "a b"}, subject_claim="uid", roles_claim="groups"
    )
    assert principal.id == "42"
    assert principal.roles == frozenset({"a", "b"})
    assert principal.expires_at is None


def introspection_client(payload, status=200, seen=None):
    def respond(request):
        if seen is not None:
            seen.append(request)
        return httpx.Response(status, json=payload)

    return httpx.AsyncClient(transport=httpx.MockTransport(respond))


async def test_introspection_active_token():
    seen = []
    client = introspection_client(
        {"active": True, "sub": "svc", "scope": "read write"}, seen=seen
    )
    verifier = IntrospectionVerifier(
        "https://idp.example/introspect", client_id="api", client_secret="s", client=client
    )
    principal = await verifier.verify("opaque")

    assert principal.id == "svc"
    assert principal.permissions == frozenset({"read", "write"})
    assert seen[0].content == b"token=opaque"
    assert seen[0].headers["Authorization"].startswith("Basic ")


async def test_introspection_inactive_token():
    verifier = IntrospectionVerifier(
        "https://idp.example/introspect", client=introspection_client({"active": False})
    )
    with pytest.raises(CredentialError) as info:
        await verifier.verify("opaque")
    assert info.value.code == "TOKEN_INACTIVE"


async def test_introspection_rejected_request():
    verifier = IntrospectionVerifier(
        "https://idp.example/introspect", client=introspection_client({}, status=401)
    )
    with pytest.raises(CredentialError):
        await verifier.verify("opaque")


async def test_introspection_server_error_propagates():
    verifier = IntrospectionVerifier(
        "https://idp.example/introspect", client=introspection_client({}, status=503)
    )
    with pytest.raises(httpx.HTTPStatusError):
        await verifier.verify("opaque")
