"""Tests for AuthenticatorGuard."""

import pytest

from guard_chain import CredentialError, GuardConfigError, Principal, RequestContext
from guard_chain.auth import (
    ApiKeyStrategy,
    BearerTokenStrategy,
    SessionCookieStrategy,
    VerificationCache,
)
from guard_chain.guards import AuthenticatorGuard


class StubVerifier:
    def __init__(self, tokens):
        self.tokens = tokens
        self.calls = 0

    async def verify(self, token):
        self.calls += 1
        if token not in self.tokens:
            raise CredentialError("invalid token")
        return self.tokens[token]


@pytest.fixture
def verifier():
    return StubVerifier({"alice-token": Principal(id="alice", roles=frozenset({"admin"}))})


@pytest.fixture
def api_keys():
    return ApiKeyStrategy(keys={"k-123": Principal(id="svc")})


async def test_bearer_success_sets_principal(verifier):
    guard = AuthenticatorGuard([BearerTokenStrategy(verifier)])
    ctx = RequestContext(headers={"Authorization": "Bearer alice-token"})

    result = await guard.attempt(ctx)

    assert result.allowed
    assert ctx.principal.id == "alice"
    assert ctx.state["auth_strategy"] == "bearer"


async def test_no_credential(verifier, api_keys):
    guard = AuthenticatorGuard([BearerTokenStrategy(verifier), api_keys])
    result = await guard.attempt(RequestContext())

    assert not result.allowed
    assert result.error.code == "NO_CREDENTIAL"
    assert result.error.message == "no credential provided"


async def test_falls_through_to_next_strategy(verifier, api_keys):
    guard = AuthenticatorGuard([BearerTokenStrategy(verifier), api_keys])
    ctx = RequestContext(headers={"X-API-Key": "k-123"})

    result = await guard.attempt(ctx)

    assert result.allowed
    assert ctx.principal.id == "svc"
    assert ctx.state["auth_strategy"] == "api_key"


async def test_first_present_credential_is_final(verifier, api_keys):
    guard = AuthenticatorGuard([BearerTokenStrategy(verifier), api_keys])
    ctx = RequestContext(headers={"Authorization": "Bearer forged", "X-API-Key": "k-123"})

    result = await guard.attempt(ctx)

    assert not result.allowed
    assert result.error.code == "INVALID_CREDENTIAL"
    assert result.error.detail["strategy"] == "bearer"
    assert ctx.principal is None


async def test_unknown_api_key(api_keys):
    result = await AuthenticatorGuard([api_keys]).attempt(
        RequestContext(headers={"X-API-Key": "nope"})
    )
    assert result.error.code == "INVALID_API_KEY"


async def test_api_key_from_query_param():
    strategy = ApiKeyStrategy(keys={"k": Principal(id="svc")}, query_param="api_key")
    ctx = RequestContext(query={"api_key": "k"})
    assert (await AuthenticatorGuard([strategy]).attempt(ctx)).allowed


async def test_session_cookie_with_async_lookup():
    async def lookup(session_id):
        return Principal(id="carol") if session_id == "s1" else None

    guard = AuthenticatorGuard([SessionCookieStrategy(lookup)])
    ctx = RequestContext(headers={"Cookie": "session=s1"})
    assert (await guard.attempt(ctx)).allowed
    assert ctx.principal.id == "carol"

    denied = await guard.attempt(RequestContext(cookies={"session": "expired"}))
    assert denied.error.code == "INVALID_SESSION"


async def test_cache_skips_repeat_verification(verifier, clock):
    guard = AuthenticatorGuard(
        [BearerTokenStrategy(verifier)], cache=VerificationCache(ttl_seconds=30, clock=clock)
    )
    for _ in range(3):
        ctx = RequestContext(headers={"Authorization": "Bearer alice-token"})
        assert (await guard.attempt(ctx)).allowed
    assert verifier.calls == 1

    clock.advance(31)
    await guard.attempt(RequestContext(headers={"Authorization": "Bearer alice-token"}))
    assert verifier.calls == 2


async def test_failed_verification_is_not_cached(verifier, clock):
    guard = AuthenticatorGuard(
        [BearerTokenStrategy(verifier)], cache=VerificationCache(clock=clock)
    )
    for _ in range(2):
        await guard.attempt(RequestContext(headers={"Authorization": "Bearer forged"}))
    assert verifier.calls == 2


async def test_verifier_crash_propagates_to_chain(chain):
    class Broken:
        async def verify(self, token):
            raise ConnectionError("idp unreachable")

    protected = chain.use(AuthenticatorGuard([BearerTokenStrategy(Broken())])).protect(
        lambda ctx: "never"
    )
    response = await protected(RequestContext(headers={"Authorization": "Bearer t"}))
    assert response.status == 500


def test_requires_a_strategy():
    with pytest.raises(GuardConfigError):
        AuthenticatorGuard([])


def test_export_lists_strategies(verifier, api_keys):
    data = AuthenticatorGuard([BearerTokenStrategy(verifier), api_keys]).export()
    assert [s["type"] for s in data["config"]["strategies"]] == ["bearer", "api_key"]
