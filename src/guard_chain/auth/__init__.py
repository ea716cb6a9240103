"""Authentication strategies, token verifiers and the verification cache."""

from guard_chain.auth.cache import VerificationCache
from guard_chain.auth.strategies import (
    ApiKeyStrategy,
    AuthStrategy,
    BearerTokenStrategy,
    SessionCookieStrategy,
)
from guard_chain.auth.verifiers import (
    IntrospectionVerifier,
    JwtVerifier,
    TokenVerifier,
    principal_from_claims,
)

__all__ = [
    "ApiKeyStrategy",
    "AuthStrategy",
    "BearerTokenStrategy",
    "IntrospectionVerifier",
    "JwtVerifier",
    "SessionCookieStrategy",
    "TokenVerifier",
    "VerificationCache",
    "principal_from_claims",
]
