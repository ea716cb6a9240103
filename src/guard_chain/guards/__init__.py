"""Built-in guard implementations."""

from guard_chain.guards.authenticator import AuthenticatorGuard
from guard_chain.guards.authorizer import AuthorizerGuard
from guard_chain.guards.base import Guard
from guard_chain.guards.cache import ResponseCacheGuard
from guard_chain.guards.custom import CustomGuard
from guard_chain.guards.rate_limit import RateLimitGuard, by_client, by_principal
from guard_chain.guards.tracer import TracerGuard
from guard_chain.guards.validator import ValidatorGuard
from guard_chain.result import GuardResult

__all__ = [
    "AuthenticatorGuard",
    "AuthorizerGuard",
    "CustomGuard",
    "Guard",
    "GuardResult",
    "RateLimitGuard",
    "ResponseCacheGuard",
    "TracerGuard",
    "ValidatorGuard",
    "by_client",
    "by_principal",
]
