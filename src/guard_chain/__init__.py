"""guard_chain — a framework-agnostic request guard pipeline.

Guards run in registration order against a per-request context.  The
first failure stops the chain and goes to a single error handler; if
every guard passes, the business handler runs.
"""

from guard_chain.chain import GuardChain
from guard_chain.context import Principal, RequestContext
from guard_chain.errors import ErrorKind, GuardError
from guard_chain.exceptions import (
    CredentialError,
    GuardChainError,
    GuardConfigError,
    StoreError,
)
from guard_chain.handler import ErrorHandler
from guard_chain.observer import ChainEvent, LoggingObserver, NullObserver, Observer
from guard_chain.response import Response, ResponseSink, StoredResponse
from guard_chain.result import GuardResult
from guard_chain.settings import GuardChainSettings

__all__ = [
    "ChainEvent",
    "CredentialError",
    "ErrorHandler",
    "ErrorKind",
    "GuardChain",
    "GuardChainError",
    "GuardChainSettings",
    "GuardConfigError",
    "GuardError",
    "GuardResult",
    "LoggingObserver",
    "NullObserver",
    "Observer",
    "Principal",
    "RequestContext",
    "Response",
    "ResponseSink",
    "StoredResponse",
    "StoreError",
]
