# Copyright (c) 2024 OpenMined
# SPDX-License-Identifier: Apache-2.0
"""Guard factory for creating guard instances from configuration.

Uses the Registry pattern to map type strings to guard classes,
allowing extensibility without modifying factory code.
"""

from __future__ import annotations

from typing import Any, ClassVar

from guard_chain.auth import (
    ApiKeyStrategy,
    AuthStrategy,
    BearerTokenStrategy,
    IntrospectionVerifier,
    JwtVerifier,
    VerificationCache,
)
from guard_chain.context import Principal
from guard_chain.guards import (
    AuthenticatorGuard,
    AuthorizerGuard,
    Guard,
    RateLimitGuard,
    ResponseCacheGuard,
    TracerGuard,
    ValidatorGuard,
    by_client,
    by_principal,
)
from guard_chain.guards.cache import by_method_and_url, same_path, shared_by_method_and_url
from guard_chain.settings import GuardChainSettings
from guard_chain.stores import CacheStore, CounterStore, InMemoryCacheStore, InMemoryCounterStore

from .schema import GuardConfigSchema

RATE_LIMIT_KEYS = {"client": by_client, "principal": by_principal}


class GuardFactoryError(Exception):
    """Raised when guard creation fails."""

    pass


class GuardFactory:
    """Creates guard instances from configuration.

    Plain guard types are registered at class level and built as
    ``cls(name=..., **config)``; more can be added with :meth:`register`.

    Stateful and credential-bearing types (authenticator, rate_limit,
    cache, tracer) are handled specially: they are wired to the shared
    stores and settings held by the factory.

    Example:
        factory = GuardFactory(counter_store=InMemoryCounterStore())
        configs = [
            GuardConfigSchema(name="trace", type="tracer"),
            GuardConfigSchema(name="rate", type="rate_limit",
                              config={"max_requests": 10, "window_seconds": 60}),
        ]
        guards = factory.create_all(configs)
    """

    # Class-level registry mapping type strings to guard classes
    _registry: ClassVar[dict[str, type[Guard]]] = {
        "validator": ValidatorGuard,
        "authorizer": AuthorizerGuard,
    }

    # Built by dedicated methods because they need stores or settings
    _wired_types: ClassVar[set[str]] = {"authenticator", "rate_limit", "cache", "tracer"}

    def __init__(
        self,
        *,
        counter_store: CounterStore | None = None,
        cache_store: CacheStore | None = None,
        settings: GuardChainSettings | None = None,
    ) -> None:
        self._settings = settings or GuardChainSettings()
        self._counter_store = counter_store or InMemoryCounterStore()
        self._cache_store = cache_store or InMemoryCacheStore()
        self._instances: dict[str, Guard] = {}

    @classmethod
    def register(cls, type_name: str, guard_class: type[Guard]) -> None:
        """Register a custom guard type.

        Raises:
            ValueError: If guard_class._guard_type doesn't match type_name

        Example:
            GuardFactory.register("tenant", TenantGuard)
        """
        if type_name in cls._wired_types:
            raise ValueError(f"'{type_name}' is a built-in guard type and cannot be replaced")
        declared_type = getattr(guard_class, "_guard_type", "base")
        if declared_type not in ("base", type_name):
            raise ValueError(
                f"Guard {guard_class.__name__} has _guard_type='{declared_type}' "
                f"but is being registered as '{type_name}'"
            )
        cls._registry[type_name] = guard_class

    @classmethod
    def registered_types(cls) -> list[str]:
        """Return list of registered guard type names."""
        return sorted(set(cls._registry) | cls._wired_types)

    def create_all(self, configs: list[GuardConfigSchema]) -> list[Guard]:
        """Create all guards from configuration list, preserving order.

        Raises:
            GuardFactoryError: If a name repeats or creation fails
        """
        guards: list[Guard] = []

        for config in configs:
            if config.name in self._instances:
                raise GuardFactoryError(f"Duplicate guard name: '{config.name}'")
            try:
                guard = self._create_one(config)
            except GuardFactoryError:
                raise
            except Exception as e:
                raise GuardFactoryError(
                    f"Failed to create guard '{config.name}' of type '{config.type}': {e}"
                ) from e
            self._instances[config.name] = guard
            guards.append(guard)

        return guards

    def get_instance(self, name: str) -> Guard | None:
        return self._instances.get(name)

    def _create_one(self, config: GuardConfigSchema) -> Guard:
        if config.type in self._wired_types:
            builder = getattr(self, f"_create_{config.type}")
            return builder(config.name, dict(config.config))

        guard_class = self._registry.get(config.type)
        if not guard_class:
            available = ", ".join(self.registered_types())
            raise GuardFactoryError(
                f"Unknown guard type: '{config.type}'. Available types: {available}"
            )
        return guard_class(name=config.name, **config.config)  # type: ignore[call-arg]

    def _create_tracer(self, name: str, options: dict[str, Any]) -> Guard:
        options.setdefault("header", self._settings.trace_header)
        return TracerGuard(name=name, **options)

    def _create_rate_limit(self, name: str, options: dict[str, Any]) -> Guard:
        key_name = options.pop("key", "client")
        if key_name not in RATE_LIMIT_KEYS:
            raise GuardFactoryError(
                f"rate_limit guard '{name}' has unknown key '{key_name}'. "
                f"Available keys: {', '.join(RATE_LIMIT_KEYS)}"
            )
        return RateLimitGuard(
            name=name, store=self._counter_store, key=RATE_LIMIT_KEYS[key_name], **options
        )

    def _create_cache(self, name: str, options: dict[str, Any]) -> Guard:
        options.setdefault("ttl_seconds", self._settings.cache_ttl_seconds)
        invalidate = options.pop("invalidate_same_path", True)
        shared = options.pop("shared", False)
        return ResponseCacheGuard(
            name=name,
            store=self._cache_store,
            key=shared_by_method_and_url if shared else by_method_and_url,
            invalidates=same_path if invalidate else None,
            **options,
        )

    def _create_authenticator(self, name: str, options: dict[str, Any]) -> Guard:
        strategies: list[AuthStrategy] = []

        jwt_config = options.pop("jwt", None)
        if jwt_config:
            jwt_config = dict(jwt_config)
            secret = jwt_config.pop("secret", None)
            if not secret:
                raise GuardFactoryError(f"authenticator '{name}': 'jwt' requires 'secret'")
            strategies.append(BearerTokenStrategy(JwtVerifier(secret, **jwt_config)))

        introspection = options.pop("introspection", None)
        if introspection:
            if strategies:
                raise GuardFactoryError(
                    f"authenticator '{name}': configure either 'jwt' or 'introspection', not both"
                )
            strategies.append(BearerTokenStrategy(IntrospectionVerifier(**introspection)))

        api_keys = options.pop("api_keys", None)
        if api_keys:
            strategies.append(
                ApiKeyStrategy(
                    keys={key: _principal(record) for key, record in api_keys.items()},
                    header=options.pop("api_key_header", "X-API-Key"),
                    query_param=options.pop("api_key_query_param", None),
                )
            )

        if not strategies:
            raise GuardFactoryError(
                f"authenticator '{name}' requires at least one of 'jwt', "
                "'introspection' or 'api_keys'"
            )

        cache = None
        if options.pop("cache", True):
            cache = VerificationCache(
                ttl_seconds=self._settings.auth_cache_ttl_seconds,
                max_entries=self._settings.auth_cache_max_entries,
            )
        if options:
            raise GuardFactoryError(
                f"authenticator '{name}' got unknown options: {', '.join(sorted(options))}"
            )
        return AuthenticatorGuard(strategies, cache=cache, name=name)


def _principal(record: dict[str, Any] | str) -> Principal:
    """Build a principal from an ``api_keys`` entry (a record or a bare id)."""
    if isinstance(record, str):
        return Principal(id=record)
    return Principal(
        id=str(record["id"]),
        roles=frozenset(record.get("roles", ())),
        permissions=frozenset(record.get("permissions", ())),
        claims=dict(record),
    )
