# Copyright (c) 2024 OpenMined
# SPDX-License-Identifier: Apache-2.0
"""Executor for running one request through a configured guard chain.

Orchestrates the full execution flow:
1. Create stores from configuration
2. Build guards with GuardFactory
3. Load the user handler
4. Run the request through GuardChain
5. Return the recorded response as structured output
"""

from __future__ import annotations

import logging
from typing import Any

from guard_chain import GuardChain, RequestContext, Response
from guard_chain.observer import Observer
from guard_chain.settings import GuardChainSettings
from guard_chain.stores import (
    CacheStore,
    CounterStore,
    InMemoryCacheStore,
    InMemoryCounterStore,
    SQLiteCacheStore,
    SQLiteCounterStore,
)

from .factory import GuardFactory, GuardFactoryError
from .handler import HandlerLoadError, load_handler
from .schema import RunnerInput, RunnerOutput, StoreConfigSchema

logger = logging.getLogger(__name__)


class ExecutionError(Exception):
    """Raised when execution fails."""

    pass


class Executor:
    """Executes one request with guard enforcement.

    Responsibilities:
    - Create stores from configuration
    - Build the GuardChain from guard configurations
    - Run guards -> handler -> settle
    - Translate the recorded response to the output schema

    Pass stores to the constructor to override store creation (useful for
    testing, or to keep rate-limit state across several executions).

    Example:
        executor = Executor()
        output = await executor.execute(input_data)

        # Shared in-memory state across calls:
        executor = Executor(counter_store=InMemoryCounterStore())
    """

    def __init__(
        self,
        counter_store: CounterStore | None = None,
        cache_store: CacheStore | None = None,
        *,
        settings: GuardChainSettings | None = None,
        observer: Observer | None = None,
    ) -> None:
        self._counter_store = counter_store
        self._cache_store = cache_store
        self._settings = settings or GuardChainSettings()
        self._observer = observer

    async def execute(self, input_data: RunnerInput) -> RunnerOutput:
        """Execute the request and always return a RunnerOutput.

        Guard denials are ordinary responses (status >= 400).  Configuration
        and loading problems are reported through ``error_type``.
        """
        try:
            return await self._execute_internal(input_data)
        except GuardFactoryError as e:
            return RunnerOutput(success=False, error=str(e), error_type="GuardFactoryError")
        except HandlerLoadError as e:
            return RunnerOutput(success=False, error=str(e), error_type="HandlerLoadError")
        except ExecutionError as e:
            return RunnerOutput(success=False, error=str(e), error_type="ExecutionError")
        except Exception as e:
            logger.exception("Runner execution failed")
            return RunnerOutput(success=False, error=str(e), error_type=type(e).__name__)

    async def _execute_internal(self, input_data: RunnerInput) -> RunnerOutput:
        settings = self._settings
        if input_data.environment is not None:
            settings = settings.model_copy(update={"environment": input_data.environment})

        counter_store, cache_store, owned = self._create_stores(input_data.store)
        try:
            factory = GuardFactory(
                counter_store=counter_store, cache_store=cache_store, settings=settings
            )
            guards = factory.create_all(input_data.guards)
            handler = load_handler(input_data.handler_path, input_data.work_dir)

            chain = GuardChain(guards, observer=self._observer, settings=settings)
            context = RequestContext(**input_data.request.model_dump())
            response = Response()
            await chain.run(context, response, handler)
            return self._to_output(response)
        finally:
            for store in owned:
                await store.close()

    def _create_stores(
        self, config: StoreConfigSchema
    ) -> tuple[CounterStore, CacheStore, list[Any]]:
        """Create the counter and cache stores, honouring injected ones.

        Returns the stores plus the ones this executor owns and must close.
        """
        owned: list[Any] = []
        counter_store = self._counter_store
        cache_store = self._cache_store

        if config.type == "sqlite":
            if not config.path:
                raise ExecutionError("SQLite store requires 'path' configuration")
            if counter_store is None:
                counter_store = SQLiteCounterStore(config.path)
                owned.append(counter_store)
            if cache_store is None:
                cache_store = SQLiteCacheStore(config.path)
                owned.append(cache_store)
        elif config.type == "redis":
            if not config.url:
                raise ExecutionError("Redis store requires 'url' configuration")
            from guard_chain.stores.redis_store import RedisCacheStore, RedisCounterStore

            if counter_store is None:
                counter_store = RedisCounterStore.from_url(config.url)
                owned.append(counter_store)
            if cache_store is None:
                cache_store = RedisCacheStore.from_url(config.url)
                owned.append(cache_store)

        return (
            counter_store or InMemoryCounterStore(),
            cache_store or InMemoryCacheStore(),
            owned,
        )

    def _to_output(self, response: Response) -> RunnerOutput:
        success = response.status < 400
        output = RunnerOutput(
            success=success,
            status=response.status,
            headers=dict(response.headers),
            body=response.body,
        )
        if not success and isinstance(response.body, dict):
            output.error = str(response.body.get("error", ""))
            output.error_type = str(response.body.get("code", ""))
        return output
