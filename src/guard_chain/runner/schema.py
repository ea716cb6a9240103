# Copyright (c) 2024 OpenMined
# SPDX-License-Identifier: Apache-2.0
"""Data transfer objects for runner input/output.

These Pydantic models define the JSON contract of
``python -m guard_chain.runner``: one request in, one response out.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class GuardConfigSchema(BaseModel):
    """Single guard configuration.

    Attributes:
        name: Unique identifier for this guard instance
        type: Guard type (e.g., "rate_limit", "validator")
        config: Type-specific configuration parameters
    """

    name: str
    type: str
    config: dict[str, Any] = Field(default_factory=dict)


class StoreConfigSchema(BaseModel):
    """Store configuration for rate-limit counters and cached responses.

    Attributes:
        type: Store type ("memory", "sqlite" or "redis")
        path: Path to SQLite database file (for sqlite type)
        url: Connection URL (for redis type)
    """

    type: Literal["memory", "sqlite", "redis"] = "memory"
    path: str = ""
    url: str = ""


class RequestDTO(BaseModel):
    """The request to run through the chain.

    Attributes:
        method: HTTP method
        path: Request path without the query string
        headers: Request headers
        query: Parsed query-string parameters
        params: Route parameters
        body: Parsed request body
        cookies: Parsed cookies
        client: Source address of the caller
    """

    method: str = "GET"
    path: str = "/"
    headers: dict[str, str] = Field(default_factory=dict)
    query: dict[str, Any] = Field(default_factory=dict)
    params: dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    cookies: dict[str, str] = Field(default_factory=dict)
    client: str = ""


class RunnerInput(BaseModel):
    """Complete input read from stdin.

    Attributes:
        guards: Guard configurations, in execution order
        store: Store configuration shared by stateful guards
        request: The request to execute
        handler_path: Handler file, optionally suffixed with ``:callable``
        work_dir: Working directory for the handler
        environment: Overrides ``GUARD_CHAIN_ENVIRONMENT`` when set
    """

    guards: list[GuardConfigSchema] = Field(default_factory=list)
    store: StoreConfigSchema = Field(default_factory=StoreConfigSchema)
    request: RequestDTO = Field(default_factory=RequestDTO)
    handler_path: str
    work_dir: str = ""
    environment: Literal["development", "production"] | None = None


class RunnerOutput(BaseModel):
    """Complete output written to stdout.

    The runner always outputs valid JSON matching this schema,
    even on errors.

    Attributes:
        success: Whether the request completed with a status below 400
        status: Response status
        headers: Response headers
        body: Response body
        error: Error message (on failure)
        error_type: Error code or exception class name (on failure)
    """

    success: bool
    status: int = 500
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    error: str = ""
    error_type: str = ""
