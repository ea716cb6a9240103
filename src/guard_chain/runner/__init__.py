# Copyright (c) 2024 OpenMined
# SPDX-License-Identifier: Apache-2.0
"""Runner submodule for executing one request through a configured chain.

Usage:
    python -m guard_chain.runner < input.json > output.json

Exports:
    Executor: Builds the chain from configuration and runs the request
    GuardFactory: Creates guard instances from configuration
    RunnerInput: Input schema
    RunnerOutput: Output schema
"""

from .executor import ExecutionError, Executor
from .factory import GuardFactory, GuardFactoryError
from .handler import HandlerLoadError, load_handler
from .schema import (
    GuardConfigSchema,
    RequestDTO,
    RunnerInput,
    RunnerOutput,
    StoreConfigSchema,
)

__all__ = [
    "ExecutionError",
    "Executor",
    "GuardConfigSchema",
    "GuardFactory",
    "GuardFactoryError",
    "HandlerLoadError",
    "RequestDTO",
    "RunnerInput",
    "RunnerOutput",
    "StoreConfigSchema",
    "load_handler",
]
