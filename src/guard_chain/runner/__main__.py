# Copyright (c) 2024 OpenMined
# SPDX-License-Identifier: Apache-2.0
"""Entry point for the guard-chain runner.

Usage:
    python -m guard_chain.runner < input.json > output.json

The runner reads JSON input from stdin, runs the request through the
configured guard chain and handler, and writes JSON output to stdout.
Logs go to stderr.

Exit codes:
    0: Response status below 400
    1: Failure (error details in JSON output)
"""

from __future__ import annotations

import asyncio
import logging
import sys

from guard_chain.settings import GuardChainSettings

from .executor import Executor
from .schema import RunnerInput, RunnerOutput


def main() -> int:
    """Main entry point.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    settings = GuardChainSettings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        input_data = RunnerInput.model_validate_json(sys.stdin.read())
        output = asyncio.run(Executor(settings=settings).execute(input_data))
        print(output.model_dump_json())
        return 0 if output.success else 1

    except Exception as e:
        # Always emit valid JSON, even for unreadable input
        error_output = RunnerOutput(
            success=False,
            error=str(e),
            error_type=type(e).__name__,
        )
        print(error_output.model_dump_json())
        return 1


if __name__ == "__main__":
    sys.exit(main())
