# Copyright (c) 2024 OpenMined
# SPDX-License-Identifier: Apache-2.0
"""Dynamic loading of the business handler the chain protects.

A handler reference is a path to a Python file, optionally followed by
``:name`` to pick a callable other than ``handler``::

    /srv/app/items.py
    /srv/app/items.py:create_item
"""

from __future__ import annotations

import hashlib
import importlib.util
import logging
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any, cast

logger = logging.getLogger(__name__)

DEFAULT_ENTRYPOINT = "handler"


class HandlerLoadError(Exception):
    """Raised when handler cannot be loaded."""

    pass


def parse_reference(reference: str) -> tuple[Path, str]:
    """Split ``path[:name]`` into the file path and the callable name."""
    location, sep, name = reference.rpartition(":")
    # A bare path (or a Windows drive letter) has no entry point suffix
    if not sep or not name.isidentifier():
        return Path(reference), DEFAULT_ENTRYPOINT
    return Path(location), name


def module_name_for(path: Path) -> str:
    """Stable, per-file module name so several handlers can be loaded side by side."""
    digest = hashlib.sha1(str(path.resolve()).encode()).hexdigest()[:12]
    return f"guard_chain_handler_{path.stem}_{digest}"


def load_handler(handler_path: str, work_dir: str = "") -> Callable[..., Any]:
    """Import the referenced file and return its handler callable.

    The handler receives the :class:`~guard_chain.RequestContext` and may be
    sync or async.

    Args:
        handler_path: ``path/to/file.py`` or ``path/to/file.py:callable``
        work_dir: Directory added to sys.path so the handler can import siblings

    Raises:
        HandlerLoadError: If the file is missing, fails to import, or does not
            define the requested callable

    Example:
        create = load_handler("/srv/app/items.py:create_item", "/srv/app")
    """
    path, entrypoint = parse_reference(handler_path)

    if not path.is_file():
        raise HandlerLoadError(f"Handler file not found: {path}")
    if path.suffix != ".py":
        raise HandlerLoadError(f"Handler must be a .py file: {path}")

    if work_dir and work_dir not in sys.path:
        sys.path.insert(0, work_dir)

    module_name = module_name_for(path)
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise HandlerLoadError(f"Cannot create module spec: {path}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except SyntaxError as e:
        sys.modules.pop(module_name, None)
        raise HandlerLoadError(f"Syntax error in handler: {e}") from e
    except ImportError as e:
        sys.modules.pop(module_name, None)
        raise HandlerLoadError(f"Import error in handler: {e}") from e
    except Exception as e:
        sys.modules.pop(module_name, None)
        raise HandlerLoadError(f"Failed to load handler: {e}") from e

    handler = getattr(module, entrypoint, None)
    if handler is None:
        raise HandlerLoadError(f"Module must define a '{entrypoint}' function: {path}")
    if not callable(handler):
        raise HandlerLoadError(f"'{entrypoint}' must be callable: {path}")

    logger.debug("Loaded %s from %s", entrypoint, path)
    return cast(Callable[..., Any], handler)
