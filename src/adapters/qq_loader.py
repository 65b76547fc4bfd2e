"""Load the QQ client factory named in config.json.

The QQ protocol client is an external collaborator. Deployments point
qq.client_factory at an async callable "package.module:attribute" that
logs in with the given credentials and returns an object implementing
core.ports.QQClientPort.
"""

from __future__ import annotations

import importlib
import logging

from core.ports import QQClientFactory

LOGGER = logging.getLogger(__name__)


def load_qq_factory(path: str) -> QQClientFactory:
    """Import and return the factory named by path."""

    module_name, sep, attribute = (path or "").partition(":")
    # Fail fast on a malformed path to avoid an ambiguous AttributeError later.
    if not sep or not module_name or not attribute:
        raise RuntimeError(f"qq.client_factory must look like 'module:callable', got {path!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise RuntimeError(f"Cannot import QQ client module {module_name}: {e}") from e
    try:
        factory = getattr(module, attribute)
    except AttributeError as e:
        raise RuntimeError(f"{module_name} has no attribute {attribute}") from e
    if not callable(factory):
        raise RuntimeError(f"qq.client_factory {path} is not callable")

    LOGGER.info("Using QQ client factory %s", path)
    return factory
