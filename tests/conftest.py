# SPDX-License-Identifier: Apache-2.0
"""
Pytest plugin: pluggable vector store fixture for the vectorgate suite.

Contract tests in tests/vector run against whatever store class
VECTORGATE_ADAPTER names (default: the in-memory reference store):

    VECTORGATE_ADAPTER="vectorgate.pgvector_adapter:PgVectorStore" pytest tests/vector

Stores that need connection details read them from their own environment
variables (PGVECTOR_DSN, QDRANT_URL, CLOUDFLARE_ACCOUNT_ID, ...).
"""

from __future__ import annotations

import importlib
import inspect
import os
import uuid
from typing import Optional

import pytest

# Environment variable for fully-qualified store class:
#   VECTORGATE_ADAPTER="package.module:ClassName"
ADAPTER_ENV = "VECTORGATE_ADAPTER"
DEFAULT_ADAPTER = "vectorgate.memory_adapter:InMemoryVectorStore"

# NOTE:
#   The class cache is process-local; pytest builds fixtures on one thread
#   per worker process, so no locking is needed.
_ADAPTER_CLASS: Optional[type] = None
_ADAPTER_SPEC_USED: Optional[str] = None


class AdapterValidationError(RuntimeError):
    """Custom exception for adapter validation failures."""
    pass


def _validate_adapter_class(cls: type) -> None:
    if not inspect.isclass(cls):
        raise AdapterValidationError(
            f"Adapter spec must resolve to a class; got {type(cls)!r} from {cls!r}."
        )
    for method in ("create_index", "upsert", "query", "describe_index", "list_indexes", "delete_index"):
        if not callable(getattr(cls, method, None)):
            raise AdapterValidationError(f"Adapter class {cls.__name__} has no '{method}' method.")


def _load_class_from_spec(spec: str) -> type:
    """
    Load and validate a class from a 'package.module:ClassName' string.
    """
    module_name, _, class_name = spec.partition(":")
    if not module_name or not class_name:
        raise AdapterValidationError(
            f"Invalid adapter spec '{spec}'. Expected 'package.module:ClassName'."
        )

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise AdapterValidationError(
            f"Failed to import adapter module '{module_name}' for spec '{spec}'."
        ) from exc

    try:
        cls = getattr(module, class_name)
    except AttributeError as exc:
        raise AdapterValidationError(
            f"Adapter class '{class_name}' not found in module '{module_name}' "
            f"for spec '{spec}'."
        ) from exc

    _validate_adapter_class(cls)
    return cls


def _get_adapter_class() -> type:
    """
    Resolve, validate, and cache the adapter class.
    """
    global _ADAPTER_CLASS, _ADAPTER_SPEC_USED

    if _ADAPTER_CLASS is not None:
        return _ADAPTER_CLASS

    spec = os.getenv(ADAPTER_ENV, DEFAULT_ADAPTER)
    _ADAPTER_SPEC_USED = spec
    try:
        _ADAPTER_CLASS = _load_class_from_spec(spec)
    except AdapterValidationError:
        _ADAPTER_CLASS = None
        _ADAPTER_SPEC_USED = None
        raise
    return _ADAPTER_CLASS


@pytest.fixture(scope="session")
def adapter():
    """
    Session-wide store instance resolved from VECTORGATE_ADAPTER.
    """
    Adapter = _get_adapter_class()
    try:
        return Adapter()
    except TypeError as exc:
        raise AdapterValidationError(
            f"Failed to instantiate adapter '{_ADAPTER_SPEC_USED}' without arguments. "
            f"Configure it through its environment variables instead."
        ) from exc


@pytest.fixture
def index_name() -> str:
    """A fresh index name, valid on every backend (lowercase letters and digits)."""
    return f"vg{uuid.uuid4().hex[:12]}"
