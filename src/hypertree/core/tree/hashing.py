"""Deterministic content hashing of raw datasets."""

import hashlib
import json
from collections.abc import Callable
from typing import Any

DataHasher = Callable[[Any], str]


def _fallback(value: Any) -> str:
    # Fetch callables and other non-JSON values hash by qualified name.
    if callable(value):
        module = getattr(value, "__module__", "")
        name = getattr(value, "__qualname__", type(value).__qualname__)
        return f"<callable {module}.{name}>"
    return repr(value)


def data_hash(data: Any) -> str:
    """Return a structural hash of ``data``, independent of object identity."""
    payload = json.dumps(data, sort_keys=True, separators=(",", ":"), default=_fallback)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def normalize_dataset(data: Any) -> list[Any]:
    """Wrap a single record into a one-element forest."""
    if data is None:
        return []
    if isinstance(data, list):
        return data
    if isinstance(data, tuple):
        return list(data)
    return [data]
