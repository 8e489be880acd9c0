"""Read raw tree datasets from JSON files."""

import json
from pathlib import Path
from typing import Any


def parse_dataset(data: Any) -> list[dict[str, Any]]:
    """Validate a decoded JSON document as a forest of records.

    Args:
        data: A single record (object) or a list of records.

    Returns:
        The records as a list.

    Raises:
        ValueError: If the document is not an object or a list of objects.
    """
    records = data if isinstance(data, list) else [data]
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            msg = f"Record {index} is a {type(record).__name__}, expected an object"
            raise ValueError(msg)
    return records


def load_dataset(path: Path) -> list[dict[str, Any]]:
    """Load a dataset from a JSON file."""
    if not path.exists():
        msg = f"Dataset file not found: {path}"
        raise FileNotFoundError(msg)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        msg = f"Invalid JSON in {path}: {e}"
        raise ValueError(msg) from e
    return parse_dataset(data)
