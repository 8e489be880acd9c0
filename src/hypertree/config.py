"""Configuration constants and per-tree options for hypertree."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

# Record keys used when the caller does not configure them.
DEFAULT_ID_KEY: str = "id"
DEFAULT_CHILDREN_KEY: str = "children"
DEFAULT_FETCH_KEY: str = "get_children"

# Separator for path addressing, e.g. "a/b/c".
PATH_SEPARATOR: str = "/"

# MCP server environment.
DATA_FILE_ENV: str = "HYPERTREE_DATA_FILE"
TREE_ID_ENV: str = "HYPERTREE_TREE_ID"
DEFAULT_TREE_ID: str = "default"


def keep_order(_a: Any, _b: Any) -> int:
    """Default sort comparator: leaves sibling order untouched."""
    return 0


@dataclass(frozen=True)
class TreeOptions:
    """Immutable configuration of one tree instance."""

    id_key: str = DEFAULT_ID_KEY
    children_key: str = DEFAULT_CHILDREN_KEY
    fetch_key: str = DEFAULT_FETCH_KEY
    default_opened: bool | list[int] = False
    filter: Callable[[Any], bool] | None = None
    sort: Callable[[Any, Any], int] = keep_order
    multiple_select: bool = False

    def opens_root(self, index: int) -> bool:
        """Whether the root at ``index`` starts opened."""
        if isinstance(self.default_opened, bool):
            return self.default_opened
        return index in self.default_opened

    @property
    def opens_all(self) -> bool:
        return self.default_opened is True
