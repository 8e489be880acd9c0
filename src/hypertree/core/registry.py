"""Directory of live trees and their named operations."""

import inspect
from collections.abc import Callable
from typing import Any

from loguru import logger

from hypertree.core.tree.view import TreeView


class TreeHandlers:
    """Maps tree ids to their view and a name -> operation table.

    Owned by the caller (an application, a server context, a test), so
    independent directories never see each other's trees. Entries are upserted
    on every rebuild and must be removed with :meth:`unregister` when the tree
    is torn down.
    """

    def __init__(self) -> None:
        self._trees: dict[str, TreeView] = {}
        self._handlers: dict[str, dict[str, Callable[..., Any]]] = {}

    def __contains__(self, tree_id: object) -> bool:
        return tree_id in self._trees

    def tree_ids(self) -> list[str]:
        return sorted(self._trees)

    def register(self, tree_id: str, view: TreeView) -> "TreeHandlers":
        """Insert or replace the view for ``tree_id``."""
        self._trees[tree_id] = view
        self._handlers.setdefault(tree_id, {})
        return self

    def register_handler(self, tree_id: str, name: str, fn: Callable[..., Any]) -> "TreeHandlers":
        """Insert or replace the operation ``name`` for ``tree_id``."""
        self._handlers.setdefault(tree_id, {})[name] = fn
        return self

    def unregister(self, tree_id: str) -> None:
        self._trees.pop(tree_id, None)
        self._handlers.pop(tree_id, None)

    def lookup(self, tree_id: str) -> TreeView | None:
        return self._trees.get(tree_id)

    def get_handler(self, tree_id: str, name: str) -> Callable[..., Any] | None:
        return self._handlers.get(tree_id, {}).get(name)

    def invoke(self, tree_id: str, name: str, *args: Any, **kwargs: Any) -> Any:
        """Call a registered operation, or do nothing when it is unknown.

        Async operations return their coroutine; use :meth:`ainvoke` to await it.
        """
        handler = self.get_handler(tree_id, name)
        if handler is None:
            logger.debug("No handler {!r} for tree {!r}", name, tree_id)
            return None
        return handler(*args, **kwargs)

    async def ainvoke(self, tree_id: str, name: str, *args: Any, **kwargs: Any) -> Any:
        """Like :meth:`invoke`, awaiting the result when it is awaitable."""
        result = self.invoke(tree_id, name, *args, **kwargs)
        if inspect.isawaitable(result):
            return await result
        return result
