"""Protocols for the collaborators a tree talks to."""

from collections.abc import Awaitable
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from hypertree.models.node import TreeNode


@runtime_checkable
class ChildrenFetcher(Protocol):
    """Lazy children capability attached to a raw record."""

    def __call__(self, node: "TreeNode") -> Awaitable[list[Any]] | list[Any]:
        """Return the raw child records of ``node``."""
        ...


@runtime_checkable
class ErrorChannel(Protocol):
    """Receives failures of lazy children fetches."""

    def __call__(self, node: "TreeNode", error: BaseException) -> None:
        """Report ``error`` raised while fetching children of ``node``."""
        ...


@runtime_checkable
class ChangeListener(Protocol):
    """Notified whenever the tree should be repainted."""

    def __call__(self) -> None:
        """Handle a change signal."""
        ...
