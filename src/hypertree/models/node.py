"""Domain models for hypertree: tree nodes and their rendered snapshots."""

import weakref
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any, Literal

from hypertree.config import PATH_SEPARATOR
from hypertree.protocols import ChildrenFetcher

InsertMode = Literal["first", "last", "replace"]
SiblingPosition = Literal["before", "after"]
DropType = Literal["before", "children", "after"]

NodeId = str | int


class TreeNode:
    """A single node wrapping one raw record plus its view state.

    ``parent`` is a weak back-reference: the owning tree (through its roots
    and each node's ``children``) keeps nodes alive, never the parent link.
    """

    def __init__(
        self,
        node_id: NodeId,
        data: Any,
        *,
        parent: "TreeNode | None" = None,
        opened: bool = False,
        fetch_children: ChildrenFetcher | None = None,
    ) -> None:
        self.id = node_id
        self.data = data
        self.children: list[TreeNode] = []
        self.opened = opened
        self.selected = False
        self.loading = False
        self.drag_container: DropType | None = None
        self.fetch_children = fetch_children
        self.depth = 0
        self.has_children = False
        self._parent: weakref.ref[TreeNode] | None = None
        self.parent = parent

    def __repr__(self) -> str:
        return f"TreeNode(id={self.id!r}, children={len(self.children)}, opened={self.opened})"

    @property
    def parent(self) -> "TreeNode | None":
        return self._parent() if self._parent is not None else None

    @parent.setter
    def parent(self, node: "TreeNode | None") -> None:
        self._parent = weakref.ref(node) if node is not None else None

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def is_leaf(self) -> bool:
        return not self.children and self.fetch_children is None

    def is_opened(self) -> bool:
        return self.opened

    def set_opened(self, opened: bool = True) -> None:
        self.opened = opened

    def set_selected(self, selected: bool = True) -> None:
        self.selected = selected

    def set_loading(self, loading: bool = True) -> None:
        self.loading = loading

    def set_drag_container(self, state: DropType | None) -> None:
        self.drag_container = state

    def get_data(self) -> Any:
        return self.data

    def set_data(self, data: Any) -> None:
        """Replace the payload; id and children are kept."""
        self.data = data

    def get_children(self) -> list["TreeNode"]:
        return self.children

    def set_children(
        self,
        children: Iterable["TreeNode"],
        insert_mode: InsertMode = "last",
        reset: bool = False,
    ) -> None:
        """Insert ``children`` under this node.

        Args:
            children: Nodes to insert, in order.
            insert_mode: "first" prepends, "last" appends, "replace" discards
                the current children.
            reset: Discard the current children regardless of insert_mode.
        """
        incoming = list(children)
        for child in incoming:
            child.parent = self

        if reset or insert_mode == "replace":
            self.children = incoming
        elif insert_mode == "first":
            self.children = incoming + self.children
        else:
            self.children = self.children + incoming

    def remove_child(self, node: "TreeNode") -> None:
        """Detach ``node`` from this node's children, if present."""
        remaining = [child for child in self.children if child is not node]
        if len(remaining) != len(self.children):
            self.children = remaining
            node.parent = None

    def ancestors(self) -> Iterator["TreeNode"]:
        """Yield the parent chain, nearest ancestor first."""
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    def path(self) -> str:
        """Return the ``/``-joined ids from the root down to this node."""
        chain = [self, *self.ancestors()]
        return PATH_SEPARATOR.join(str(node.id) for node in reversed(chain))

    def walk(self) -> Iterator["TreeNode"]:
        """Pre-order traversal of this node and its full subtree."""
        yield self
        for child in self.children:
            yield from child.walk()

    def contains(self, node: "TreeNode") -> bool:
        """Whether ``node`` is this node or one of its descendants."""
        return any(candidate is node for candidate in self.walk())

    def snapshot(self) -> "NodeSnapshot":
        return NodeSnapshot(
            id=self.id,
            depth=self.depth,
            opened=self.opened,
            selected=self.selected,
            loading=self.loading,
            drag_container=self.drag_container,
            has_children=self.has_children,
            is_leaf=self.is_leaf,
            data=self.data,
        )


NodeRef = TreeNode | str | int


@dataclass(frozen=True)
class NodeSnapshot:
    """One visible row of the flattened view."""

    id: NodeId
    depth: int
    opened: bool
    selected: bool
    loading: bool
    drag_container: DropType | None
    has_children: bool
    is_leaf: bool
    data: Any = None
