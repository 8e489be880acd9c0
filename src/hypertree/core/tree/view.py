"""Tree model: builds the node graph and derives the flattened view."""

from collections.abc import Iterable, Iterator, Mapping
from functools import cmp_to_key
from typing import Any

from loguru import logger

from hypertree.config import TreeOptions
from hypertree.core.tree.hashing import normalize_dataset
from hypertree.models.node import NodeId, NodeRef, NodeSnapshot, TreeNode


class TreeView:
    """Owner of one tree's root forest, id index and flattened view.

    ``flattened`` is derived state: it is rebuilt by :meth:`enhance` and
    should only be read by callers. Structural edits go through ``roots`` and
    the nodes themselves, followed by a call to :meth:`enhance`.
    """

    def __init__(self, tree_id: str, data: Any, options: TreeOptions | None = None) -> None:
        self.id = tree_id
        self.options = options or TreeOptions()
        self.flattened: list[TreeNode] = []
        self._index: dict[str, TreeNode] = {}
        self.roots: list[TreeNode] = [
            self._wrap(record, index, None) for index, record in enumerate(normalize_dataset(data))
        ]
        self.enhance()

    def __repr__(self) -> str:
        return f"TreeView(id={self.id!r}, roots={len(self.roots)}, visible={len(self.flattened)})"

    # --- Wrapping raw records ---

    def _node_id(self, record: Any, index: int, parent: TreeNode | None) -> NodeId:
        if isinstance(record, Mapping):
            value = record.get(self.options.id_key)
            if value is not None:
                return value  # type: ignore[no-any-return]
        prefix = "" if parent is None else f"{parent.id}-"
        # Positions can already be taken by nodes wrapped earlier.
        while f"{prefix}{index}" in self._index:
            index += 1
        return f"{prefix}{index}"

    def _wrap(self, record: Any, index: int, parent: TreeNode | None) -> TreeNode:
        fetch = None
        raw_children: Iterable[Any] = ()
        if isinstance(record, Mapping):
            candidate = record.get(self.options.fetch_key)
            fetch = candidate if callable(candidate) else None
            raw_children = record.get(self.options.children_key) or ()

        opened = self.options.opens_all or (parent is None and self.options.opens_root(index))
        node = TreeNode(
            self._node_id(record, index, parent),
            record,
            parent=parent,
            opened=opened,
            fetch_children=fetch,
        )
        node.children = [self._wrap(child, i, node) for i, child in enumerate(raw_children)]
        return node

    def static_enhance(self, raw_children: Iterable[Any], parent: NodeRef | None = None) -> list[TreeNode]:
        """Wrap raw records into nodes linked to ``parent``.

        The flattened view and the index are left alone; the caller inserts the
        nodes and re-enhances. Records without an id are numbered after the
        existing siblings.
        """
        owner = self.resolve(parent) if parent is not None else None
        start = len(owner.children) if owner is not None else len(self.roots)
        return [self._wrap(record, index, owner) for index, record in enumerate(raw_children, start)]

    # --- Lookup ---

    def resolve(self, ref: NodeRef) -> TreeNode | None:
        """Resolve a node or an id to a live node, ``None`` when unknown."""
        if isinstance(ref, TreeNode):
            return ref
        return self.get_node_by_id(ref)

    def get_node_by_id(self, node_id: NodeId) -> TreeNode | None:
        return self._index.get(str(node_id))

    def walk(self) -> Iterator[TreeNode]:
        """Pre-order traversal of the full graph, closed branches included."""
        for root in self.roots:
            yield from root.walk()

    def node_count(self) -> int:
        return sum(1 for _ in self.walk())

    def unselect_all(self) -> None:
        for node in self.walk():
            node.selected = False

    # --- Projection ---

    def _scan(self, node: TreeNode, parent: TreeNode | None, rebuild_index: bool, visible: set[int]) -> bool:
        """Relink, index and test one subtree; return whether anything in it matches."""
        node.parent = parent
        if rebuild_index:
            self._index[str(node.id)] = node

        predicate = self.options.filter
        matched = predicate is None or bool(predicate(node.data))
        for child in node.children:
            if self._scan(child, node, rebuild_index, visible):
                matched = True
        if matched:
            visible.add(id(node))
        return matched

    def enhance(self, rebuild_index: bool = True) -> list[TreeNode]:
        """Recompute the flattened view from ``roots``.

        A node is visible when it, or any descendant, passes the filter. Visible
        nodes are emitted in pre-order with siblings sorted by the configured
        comparator, and children are only descended into for opened nodes.

        Args:
            rebuild_index: Also rebuild the id index over the full graph.

        Returns:
            The new flattened view.
        """
        if rebuild_index:
            self._index = {}

        visible: set[int] = set()
        for root in self.roots:
            self._scan(root, None, rebuild_index, visible)

        sort_key = cmp_to_key(self.options.sort)
        flattened: list[TreeNode] = []

        def visit(nodes: list[TreeNode], depth: int) -> None:
            for node in sorted(nodes, key=sort_key):
                if id(node) not in visible:
                    continue
                node.depth = depth
                node.has_children = bool(node.children)
                flattened.append(node)
                if node.opened:
                    visit(node.children, depth + 1)

        visit(self.roots, 0)
        self.flattened = flattened
        logger.debug(
            "Enhanced tree {}: {} visible, index {}",
            self.id, len(flattened), "rebuilt" if rebuild_index else "kept",
        )
        return flattened

    def snapshot(self) -> list[NodeSnapshot]:
        """Return the flattened view as immutable rows."""
        return [node.snapshot() for node in self.flattened]
