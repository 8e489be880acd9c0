"""Mutation engine: the operations a renderer or a remote client drives."""

import asyncio
import inspect
from collections.abc import Callable, Iterable
from typing import Any, get_args

from loguru import logger

from hypertree.config import PATH_SEPARATOR, TreeOptions
from hypertree.core.registry import TreeHandlers
from hypertree.core.tree.hashing import DataHasher, data_hash, normalize_dataset
from hypertree.core.tree.view import TreeView
from hypertree.models.node import DropType, InsertMode, NodeId, NodeRef, SiblingPosition, TreeNode
from hypertree.protocols import ChangeListener, ErrorChannel

HANDLER_NAMES = (
    "rerender",
    "set_open",
    "set_open_by_path",
    "set_loading",
    "set_selected",
    "set_selected_by_path",
    "set_raw_children",
    "set_children",
    "set_siblings",
    "set_node_data",
    "get_node_data",
    "move",
)


def split_path(path: str) -> list[str]:
    """Split a ``/``-joined path into its non-empty id segments."""
    return [segment for segment in path.split(PATH_SEPARATOR) if segment]


class TreeState:
    """Drives one :class:`TreeView` through its mutation operations.

    Every operation accepts a node or an id. Ids that do not resolve are
    ignored: a caller may be racing a data refresh, and a missing node is not
    an error. After each operation the view is re-derived and change
    listeners are notified.
    """

    def __init__(
        self,
        tree_id: str,
        data: Any,
        options: TreeOptions | None = None,
        *,
        handlers: TreeHandlers | None = None,
        on_error: ErrorChannel | None = None,
        hasher: DataHasher = data_hash,
    ) -> None:
        self.id = tree_id
        self.options = options or TreeOptions()
        self.handlers = handlers
        self.on_error = on_error
        self.hasher = hasher
        self.revision = 0
        self.dragging = False
        self.drop_node_id: NodeId | None = None
        self.drop_type: DropType | None = None
        self._listeners: list[ChangeListener] = []

        self._data = normalize_dataset(data)
        self._data_hash = hasher(self._data)
        self.view = TreeView(tree_id, self._data, self.options)
        self._register()

    def __repr__(self) -> str:
        return f"TreeState(id={self.id!r}, revision={self.revision})"

    # --- Registry and change signalling ---

    def _register(self) -> None:
        if self.handlers is None:
            return
        self.handlers.register(self.id, self.view)
        for name in HANDLER_NAMES:
            self.handlers.register_handler(self.id, name, getattr(self, name))

    def dispose(self) -> None:
        """Remove this tree from its directory."""
        if self.handlers is not None:
            self.handlers.unregister(self.id)
        self._listeners.clear()

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Call ``listener`` on every change; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def rerender(self) -> None:
        """Signal listeners that the view should be repainted."""
        self.revision += 1
        for listener in list(self._listeners):
            listener()

    def _commit(self, rebuild_index: bool = True) -> None:
        self.view.enhance(rebuild_index)
        self.rerender()

    # --- Dataset ---

    @property
    def flattened(self) -> list[TreeNode]:
        return self.view.flattened

    def resolve(self, ref: NodeRef) -> TreeNode | None:
        node = self.view.resolve(ref)
        if node is None:
            logger.debug("Tree {}: node {!r} not found", self.id, ref)
        return node

    def set_data(self, data: Any) -> bool:
        """Rebuild the graph if ``data`` differs in content from the current dataset.

        View state is not carried over to the rebuilt nodes.

        Returns:
            True when the graph was rebuilt.
        """
        records = normalize_dataset(data)
        digest = self.hasher(records)
        if digest == self._data_hash:
            return False

        self._data = records
        self._data_hash = digest
        self.view = TreeView(self.id, records, self.options)
        self._register()
        logger.debug("Tree {} rebuilt from new data ({} nodes)", self.id, self.view.node_count())
        self.rerender()
        return True

    # --- View flags ---

    def set_loading(self, ref: NodeRef, loading: bool = True) -> None:
        node = self.resolve(ref)
        if node is None:
            return
        node.set_loading(loading)
        self.rerender()

    def set_selected(self, ref: NodeRef, selected: bool = True) -> None:
        node = self.resolve(ref)
        if node is None:
            return
        if selected and not self.options.multiple_select:
            self.view.unselect_all()
        node.set_selected(selected)
        self.rerender()

    def set_drag_container(self, ref: NodeRef, state: DropType | None) -> None:
        node = self.resolve(ref)
        if node is None:
            return
        node.set_drag_container(state)
        self.rerender()

    def set_node_data(self, ref: NodeRef, data: Any) -> None:
        node = self.resolve(ref)
        if node is None:
            return
        node.set_data(data)
        self._commit(rebuild_index=False)

    def get_node_data(self, ref: NodeRef) -> Any:
        node = self.resolve(ref)
        return node.get_data() if node is not None else None

    # --- Structure ---

    def set_children(
        self,
        parent: NodeRef,
        children: Iterable[TreeNode],
        insert_mode: InsertMode = "last",
        reset: bool = False,
    ) -> None:
        node = self.resolve(parent)
        if node is None:
            return
        node.set_children(children, insert_mode, reset)
        # New ids may have arrived with the children.
        self._commit(rebuild_index=True)

    def set_raw_children(
        self,
        parent: NodeRef,
        raw_children: Iterable[Any],
        insert_mode: InsertMode = "last",
        reset: bool = False,
    ) -> None:
        node = self.resolve(parent)
        if node is None:
            return
        self.set_children(node, self.view.static_enhance(raw_children, node), insert_mode, reset)

    def set_siblings(self, ref: NodeRef, siblings: Iterable[TreeNode], position: SiblingPosition) -> None:
        """Insert ``siblings`` right before or after ``ref``."""
        target = self.resolve(ref)
        if target is None:
            return
        incoming = list(siblings)
        parent = target.parent

        if parent is not None:
            current = list(parent.get_children())
            index = next((i for i, child in enumerate(current) if child is target), None)
            if index is None:
                return
            start = index if position == "before" else index + 1
            current[start:start] = incoming
            parent.set_children(current, "first", reset=True)
        else:
            index = next((i for i, root in enumerate(self.view.roots) if root is target), None)
            if index is None:
                return
            for sibling in incoming:
                sibling.parent = None
            start = index if position == "before" else index + 1
            self.view.roots[start:start] = incoming

        self._commit(rebuild_index=True)

    # --- Opening ---

    async def set_open(self, ref: NodeRef) -> None:
        """Toggle a node, fetching its children first when it loads lazily.

        A lazy node that is closed goes closed -> loading -> opened, or back to
        closed if the fetch fails. The failure is logged and handed to
        ``on_error``; it is not retried. A cancelled fetch also leaves the node
        closed. Calls made while the fetch is still running are ignored, so a
        node never has two fetches in flight.
        """
        node = self.resolve(ref)
        if node is None:
            return

        if node.fetch_children is None or node.is_opened():
            node.set_opened(not node.is_opened())
            self._commit(rebuild_index=False)
            return

        if node.loading:
            logger.debug("Tree {}: children of {!r} already loading", self.id, node.id)
            return

        self.set_loading(node, True)
        try:
            result = node.fetch_children(node)
            fetched = await result if inspect.isawaitable(result) else result
        except asyncio.CancelledError:
            logger.debug("Tree {}: fetch of {!r} cancelled", self.id, node.id)
            node.set_loading(False)
            node.set_opened(False)
            self._commit(rebuild_index=False)
            raise
        except Exception as e:
            logger.exception("Tree {}: failed to fetch children of {!r}", self.id, node.id)
            node.set_loading(False)
            node.set_opened(False)
            self._commit(rebuild_index=False)
            if self.on_error is not None:
                self.on_error(node, e)
            return

        node.set_loading(False)
        node.set_opened(True)
        self.set_raw_children(node, fetched or [], "last", reset=True)

    async def _ensure_open(self, ref: NodeRef) -> None:
        node = self.resolve(ref)
        if node is None or node.is_opened():
            return
        await self.set_open(node)

    async def set_open_by_path(self, path: str) -> None:
        """Open every node along ``path``, one segment at a time."""
        for segment in split_path(path):
            await self._ensure_open(segment)

    async def set_selected_by_path(self, path: str, select_all: bool = False) -> None:
        """Open the ancestors named by ``path`` and select its last segment.

        With ``select_all`` every segment is selected in turn; unless multiple
        selection is enabled only the last one stays selected.
        """
        segments = split_path(path)
        if not segments:
            return
        await self.set_open_by_path(PATH_SEPARATOR.join(segments[:-1]))
        targets = segments if select_all else segments[-1:]
        for segment in targets:
            self.set_selected(segment, True)

    # --- Drag and drop ---

    def drag_start(self) -> None:
        self.dragging = True

    def drag_enter(self, ref: NodeRef, drop_type: DropType | None) -> None:
        node = self.resolve(ref)
        if node is None:
            return
        self.set_drag_container(node, drop_type)
        self.drop_node_id = node.id
        self.drop_type = drop_type

    def drag_leave(self, ref: NodeRef) -> None:
        node = self.resolve(ref)
        if node is None:
            return
        if str(node.id) != str(self.drop_node_id):
            self.set_drag_container(node, None)

    def drop(self, source: NodeRef) -> None:
        """Apply the pending drop target to ``source`` and reset the drag state."""
        self.dragging = False
        target_id, drop_type = self.drop_node_id, self.drop_type
        if target_id is None:
            return
        self.set_drag_container(target_id, None)
        self.drop_node_id = None
        self.drop_type = None
        if drop_type is not None:
            self.move(source, target_id, drop_type)

    def move(self, source: NodeRef, target: NodeRef, position: DropType) -> None:
        """Reparent ``source`` into or next to ``target``.

        Moving a node onto itself or into its own subtree does nothing.
        """
        if position not in get_args(DropType):
            logger.debug("Tree {}: unknown move position {!r}", self.id, position)
            return
        source_node = self.resolve(source)
        target_node = self.resolve(target)
        if source_node is None or target_node is None:
            return
        if source_node.contains(target_node):
            logger.debug("Tree {}: refusing to move {!r} into itself", self.id, source_node.id)
            return

        parent = source_node.parent
        if parent is not None:
            parent.remove_child(source_node)
        else:
            self.view.roots = [root for root in self.view.roots if root is not source_node]

        if position == "children":
            target_node.set_children([source_node], "last")
            self._commit(rebuild_index=True)
        else:
            self.set_siblings(target_node, [source_node], position)
        logger.debug("Tree {}: moved {!r} {} {!r}", self.id, source_node.id, position, target_node.id)
