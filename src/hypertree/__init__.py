"""Hierarchical data engine: nested records in, a flattened outline view out."""

from hypertree.config import TreeOptions
from hypertree.core.registry import TreeHandlers
from hypertree.core.state.engine import TreeState
from hypertree.core.tree.view import TreeView
from hypertree.models.node import NodeSnapshot, TreeNode

__all__ = ["NodeSnapshot", "TreeHandlers", "TreeNode", "TreeOptions", "TreeState", "TreeView"]
