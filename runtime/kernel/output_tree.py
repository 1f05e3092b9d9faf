"""
Runtime Kernel — Output Tree

Arena of output nodes keyed by path. A path is the index sequence from the
root block, so the node at (0, 2) is the third child of the first top-level
block. The root block lives at path () and is never removed.

There are no parent/child object references: a block only lists the indices
of its children, and a child's parent is always path[:-1]. Removing a
subtree is a key sweep over the arena.

Only the run reconciler mutates the tree. The rendering layer reads it and
subscribes to node events:
  mounted    new node object at an empty path
  restamped  same node object, new run stamp (no remount)
  replaced   new node object at an occupied path (remount)
  removed    node object released
"""

from __future__ import annotations

import bisect
from collections.abc import Callable, Iterator
from typing import Any

from runtime.kernel.types import BlockNode, ElementNode, OutputNode, Path, parse_path, path_key

TreeListener = Callable[[str, Path, OutputNode], None]


class OutputTree:
    """Versioned output tree for one session."""

    def __init__(self) -> None:
        root = BlockNode(node_id=0, path=(), run_id=None, fingerprint="", layout={"type": "root"})
        self._nodes: dict[str, OutputNode] = {"": root}
        self._next_node_id = 1
        self._listeners: list[TreeListener] = []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def root(self) -> BlockNode:
        root = self._nodes[""]
        assert isinstance(root, BlockNode)
        return root

    def get(self, path: Path) -> OutputNode | None:
        return self._nodes.get(path_key(tuple(path)))

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, tuple):
            return False
        return path_key(path) in self._nodes

    def __len__(self) -> int:
        """Number of nodes, not counting the root."""
        return len(self._nodes) - 1

    def paths(self) -> list[Path]:
        """Every non-root path, in depth-first order."""
        return [node.path for node in self.iter_nodes()]

    def iter_nodes(self, path: Path = ()) -> Iterator[OutputNode]:
        """Depth-first walk below `path` (the node at `path` itself excluded)."""
        node = self.get(path)
        if not isinstance(node, BlockNode):
            return
        for index in list(node.children):
            child = self._nodes.get(path_key(path + (index,)))
            if child is None:
                continue
            yield child
            yield from self.iter_nodes(child.path)

    def items(self) -> list[tuple[Path, OutputNode]]:
        return [(parse_path(key), node) for key, node in self._nodes.items() if key]

    def widget_ids(self) -> set[str]:
        """Widget ids of every element currently in the tree."""
        return {
            node.widget_id
            for node in self._nodes.values()
            if isinstance(node, ElementNode) and node.widget_id is not None
        }

    def element_ids(self) -> set[str]:
        """
        Ids element state can be keyed by: every element's own "id" and its
        widget id. Elements without a widget (charts, maps) only have the former.
        """
        ids: set[str] = set()
        for node in self._nodes.values():
            if not isinstance(node, ElementNode):
                continue
            element_id = node.element.get("id")
            if isinstance(element_id, str) and element_id:
                ids.add(element_id)
            if node.widget_id is not None:
                ids.add(node.widget_id)
        return ids

    def enclosing_form(self, path: Path) -> str | None:
        """Form id of the nearest block at or above `path` that belongs to a form."""
        current: Path | None = tuple(path)
        while current is not None:
            node = self.get(current)
            if isinstance(node, BlockNode) and node.form_id:
                return node.form_id
            current = current[:-1] if current else None
        return None

    # ------------------------------------------------------------------
    # Mutation (reconciler only)
    # ------------------------------------------------------------------

    def next_node_id(self) -> int:
        node_id = self._next_node_id
        self._next_node_id += 1
        return node_id

    def put(self, node: OutputNode) -> str:
        """
        Insert `node` at its path. Returns "mounted" for an empty path and
        "replaced" when an existing node object was swapped out.

        The parent must already exist and be a block.
        """
        path = node.path
        key = path_key(path)
        parent = self._nodes[path_key(path[:-1])]
        assert isinstance(parent, BlockNode)

        existing = self._nodes.get(key)
        self._nodes[key] = node
        if path[-1] not in parent.children:
            bisect.insort(parent.children, path[-1])

        if existing is None:
            self._emit("mounted", path, node)
            return "mounted"
        self._emit("replaced", path, node)
        return "replaced"

    def restamp(self, path: Path, run_id: str) -> OutputNode:
        """Update the run stamp of the node at `path`, keeping the object."""
        node = self._nodes[path_key(path)]
        node.run_id = run_id
        self._emit("restamped", path, node)
        return node

    def remove_subtree(self, path: Path) -> list[Path]:
        """
        Remove the node at `path` and all its descendants.
        Removing the root removes every child but keeps the root itself.
        Returns the removed paths, deepest first.
        """
        path = tuple(path)
        node = self.get(path)
        if node is None:
            return []

        removed: list[Path] = []
        if isinstance(node, BlockNode):
            for index in list(node.children):
                removed.extend(self.remove_subtree(path + (index,)))

        if not path:
            return removed

        del self._nodes[path_key(path)]
        parent = self._nodes.get(path_key(path[:-1]))
        if isinstance(parent, BlockNode) and path[-1] in parent.children:
            parent.children.remove(path[-1])
        removed.append(path)
        self._emit("removed", path, node)
        return removed

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: TreeListener) -> Callable[[], None]:
        """Call `listener(change, path, node)` on every node event."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, change: str, path: Path, node: OutputNode) -> None:
        for listener in list(self._listeners):
            listener(change, path, node)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self, path: Path = ()) -> dict[str, Any]:
        """Nested dict view of the subtree at `path`, for debugging and replay output."""
        node = self.get(path)
        if node is None:
            return {}
        d = node.to_dict()
        if isinstance(node, BlockNode):
            d["children"] = [self.to_dict(child.path) for child in self._direct_children(node)]
        return d

    def _direct_children(self, node: BlockNode) -> list[OutputNode]:
        children = []
        for index in node.children:
            child = self._nodes.get(path_key(node.path + (index,)))
            if child is not None:
                children.append(child)
        return children
