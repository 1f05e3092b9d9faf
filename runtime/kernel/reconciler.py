"""
Runtime Kernel — Run Reconciler

Applies backend tree messages to the output tree:

  begin_run(run_id)                    run_id becomes the active run
  apply_delta(path, run_id, payload)   insert, replace or restamp one node
  finish_run(run_id)                   prune what the run did not visit,
                                       then sweep unseen widget state

Nothing is deleted before finish_run. Until then, nodes from the previous
run stay in the tree (the rendering layer can show them as stale), and a
delta whose payload matches the node already at its path only restamps the
node instead of replacing it, so the rendered widget is not remounted.

Every operation returns a TreeResult. Deltas for any run other than the
active one are rejected and leave the tree unchanged.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Sequence
from typing import Any

from runtime.kernel.output_tree import OutputTree
from runtime.kernel.types import (
    MALFORMED_DELTA,
    NO_ACTIVE_RUN,
    NODE_NOT_FOUND,
    PARENT_NOT_BLOCK,
    PARENT_NOT_FOUND,
    STALE_RUN_DELTA,
    STALE_RUN_FINISH,
    UNKNOWN_RUN,
    BlockNode,
    ElementNode,
    OutputNode,
    Path,
    TreeResult,
    path_key,
)
from runtime.kernel.widget_store import WidgetStateStore

# Run ids remembered for telling stale deltas from unknown ones
RUN_HISTORY_SIZE = 256


class RunReconciler:
    """Owns the run lifecycle for one session's output tree."""

    def __init__(self, tree: OutputTree, store: WidgetStateStore, *, sweep_widgets: bool = True) -> None:
        self.tree = tree
        self.store = store
        self.sweep_widgets = sweep_widgets

        self.active_run_id: str | None = None
        self.fragment_ids: list[str] = []
        self.running = False

        # Recently activated run ids, oldest first. Bounded: ids older than
        # RUN_HISTORY_SIZE runs report UNKNOWN_RUN instead of STALE_RUN_DELTA.
        self._seen_runs: dict[str, None] = {}
        self._touched: set[str] = set()

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def begin_run(self, run_id: str, fragment_ids: Iterable[str] | None = None) -> TreeResult:
        """
        Make `run_id` the active run. Deletes nothing.

        A begin_run arriving before the previous run finished simply
        abandons it; its nodes are pruned by the next successful finish_run.
        """
        if run_id == self.active_run_id:
            if not self.running:
                self.running = True
                self._touched = set()
            return TreeResult(accepted=True)

        if run_id in self._seen_runs:
            return TreeResult(
                accepted=False,
                reason=f"{STALE_RUN_DELTA}: run '{run_id}' started again after '{self.active_run_id}'",
            )

        self._remember_run(run_id)
        self.active_run_id = run_id
        self.fragment_ids = list(fragment_ids or [])
        self.running = True
        self._touched = set()
        return TreeResult(accepted=True)

    def _remember_run(self, run_id: str) -> None:
        self._seen_runs[run_id] = None
        while len(self._seen_runs) > RUN_HISTORY_SIZE:
            del self._seen_runs[next(iter(self._seen_runs))]

    def _check_run(self, run_id: str) -> str | None:
        if self.active_run_id is None:
            return f"{NO_ACTIVE_RUN}: no run has started"
        if run_id == self.active_run_id:
            return None
        if run_id in self._seen_runs:
            return f"{STALE_RUN_DELTA}: delta for '{run_id}' while '{self.active_run_id}' is active"
        return f"{UNKNOWN_RUN}: delta for '{run_id}' which never started"

    def apply_delta(
        self,
        path: Sequence[int],
        run_id: str,
        payload: dict[str, Any],
        fragment_id: str | None = None,
    ) -> TreeResult:
        """
        Insert or replace the node at `path` for the active run.

        payload is {"block": {...layout}} or {"element": {...}}. An element may
        carry "widget_id" and "form_id"; a block may carry "form_id". Elements
        without a form id inherit the enclosing form block's id.
        """
        reason = self._check_run(run_id)
        if reason is not None:
            return TreeResult(accepted=False, reason=reason)

        path = tuple(path)
        if not path:
            return TreeResult(accepted=False, reason=f"{MALFORMED_DELTA}: the root cannot be replaced")
        if any(not isinstance(i, int) or isinstance(i, bool) or i < 0 for i in path):
            return TreeResult(accepted=False, reason=f"{MALFORMED_DELTA}: invalid path {list(path)}")

        node_type, body, reason = _split_payload(payload)
        if reason is not None:
            return TreeResult(accepted=False, reason=reason)

        parent = self.tree.get(path[:-1])
        if parent is None:
            return TreeResult(accepted=False, reason=f"{PARENT_NOT_FOUND}: no node at {list(path[:-1])}")
        if not isinstance(parent, BlockNode):
            return TreeResult(accepted=False, reason=f"{PARENT_NOT_BLOCK}: node at {list(path[:-1])} is an element")

        form_id = self._resolve_form(node_type, body, path)
        fp = payload_fingerprint(node_type, body, fragment_id, form_id)
        existing = self.tree.get(path)

        if existing is not None and existing.fingerprint == fp:
            self.tree.restamp(path, run_id)
            self._touch(path)
            return TreeResult(accepted=True, path=path, change="restamped")

        removed: list[Path] = []
        if isinstance(existing, BlockNode) and node_type == "element":
            for index in list(existing.children):
                removed.extend(self.tree.remove_subtree(path + (index,)))

        node = self._build_node(node_type, body, path, run_id, fp, fragment_id, form_id, existing)
        change = self.tree.put(node)
        self._touch(path)
        return TreeResult(accepted=True, path=path, change=change, removed=removed)

    def _build_node(
        self,
        node_type: str,
        body: dict[str, Any],
        path: Path,
        run_id: str,
        fp: str,
        fragment_id: str | None,
        form_id: str | None,
        existing: OutputNode | None,
    ) -> OutputNode:
        if node_type == "block":
            children = list(existing.children) if isinstance(existing, BlockNode) else []
            return BlockNode(
                node_id=self.tree.next_node_id(),
                path=path,
                run_id=run_id,
                fingerprint=fp,
                layout=body,
                children=children,
                form_id=form_id,
                fragment_id=fragment_id,
            )

        return ElementNode(
            node_id=self.tree.next_node_id(),
            path=path,
            run_id=run_id,
            fingerprint=fp,
            element=body,
            widget_id=body.get("widget_id") or None,
            form_id=form_id,
            fragment_id=fragment_id,
        )

    def _resolve_form(self, node_type: str, body: dict[str, Any], path: Path) -> str | None:
        """A block's own form id; an element's own, else its enclosing form block's."""
        own = body.get("form_id") or None
        if node_type == "block" or own is not None:
            return own
        return self.tree.enclosing_form(path[:-1])

    def _touch(self, path: Path) -> None:
        # Ancestors of a visited node stay alive even if not re-sent
        for depth in range(len(path), 0, -1):
            self._touched.add(path_key(path[:depth]))

    def finish_run(self, run_id: str, status: str = "success") -> TreeResult:
        """
        End the active run.

        On "success", removes every node stamped with an older run that this
        run did not visit (only inside the fragment scope for fragment runs),
        then sweeps widget state not referenced by the remaining tree.
        Any other status ends the run without pruning.
        """
        if self.active_run_id is None or run_id != self.active_run_id:
            return TreeResult(
                accepted=False,
                reason=f"{STALE_RUN_FINISH}: finish for '{run_id}' while '{self.active_run_id}' is active",
            )

        self.running = False
        if status != "success":
            return TreeResult(accepted=True)

        stale = [
            path
            for path, node in self.tree.items()
            if path_key(path) not in self._touched and node.run_id != run_id and self._in_scope(node)
        ]

        removed: list[Path] = []
        for path in sorted(stale, key=len):
            if path in self.tree:
                removed.extend(self.tree.remove_subtree(path))

        swept: list[str] = []
        if self.sweep_widgets:
            swept = self.store.sweep_unseen(self.tree.widget_ids(), self.tree.element_ids())
        return TreeResult(accepted=True, removed=removed, swept_widgets=swept)

    def _in_scope(self, node: OutputNode) -> bool:
        if not self.fragment_ids:
            return True
        return node.fragment_id in self.fragment_ids

    # ------------------------------------------------------------------
    # Queries and manual pruning
    # ------------------------------------------------------------------

    def is_stale(self, path: Sequence[int]) -> bool:
        """
        True while a run is in progress and the node at `path` still carries
        an older run's stamp (limited to the fragment scope for fragment runs).
        """
        node = self.tree.get(tuple(path))
        if node is None or not path or not self.running:
            return False
        return self._in_scope(node) and node.run_id != self.active_run_id

    def prune(self, path: Sequence[int]) -> TreeResult:
        """
        Remove a node and its descendants from the tree.

        Widget state and form dirty counts are left alone: dirtiness belongs
        to the widget id, not to its presence in the tree.
        """
        path = tuple(path)
        if path not in self.tree:
            return TreeResult(accepted=False, reason=f"{NODE_NOT_FOUND}: no node at {list(path)}")
        removed = self.tree.remove_subtree(path)
        return TreeResult(accepted=True, path=path, change="removed", removed=removed)


def _split_payload(payload: Any) -> tuple[str, dict[str, Any], str | None]:
    """Return (node_type, body, reason); reason is set when the payload is malformed."""
    if not isinstance(payload, dict):
        return "", {}, f"{MALFORMED_DELTA}: payload must be an object"
    block = payload.get("block")
    element = payload.get("element")
    if (block is None) == (element is None):
        return "", {}, f"{MALFORMED_DELTA}: payload needs exactly one of 'block' or 'element'"
    if block is not None:
        if not isinstance(block, dict):
            return "", {}, f"{MALFORMED_DELTA}: 'block' must be an object"
        return "block", block, None
    if not isinstance(element, dict):
        return "", {}, f"{MALFORMED_DELTA}: 'element' must be an object"
    return "element", element, None


def payload_fingerprint(node_type: str, body: dict[str, Any], fragment_id: str | None, form_id: str | None) -> str:
    """
    Identity of a delta at one path, independent of the run that sent it.

    Covers the node type, the payload body as sent (key order ignored), the
    owning fragment and the resolved form id. An element that inherits its
    form from an enclosing block is remounted when that form changes, even
    though its own body did not.
    """
    canonical = json.dumps([node_type, fragment_id, form_id, body], sort_keys=True, separators=(",", ":"), default=repr)
    return hashlib.blake2b(canonical.encode("utf-8"), digest_size=8).hexdigest()
