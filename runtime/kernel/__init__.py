"""
Runtime Kernel — the pure session core.

Five components:
  codec        : typed encode/decode between native values and wire values
  widget_store : authoritative widget values, triggers, sweep of unseen ids
  forms        : per-form dirty counts, pending requests, submit counters
  output_tree  : arena of block/element nodes keyed by path
  reconciler   : run lifecycle: begin, apply deltas, finish and prune

No IO and no logging here: every operation returns a result object.
"""

from runtime.kernel.codec import decode, decode_any, encode, values_equal, wire_kind
from runtime.kernel.forms import FormsAggregator
from runtime.kernel.output_tree import OutputTree
from runtime.kernel.reconciler import RunReconciler
from runtime.kernel.types import (
    NO_FORM,
    BlockNode,
    ElementNode,
    FormsData,
    MalformedValue,
    SetResult,
    SubmitResult,
    TreeResult,
    WidgetValue,
)
from runtime.kernel.widget_store import WidgetStateStore

__all__ = [
    "encode",
    "decode",
    "decode_any",
    "values_equal",
    "wire_kind",
    "MalformedValue",
    "WidgetValue",
    "WidgetStateStore",
    "FormsAggregator",
    "FormsData",
    "OutputTree",
    "RunReconciler",
    "BlockNode",
    "ElementNode",
    "SetResult",
    "SubmitResult",
    "TreeResult",
    "NO_FORM",
]
