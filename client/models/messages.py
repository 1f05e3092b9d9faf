"""Wire message models exchanged with the backend."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter

from runtime.kernel.types import RunStatus, ValueKind

# ---------------------------------------------------------------------------
# Inbound (backend → client)
# ---------------------------------------------------------------------------


class RunStarted(BaseModel):
    """A new script run began. Fragment runs list the fragments being re-executed."""

    type: Literal["run_started"] = "run_started"
    run_id: str = Field(min_length=1)
    fragment_ids: list[str] = Field(default_factory=list)


class TreeDelta(BaseModel):
    """Insert or replace the node at `path` for run `run_id`."""

    type: Literal["tree_delta"] = "tree_delta"
    path: list[Annotated[int, Field(ge=0)]] = Field(min_length=1)
    run_id: str = Field(min_length=1)
    payload: dict[str, Any]
    fragment_id: str | None = None


class RunFinished(BaseModel):
    """The run ended. Only status "success" prunes stale nodes."""

    type: Literal["run_finished"] = "run_finished"
    run_id: str = Field(min_length=1)
    status: RunStatus = "success"


class WidgetDefault(BaseModel):
    """Backend-pushed value for a widget. `value` is a wire value."""

    type: Literal["widget_default"] = "widget_default"
    id: str = Field(min_length=1)
    kind: ValueKind
    value: dict[str, Any]
    form_id: str = ""


InboundMessage = Annotated[
    RunStarted | TreeDelta | RunFinished | WidgetDefault,
    Field(discriminator="type"),
]

inbound_adapter: TypeAdapter[InboundMessage] = TypeAdapter(InboundMessage)


def parse_inbound(data: dict[str, Any]) -> RunStarted | TreeDelta | RunFinished | WidgetDefault:
    """Validate a raw dict into an inbound message. Raises pydantic.ValidationError."""
    return inbound_adapter.validate_python(data)


# ---------------------------------------------------------------------------
# Outbound (client → backend)
# ---------------------------------------------------------------------------


class RerunRequested(BaseModel):
    """
    Full widget-state snapshot asking the backend for a new run.

    form_id is set when a form submit triggered the request; fragment_ids
    limits the rerun to those fragments.
    """

    model_config = {"extra": "forbid"}

    type: Literal["rerun_requested"] = "rerun_requested"
    widget_values: dict[str, dict[str, Any]] = Field(default_factory=dict)
    form_id: str | None = None
    form_submit_count: int | None = None
    fragment_ids: list[str] | None = None
