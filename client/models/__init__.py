"""
Pydantic models for the client session.

All wire shapes defined here. No imports from services.
"""

from client.models.messages import (
    InboundMessage,
    RerunRequested,
    RunFinished,
    RunStarted,
    TreeDelta,
    WidgetDefault,
    inbound_adapter,
    parse_inbound,
)

__all__ = [
    # Inbound
    "RunStarted",
    "TreeDelta",
    "RunFinished",
    "WidgetDefault",
    "InboundMessage",
    "inbound_adapter",
    "parse_inbound",
    # Outbound
    "RerunRequested",
]
