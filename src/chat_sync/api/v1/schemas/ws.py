"""WebSocket frames for the snapshot stream."""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel


class WsInbound(BaseModel):
    """Client -> bridge."""

    type: Literal["ping", "typing", "send"]
    data: dict[str, Any] = {}


class WsOutbound(BaseModel):
    """Bridge -> client."""

    type: Literal["view", "result", "error", "pong"]
    data: dict[str, Any] = {}
