from __future__ import annotations

import json
from datetime import datetime
from typing import Any
from uuid import UUID


class _Encoder(json.JSONEncoder):
    def default(self, o: object) -> Any:
        if isinstance(o, UUID):
            return str(o)
        if isinstance(o, datetime):
            return o.isoformat()
        return super().default(o)


def encode_envelope(event: str, data: dict[str, Any]) -> str:
    return json.dumps({"event": event, "data": data}, cls=_Encoder)


def decode_envelope(raw: str | bytes) -> tuple[str, dict[str, Any]]:
    """Split a channel frame into (event name, payload). Raises ValueError."""
    envelope = json.loads(raw)
    if not isinstance(envelope, dict):
        raise ValueError("channel frame is not an object")
    event = envelope.get("event")
    data = envelope.get("data")
    if not isinstance(event, str) or not isinstance(data, dict):
        raise ValueError("channel frame lacks event/data")
    return event, data
