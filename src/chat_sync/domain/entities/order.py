from __future__ import annotations

from dataclasses import dataclass

from chat_sync.domain.value_objects.ids import OrderId, UserId


@dataclass(frozen=True, slots=True)
class OrderRef:
    id: OrderId
    title: str
    status: str
    client_id: UserId
