from __future__ import annotations

import math
from dataclasses import dataclass

from chat_sync.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class Pagination:
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(self.total / self.limit)) if self.limit else 1


@dataclass(frozen=True, slots=True)
class MessagePage:
    messages: tuple[Message, ...]
    pagination: Pagination
