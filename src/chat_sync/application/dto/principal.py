from __future__ import annotations

from dataclasses import dataclass, field

from chat_sync.domain.value_objects.ids import UserId


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated bridge caller extracted from the JWT."""

    user_id: UserId
    token: str = field(repr=False)
    roles: list[str] = field(default_factory=list)
