from __future__ import annotations

import jwt

from chat_sync.application.dto.principal import Principal
from chat_sync.domain.value_objects.ids import UserId


class HS256Verifier:
    """Verify bridge JWTs signed with the backend's shared HS256 secret.

    The raw token is kept on the principal: it is forwarded as the bearer
    token on every backend REST call made for that user.
    """

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    async def verify(self, token: str) -> Principal:
        payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        subject = payload.get("sub", payload.get("userId"))
        if subject is None:
            raise jwt.InvalidTokenError("token has no subject")
        roles = payload.get("roles", [])
        if isinstance(roles, str):
            roles = [roles]
        return Principal(user_id=UserId(int(subject)), token=token, roles=list(roles))
