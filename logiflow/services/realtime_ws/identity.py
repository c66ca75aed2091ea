# logiflow/services/realtime_ws/identity.py
"""
Идентификация WebSocket клиента по JWT.

Токен только помечает соединение (userId, username, roles, zonaId),
фильтрации событий по ролям нет. Невалидный токен = анонимный клиент.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import jwt


class TokenError(Exception):
    """Токен не прошёл проверку."""


@dataclass(frozen=True)
class Identity:
    """Кто подключился."""
    user_id: int | str | None = None
    username: str | None = None
    roles: tuple[str, ...] = field(default_factory=tuple)
    zona_id: str | None = None

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "Identity":
        roles = claims.get("roles") or ()
        if isinstance(roles, str):
            roles = (roles,)
        zona_id = claims.get("zonaId")
        return cls(
            user_id=claims.get("userId", claims.get("sub")),
            username=claims.get("username"),
            roles=tuple(str(r) for r in roles),
            zona_id=str(zona_id) if zona_id is not None else None,
        )


class TokenVerifier:
    """Проверка HS256 токенов общим секретом."""

    def __init__(self, secret: str | None = None, algorithm: str | None = None) -> None:
        if secret is None or algorithm is None:
            from logiflow.config import settings
            secret = settings.auth.JWT_SECRET if secret is None else secret
            algorithm = algorithm or settings.auth.JWT_ALGORITHM

        self.secret = secret
        self.algorithm = algorithm

    @property
    def enabled(self) -> bool:
        return bool(self.secret)

    def verify(self, token: str) -> Identity:
        """
        Проверяет подпись и срок действия.

        Raises:
            TokenError: секрет не настроен, токен истёк или некорректен
        """
        if not self.secret:
            raise TokenError("JWT secret не настроен")

        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise TokenError("Токен истёк")
        except jwt.InvalidTokenError as e:
            raise TokenError(f"Некорректный токен: {e}")

        return Identity.from_claims(claims)

    def encode(self, claims: dict[str, Any]) -> str:
        """Подписывает claims (для служебных клиентов и тестов)."""
        if not self.secret:
            raise TokenError("JWT secret не настроен")
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)
