"""Registry protocol: known users and liquidators."""
from typing import Protocol

from ..models import Liquidator, RegisteredUser


class Registry(Protocol):
    """Abstract interface for the user/liquidator store."""

    def list_users_random(self) -> list[RegisteredUser]: ...

    def list_liquidators_random(self) -> list[Liquidator]: ...

    def last_user_block(self) -> int | None: ...

    def add_users(self, users: list[tuple[str, int]]) -> int: ...

    def add_liquidator(self, address: str, pkp_public_key: str) -> bool: ...
