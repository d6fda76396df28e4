"""SQL registry of known borrowers and liquidators (SQLAlchemy Core)."""
from __future__ import annotations

import logging

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    func,
    insert,
    select,
)
from sqlalchemy.exc import SQLAlchemyError

from ..config import RegistryConfig
from ..errors import UpstreamError
from ..models import Liquidator, RegisteredUser

logger = logging.getLogger(__name__)

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("address", String, unique=True, nullable=False),
    Column("block_number", Integer, nullable=False, default=0),
)

liquidators = Table(
    "liquidators",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("address", String, unique=True, nullable=False),
    Column("pkp_public_key", String, nullable=False, default=""),
)


class SqlRegistry:
    """Users and liquidators stored in any SQLAlchemy-supported database."""

    def __init__(self, config: RegistryConfig) -> None:
        connect_args = {}
        if config.database_url.startswith("sqlite"):
            connect_args = {"check_same_thread": False}
        self._engine = create_engine(config.database_url, connect_args=connect_args)
        try:
            metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            raise UpstreamError(f"Could not initialise registry: {e}") from e

    def list_users_random(self) -> list[RegisteredUser]:
        query = select(users.c.address, users.c.block_number).order_by(func.random())
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(query).all()
        except SQLAlchemyError as e:
            raise UpstreamError(f"Error reading users: {e}") from e
        return [RegisteredUser(address=r.address, block_number=r.block_number) for r in rows]

    def list_liquidators_random(self) -> list[Liquidator]:
        query = select(liquidators.c.address, liquidators.c.pkp_public_key).order_by(
            func.random()
        )
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(query).all()
        except SQLAlchemyError as e:
            raise UpstreamError(f"Error reading liquidators: {e}") from e
        return [
            Liquidator(address=r.address, pkp_public_key=r.pkp_public_key) for r in rows
        ]

    def last_user_block(self) -> int | None:
        """Highest block at which a stored user was first seen."""
        try:
            with self._engine.connect() as conn:
                return conn.execute(select(func.max(users.c.block_number))).scalar()
        except SQLAlchemyError as e:
            raise UpstreamError(f"Error reading last user block: {e}") from e

    def add_users(self, new_users: list[tuple[str, int]]) -> int:
        """Insert users that are not stored yet; return how many were added."""
        if not new_users:
            return 0

        by_address: dict[str, int] = {}
        for address, block_number in new_users:
            by_address.setdefault(address.lower(), block_number)

        try:
            with self._engine.begin() as conn:
                existing = set(
                    conn.execute(
                        select(users.c.address).where(
                            users.c.address.in_(list(by_address))
                        )
                    ).scalars()
                )
                rows = [
                    {"address": address, "block_number": block_number}
                    for address, block_number in by_address.items()
                    if address not in existing
                ]
                if rows:
                    conn.execute(insert(users), rows)
        except SQLAlchemyError as e:
            raise UpstreamError(f"Error inserting users: {e}") from e

        logger.info(
            "Attempted to insert %d users, %d were new", len(by_address), len(rows)
        )
        return len(rows)

    def add_liquidator(self, address: str, pkp_public_key: str) -> bool:
        """Register a liquidator; False when the address is already known."""
        address = address.lower()
        try:
            with self._engine.begin() as conn:
                found = conn.execute(
                    select(liquidators.c.id).where(liquidators.c.address == address)
                ).first()
                if found is not None:
                    return False
                conn.execute(
                    insert(liquidators).values(
                        address=address, pkp_public_key=pkp_public_key
                    )
                )
        except SQLAlchemyError as e:
            raise UpstreamError(f"Error inserting liquidator: {e}") from e
        return True
