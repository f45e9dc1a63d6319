"""Durable store for persisted chat transcripts."""

import logging
from datetime import UTC, datetime

from sqlalchemy import delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.future import select

from app.exceptions.chat import PersistenceError
from app.schemas.chat import PersistedChat
from models.chat import Chat


logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class ChatRepository:
    """Reads and upserts rows of the ``chats`` table.

    Each call opens its own session from the factory, so the repository can be
    used after the request-scoped session has been closed.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def upsert(self, chat: PersistedChat) -> None:
        """Create or replace the chat keyed by ``chat.id``.

        An existing row is only replaced when it belongs to ``chat.user_id``.

        Raises:
            PersistenceError: If the write fails or the id belongs to another
                user. The transaction is rolled back.
        """
        values = {
            "id": chat.id,
            "user_id": chat.user_id,
            "payload": chat.to_payload(),
            "updated_at": datetime.now(UTC),
        }

        async with self.session_factory() as session:
            try:
                insert = _UPSERT_DIALECTS.get(session.get_bind().dialect.name)
                if insert is not None:
                    stmt = insert(Chat).values(**values)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=[Chat.id],
                        set_={
                            "payload": stmt.excluded.payload,
                            "updated_at": stmt.excluded.updated_at,
                        },
                        where=Chat.user_id == stmt.excluded.user_id,
                    )
                    result = await session.execute(stmt)
                    written = result.rowcount > 0
                else:
                    existing = await session.get(Chat, chat.id)
                    written = existing is None or existing.user_id == chat.user_id
                    if written:
                        await session.merge(Chat(**values))

                if not written:
                    await session.rollback()
                    raise PersistenceError(details={"chat_id": chat.id, "error": "chat belongs to another user"})
                await session.commit()
            except (SQLAlchemyError, OSError) as e:
                await session.rollback()
                raise PersistenceError(details={"chat_id": chat.id, "error": str(e)}) from e

    async def get(self, chat_id: str, user_id: str) -> PersistedChat | None:
        """Return the caller's chat with ``chat_id``, or None."""
        async with self.session_factory() as session:
            result = await session.execute(select(Chat).where(Chat.id == chat_id, Chat.user_id == user_id))
            row = result.scalar_one_or_none()
        return PersistedChat.model_validate(row.payload) if row else None

    async def list_for_user(self, user_id: str) -> list[PersistedChat]:
        """Return all chats owned by ``user_id``, most recently written first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Chat).where(Chat.user_id == user_id).order_by(Chat.updated_at.desc())
            )
            rows = result.scalars().all()
        return [PersistedChat.model_validate(row.payload) for row in rows]

    async def delete(self, chat_id: str, user_id: str) -> bool:
        """Delete the caller's chat. Returns False when nothing matched."""
        async with self.session_factory() as session:
            result = await session.execute(delete(Chat).where(Chat.id == chat_id, Chat.user_id == user_id))
            await session.commit()
        return result.rowcount > 0
