"""
Persisted chat transcript model.
"""

from sqlalchemy import JSON, Column, String

from .base import BaseModel


class Chat(BaseModel):
    """
    One stored conversation, keyed by the chat id.

    ``payload`` holds the full transcript document (id, title, userId,
    createdAt, path, messages). ``user_id`` is duplicated out of it so reads
    can filter by owner.
    """

    __tablename__ = "chats"

    id = Column(String(64), primary_key=True)  # CHAT_ID_MAX_LENGTH in app.schemas.chat
    user_id = Column(String(255), nullable=False, index=True)
    payload = Column(JSON, nullable=False)
