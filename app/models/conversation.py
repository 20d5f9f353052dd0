"""Koç sohbeti: kullanıcı mesajı + bekleyen asistan mesajı aynı anda oluşturulur."""
from datetime import datetime

from sqlmodel import Field, SQLModel

from app.models.base import utcnow


class Conversation(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    title: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Message(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    conversation_id: int = Field(foreign_key="conversation.id", index=True)
    role: str  # "user" | "assistant"
    content: str = ""  # bekleyen asistan mesajında boş; işlemci doldurur
    status: str = "completed"  # pending | processing | completed | failed
    created_at: datetime = Field(default_factory=utcnow)
