"""Kullanıcı 'şu an uygulamada' takibi: heartbeat ile güncellenir."""
from datetime import datetime

from sqlmodel import Field, SQLModel

from app.models.base import utcnow


class Presence(SQLModel, table=True):
    """Kullanıcı başına son görülme. İşlemci, bildirim kararında istemcinin hâlâ bağlı olup olmadığını buradan okur."""
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", unique=True, index=True)
    last_seen_at: datetime = Field(default_factory=utcnow)
    ip: str | None = None
    current_page: str | None = None  # örn. "/coach"
