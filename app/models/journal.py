from datetime import datetime

from sqlmodel import Field, SQLModel

from app.models.base import utcnow


class JournalEntry(SQLModel, table=True):
    """Günlük kaydı. CRUD bu serviste değil; işlemci yalnızca prompt bağlamı için okur."""

    __tablename__ = "journal_entries"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    content: str
    mood: str | None = None
    tags: str | None = None  # virgülle ayrılmış
    date: datetime = Field(default_factory=utcnow, index=True)
