from datetime import datetime

from sqlmodel import Field, SQLModel

from app.models.base import utcnow


class SentNotification(SQLModel, table=True):
    """Gönderilmiş check-in bildirimi; sonraki üretimde aynı konuyu tekrarlamamak için okunur."""

    __tablename__ = "sent_notifications"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    title: str
    body: str
    topic_reference: str | None = None
    time_of_day: str  # morning | afternoon | evening | night
    sent_at: datetime = Field(default_factory=utcnow, index=True)
