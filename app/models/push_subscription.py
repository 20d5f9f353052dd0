"""PWA push bildirim abonelikleri (Web Push API)."""
from datetime import datetime

from sqlmodel import Field, SQLModel

from app.models.base import utcnow


class PushSubscription(SQLModel, table=True):
    __tablename__ = "push_subscriptions"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    endpoint: str = Field(unique=True, index=True)  # aynı endpoint iki kullanıcıya kaydedilmez
    p256dh: str = ""  # client public key (base64url)
    auth: str = ""    # auth secret (base64url)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime | None = Field(default_factory=utcnow)
