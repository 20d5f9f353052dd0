"""Günlük araç: günlük kayıtlarından üretilen küçük etkileşimli HTML uygulaması."""
from datetime import datetime

from sqlmodel import Field, SQLModel

from app.models.base import utcnow


class DailyTool(SQLModel, table=True):
    __tablename__ = "daily_tools"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    date: datetime = Field(default_factory=utcnow, index=True)
    title: str
    description: str
    html_code: str
    journal_context: str | None = None  # aracın hangi günlük temasından çıktığı
    status: str = "pending"  # pending | used | dismissed
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
