from datetime import datetime

from sqlmodel import Field, SQLModel

from app.models.base import utcnow


class User(SQLModel, table=True):
    """Oturum/kayıt dışarıda yönetilir; burada işlerin sahibi ve zamanlama tercihleri tutulur."""

    id: int | None = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True)
    full_name: str = ""
    timezone: str = "UTC"  # IANA adı, ör. Europe/Istanbul
    # Günün aracı bu yerel saatte otomatik üretilir (cron /cron/daily-tools)
    daily_tool_enabled: bool = False
    daily_tool_hour: int | None = None
    daily_tool_minute: int | None = None
    created_at: datetime | None = Field(default_factory=utcnow)
