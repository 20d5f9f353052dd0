"""Ertelenmiş AI işleri: pending → processing → completed | failed."""
import uuid
from datetime import datetime

from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel

from app.models.base import utcnow

JOB_PENDING = "pending"
JOB_PROCESSING = "processing"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"
INFLIGHT_STATUSES = (JOB_PENDING, JOB_PROCESSING)
TERMINAL_STATUSES = (JOB_COMPLETED, JOB_FAILED)

KIND_CHAT_REPLY = "chat_reply"
KIND_DAILY_TOOL_GENERATE = "daily_tool_generate"
KIND_DAILY_TOOL_REFINE = "daily_tool_refine"
JOB_KINDS = (KIND_CHAT_REPLY, KIND_DAILY_TOOL_GENERATE, KIND_DAILY_TOOL_REFINE)

# Bildirim kararı iş başına bir kez verilir
NOTIFY_PENDING = "pending"
NOTIFY_DISPATCHED = "dispatched"
NOTIFY_SUPPRESSED = "suppressed"

_INFLIGHT_WHERE = "status IN ('pending', 'processing')"


def _new_job_id() -> str:
    return uuid.uuid4().hex


class Job(SQLModel, table=True):
    __tablename__ = "jobs"
    __table_args__ = (
        Index("ix_jobs_user_id_status", "user_id", "status"),
        # Aynı korelasyon anahtarıyla aynı anda yalnızca bir iş uçuşta olabilir
        Index(
            "ux_jobs_inflight_correlation",
            "correlation_key",
            unique=True,
            sqlite_where=text(_INFLIGHT_WHERE),
            postgresql_where=text(_INFLIGHT_WHERE),
        ),
    )

    id: str = Field(default_factory=_new_job_id, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    kind: str  # chat_reply | daily_tool_generate | daily_tool_refine
    correlation_key: str  # chat:<message_id> | daily_tool:<user_id> | refine:<tool_id>
    # Türe özgü referanslar (sahiplenilmez; işlem anında silinmiş olabilir)
    conversation_id: int | None = Field(default=None, index=True)
    message_id: int | None = Field(default=None, index=True)
    daily_tool_id: int | None = Field(default=None, index=True)
    payload: str = "{}"  # JSON: feedback, previous_tool_ids vb.
    status: str = JOB_PENDING
    result_buffer: str = ""  # yalnızca completed iken dolu
    error_code: str | None = None  # stale_reference | adapter_failure | timeout | internal
    error: str | None = None  # yalnızca failed iken dolu (teşhis için, kullanıcıya gösterilmez)
    queue_message_id: str | None = Field(default=None, index=True)
    client_connected: bool = True
    seen_at: datetime | None = None
    notification_state: str = NOTIFY_PENDING
    duration_ms: int | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
