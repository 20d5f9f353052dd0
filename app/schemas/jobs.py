from datetime import datetime

from .base import CamelModel


class JobStatusResponse(CamelModel):
    id: str
    kind: str
    status: str
    result: str | None = None
    error: str | None = None
    error_code: str | None = None
    conversation_id: int | None = None
    message_id: int | None = None
    daily_tool_id: int | None = None
    client_connected: bool
    created_at: datetime
    updated_at: datetime


class JobMarkSeenRequest(CamelModel):
    job_id: str


class JobUpdateRequest(CamelModel):
    client_connected: bool


class JobAcceptedResponse(CamelModel):
    job_id: str
    status: str
    status_url: str
    existing: bool = False


class ProcessJobRequest(CamelModel):
    job_id: str


class ProcessJobResponse(CamelModel):
    job_id: str
    status: str
    duplicate: bool = False


class SweepResponse(CamelModel):
    expired: int = 0
    processed: int = 0
    completed: int = 0
    failed: int = 0
    notified: int = 0
    deleted: int = 0


class ScheduledUserOut(CamelModel):
    user_id: int
    status: str
    reason: str | None = None
    job_id: str | None = None


class ScheduleResponse(CamelModel):
    enqueued: int = 0
    skipped: int = 0
    errors: int = 0
    results: list[ScheduledUserOut] = []
