from datetime import datetime

from pydantic import Field

from .base import CamelModel


class DailyToolRequest(CamelModel):
    previous_tool_ids: list[int] = Field(default_factory=list)


class RefineRequest(CamelModel):
    tool_id: int | None = None
    feedback: str = ""


class DailyToolOut(CamelModel):
    id: int
    title: str
    description: str
    html_code: str
    journal_context: str | None = None
    status: str
    date: datetime
    created_at: datetime
    updated_at: datetime
