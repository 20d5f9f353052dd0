from fastapi import APIRouter, Depends, Request
from sqlmodel import Session, select

from app.api.deps import get_current_user, get_job_enqueuer
from app.core.database import get_db
from app.core.rate_limit import SUBMIT_RATE_LIMIT, limiter
from app.models import DailyTool, User
from app.schemas import DailyToolOut, DailyToolRequest, JobAcceptedResponse, RefineRequest
from app.services.enqueue import EnqueueResult, JobEnqueuer
from app.services.errors import NotFound

router = APIRouter(prefix="/daily-tools", tags=["daily-tools"])


def _accepted(res: EnqueueResult) -> JobAcceptedResponse:
    return JobAcceptedResponse(
        job_id=res.job.id,
        status=res.job.status,
        status_url=f"/jobs/{res.job.id}",
        existing=res.existing,
    )


@router.post("/request", response_model=JobAcceptedResponse, status_code=201)
@limiter.limit(SUBMIT_RATE_LIMIT)
def request_daily_tool(
    request: Request,
    body: DailyToolRequest | None = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    enqueuer: JobEnqueuer = Depends(get_job_enqueuer),
):
    """Günün aracını üretmek için iş açar. Kullanıcının uçuşta bir işi varsa o döner (existing=true)."""
    previous = body.previous_tool_ids if body else []
    return _accepted(enqueuer.enqueue_daily_tool(db, user.id or 0, previous))


@router.post("/refine", response_model=JobAcceptedResponse, status_code=201)
@limiter.limit(SUBMIT_RATE_LIMIT)
def refine_daily_tool(
    request: Request,
    body: RefineRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    enqueuer: JobEnqueuer = Depends(get_job_enqueuer),
):
    return _accepted(enqueuer.enqueue_refine(db, user.id or 0, body.tool_id or 0, body.feedback))


@router.get("/{tool_id}", response_model=DailyToolOut)
def get_daily_tool(tool_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    tool = db.exec(select(DailyTool).where(DailyTool.id == tool_id, DailyTool.user_id == user.id)).first()
    if not tool:
        raise NotFound("Araç bulunamadı.")
    return DailyToolOut(
        id=tool.id or 0,
        title=tool.title,
        description=tool.description,
        html_code=tool.html_code,
        journal_context=tool.journal_context,
        status=tool.status,
        date=tool.date,
        created_at=tool.created_at,
        updated_at=tool.updated_at,
    )
