from fastapi import APIRouter, Depends
from sqlmodel import Session

from app.api.deps import get_current_user
from app.core.database import get_db
from app.models import Job, User
from app.models.job import JOB_COMPLETED, JOB_FAILED
from app.schemas import JobMarkSeenRequest, JobStatusResponse, JobUpdateRequest, SuccessResponse
from app.services import job_store
from app.services.processor import user_error_message

router = APIRouter(prefix="/jobs", tags=["jobs"])


def job_status_response(job: Job) -> JobStatusResponse:
    """Sonuç yalnızca completed iken, hata yalnızca failed iken döner. Ham hata detayı istemciye verilmez."""
    return JobStatusResponse(
        id=job.id,
        kind=job.kind,
        status=job.status,
        result=job.result_buffer if job.status == JOB_COMPLETED else None,
        error=user_error_message(job.error_code) if job.status == JOB_FAILED else None,
        error_code=job.error_code if job.status == JOB_FAILED else None,
        conversation_id=job.conversation_id,
        message_id=job.message_id,
        daily_tool_id=job.daily_tool_id,
        client_connected=job.client_connected,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


@router.get("/{job_id}", response_model=JobStatusResponse)
def get_job(job_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    # Başkasının işi de "bulunamadı" (404) döner; varlığı sızdırılmaz
    return job_status_response(job_store.get_owned_job(db, job_id, user.id or 0))


@router.post("/mark-seen", response_model=SuccessResponse)
def mark_job_seen(body: JobMarkSeenRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    job_store.mark_seen(db, body.job_id, user.id or 0)
    return SuccessResponse()


@router.patch("/{job_id}", response_model=JobStatusResponse)
def update_job(
    job_id: str,
    body: JobUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """İstemci sayfadan ayrıldığını (clientConnected=false) veya geri döndüğünü bildirir."""
    return job_status_response(job_store.set_client_connected(db, job_id, user.id or 0, body.client_connected))
