"""
İşlemciyi tetikleyen uçlar: kuyruk geri çağrısı, cron taraması ve zamanlanmış günlük araç.

Geri çağrı iş başarısız bitse de 200 döner; aksi halde kuyruk aynı işi tekrar
teslim ederdi (tekrar teslimat zaten etkisizdir ama gereksiz).
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_ai_client, get_job_enqueuer, get_job_processor, get_job_queue, require_cron_secret
from app.core.config import settings
from app.core.database import get_db
from app.core.security import constant_time_equals
from app.schemas import ProcessJobRequest, ProcessJobResponse, ScheduleResponse, SweepResponse
from app.services.ai import CoachAI
from app.services.enqueue import JobEnqueuer
from app.services.processor import JobProcessor
from app.services.queue import JobQueue
from app.services.scheduling import schedule_daily_tools

router = APIRouter(tags=["worker"])
log = logging.getLogger(__name__)

SIGNATURE_HEADER = "upstash-signature"
MESSAGE_ID_HEADER = "upstash-message-id"


def _authorize_callback(request: Request, raw_body: bytes, queue: JobQueue) -> None:
    """İmza anahtarları tanımlıysa QStash imzası, değilse cron bearer. Gövde JSON olarak çözülmeden önce çalışır."""
    if queue.verifies_signatures:
        # Bozuk UTF-8 gövdenin özeti imzayla eşleşmez, 401 döner
        body = raw_body.decode("utf-8", errors="replace")
        if not queue.verify(body, request.headers.get(SIGNATURE_HEADER)):
            log.warning("Queue callback rejected: bad signature path=%s", request.url.path)
            raise HTTPException(status_code=401, detail="Geçersiz imza.")
        return
    if not settings.cron_secret:
        raise HTTPException(status_code=500, detail="CRON_SECRET yapılandırılmamış.")
    auth = request.headers.get("authorization") or ""
    token = auth[len("Bearer ") :] if auth.startswith("Bearer ") else ""
    if not constant_time_equals(token, settings.cron_secret):
        raise HTTPException(status_code=401, detail="Yetkisiz.")


@router.post("/internal/jobs/process", response_model=ProcessJobResponse)
async def process_job(
    request: Request,
    db: Session = Depends(get_db),
    queue: JobQueue = Depends(get_job_queue),
    processor: JobProcessor = Depends(get_job_processor),
):
    raw = await request.body()
    _authorize_callback(request, raw, queue)
    try:
        body = ProcessJobRequest.model_validate_json(raw or b"{}")
    except ValueError:
        # ValidationError ve bozuk UTF-8 ikisi de ValueError
        raise HTTPException(status_code=400, detail="jobId gerekli.")
    # AI çağrısı bloklayıcı: event loop dışında çalıştır
    outcome = await run_in_threadpool(processor.process, db, body.job_id, request.headers.get(MESSAGE_ID_HEADER))
    return ProcessJobResponse(job_id=outcome.job_id, status=outcome.status, duplicate=not outcome.claimed)


@router.post("/cron/process-pending", response_model=SweepResponse, dependencies=[Depends(require_cron_secret)])
def process_pending(
    db: Session = Depends(get_db),
    processor: JobProcessor = Depends(get_job_processor),
):
    """Takılı işleri düşürür, kuyruğa ulaşmamış işleri işler, gecikmeli bildirimleri gönderir, eski işleri siler."""
    result = processor.run_sweep(
        db,
        processing_timeout_seconds=settings.processing_timeout_seconds,
        pending_after_seconds=settings.pending_sweep_after_seconds,
        batch_size=settings.sweep_batch_size,
        retention_days=settings.job_retention_days,
    )
    return SweepResponse(**result.as_dict())


@router.post("/cron/daily-tools", response_model=ScheduleResponse, dependencies=[Depends(require_cron_secret)])
def schedule_daily_tool_jobs(
    db: Session = Depends(get_db),
    ai: CoachAI = Depends(get_ai_client),
    enqueuer: JobEnqueuer = Depends(get_job_enqueuer),
):
    """Otomatik üretimi açık ve vakti gelen kullanıcılar için günün aracı işlerini kuyruğa koyar."""
    if not ai.configured:
        raise HTTPException(status_code=500, detail="OpenAI yapılandırılmamış.")
    result = schedule_daily_tools(db, enqueuer)
    return ScheduleResponse(**result.as_dict())
