"""
İş kayıt deposu: Job satırı üzerindeki tüm geçişler.

Durum geçişleri koşullu UPDATE ile yapılır (beklenen önceki durum + sahiplik
aynı WHERE içinde); rowcount 0 ise geçiş başka bir işlemci/istek tarafından
zaten yapılmıştır. create_job ve complete_job commit etmez: çağıran, yer tutucu
satırlarla (mesaj, araç) birlikte tek commit yapar. Diğerleri kendi commit'ini yapar.
"""
import json
import logging
from datetime import datetime

from sqlalchemy import delete, func, or_, update
from sqlmodel import Session, select

from app.models.base import utcnow
from app.models.job import (
    INFLIGHT_STATUSES,
    JOB_COMPLETED,
    JOB_FAILED,
    JOB_PENDING,
    JOB_PROCESSING,
    NOTIFY_DISPATCHED,
    NOTIFY_PENDING,
    NOTIFY_SUPPRESSED,
    TERMINAL_STATUSES,
    Job,
)
from app.services.errors import NotFound

logger = logging.getLogger(__name__)

ERROR_MAX_CHARS = 500


def create_job(
    db: Session,
    *,
    kind: str,
    user_id: int,
    correlation_key: str,
    payload: dict | None = None,
    conversation_id: int | None = None,
    message_id: int | None = None,
    daily_tool_id: int | None = None,
) -> Job:
    """PENDING iş ekler ve flush eder (id atanır). Uçuşta aynı anahtar varsa flush IntegrityError fırlatır."""
    job = Job(
        kind=kind,
        user_id=user_id,
        correlation_key=correlation_key,
        payload=json.dumps(payload or {}),
        conversation_id=conversation_id,
        message_id=message_id,
        daily_tool_id=daily_tool_id,
    )
    db.add(job)
    db.flush()
    return job


def find_inflight(db: Session, correlation_key: str) -> Job | None:
    stmt = select(Job).where(Job.correlation_key == correlation_key, Job.status.in_(INFLIGHT_STATUSES))
    return db.exec(stmt).first()


def get_owned_job(db: Session, job_id: str, user_id: int) -> Job:
    """Sahibine ait işi döner; yoksa veya başkasınınsa NotFound."""
    job = db.exec(select(Job).where(Job.id == job_id, Job.user_id == user_id)).first()
    if not job:
        raise NotFound("İş bulunamadı.")
    return job


def job_payload(job: Job) -> dict:
    try:
        data = json.loads(job.payload or "{}")
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def set_queue_message_id(db: Session, job_id: str, message_id: str) -> None:
    db.exec(update(Job).where(Job.id == job_id).values(queue_message_id=message_id, updated_at=utcnow()))
    db.commit()


def claim_job(db: Session, job_id: str, queue_message_id: str | None = None) -> bool:
    """pending → processing (compare-and-set). False: tekrar teslimat, iş zaten alınmış/bitmiş."""
    values: dict = {"status": JOB_PROCESSING, "updated_at": utcnow()}
    if queue_message_id:
        values["queue_message_id"] = func.coalesce(Job.queue_message_id, queue_message_id)
    res = db.exec(update(Job).where(Job.id == job_id, Job.status == JOB_PENDING).values(**values))
    db.commit()
    return res.rowcount == 1


def complete_job(
    db: Session, job_id: str, result: str, duration_ms: int | None = None, daily_tool_id: int | None = None
) -> bool:
    """processing → completed. Commit etmez; artefaktla aynı commit'te yazılmalı."""
    if not (result or "").strip():
        raise ValueError("completed job requires a non-empty result")
    values: dict = {"status": JOB_COMPLETED, "result_buffer": result, "duration_ms": duration_ms, "updated_at": utcnow()}
    if daily_tool_id is not None:
        values["daily_tool_id"] = daily_tool_id
    res = db.exec(update(Job).where(Job.id == job_id, Job.status == JOB_PROCESSING).values(**values))
    return res.rowcount == 1


def fail_job(db: Session, job_id: str, code: str, error: str, duration_ms: int | None = None) -> bool:
    """processing → failed. Yalnızca claim edilmiş iş düşürülür; pending ve terminal işler değişmez."""
    res = db.exec(
        update(Job)
        .where(Job.id == job_id, Job.status == JOB_PROCESSING)
        .values(
            status=JOB_FAILED,
            error_code=code,
            error=(error or code)[:ERROR_MAX_CHARS],
            duration_ms=duration_ms,
            updated_at=utcnow(),
        )
    )
    db.commit()
    return res.rowcount == 1


def mark_seen(db: Session, job_id: str, user_id: int) -> bool:
    """
    İstemci sonucu gördü: client_connected=True, seen_at bir kez yazılır.
    İdempotent; zaten görülmüşse hiçbir alan değişmez ve False döner.
    """
    now = utcnow()
    res = db.exec(
        update(Job)
        .where(
            Job.id == job_id,
            Job.user_id == user_id,
            or_(Job.seen_at.is_(None), Job.client_connected.is_(False)),
        )
        .values(client_connected=True, seen_at=func.coalesce(Job.seen_at, now), updated_at=now)
    )
    db.commit()
    if res.rowcount == 1:
        return True
    get_owned_job(db, job_id, user_id)
    return False


def set_client_connected(db: Session, job_id: str, user_id: int, connected: bool) -> Job:
    """İstemci kendisi ayrıldığını (False) ya da döndüğünü (True) bildirir."""
    res = db.exec(
        update(Job)
        .where(Job.id == job_id, Job.user_id == user_id)
        .values(client_connected=connected, updated_at=utcnow())
    )
    db.commit()
    if res.rowcount == 0:
        raise NotFound("İş bulunamadı.")
    return get_owned_job(db, job_id, user_id)


def mark_client_detached(db: Session, job_id: str) -> bool:
    """İşlemci istemcinin ayrıldığını gözlemledi. Görülmüş veya kararı verilmiş işe dokunmaz."""
    res = db.exec(
        update(Job)
        .where(
            Job.id == job_id,
            Job.client_connected.is_(True),
            Job.seen_at.is_(None),
            Job.notification_state == NOTIFY_PENDING,
        )
        .values(client_connected=False, updated_at=utcnow())
    )
    db.commit()
    return res.rowcount == 1


def claim_notification(db: Session, job_id: str) -> bool:
    """
    Bildirim kararı: tek atomik adım. İstemci bağlı değilse 'dispatched' olarak
    işaretlenir ve True döner (çağıran gönderir); bağlıysa 'suppressed'.
    İkinci çağrı her zaman False döner, yani gönderim en fazla bir kez yapılır.
    """
    now = utcnow()
    res = db.exec(
        update(Job)
        .where(
            Job.id == job_id,
            Job.status.in_(TERMINAL_STATUSES),
            Job.notification_state == NOTIFY_PENDING,
            Job.client_connected.is_(False),
        )
        .values(notification_state=NOTIFY_DISPATCHED, updated_at=now)
    )
    if res.rowcount == 1:
        db.commit()
        return True
    db.exec(
        update(Job)
        .where(
            Job.id == job_id,
            Job.status.in_(TERMINAL_STATUSES),
            Job.notification_state == NOTIFY_PENDING,
        )
        .values(notification_state=NOTIFY_SUPPRESSED, updated_at=now)
    )
    db.commit()
    return False


def suppress_notification(db: Session, job_id: str) -> bool:
    """Gönderim yapılamayacaksa (push yapılandırılmamış) karar doğrudan 'suppressed' olur."""
    res = db.exec(
        update(Job)
        .where(
            Job.id == job_id,
            Job.status.in_(TERMINAL_STATUSES),
            Job.notification_state == NOTIFY_PENDING,
        )
        .values(notification_state=NOTIFY_SUPPRESSED, updated_at=utcnow())
    )
    db.commit()
    return res.rowcount == 1


def pending_job_ids(db: Session, created_before: datetime, limit: int) -> list[str]:
    """Kuyruğa ulaşmamış (veya teslimatı gecikmiş) pending işler, en eskisi önce."""
    stmt = (
        select(Job.id)
        .where(Job.status == JOB_PENDING, Job.created_at <= created_before)
        .order_by(Job.created_at)
        .limit(limit)
    )
    return list(db.exec(stmt).all())


def stuck_job_ids(db: Session, updated_before: datetime) -> list[str]:
    stmt = select(Job.id).where(Job.status == JOB_PROCESSING, Job.updated_at <= updated_before)
    return list(db.exec(stmt).all())


def jobs_awaiting_notification(db: Session, finished_before: datetime, limit: int) -> list[str]:
    stmt = (
        select(Job.id)
        .where(
            Job.status.in_(TERMINAL_STATUSES),
            Job.notification_state == NOTIFY_PENDING,
            Job.updated_at <= finished_before,
        )
        .order_by(Job.updated_at)
        .limit(limit)
    )
    return list(db.exec(stmt).all())


def delete_finished_jobs(db: Session, finished_before: datetime) -> int:
    """Saklama süresi dolmuş terminal işleri siler."""
    res = db.exec(
        delete(Job).where(Job.status.in_(TERMINAL_STATUSES), Job.updated_at <= finished_before)
    )
    db.commit()
    if res.rowcount:
        logger.info("Deleted %s finished jobs older than %s", res.rowcount, finished_before)
    return res.rowcount or 0
