"""
Bildirim içerikleri ve iş sonu bildirim kararı.

Karar iş başına bir kez verilir (job_store.claim_notification). Karardan önce
sahibin presence heartbeat'i bayatsa istemci "ayrılmış" işaretlenir; böylece
sonucu göremeyecek kullanıcıya push gider, ekranda bekleyen kullanıcıya gitmez.
"""
import logging
from datetime import timedelta

from sqlmodel import Session, select

from app.models import DailyTool, Job, Presence
from app.models.base import utcnow
from app.models.job import JOB_COMPLETED, KIND_CHAT_REPLY
from app.services import job_store
from app.services.push import FanOutResult, PushDispatcher, PushTarget
from app.services.subscriptions import list_subscriptions

logger = logging.getLogger(__name__)

ICON = "/icons/icon-192.svg"
BODY_MAX_CHARS = 100

REMINDER_PAYLOAD = {
    "title": "Günlük Hatırlatma",
    "body": "Gününü düşünmek için bir an ayır, düşüncelerini günlüğüne yaz.",
    "icon": ICON,
    "badge": ICON,
    "tag": "journal-reminder",
    "data": {"url": "/journal"},
}


def _truncate(text: str, limit: int = BODY_MAX_CHARS) -> str:
    text = (text or "").strip()
    return text if len(text) <= limit else text[: limit - 3] + "..."


def chat_reply_payload(job: Job) -> dict:
    if job.status == JOB_COMPLETED:
        title, body = "Koçun yanıt verdi", _truncate(job.result_buffer)
    else:
        title, body = "Koçun yanıtı oluşturulamadı", "Tekrar denemek için sohbete dön."
    return {
        "title": title,
        "body": body,
        "icon": ICON,
        "badge": ICON,
        "tag": f"coach-response-{job.conversation_id}",
        "data": {"url": "/coach", "conversationId": job.conversation_id, "jobId": job.id},
    }


def daily_tool_payload(job: Job, tool_title: str | None) -> dict:
    if job.status == JOB_COMPLETED:
        title = "Günün aracı hazır!"
        body = f'"{tool_title}" - sana özel hazırlandı.' if tool_title else "Sana özel yeni bir araç hazır."
    else:
        title, body = "Günün aracı oluşturulamadı", "Daha sonra tekrar deneyebilirsin."
    return {
        "title": title,
        "body": _truncate(body),
        "icon": ICON,
        "badge": ICON,
        "tag": "daily-tool-ready",
        "data": {"url": "/daily-tools", "toolId": job.daily_tool_id, "jobId": job.id},
    }


def reminder_payload(overrides: dict | None = None) -> dict:
    """Varsayılan hatırlatma; gövdede title veya body varsa üzerine yazılır."""
    payload = dict(REMINDER_PAYLOAD)
    if overrides and (overrides.get("title") or overrides.get("body")):
        payload.update(overrides)
    return payload


def job_payload_for(db: Session, job: Job) -> dict:
    if job.kind == KIND_CHAT_REPLY:
        return chat_reply_payload(job)
    tool = db.get(DailyTool, job.daily_tool_id) if job.daily_tool_id else None
    return daily_tool_payload(job, tool.title if tool else None)


def is_user_present(db: Session, user_id: int, timeout_seconds: int) -> bool:
    presence = db.exec(select(Presence).where(Presence.user_id == user_id)).first()
    if not presence:
        return False
    return presence.last_seen_at >= utcnow() - timedelta(seconds=timeout_seconds)


def decide_and_notify(
    db: Session, job_id: str, dispatcher: PushDispatcher, presence_timeout_seconds: int
) -> FanOutResult | None:
    """
    Terminal iş için bildirim kararını verir. Gönderim yapıldıysa fan-out
    sonucunu, bastırıldıysa (veya karar zaten verilmişse) None döner.
    """
    job = db.get(Job, job_id)
    if not job:
        return None
    if not dispatcher.configured:
        if job_store.suppress_notification(db, job_id):
            logger.warning("Job %s: push not configured, notification suppressed", job_id)
        return None
    if job.client_connected and not job.seen_at and not is_user_present(db, job.user_id, presence_timeout_seconds):
        if job_store.mark_client_detached(db, job_id):
            logger.info("Job %s: client detached (no fresh heartbeat)", job_id)

    if not job_store.claim_notification(db, job_id):
        logger.info("Job %s: notification suppressed", job_id)
        return None

    db.refresh(job)
    targets = [PushTarget.from_subscription(s) for s in list_subscriptions(db, job.user_id)]
    if not targets:
        logger.info("Job %s: user %s has no push subscriptions", job_id, job.user_id)
        return FanOutResult()
    result = dispatcher.fan_out(db, targets, job_payload_for(db, job))
    logger.info("Job %s: notification dispatched %s", job_id, result.as_dict())
    return result


def send_reminder(db: Session, dispatcher: PushDispatcher, overrides: dict | None = None) -> FanOutResult:
    """Tüm abonelere hatırlatma (cron)."""
    targets = [PushTarget.from_subscription(s) for s in list_subscriptions(db)]
    if not targets:
        logger.info("Reminder: no subscribers")
        return FanOutResult()
    return dispatcher.fan_out(db, targets, reminder_payload(overrides))
