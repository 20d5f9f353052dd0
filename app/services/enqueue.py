"""
İş oluşturma: girdi doğrulanır, iş + yer tutucu satırlar tek commit'te yazılır,
iş id'si kuyruğa best-effort yayınlanır. İstek AI çağrısını hiç beklemez.
"""
import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, func, select

from app.models import Conversation, DailyTool, Job, Message
from app.models.base import utcnow
from app.models.job import KIND_CHAT_REPLY, KIND_DAILY_TOOL_GENERATE, KIND_DAILY_TOOL_REFINE
from app.services import job_store
from app.services.errors import InvalidRequest, NotFound
from app.services.queue import JobQueue

logger = logging.getLogger(__name__)

CONVERSATION_TITLE_CHARS = 50
FEEDBACK_MAX_CHARS = 2000


@dataclass
class EnqueueResult:
    job: Job
    existing: bool = False
    conversation: Conversation | None = None
    user_message: Message | None = None
    pending_message: Message | None = None


def _conversation_title(message: str) -> str:
    if len(message) <= CONVERSATION_TITLE_CHARS:
        return message
    return message[:CONVERSATION_TITLE_CHARS] + "..."


class JobEnqueuer:
    def __init__(self, queue: JobQueue, chat_message_max_chars: int = 8000):
        self.queue = queue
        self.chat_message_max_chars = chat_message_max_chars

    def enqueue(
        self,
        db: Session,
        *,
        kind: str,
        user_id: int,
        correlation_key: str,
        payload: dict | None = None,
        daily_tool_id: int | None = None,
    ) -> EnqueueResult:
        """
        Genel yol: anahtar için uçuşta iş varsa onu döner (existing=True),
        yoksa yeni PENDING iş oluşturur ve yayınlar.
        """
        current = job_store.find_inflight(db, correlation_key)
        if current:
            logger.info("Job %s already in flight for %s", current.id, correlation_key)
            return EnqueueResult(job=current, existing=True)
        try:
            job = job_store.create_job(
                db,
                kind=kind,
                user_id=user_id,
                correlation_key=correlation_key,
                payload=payload,
                daily_tool_id=daily_tool_id,
            )
            db.commit()
        except IntegrityError:
            # Eşzamanlı bir istek aynı anahtarla önce yazdı
            db.rollback()
            current = job_store.find_inflight(db, correlation_key)
            if current:
                return EnqueueResult(job=current, existing=True)
            raise
        db.refresh(job)
        logger.info("Job %s enqueued: kind=%s user=%s", job.id, kind, user_id)
        self._publish(db, job)
        return EnqueueResult(job=job)

    def enqueue_chat(
        self,
        db: Session,
        user_id: int,
        message: str,
        conversation_id: int | None = None,
        initial_assistant_message: str | None = None,
    ) -> EnqueueResult:
        message = (message or "").strip()
        if not message:
            raise InvalidRequest("Mesaj boş olamaz.")
        if len(message) > self.chat_message_max_chars:
            raise InvalidRequest(f"Mesaj en fazla {self.chat_message_max_chars} karakter olabilir.")

        try:
            if conversation_id is not None:
                conversation = db.exec(
                    select(Conversation).where(Conversation.id == conversation_id, Conversation.user_id == user_id)
                ).first()
                if not conversation:
                    raise NotFound("Sohbet bulunamadı.")
            else:
                conversation = Conversation(user_id=user_id, title=_conversation_title(message))
                db.add(conversation)
                db.flush()

            if initial_assistant_message and initial_assistant_message.strip():
                count = db.exec(
                    select(func.count()).select_from(Message).where(Message.conversation_id == conversation.id)
                ).one()
                if count == 0:
                    # Koçun bildirimle başlattığı sohbet: açılış mesajı kullanıcıya zaten gösterildi
                    db.add(Message(conversation_id=conversation.id, role="assistant", content=initial_assistant_message.strip()))

            user_message = Message(conversation_id=conversation.id, role="user", content=message)
            db.add(user_message)
            db.flush()
            pending_message = Message(conversation_id=conversation.id, role="assistant", content="", status="pending")
            db.add(pending_message)
            db.flush()
            conversation.updated_at = utcnow()
            db.add(conversation)

            job = job_store.create_job(
                db,
                kind=KIND_CHAT_REPLY,
                user_id=user_id,
                correlation_key=f"chat:{pending_message.id}",
                conversation_id=conversation.id,
                message_id=pending_message.id,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        for row in (conversation, user_message, pending_message, job):
            db.refresh(row)
        logger.info("Job %s enqueued: kind=%s user=%s conversation=%s", job.id, KIND_CHAT_REPLY, user_id, conversation.id)
        self._publish(db, job)
        return EnqueueResult(
            job=job, conversation=conversation, user_message=user_message, pending_message=pending_message
        )

    def enqueue_daily_tool(self, db: Session, user_id: int, previous_tool_ids: list[int] | None = None) -> EnqueueResult:
        ids = list(previous_tool_ids or [])
        if any(isinstance(i, bool) or not isinstance(i, int) for i in ids):
            raise InvalidRequest("previousToolIds tam sayı listesi olmalı.")
        return self.enqueue(
            db,
            kind=KIND_DAILY_TOOL_GENERATE,
            user_id=user_id,
            correlation_key=f"daily_tool:{user_id}",
            payload={"previousToolIds": ids},
        )

    def enqueue_refine(self, db: Session, user_id: int, tool_id: int, feedback: str) -> EnqueueResult:
        feedback = (feedback or "").strip()
        if not tool_id or not feedback:
            raise InvalidRequest("toolId ve feedback zorunludur.")
        if len(feedback) > FEEDBACK_MAX_CHARS:
            raise InvalidRequest(f"Geri bildirim en fazla {FEEDBACK_MAX_CHARS} karakter olabilir.")
        tool = db.exec(select(DailyTool).where(DailyTool.id == tool_id, DailyTool.user_id == user_id)).first()
        if not tool:
            raise NotFound("Araç bulunamadı.")
        return self.enqueue(
            db,
            kind=KIND_DAILY_TOOL_REFINE,
            user_id=user_id,
            correlation_key=f"refine:{tool_id}",
            payload={"feedback": feedback},
            daily_tool_id=tool_id,
        )

    def _publish(self, db: Session, job: Job) -> None:
        """Kuyruğa yayın hatası isteği bozmaz; iş pending kalır, cron taraması işler."""
        if not self.queue.configured:
            logger.info("Job %s: queue not configured, left for cron sweep", job.id)
            return
        try:
            message_id = self.queue.publish(job.id)
        except Exception as e:
            logger.warning("Job %s: queue publish failed, left for cron sweep: %s", job.id, e)
            return
        if message_id:
            job_store.set_queue_message_id(db, job.id, message_id)
            db.refresh(job)
