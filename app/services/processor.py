"""
İş işlemcisi: pending → processing → completed | failed.

Kuyruk çağrısı veya cron taraması ile kısa ömürlü olarak çalışır. Sahiplik
koşullu UPDATE ile alınır (claim); aynı işin ikinci teslimatı hiçbir şey
yapmaz. İçeride tekrar deneme yoktur: başarısız iş için kullanıcı yeni iş açar.
"""
import json
import logging
import time
from dataclasses import asdict, dataclass
from datetime import timedelta

from sqlalchemy import update
from sqlmodel import Session, select

from app.models import Conversation, DailyTool, Job, JournalEntry, Message, User
from app.models.base import utcnow
from app.models.job import (
    JOB_COMPLETED,
    JOB_FAILED,
    JOB_PROCESSING,
    KIND_CHAT_REPLY,
    KIND_DAILY_TOOL_GENERATE,
    KIND_DAILY_TOOL_REFINE,
    TERMINAL_STATUSES,
)
from app.services import job_store
from app.services.ai import CoachAI
from app.services.errors import AdapterFailure, JobError, NotFound, StaleReference
from app.services.notifications import decide_and_notify
from app.services.prompts import (
    COACH_CONTEXT_ENTRIES,
    DAILY_TOOL_CONTEXT_ENTRIES,
    DAILY_TOOL_PREVIOUS_TOOLS,
    DAILY_TOOL_REFINE_SYSTEM_PROMPT,
    DAILY_TOOL_SYSTEM_PROMPT,
    GeneratedTool,
    build_coach_context,
    build_daily_tool_prompt,
    build_refine_prompt,
    format_entry,
    parse_generated_tool,
    split_chat_history,
)
from app.services.push import FanOutResult, PushDispatcher

logger = logging.getLogger(__name__)

CHAT_MAX_TOKENS = 1024
TOOL_MAX_TOKENS = 6000

# Kullanıcıya gösterilen hata metinleri (iş üzerindeki error yalnızca teşhis içindir)
USER_ERROR_MESSAGES = {
    StaleReference.code: "İlgili kayıt artık mevcut değil.",
    AdapterFailure.code: "Yanıt oluşturulamadı. Lütfen tekrar deneyin.",
    "timeout": "İşlem zaman aşımına uğradı. Lütfen tekrar deneyin.",
    "internal": "Beklenmeyen bir hata oluştu. Lütfen tekrar deneyin.",
}


def user_error_message(code: str | None) -> str | None:
    if not code:
        return None
    return USER_ERROR_MESSAGES.get(code, USER_ERROR_MESSAGES["internal"])


class _ClaimLost(Exception):
    """İş işlenirken başka biri (timeout taraması) onu terminal duruma geçirdi."""


@dataclass
class ProcessOutcome:
    job_id: str
    status: str
    claimed: bool
    notification: FanOutResult | None = None


@dataclass
class SweepResult:
    expired: int = 0
    processed: int = 0
    completed: int = 0
    failed: int = 0
    notified: int = 0
    deleted: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


def _mirror_message_status(db: Session, job: Job, status: str) -> None:
    """Sohbet işinde bekleyen asistan mesajının durumu işin durumunu izler."""
    if job.kind != KIND_CHAT_REPLY or not job.message_id:
        return
    db.exec(update(Message).where(Message.id == job.message_id).values(status=status))
    db.commit()


class JobProcessor:
    def __init__(
        self,
        ai: CoachAI,
        dispatcher: PushDispatcher,
        notification_delay_seconds: int = 0,
        presence_timeout_seconds: int = 120,
    ):
        self.ai = ai
        self.dispatcher = dispatcher
        self.notification_delay_seconds = notification_delay_seconds
        self.presence_timeout_seconds = presence_timeout_seconds
        self._handlers = {
            KIND_CHAT_REPLY: self._run_chat_reply,
            KIND_DAILY_TOOL_GENERATE: self._run_daily_tool,
            KIND_DAILY_TOOL_REFINE: self._run_refine,
        }

    def process(self, db: Session, job_id: str, queue_message_id: str | None = None) -> ProcessOutcome:
        job = db.get(Job, job_id)
        if not job:
            raise NotFound("İş bulunamadı.")
        if not job_store.claim_job(db, job_id, queue_message_id):
            db.refresh(job)
            logger.info("Job %s: duplicate delivery ignored (status=%s)", job_id, job.status)
            return ProcessOutcome(job_id=job_id, status=job.status, claimed=False)

        db.refresh(job)
        logger.info("Job %s claimed: kind=%s", job_id, job.kind)
        _mirror_message_status(db, job, JOB_PROCESSING)
        t0 = time.perf_counter()

        def elapsed_ms() -> int:
            return int((time.perf_counter() - t0) * 1000)

        try:
            handler = self._handlers.get(job.kind)
            if handler is None:
                raise StaleReference(f"Unknown job kind: {job.kind}")
            handler(db, job, elapsed_ms)
            logger.info("Job %s completed in %sms", job_id, elapsed_ms())
        except _ClaimLost:
            db.rollback()
            logger.warning("Job %s: finished after losing its claim; result discarded", job_id)
        except JobError as e:
            db.rollback()
            self._fail(db, job, e.code, str(e), elapsed_ms())
        except Exception as e:
            db.rollback()
            logger.exception("Job %s: unexpected error: %s", job_id, e)
            self._fail(db, job, "internal", f"{type(e).__name__}: {e}", elapsed_ms())

        db.refresh(job)
        notification = None
        if job.status in TERMINAL_STATUSES and self.notification_delay_seconds <= 0:
            notification = self.notify(db, job_id)
        return ProcessOutcome(job_id=job_id, status=job.status, claimed=True, notification=notification)

    def _fail(self, db: Session, job: Job, code: str, error: str, duration_ms: int | None = None) -> None:
        if job_store.fail_job(db, job.id, code, error, duration_ms):
            logger.warning("Job %s failed: code=%s %s", job.id, code, error)
            _mirror_message_status(db, job, JOB_FAILED)

    def notify(self, db: Session, job_id: str) -> FanOutResult | None:
        """Bildirim hatası işin sonucunu etkilemez; yalnızca loglanır."""
        try:
            return decide_and_notify(db, job_id, self.dispatcher, self.presence_timeout_seconds)
        except Exception as e:
            db.rollback()
            logger.exception("Job %s: notification step failed: %s", job_id, e)
            return None

    # --- türe özgü işleyiciler ---

    def _recent_entries(self, db: Session, user_id: int, limit: int) -> list[str]:
        entries = db.exec(
            select(JournalEntry).where(JournalEntry.user_id == user_id).order_by(JournalEntry.date.desc()).limit(limit)
        ).all()
        return [format_entry(e.date, e.content, e.mood) for e in entries]

    def _run_chat_reply(self, db: Session, job: Job, elapsed_ms) -> None:
        conversation = db.exec(
            select(Conversation).where(Conversation.id == job.conversation_id, Conversation.user_id == job.user_id)
        ).first()
        pending = db.get(Message, job.message_id) if job.message_id else None
        if not conversation or not pending or pending.conversation_id != conversation.id:
            raise StaleReference("Conversation or pending message no longer exists")

        rows = db.exec(
            select(Message)
            .where(Message.conversation_id == conversation.id, Message.id < pending.id)
            .order_by(Message.created_at, Message.id)
        ).all()
        openers, history = split_chat_history([(m.role, m.content) for m in rows])
        if not history:
            raise StaleReference("No user message to reply to")
        system = build_coach_context(self._recent_entries(db, job.user_id, COACH_CONTEXT_ENTRIES), openers)

        text = self.ai.complete(system, history, max_tokens=CHAT_MAX_TOKENS)

        pending.content = text
        pending.status = JOB_COMPLETED
        conversation.updated_at = utcnow()
        db.add(pending)
        db.add(conversation)
        if not job_store.complete_job(db, job.id, text, elapsed_ms()):
            raise _ClaimLost()
        db.commit()

    def _generate(self, system: str, prompt: str) -> GeneratedTool:
        text = self.ai.complete(system, [{"role": "user", "content": prompt}], max_tokens=TOOL_MAX_TOKENS)
        try:
            return parse_generated_tool(text)
        except ValueError as e:
            raise AdapterFailure(str(e)) from e

    def _run_daily_tool(self, db: Session, job: Job, elapsed_ms) -> None:
        if not db.get(User, job.user_id):
            raise StaleReference("User no longer exists")
        previous_ids = job_store.job_payload(job).get("previousToolIds") or []
        stmt = select(DailyTool).where(DailyTool.user_id == job.user_id)
        if previous_ids:
            stmt = stmt.where(DailyTool.id.in_(previous_ids))
        previous = db.exec(stmt.order_by(DailyTool.date.desc()).limit(DAILY_TOOL_PREVIOUS_TOOLS)).all()
        prompt = build_daily_tool_prompt(
            self._recent_entries(db, job.user_id, DAILY_TOOL_CONTEXT_ENTRIES),
            [(t.title, t.description) for t in previous],
        )

        generated = self._generate(DAILY_TOOL_SYSTEM_PROMPT, prompt)

        tool = DailyTool(
            user_id=job.user_id,
            title=generated.title,
            description=generated.description,
            html_code=generated.html_code,
            journal_context=generated.journal_context,
        )
        db.add(tool)
        db.flush()
        result = json.dumps({"toolId": tool.id, "title": tool.title, "description": tool.description}, ensure_ascii=False)
        if not job_store.complete_job(db, job.id, result, elapsed_ms(), daily_tool_id=tool.id):
            raise _ClaimLost()
        db.commit()

    def _run_refine(self, db: Session, job: Job, elapsed_ms) -> None:
        tool = db.exec(
            select(DailyTool).where(DailyTool.id == job.daily_tool_id, DailyTool.user_id == job.user_id)
        ).first()
        if not tool:
            raise StaleReference("Daily tool no longer exists")
        feedback = job_store.job_payload(job).get("feedback") or ""
        prompt = build_refine_prompt(tool.title, tool.description, tool.journal_context, tool.html_code, feedback)

        refined = self._generate(DAILY_TOOL_REFINE_SYSTEM_PROMPT, prompt)

        tool.title = refined.title
        tool.description = refined.description
        tool.html_code = refined.html_code
        if refined.journal_context:
            tool.journal_context = refined.journal_context
        tool.updated_at = utcnow()
        db.add(tool)
        result = json.dumps({"toolId": tool.id, "title": tool.title, "description": tool.description}, ensure_ascii=False)
        if not job_store.complete_job(db, job.id, result, elapsed_ms()):
            raise _ClaimLost()
        db.commit()

    # --- cron taraması ---

    def expire_stuck(self, db: Session, timeout_seconds: int) -> int:
        """processing'de takılı kalan işler (çökmüş worker) timeout ile failed olur."""
        cutoff = utcnow() - timedelta(seconds=timeout_seconds)
        expired = 0
        for job_id in job_store.stuck_job_ids(db, cutoff):
            job = db.get(Job, job_id)
            if job and job_store.fail_job(db, job_id, "timeout", f"Processing exceeded {timeout_seconds}s"):
                expired += 1
                _mirror_message_status(db, job, JOB_FAILED)
        if expired:
            logger.warning("Expired %s stuck jobs", expired)
        return expired

    def run_sweep(
        self,
        db: Session,
        *,
        processing_timeout_seconds: int,
        pending_after_seconds: int,
        batch_size: int,
        retention_days: int,
    ) -> SweepResult:
        result = SweepResult()
        result.expired = self.expire_stuck(db, processing_timeout_seconds)

        cutoff = utcnow() - timedelta(seconds=pending_after_seconds)
        for job_id in job_store.pending_job_ids(db, cutoff, batch_size):
            outcome = self.process(db, job_id)
            if not outcome.claimed:
                continue
            result.processed += 1
            if outcome.status == JOB_COMPLETED:
                result.completed += 1
            elif outcome.status == JOB_FAILED:
                result.failed += 1

        # Gecikmeli kararlar ve karar verilmemiş (örn. timeout olmuş) işler
        decide_before = utcnow() - timedelta(seconds=max(self.notification_delay_seconds, 0))
        for job_id in job_store.jobs_awaiting_notification(db, decide_before, batch_size):
            if self.notify(db, job_id) is not None:
                result.notified += 1

        result.deleted = job_store.delete_finished_jobs(db, utcnow() - timedelta(days=retention_days))
        logger.info("Sweep finished: %s", result.as_dict())
        return result
