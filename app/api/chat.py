from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlmodel import Session, select

from app.api.deps import get_current_user, get_job_enqueuer
from app.core.database import get_db
from app.core.rate_limit import SUBMIT_RATE_LIMIT, limiter
from app.models import Conversation, Job, Message, User
from app.models.job import KIND_CHAT_REPLY
from app.schemas import (
    ChatMarkSeenRequest,
    ChatRequest,
    ChatSubmitResponse,
    ConversationStatusResponse,
    MessageOut,
    MessageStatusResponse,
    SuccessResponse,
)
from app.services import job_store
from app.services.enqueue import JobEnqueuer
from app.services.errors import NotFound

router = APIRouter(prefix="/chat", tags=["chat"])

IN_PROGRESS = ("pending", "processing")
STATUS_MESSAGES_LIMIT = 50


def _message_out(m: Message) -> MessageOut:
    return MessageOut(id=m.id or 0, role=m.role, content=m.content, status=m.status, created_at=m.created_at)


def _owned_message(db: Session, message_id: int, user_id: int) -> Message:
    message = db.exec(
        select(Message)
        .join(Conversation, Conversation.id == Message.conversation_id)
        .where(Message.id == message_id, Conversation.user_id == user_id)
    ).first()
    if not message:
        raise NotFound("Mesaj bulunamadı.")
    return message


@router.post("", response_model=ChatSubmitResponse, status_code=201)
@limiter.limit(SUBMIT_RATE_LIMIT)
def submit_chat(
    request: Request,
    body: ChatRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    enqueuer: JobEnqueuer = Depends(get_job_enqueuer),
):
    """Mesajı kaydeder, bekleyen asistan mesajını oluşturur ve hemen döner. Yanıt arka planda üretilir."""
    res = enqueuer.enqueue_chat(
        db,
        user.id or 0,
        body.message,
        conversation_id=body.conversation_id,
        initial_assistant_message=body.initial_assistant_message,
    )
    return ChatSubmitResponse(
        job_id=res.job.id,
        status=res.job.status,
        conversation_id=res.conversation.id or 0,
        user_message=_message_out(res.user_message),
        pending_message=_message_out(res.pending_message),
    )


@router.get("/status", response_model=ConversationStatusResponse | MessageStatusResponse)
def chat_status(
    conversation_id: int | None = Query(None, alias="conversationId"),
    message_id: int | None = Query(None, alias="messageId"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """?conversationId= son mesajlar ve durumları; ?messageId= tek mesaj."""
    if message_id is not None:
        message = _owned_message(db, message_id, user.id or 0)
        job = db.exec(
            select(Job).where(Job.message_id == message.id, Job.user_id == user.id, Job.kind == KIND_CHAT_REPLY)
        ).first()
        return MessageStatusResponse(message=_message_out(message), job_id=job.id if job else None)
    if conversation_id is None:
        raise HTTPException(status_code=400, detail="conversationId veya messageId gerekli.")
    conversation = db.exec(
        select(Conversation).where(Conversation.id == conversation_id, Conversation.user_id == user.id)
    ).first()
    if not conversation:
        raise NotFound("Sohbet bulunamadı.")
    rows = db.exec(
        select(Message)
        .where(Message.conversation_id == conversation.id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(STATUS_MESSAGES_LIMIT)
    ).all()
    messages = [_message_out(m) for m in reversed(rows)]
    return ConversationStatusResponse(
        conversation_id=conversation.id or 0,
        messages=messages,
        processing=any(m.status in IN_PROGRESS for m in messages),
    )


@router.post("/mark-seen", response_model=SuccessResponse)
def chat_mark_seen(
    body: ChatMarkSeenRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Kullanıcı yanıtı gördü: bildirim gönderilmez. Tekrar çağrılması zararsızdır."""
    message = _owned_message(db, body.message_id, user.id or 0)
    job = db.exec(
        select(Job).where(Job.message_id == message.id, Job.user_id == user.id, Job.kind == KIND_CHAT_REPLY)
    ).first()
    if not job:
        raise NotFound("Mesaj bulunamadı.")
    job_store.mark_seen(db, job.id, user.id or 0)
    return SuccessResponse()
