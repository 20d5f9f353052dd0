from datetime import datetime

from .base import CamelModel


class ChatRequest(CamelModel):
    # Boş/eksik mesaj 400 döner (doğrulama enqueue'da)
    message: str = ""
    conversation_id: int | None = None
    # Koçun bildirimle başlattığı sohbette ilk asistan mesajı
    initial_assistant_message: str | None = None


class MessageOut(CamelModel):
    id: int
    role: str
    content: str
    status: str
    created_at: datetime


class ChatSubmitResponse(CamelModel):
    job_id: str
    status: str
    conversation_id: int
    user_message: MessageOut
    pending_message: MessageOut
    processing: bool = True


class ConversationStatusResponse(CamelModel):
    conversation_id: int
    messages: list[MessageOut]
    processing: bool


class MessageStatusResponse(CamelModel):
    message: MessageOut
    job_id: str | None = None


class ChatMarkSeenRequest(CamelModel):
    message_id: int
