from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.security import constant_time_equals, decode_access_token
from app.models import User
from app.services.ai import CoachAI
from app.services.enqueue import JobEnqueuer
from app.services.processor import JobProcessor
from app.services.push import PushDispatcher
from app.services.queue import JobQueue

security = HTTPBearer(auto_error=False)


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> int:
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Giriş yapmanız gerekiyor.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = decode_access_token(credentials.credentials)
    if not payload or "sub" not in payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Geçersiz veya süresi dolmuş token.",
        )
    try:
        return int(payload["sub"])
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Geçersiz token.")


def get_current_user(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> User:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Kullanıcı bulunamadı.")
    return user


def require_cron_secret(credentials: HTTPAuthorizationCredentials | None = Depends(security)) -> None:
    """Cron çağrıları: Authorization: Bearer <CRON_SECRET>."""
    if not settings.cron_secret:
        raise HTTPException(status_code=500, detail="CRON_SECRET yapılandırılmamış.")
    if not credentials or not constant_time_equals(credentials.credentials, settings.cron_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Yetkisiz.")


# Uygulama ömrü boyunca tek örnekler (lifespan'de app.state'e konur; testlerde override edilir)
def get_ai_client(request: Request) -> CoachAI:
    return request.app.state.ai


def get_push_dispatcher(request: Request) -> PushDispatcher:
    return request.app.state.push


def get_job_queue(request: Request) -> JobQueue:
    return request.app.state.queue


def get_job_enqueuer(queue: JobQueue = Depends(get_job_queue)) -> JobEnqueuer:
    return JobEnqueuer(queue, chat_message_max_chars=settings.chat_message_max_chars)


def get_job_processor(
    ai: CoachAI = Depends(get_ai_client),
    dispatcher: PushDispatcher = Depends(get_push_dispatcher),
) -> JobProcessor:
    return JobProcessor(
        ai,
        dispatcher,
        notification_delay_seconds=settings.notification_delay_seconds,
        presence_timeout_seconds=settings.presence_timeout_seconds,
    )
