import logging
import time
import traceback
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv

# Uvicorn nereden çalışırsa çalışsın .env proje kökünden yüklensin (gunce/)
_PROJ_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJ_ROOT / ".env")

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlmodel import Session

from app.api.chat import router as chat_router
from app.api.daily_tools import router as daily_tools_router
from app.api.jobs import router as jobs_router
from app.api.notifications import router as notifications_router
from app.api.presence import router as presence_router
from app.api.worker import router as worker_router
from app.core.config import is_openai_configured, is_push_configured, is_queue_configured, settings
from app.core.database import engine, init_db, ping_db
from app.core.rate_limit import limiter
from app.logging import setup_logging
from app.models import ErrorLog
from app.services.ai import CoachAI
from app.services.errors import InvalidRequest, NotFound
from app.services.push import PushDispatcher
from app.services.queue import JobQueue

setup_logging(level=settings.log_level)
log = logging.getLogger("gunce")


def _cors_origins_list() -> list[str]:
    if not settings.cors_origins or settings.cors_origins.strip() == "*":
        return ["*"]
    return [o.strip() for o in settings.cors_origins.split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    app.state.ai = CoachAI.from_settings()
    app.state.push = PushDispatcher.from_settings()
    app.state.queue = JobQueue.from_settings()
    log.info("OPENAI_API_KEY loaded: %s", "yes" if app.state.ai.configured else "NO (.env dosyasına OPENAI_API_KEY=sk-... ekleyin)")
    log.info("Push configured: %s", "yes" if is_push_configured() else "no (VAPID anahtarları eksik)")
    log.info("Queue configured: %s", "yes" if app.state.queue.configured else "no (işler cron taramasıyla işlenecek)")
    yield


app = FastAPI(
    title="Günce API",
    description="Günlük ve AI koç: ertelenmiş iş ve bildirim hattı",
    lifespan=lifespan,
)
app.state.limiter = limiter


def _error_response(request: Request, status_code: int, detail: str) -> JSONResponse:
    rid = getattr(request.state, "request_id", None)
    body = {"error": detail, "status_code": status_code}
    if rid:
        body["request_id"] = rid
    return JSONResponse(status_code=status_code, content=body)


def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    log.warning("Rate limit exceeded: path=%s", request.url.path)
    return _error_response(request, 429, "Çok fazla istek. Lütfen bir dakika bekleyin.")


def _validation_error_message(exc: RequestValidationError) -> str:
    errs = exc.errors()
    if not errs:
        return "Geçersiz istek."
    first = errs[0]
    loc = list(first.get("loc") or [])
    field = str(loc[-1]) if loc else None
    if first.get("type") == "missing":
        if field == "body":
            return "İstek gövdesi eksik."
        return f"Eksik alan: {field}." if field else "Eksik alan."
    if field:
        return f"Geçersiz alan: {field}."
    return first.get("msg") or "Geçersiz istek."


def _jsonable_errors(errs) -> list[dict]:
    return [{"loc": list(e.get("loc") or []), "msg": e.get("msg"), "type": e.get("type")} for e in errs]


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errs = exc.errors()
    log.warning("Request validation error (422): path=%s method=%s detail=%s", request.url.path, request.method, errs)
    rid = getattr(request.state, "request_id", None)
    body = {"error": _validation_error_message(exc), "status_code": 422, "detail": _jsonable_errors(errs)}
    if rid:
        body["request_id"] = rid
    return JSONResponse(status_code=422, content=body)


app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)


@app.exception_handler(InvalidRequest)
def invalid_request_handler(request: Request, exc: InvalidRequest) -> JSONResponse:
    return _error_response(request, 400, str(exc) or "Geçersiz istek.")


@app.exception_handler(NotFound)
def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
    return _error_response(request, 404, str(exc) or "Bulunamadı.")


@app.exception_handler(HTTPException)
def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_response(request, exc.status_code, exc.detail if isinstance(exc.detail, str) else str(exc.detail))


@app.exception_handler(Exception)
def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("Unhandled exception: path=%s %s", request.url.path, exc, exc_info=True)
    rid = getattr(request.state, "request_id", None)
    try:
        with Session(engine) as db:
            db.add(ErrorLog(
                user_id=None,
                request_id=rid,
                endpoint=request.url.path,
                method=request.method,
                error_message=str(exc)[:2000],
                stack_trace=traceback.format_exc()[:10000],
            ))
            db.commit()
    except Exception as e:
        log.warning("ErrorLog write failed: %s", e)
    return _error_response(request, 500, "Beklenmeyen sunucu hatası.")


@app.middleware("http")
async def request_id_and_latency(request: Request, call_next):
    request.state.request_id = str(uuid.uuid4())
    start = time.perf_counter()
    response = await call_next(request)
    latency_ms = (time.perf_counter() - start) * 1000
    response.headers["X-Request-ID"] = request.state.request_id
    log.info(
        "request_id=%s method=%s path=%s status=%s latency_ms=%.2f",
        request.state.request_id,
        request.method,
        request.url.path,
        response.status_code,
        latency_ms,
    )
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(chat_router)
app.include_router(daily_tools_router)
app.include_router(jobs_router)
app.include_router(notifications_router)
app.include_router(presence_router)
app.include_router(worker_router)


@app.get("/health")
def health():
    database = ping_db()
    return {
        "status": "ok" if database else "degraded",
        "openai_configured": is_openai_configured(),
        "push_configured": is_push_configured(),
        "queue_configured": is_queue_configured(),
        "database": "ok" if database else "error",
    }
