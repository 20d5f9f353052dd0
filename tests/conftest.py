"""Pytest fixtures: test client, test DB (in-memory SQLite), sahte AI/push/kuyruk."""
import json
import os
import threading

import pytest
from fastapi.testclient import TestClient

# Test ortamında in-memory SQLite (app import edilmeden önce set edilmeli)
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("OPENAI_API_KEY", "sk-test-dummy")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("VAPID_PUBLIC_KEY", "test-vapid-public")
os.environ.setdefault("VAPID_PRIVATE_KEY", "test-vapid-private")
# Rate limit yüksek olsun ki tüm testler geçebilsin
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "1000")
os.environ["QSTASH_TOKEN"] = ""
os.environ["QSTASH_CURRENT_SIGNING_KEY"] = ""
os.environ["QSTASH_NEXT_SIGNING_KEY"] = ""

from sqlmodel import Session, SQLModel

from app.api.deps import get_ai_client, get_job_queue, get_push_dispatcher
from app.core.database import engine, init_db
from app.core.rate_limit import limiter
from app.core.security import create_access_token
from app.main import app
from app.models import User
from app.services.errors import DispatchGone, DispatchTransient
from app.services.processor import JobProcessor
from app.services.push import PushDispatcher
from app.services.queue import JobQueue

TOOL_HTML = "<!DOCTYPE html><html><body><button>Nefes al</button></body></html>"


def tool_json(title: str = "Nefes Sayacı", description: str = "4-7-8 nefes egzersizi") -> str:
    return json.dumps(
        {"title": title, "description": description, "journalContext": "stres", "htmlCode": TOOL_HTML}
    )


class FakeAI:
    """CoachAI yerine: çağrıları kaydeder, sıradaki yanıtı veya hatayı döner."""

    configured = True

    def __init__(self):
        self.calls: list[dict] = []
        self.replies: list[str] = []
        self.error: Exception | None = None
        self.default_reply = "Merhaba! Bugün nasıl hissediyorsun?"

    def complete(self, system: str, messages: list[dict], max_tokens: int = 1024) -> str:
        self.calls.append({"system": system, "messages": messages})
        if self.error:
            raise self.error
        if self.replies:
            return self.replies.pop(0)
        return self.default_reply


class FakePush(PushDispatcher):
    """Gerçek fan_out mantığı; yalnızca send() ağ yerine endpoint listelerine bakar."""

    def __init__(self):
        super().__init__("test-vapid-private", "mailto:test@example.com")
        self.sent: list[tuple[str, dict]] = []
        self.gone: set[str] = set()
        self.transient: set[str] = set()
        self._lock = threading.Lock()

    def send(self, target, payload: dict) -> None:
        with self._lock:
            self.sent.append((target.endpoint, payload))
        if target.endpoint in self.gone:
            raise DispatchGone(410, "subscription expired")
        if target.endpoint in self.transient:
            raise DispatchTransient("HTTP 503: push service unavailable")


class FakeQueue(JobQueue):
    def __init__(self):
        super().__init__("", "")
        self.published: list[str] = []
        self.fail = False

    @property
    def configured(self) -> bool:
        return True

    def publish(self, job_id: str) -> str | None:
        if self.fail:
            raise RuntimeError("queue unavailable")
        self.published.append(job_id)
        return f"msg_{len(self.published)}"


@pytest.fixture(autouse=True)
def _reset_db():
    """Her test temiz veritabanıyla başlar (in-memory DB tek bağlantıda yaşar)."""
    SQLModel.metadata.drop_all(engine)
    init_db()
    limiter.reset()
    yield


@pytest.fixture
def cron_headers():
    return {"Authorization": "Bearer test-cron-secret"}


@pytest.fixture
def tool_response():
    """Geçerli araç JSON'u üreten fabrika."""
    return tool_json


@pytest.fixture
def fake_ai():
    return FakeAI()


@pytest.fixture
def fake_push():
    return FakePush()


@pytest.fixture
def fake_queue():
    return FakeQueue()


@pytest.fixture(scope="function")
def client(fake_ai, fake_push, fake_queue):
    """TestClient; lifespan ile tablolar hazır olur, dış servisler sahteleriyle değiştirilir."""
    app.dependency_overrides[get_ai_client] = lambda: fake_ai
    app.dependency_overrides[get_push_dispatcher] = lambda: fake_push
    app.dependency_overrides[get_job_queue] = lambda: fake_queue
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def processor(fake_ai, fake_push):
    return JobProcessor(fake_ai, fake_push, notification_delay_seconds=0, presence_timeout_seconds=120)


def create_user(email: str) -> int:
    with Session(engine) as db:
        user = User(email=email, full_name=email.split("@")[0])
        db.add(user)
        db.commit()
        db.refresh(user)
        return user.id


def headers_for(user_id: int) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user_id)})}"}


@pytest.fixture
def user_id():
    return create_user("ayse@example.com")


@pytest.fixture
def auth_headers(user_id):
    """Kayıtlı kullanıcı token'ı ile Authorization header döner."""
    return headers_for(user_id)


@pytest.fixture
def other_user_id():
    return create_user("mehmet@example.com")


@pytest.fixture
def other_headers(other_user_id):
    return headers_for(other_user_id)
