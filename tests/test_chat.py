"""Chat: mesaj gönderme, bekleyen yanıt, işleme sonrası durum."""
from fastapi.testclient import TestClient
from sqlmodel import Session, select

from app.core.database import engine
from app.models import Job, Message


def _process(client: TestClient, job_id: str):
    return client.post(
        "/internal/jobs/process", json={"jobId": job_id}, headers={"Authorization": "Bearer test-cron-secret"}
    )


def test_submit_creates_conversation_and_pending_pair(client: TestClient, auth_headers, fake_queue):
    r = client.post("/chat", json={"message": "Hi"}, headers=auth_headers)
    assert r.status_code == 201
    j = r.json()
    assert j["status"] == "pending"
    assert j["processing"] is True
    assert j["conversationId"]
    assert j["userMessage"]["content"] == "Hi"
    assert j["userMessage"]["role"] == "user"
    assert j["pendingMessage"]["role"] == "assistant"
    assert j["pendingMessage"]["status"] == "pending"
    assert fake_queue.published == [j["jobId"]]
    with Session(engine) as db:
        job = db.get(Job, j["jobId"])
        assert job.queue_message_id == "msg_1"
        assert job.correlation_key == f"chat:{j['pendingMessage']['id']}"


def test_poll_before_and_after_processing(client: TestClient, auth_headers, fake_ai):
    fake_ai.default_reply = "Selam! Bugün neler oldu?"
    j = client.post("/chat", json={"message": "Hi"}, headers=auth_headers).json()
    job_id, conversation_id = j["jobId"], j["conversationId"]

    r = client.get(f"/jobs/{job_id}", headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["status"] == "pending"
    assert r.json()["result"] is None
    r = client.get("/chat/status", params={"conversationId": conversation_id}, headers=auth_headers)
    assert r.json()["processing"] is True
    assert r.json()["messages"][-1]["content"] == ""

    r = _process(client, job_id)
    assert r.status_code == 200
    assert r.json()["status"] == "completed"
    assert r.json()["duplicate"] is False

    r = client.get(f"/jobs/{job_id}", headers=auth_headers)
    assert r.json()["status"] == "completed"
    assert r.json()["result"] == "Selam! Bugün neler oldu?"
    r = client.get("/chat/status", params={"conversationId": conversation_id}, headers=auth_headers)
    last = r.json()["messages"][-1]
    assert last["content"] == "Selam! Bugün neler oldu?"
    assert last["status"] == "completed"
    assert r.json()["processing"] is False
    # Geçmiş ilk kullanıcı mesajıyla başlar
    assert fake_ai.calls[0]["messages"] == [{"role": "user", "content": "Hi"}]


def test_follow_up_message_in_same_conversation(client: TestClient, auth_headers, fake_ai):
    first = client.post("/chat", json={"message": "Bugün yorgunum"}, headers=auth_headers).json()
    _process(client, first["jobId"])
    second = client.post(
        "/chat", json={"message": "Neden olabilir?", "conversationId": first["conversationId"]}, headers=auth_headers
    ).json()
    assert second["conversationId"] == first["conversationId"]
    _process(client, second["jobId"])
    history = fake_ai.calls[1]["messages"]
    assert [m["role"] for m in history] == ["user", "assistant", "user"]
    assert history[-1]["content"] == "Neden olabilir?"


def test_initial_assistant_message_goes_to_system_prompt(client: TestClient, auth_headers, fake_ai):
    j = client.post(
        "/chat",
        json={"message": "İyiyim, teşekkürler", "initialAssistantMessage": "Bugün hedeflerin nasıl gidiyor?"},
        headers=auth_headers,
    ).json()
    _process(client, j["jobId"])
    call = fake_ai.calls[0]
    assert "Bugün hedeflerin nasıl gidiyor?" in call["system"]
    assert call["messages"] == [{"role": "user", "content": "İyiyim, teşekkürler"}]
    r = client.get("/chat/status", params={"conversationId": j["conversationId"]}, headers=auth_headers)
    assert [m["role"] for m in r.json()["messages"]] == ["assistant", "user", "assistant"]


def test_empty_message_is_rejected(client: TestClient, auth_headers):
    r = client.post("/chat", json={"message": "   "}, headers=auth_headers)
    assert r.status_code == 400
    assert "error" in r.json()
    r = client.post("/chat", json={}, headers=auth_headers)
    assert r.status_code == 400


def test_foreign_conversation_is_not_found(client: TestClient, auth_headers, other_headers):
    j = client.post("/chat", json={"message": "Hi"}, headers=auth_headers).json()
    r = client.post("/chat", json={"message": "Merhaba", "conversationId": j["conversationId"]}, headers=other_headers)
    assert r.status_code == 404
    r = client.get("/chat/status", params={"conversationId": j["conversationId"]}, headers=other_headers)
    assert r.status_code == 404
    with Session(engine) as db:
        assert len(db.exec(select(Job)).all()) == 1


def test_chat_requires_auth(client: TestClient):
    r = client.post("/chat", json={"message": "Hi"})
    assert r.status_code == 401


def test_queue_failure_leaves_job_pending(client: TestClient, auth_headers, fake_queue):
    fake_queue.fail = True
    r = client.post("/chat", json={"message": "Hi"}, headers=auth_headers)
    assert r.status_code == 201
    with Session(engine) as db:
        job = db.get(Job, r.json()["jobId"])
        assert job.status == "pending"
        assert job.queue_message_id is None


def test_message_status_and_mark_seen(client: TestClient, auth_headers, other_headers):
    j = client.post("/chat", json={"message": "Hi"}, headers=auth_headers).json()
    message_id = j["pendingMessage"]["id"]
    r = client.get("/chat/status", params={"messageId": message_id}, headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["jobId"] == j["jobId"]
    assert r.json()["message"]["status"] == "pending"

    r = client.post("/chat/mark-seen", json={"messageId": message_id}, headers=other_headers)
    assert r.status_code == 404
    r = client.post("/chat/mark-seen", json={"messageId": message_id}, headers=auth_headers)
    assert r.status_code == 200
    assert r.json() == {"success": True}
    with Session(engine) as db:
        assert db.get(Job, j["jobId"]).seen_at is not None


def test_pending_message_mirrors_failed_job(client: TestClient, auth_headers, fake_ai):
    from app.services.errors import AdapterFailure

    fake_ai.error = AdapterFailure("upstream 500")
    j = client.post("/chat", json={"message": "Hi"}, headers=auth_headers).json()
    r = _process(client, j["jobId"])
    assert r.status_code == 200
    assert r.json()["status"] == "failed"
    with Session(engine) as db:
        assert db.get(Message, j["pendingMessage"]["id"]).status == "failed"
