"""İş durumu sorgusu, sahiplik, mark-seen, clientConnected."""
from fastapi.testclient import TestClient
from sqlmodel import Session

from app.core.database import engine
from app.models import Job
from app.services.errors import AdapterFailure


def test_poll_foreign_job_is_not_found(client: TestClient, auth_headers, other_headers):
    job_id = client.post("/chat", json={"message": "Hi"}, headers=auth_headers).json()["jobId"]
    r = client.get(f"/jobs/{job_id}", headers=other_headers)
    assert r.status_code == 404
    assert r.json()["status_code"] == 404
    assert client.get("/jobs/does-not-exist", headers=auth_headers).status_code == 404
    assert client.get(f"/jobs/{job_id}", headers=auth_headers).status_code == 200


def test_poll_requires_auth(client: TestClient, auth_headers):
    job_id = client.post("/chat", json={"message": "Hi"}, headers=auth_headers).json()["jobId"]
    assert client.get(f"/jobs/{job_id}").status_code == 401
    assert client.get(f"/jobs/{job_id}", headers={"Authorization": "Bearer not-a-token"}).status_code == 401


def test_failed_job_shows_generic_error(client: TestClient, auth_headers, fake_ai, cron_headers):
    fake_ai.error = AdapterFailure("openai.RateLimitError: key sk-live-123 exhausted")
    job_id = client.post("/chat", json={"message": "Hi"}, headers=auth_headers).json()["jobId"]
    client.post("/internal/jobs/process", json={"jobId": job_id}, headers=cron_headers)
    j = client.get(f"/jobs/{job_id}", headers=auth_headers).json()
    assert j["status"] == "failed"
    assert j["errorCode"] == "adapter_failure"
    assert j["result"] is None
    assert "sk-live" not in j["error"]
    assert j["error"]


def test_mark_seen_is_idempotent(client: TestClient, auth_headers):
    job_id = client.post("/chat", json={"message": "Hi"}, headers=auth_headers).json()["jobId"]
    r = client.post("/jobs/mark-seen", json={"jobId": job_id}, headers=auth_headers)
    assert r.status_code == 200
    with Session(engine) as db:
        first_seen = db.get(Job, job_id).seen_at
    assert first_seen is not None
    r = client.post("/jobs/mark-seen", json={"jobId": job_id}, headers=auth_headers)
    assert r.status_code == 200
    assert r.json() == {"success": True}
    with Session(engine) as db:
        job = db.get(Job, job_id)
        assert job.seen_at == first_seen
        assert job.client_connected is True


def test_mark_seen_foreign_job_is_not_found(client: TestClient, auth_headers, other_headers):
    job_id = client.post("/chat", json={"message": "Hi"}, headers=auth_headers).json()["jobId"]
    r = client.post("/jobs/mark-seen", json={"jobId": job_id}, headers=other_headers)
    assert r.status_code == 404
    with Session(engine) as db:
        assert db.get(Job, job_id).seen_at is None


def test_client_can_report_detach(client: TestClient, auth_headers, other_headers):
    job_id = client.post("/chat", json={"message": "Hi"}, headers=auth_headers).json()["jobId"]
    r = client.patch(f"/jobs/{job_id}", json={"clientConnected": False}, headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["clientConnected"] is False
    assert client.patch(f"/jobs/{job_id}", json={"clientConnected": True}, headers=other_headers).status_code == 404
    r = client.patch(f"/jobs/{job_id}", json={}, headers=auth_headers)
    assert r.status_code == 422


def test_detached_client_is_notified_after_processing(client: TestClient, auth_headers, fake_push, cron_headers):
    client.post(
        "/notifications/subscribe",
        json={"endpoint": "https://push.example/phone", "keys": {"p256dh": "pk", "auth": "ak"}},
        headers=auth_headers,
    )
    client.post("/presence/heartbeat", json={"currentPage": "/coach"}, headers=auth_headers)
    job_id = client.post("/chat", json={"message": "Hi"}, headers=auth_headers).json()["jobId"]
    client.patch(f"/jobs/{job_id}", json={"clientConnected": False}, headers=auth_headers)
    client.post("/internal/jobs/process", json={"jobId": job_id}, headers=cron_headers)
    assert [e for e, _ in fake_push.sent] == ["https://push.example/phone"]


def test_heartbeat_keeps_client_attached(client: TestClient, auth_headers, fake_push, cron_headers):
    client.post(
        "/notifications/subscribe",
        json={"endpoint": "https://push.example/phone", "keys": {"p256dh": "pk", "auth": "ak"}},
        headers=auth_headers,
    )
    r = client.post("/presence/heartbeat", json={"currentPage": "/coach"}, headers=auth_headers)
    assert r.json() == {"ok": True}
    job_id = client.post("/chat", json={"message": "Hi"}, headers=auth_headers).json()["jobId"]
    client.post("/internal/jobs/process", json={"jobId": job_id}, headers=cron_headers)
    assert fake_push.sent == []
    assert client.get(f"/jobs/{job_id}", headers=auth_headers).json()["clientConnected"] is True
