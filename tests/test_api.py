import pytest
from fastapi.testclient import TestClient

from conftest import RecordingDelivery, RoutedInference, StepClock, fast_guard
from syncnotes.chat.answerer import APOLOGY_REPLY, ConversationalGrounding
from syncnotes.extract.mindmap import MindMapSynthesizer
from syncnotes.extract.transcriber import TranscriptionExtractor
from syncnotes.main import Services, app, get_services, rate_limiter
from syncnotes.meetings.jobs import JOBS
from syncnotes.meetings.lifecycle import MeetingLifecycle
from syncnotes.meetings.store import InMemoryMeetingStore
from syncnotes.notify.notifier import PublishNotifier

MEETING_FORM = {
    "title": "SyncNotes MVP Scope",
    "agenda": "Agree the Q3 launch scope",
    "date": "2026-10-19",
    "time": "10:00",
    "participants": "Alex, Riya Shah, Aman",
}


def _log(item, title: str, request: dict, response: dict):
    """
    Store logs on the test item so conftest can attach to pytest-html report.
    """
    logs = getattr(item, "_api_logs", [])
    logs.append({"title": title, "request": request, "response": response})
    item._api_logs = logs


def _wire(inference=None, delivery=None):
    inference = inference or RoutedInference()
    delivery = delivery or RecordingDelivery()
    services = Services(
        lifecycle=MeetingLifecycle(
            InMemoryMeetingStore(),
            PublishNotifier(delivery),
            clock=StepClock(),
            public_base_url="https://notes.example.com/",
            email_domain="company.com",
        ),
        extractor=TranscriptionExtractor(inference, guard=fast_guard()),
        synthesizer=MindMapSynthesizer(inference, guard=fast_guard()),
        chat=ConversationalGrounding(inference, guard=fast_guard()),
    )
    app.dependency_overrides[get_services] = lambda: services
    return services, delivery


@pytest.fixture
def client():
    rate_limiter.reset()
    JOBS.clear()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _create(client: TestClient) -> dict:
    resp = client.post("/meetings", json=MEETING_FORM)
    assert resp.status_code == 200, resp.text
    return resp.json()


def _analyze(client: TestClient, meeting_id: str, audio: bytes = b"ID3fake-mp3", path: str = "analyze"):
    files = {"audio": ("standup.mp3", audio, "audio/mpeg")}
    return client.post(f"/meetings/{meeting_id}/{path}", files=files)


def test_health_and_limits(client: TestClient):
    _wire()
    assert client.get("/health").json() == {"status": "ok"}
    limits = client.get("/limits").json()
    assert limits["transcription_retries"] == 2
    assert limits["chat_timeout_seconds"] == 15
    assert limits["rate_limit_requests"] == 20


def test_full_meeting_flow(client: TestClient, request):
    _, delivery = _wire()
    item = request.node

    meeting = _create(client)
    _log(item, "POST /meetings", MEETING_FORM, meeting)
    assert meeting["status"] == "draft"
    assert meeting["participants"][1]["email"] == "riya.shah@company.com"
    assert meeting["mindMap"] is None and meeting["accessLogs"] == []
    mid = meeting["id"]

    # members cannot see drafts, and drafts cannot be shared yet
    assert client.get("/meetings", params={"role": "MEMBER"}).json() == []
    assert client.get(f"/shared/{mid}").status_code == 404

    resp = _analyze(client, mid)
    analyzed = resp.json()
    _log(item, f"POST /meetings/{mid}/analyze", {"file": "standup.mp3"}, analyzed)
    assert resp.status_code == 200, resp.text
    assert analyzed["status"] == "analyzed"
    assert len(analyzed["strategyShifts"]) == 3
    assert analyzed["mindMap"]["name"] == "Q3 Launch"
    assert {t["status"] for t in analyzed["tasks"]} == {"pending"}

    task_id = analyzed["tasks"][0]["id"]
    toggled = client.post(f"/meetings/{mid}/tasks/{task_id}/toggle").json()
    assert toggled["tasks"][0]["status"] == "completed"

    published = client.post(f"/meetings/{mid}/publish").json()
    _log(item, f"POST /meetings/{mid}/publish", {}, published)
    assert published["meeting"]["status"] == "published"
    assert published["share_link"] == f"https://notes.example.com/?meetingId={mid}"
    assert published["notification_warning"] is None
    assert len(delivery.calls) == 1

    shared = client.get(f"/shared/{mid}")
    assert shared.status_code == 200
    assert [e["viewerRole"] for e in shared.json()["accessLogs"]] == ["MEMBER"]
    assert [m["id"] for m in client.get("/meetings", params={"role": "MEMBER"}).json()] == [mid]

    chat = client.post(f"/meetings/{mid}/chat", json={"message": "When is the launch?"})
    _log(item, f"POST /meetings/{mid}/chat", {"message": "When is the launch?"}, chat.json())
    assert chat.json() == {"reply": "The launch moves to Q3."}

    report = client.get(f"/meetings/{mid}/report").json()
    assert "1. Draft onboarding plan — Riya [completed]" in report["report"]


def test_create_rejects_missing_fields(client: TestClient):
    _wire()
    resp = client.post("/meetings", json={**MEETING_FORM, "agenda": "", "participants": []})
    assert resp.status_code == 400
    assert "agenda" in resp.json()["detail"]


def test_unknown_meeting_is_404(client: TestClient):
    _wire()
    assert client.get("/meetings/nope").status_code == 404
    assert _analyze(client, "nope").status_code == 404


def test_publish_draft_is_409(client: TestClient):
    _wire()
    mid = _create(client)["id"]
    assert client.post(f"/meetings/{mid}/publish").status_code == 409


def test_chat_on_draft_is_400_and_blank_message_is_422(client: TestClient):
    _wire()
    mid = _create(client)["id"]
    assert client.post(f"/meetings/{mid}/chat", json={"message": "hi"}).status_code == 400
    assert client.post(f"/meetings/{mid}/chat", json={"message": ""}).status_code == 422


def test_empty_audio_is_400(client: TestClient):
    _wire()
    mid = _create(client)["id"]
    assert _analyze(client, mid, audio=b"").status_code == 400


@pytest.mark.parametrize(
    "inference, status_code",
    [
        (RoutedInference(transcription="I could not parse that audio."), 422),
        (RoutedInference(transcription=ConnectionError("upstream down")), 503),
    ],
)
def test_analysis_failures_map_to_status_and_keep_draft(client: TestClient, inference, status_code):
    _wire(inference=inference)
    mid = _create(client)["id"]

    resp = _analyze(client, mid)

    assert resp.status_code == status_code
    assert client.get(f"/meetings/{mid}").json()["status"] == "draft"


def test_chat_upstream_failure_returns_apology(client: TestClient):
    _wire(inference=RoutedInference(chat=ConnectionError("down")))
    mid = _create(client)["id"]
    assert _analyze(client, mid).status_code == 200

    resp = client.post(f"/meetings/{mid}/chat", json={"message": "Summary?"})
    assert resp.status_code == 200
    assert resp.json()["reply"] == APOLOGY_REPLY


def test_publish_with_failing_delivery_returns_warning(client: TestClient):
    _wire(delivery=RecordingDelivery(fail_with=ConnectionError("smtp down")))
    mid = _create(client)["id"]
    _analyze(client, mid)

    body = client.post(f"/meetings/{mid}/publish").json()

    assert body["meeting"]["status"] == "published"
    assert "smtp down" in body["notification_warning"]
    assert client.get(f"/meetings/{mid}").json()["status"] == "published"


def test_background_analysis_job(client: TestClient):
    _wire()
    mid = _create(client)["id"]

    resp = _analyze(client, mid, path="analyze_async")
    assert resp.status_code == 200, resp.text
    job_id = resp.json()["job_id"]

    # TestClient runs background tasks before returning the response
    job = client.get(f"/jobs/{job_id}").json()
    assert job["status"] == "done"
    assert client.get(f"/meetings/{mid}").json()["status"] == "analyzed"
    assert client.get("/jobs/unknown").status_code == 404


def test_background_job_failure_is_reported(client: TestClient):
    _wire(inference=RoutedInference(transcription="garbage"))
    mid = _create(client)["id"]

    job_id = _analyze(client, mid, path="analyze_async").json()["job_id"]

    job = client.get(f"/jobs/{job_id}").json()
    assert job["status"] == "failed"
    assert job["error"]


def test_request_id_is_echoed(client: TestClient):
    _wire()
    resp = client.get("/health", headers={"x-request-id": "req-123"})
    assert resp.headers["x-request-id"] == "req-123"
    assert client.get("/health").headers["x-request-id"]


def test_rate_limiter_windows_are_per_scope():
    from types import SimpleNamespace

    from fastapi import HTTPException

    from syncnotes.guardrails.rate_limit import SimpleRateLimiter

    now = [0.0]
    limiter = SimpleRateLimiter(max_requests=2, window_seconds=60, clock=lambda: now[0])
    req = SimpleNamespace(client=SimpleNamespace(host="10.0.0.1"))

    limiter.check(req, scope="chat")
    limiter.check(req, scope="chat")
    with pytest.raises(HTTPException) as exc:
        limiter.check(req, scope="chat")
    assert exc.value.status_code == 429
    assert exc.value.headers["Retry-After"] == "60"

    limiter.check(req, scope="analysis")
    now[0] = 60.0
    limiter.check(req, scope="chat")


def test_member_role_cannot_run_admin_operations(client: TestClient):
    _wire()
    member = {"role": "MEMBER"}
    assert client.post("/meetings", json=MEETING_FORM, params=member).status_code == 403
    assert client.get("/meetings").json() == []

    mid = _create(client)["id"]
    files = {"audio": ("standup.mp3", b"ID3fake-mp3", "audio/mpeg")}
    assert client.post(f"/meetings/{mid}/analyze", files=files, params=member).status_code == 403
    assert client.post(f"/meetings/{mid}/analyze_async", files=files, params=member).status_code == 403
    assert client.get(f"/meetings/{mid}").json()["status"] == "draft"

    assert _analyze(client, mid).status_code == 200
    assert client.put(f"/meetings/{mid}/summary", json={"summary": "x"}, params=member).status_code == 403
    assert client.post(f"/meetings/{mid}/publish", params=member).status_code == 403
    assert client.get(f"/meetings/{mid}").json()["status"] == "analyzed"

    # explicit ADMIN behaves like the default
    assert client.post(f"/meetings/{mid}/publish", params={"role": "ADMIN"}).status_code == 200


def test_admin_edits_summary_after_analysis(client: TestClient):
    _wire()
    mid = _create(client)["id"]
    assert client.put(f"/meetings/{mid}/summary", json={"summary": "too early"}).status_code == 409

    _analyze(client, mid)
    resp = client.put(f"/meetings/{mid}/summary", json={"summary": "Launch moves to Q3."})

    assert resp.status_code == 200
    assert resp.json()["summary"] == "Launch moves to Q3."
    assert client.get(f"/meetings/{mid}").json()["summary"] == "Launch moves to Q3."
    assert client.put("/meetings/nope/summary", json={"summary": "x"}).status_code == 404


def test_unsupported_audio_type_is_rejected_without_inference(client: TestClient):
    services, _ = _wire()
    inference = services.extractor.client
    mid = _create(client)["id"]

    files = {"audio": ("recording.webm", b"\x1aE\xdf\xa3", "audio/webm")}
    assert client.post(f"/meetings/{mid}/analyze", files=files).status_code == 400
    assert client.post(f"/meetings/{mid}/analyze_async", files=files).status_code == 400
    assert inference.requests == []
