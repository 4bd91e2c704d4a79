import sys
from pathlib import Path
import json
import pytest

# Ensure repo root is on sys.path so `import syncnotes...` works in tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from syncnotes.meetings.lifecycle import MeetingLifecycle
from syncnotes.meetings.store import InMemoryMeetingStore
from syncnotes.models.schemas import MeetingCreate, MeetingIntelligence
from syncnotes.notify.notifier import PublishNotifier
from syncnotes.utils.retry import RequestGuard, RetryPolicy


INTELLIGENCE_JSON = json.dumps({
    "transcript": "Alex: Alright, let's get started. Riya: Budget first.",
    "summary": "The team agreed to move the launch and shift budget to onboarding.",
    "conclusion": "Launch moves to Q3 with onboarding as the priority.",
    "strategyShifts": ["Launch moves to Q3", "Budget to onboarding", "Weekly syncs"],
    "tasks": [
        {"title": "Draft onboarding plan", "assignee": "Riya"},
        {"title": "Update roadmap", "assignee": "Alex"},
    ],
})

MIND_MAP_JSON = json.dumps({
    "name": "Q3 Launch",
    "children": [
        {"name": "Onboarding", "children": []},
        {"name": "Budget", "children": [{"name": "Reallocation"}]},
    ],
})


class RoutedInference:
    """Fake inference client answering by request kind (schema name). Values may be strings, exceptions, or callables returning either."""

    def __init__(self, transcription=INTELLIGENCE_JSON, mind_map=MIND_MAP_JSON, chat="The launch moves to Q3."):
        self.replies = {"meeting_intelligence": transcription, "mind_map": mind_map, "response": chat}
        self.requests = []

    async def generate(self, request):
        self.requests.append(request)
        reply = self.replies[request.schema_name]
        if callable(reply) and not isinstance(reply, str):
            reply = reply()
        if isinstance(reply, Exception):
            raise reply
        return reply

    def calls(self, kind: str) -> int:
        return sum(1 for r in self.requests if r.schema_name == kind)


class RecordingDelivery:
    def __init__(self, fail_with: Exception | None = None):
        self.fail_with = fail_with
        self.calls = []

    async def deliver_report(self, meeting, recipients, share_link):
        self.calls.append((meeting, list(recipients), share_link))
        if self.fail_with is not None:
            raise self.fail_with


class StepClock:
    """Millisecond clock advancing by a fixed step on each read."""

    def __init__(self, start: int = 1_700_000_000_000, step: int = 1000):
        self.now = start
        self.step = step

    def __call__(self) -> int:
        value = self.now
        self.now += self.step
        return value


def fast_guard(deadline: float = 1.0, retries: int = 0, sleeps: list | None = None) -> RequestGuard:
    async def _sleep(seconds):
        if sleeps is not None:
            sleeps.append(seconds)

    return RequestGuard(RetryPolicy(deadline_seconds=deadline, max_retries=retries, backoff_seconds=1.0), sleep=_sleep)


def sample_create(**overrides) -> MeetingCreate:
    data = {
        "title": "SyncNotes MVP Scope",
        "agenda": "Agree the Q3 launch scope",
        "date": "2026-10-19",
        "time": "10:00",
        "participants": "Alex, Riya Shah, Aman",
    }
    data.update(overrides)
    return MeetingCreate(**data)


def sample_intelligence() -> MeetingIntelligence:
    return MeetingIntelligence.model_validate(json.loads(INTELLIGENCE_JSON))


@pytest.fixture
def store():
    return InMemoryMeetingStore()


@pytest.fixture
def delivery():
    return RecordingDelivery()


@pytest.fixture
def lifecycle(store, delivery):
    return MeetingLifecycle(
        store,
        PublishNotifier(delivery),
        clock=StepClock(),
        public_base_url="https://notes.example.com/",
        email_domain="company.com",
    )


def pretty_json(obj) -> str:
    return json.dumps(obj, indent=2, ensure_ascii=False, sort_keys=True)


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item, call):
    """
    Attach request/response payloads into pytest-html report.

    In tests, store payloads like:
      item._api_logs = [{"title": "...", "request": ..., "response": ...}, ...]
    """
    outcome = yield
    rep = outcome.get_result()

    if rep.when != "call":
        return

    api_logs = getattr(item, "_api_logs", None)
    if not api_logs:
        return

    extras = getattr(rep, "extra", [])

    try:
        from pytest_html import extras as html_extras
    except ImportError:
        rep.extra = extras
        return

    for entry in api_logs:
        title = entry.get("title", "API Call")
        req = entry.get("request", {})
        res = entry.get("response", {})

        html = f"""
        <div style="font-family: ui-monospace, SFMono-Regular, Menlo, Monaco, Consolas, 'Liberation Mono', monospace;">
          <h4 style="margin:8px 0;">{title}</h4>
          <details style="margin:6px 0;">
            <summary><b>Request</b></summary>
            <pre style="background:#0b1020;color:#cfe3ff;padding:10px;border-radius:8px;overflow:auto;">{pretty_json(req)}</pre>
          </details>
          <details style="margin:6px 0;">
            <summary><b>Response</b></summary>
            <pre style="background:#0b1020;color:#cfe3ff;padding:10px;border-radius:8px;overflow:auto;">{pretty_json(res)}</pre>
          </details>
        </div>
        """
        extras.append(html_extras.html(html))

    rep.extra = extras
