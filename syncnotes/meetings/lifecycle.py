"""
Meeting lifecycle: draft -> analyzed -> published, never backwards.

The lifecycle owns the in-memory meeting list and writes the whole list through
to the store on every mutation. Because every commit rewrites the whole list,
mutations are serialized by one asyncio.Lock for the lifecycle: a concurrent
task toggle and analysis commit cannot lose each other's update, and neither
can commits to two different meetings. The store write runs in a worker thread
and the new list only replaces the in-memory one once the write succeeded.
"""
import asyncio
import re
import time
import uuid
from typing import Callable, List, Optional

import structlog

from syncnotes.core.config import settings
from syncnotes.guardrails.errors import (
    InvalidStateTransition,
    MeetingNotFound,
    NotificationFailure,
    ValidationFailure,
)
from syncnotes.meetings.store import MeetingStore
from syncnotes.models.schemas import (
    AccessLogEntry,
    MeetingCreate,
    MeetingIntelligence,
    MeetingRecord,
    MeetingStatus,
    MindMapNode,
    Participant,
    PublishResponse,
    Task,
    TaskStatus,
    ViewerRole,
    placeholder_mind_map,
)
from syncnotes.notify.notifier import PublishNotifier

logger = structlog.get_logger(__name__)

REQUIRED_FIELDS = ("title", "agenda", "date", "time")


def now_ms() -> int:
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


def participant_email(name: str, domain: str) -> str:
    """Derive a participant address from the display name: "Riya Shah" -> riya.shah@<domain>."""
    local = re.sub(r"\s+", ".", name.strip().lower())
    return f"{local}@{domain}"


class MeetingLifecycle:
    def __init__(
        self,
        store: MeetingStore,
        notifier: Optional[PublishNotifier] = None,
        *,
        clock: Callable[[], int] = now_ms,
        public_base_url: Optional[str] = None,
        email_domain: Optional[str] = None,
    ):
        self._store = store
        self._notifier = notifier
        self._clock = clock
        self._public_base_url = public_base_url or settings.public_base_url
        self._email_domain = email_domain or settings.participant_email_domain
        self._meetings: List[MeetingRecord] = store.load_all()
        self._lock = asyncio.Lock()

    # -------------------------
    # Reads
    # -------------------------

    def _position(self, meeting_id: str) -> int:
        for i, m in enumerate(self._meetings):
            if m.id == meeting_id:
                return i
        raise MeetingNotFound(f"Meeting {meeting_id} not found")

    def get(self, meeting_id: str) -> MeetingRecord:
        return self._meetings[self._position(meeting_id)]

    def list_meetings(self, role: ViewerRole = ViewerRole.ADMIN) -> List[MeetingRecord]:
        """Newest first. Members only see published meetings."""
        if role == ViewerRole.ADMIN:
            return list(self._meetings)
        return [m for m in self._meetings if m.is_published]

    def share_link(self, meeting_id: str) -> str:
        return f"{self._public_base_url}?meetingId={meeting_id}"

    # -------------------------
    # Writes (caller holds self._lock)
    # -------------------------

    async def _save(self, meetings: List[MeetingRecord]) -> None:
        await asyncio.to_thread(self._store.save_all, meetings)
        self._meetings = meetings

    async def _commit(self, updated: MeetingRecord) -> MeetingRecord:
        meetings = list(self._meetings)
        meetings[self._position(updated.id)] = updated
        await self._save(meetings)
        return updated

    async def create(self, data: MeetingCreate) -> MeetingRecord:
        """Validate the creation form and add a draft meeting with empty derived fields. Participant emails are derived from names."""
        missing = [f for f in REQUIRED_FIELDS if not (getattr(data, f) or "").strip()]
        if not data.participants:
            missing.append("participants")
        if missing:
            raise ValidationFailure(f"Missing required field(s): {', '.join(missing)}")

        meeting = MeetingRecord(
            id=new_id(),
            title=data.title.strip(),
            agenda=data.agenda.strip(),
            date=data.date.strip(),
            time=data.time.strip(),
            participants=[
                Participant(id=new_id(), name=name, email=participant_email(name, self._email_domain))
                for name in data.participants
            ],
            status=MeetingStatus.DRAFT,
            created_at=self._clock(),
        )
        async with self._lock:
            await self._save([meeting, *self._meetings])
        logger.info("meeting.created", meeting_id=meeting.id, participants=len(meeting.participants))
        return meeting

    async def complete_analysis(
        self,
        meeting_id: str,
        intelligence: MeetingIntelligence,
        mind_map: Optional[MindMapNode],
    ) -> MeetingRecord:
        """Apply extracted intelligence and the mind map in one update. Tasks get fresh ids and start pending.
        Re-analysis replaces the previous intelligence; a published meeting stays published."""
        async with self._lock:
            current = self.get(meeting_id)
            tasks = [
                Task(id=new_id(), title=t.title, assignee=t.assignee, status=TaskStatus.PENDING)
                for t in intelligence.tasks
            ]
            status = MeetingStatus.PUBLISHED if current.is_published else MeetingStatus.ANALYZED
            updated = await self._commit(current.model_copy(update={
                "transcript": intelligence.transcript,
                "summary": intelligence.summary,
                "conclusion": intelligence.conclusion,
                "strategy_shifts": list(intelligence.strategy_shifts),
                "tasks": tasks,
                "mind_map": mind_map or placeholder_mind_map(),
                "status": status,
            }))
        logger.info("meeting.analyzed", meeting_id=meeting_id, tasks=len(tasks))
        return updated

    async def update_summary(self, meeting_id: str, summary: str) -> MeetingRecord:
        """Replace the summary of an analyzed (or published) meeting with an edited version.
        The mind map and the rest of the intelligence stay as generated."""
        async with self._lock:
            current = self.get(meeting_id)
            if not current.is_analyzed:
                raise InvalidStateTransition("Only analyzed meetings have a summary to edit.")
            if summary == current.summary:
                return current
            updated = await self._commit(current.model_copy(update={"summary": summary}))
        logger.info("meeting.summary_edited", meeting_id=meeting_id, length=len(summary))
        return updated

    async def toggle_task(self, meeting_id: str, task_id: str) -> MeetingRecord:
        """Flip one task between pending and completed. Unknown task ids leave the meeting untouched."""
        async with self._lock:
            current = self.get(meeting_id)
            if not any(t.id == task_id for t in current.tasks):
                return current
            tasks = [
                t.model_copy(update={
                    "status": TaskStatus.PENDING if t.status == TaskStatus.COMPLETED else TaskStatus.COMPLETED
                }) if t.id == task_id else t
                for t in current.tasks
            ]
            return await self._commit(current.model_copy(update={"tasks": tasks}))

    async def publish(self, meeting_id: str) -> PublishResponse:
        """Mark an analyzed meeting published, then notify participants.
        Repeat calls keep the meeting published and notify again. A failed notification is returned as a warning and never undoes the publish."""
        async with self._lock:
            current = self.get(meeting_id)
            if not current.is_analyzed:
                raise InvalidStateTransition("Only analyzed meetings can be published.")
            if current.is_published:
                meeting = current
            else:
                meeting = await self._commit(current.model_copy(update={"status": MeetingStatus.PUBLISHED}))
                logger.info("meeting.published", meeting_id=meeting_id)

        link = self.share_link(meeting_id)
        warning = None
        if self._notifier is not None:
            recipients = [p.email for p in meeting.participants]
            try:
                await self._notifier.notify(meeting, recipients, link)
            except (NotificationFailure, ValidationFailure) as e:
                warning = f"Published but failed to send report: {e}"
                logger.warning("publish.notification_failed", meeting_id=meeting_id, error=str(e))
        return PublishResponse(meeting=meeting, share_link=link, notification_warning=warning)

    async def record_access(self, meeting_id: str, role: ViewerRole) -> MeetingRecord:
        """Append an access log entry. Only published meetings can be viewed, so drafts are rejected without logging."""
        async with self._lock:
            current = self.get(meeting_id)
            if not current.is_published:
                raise InvalidStateTransition("Access can only be recorded for published meetings.")
            ts = self._clock()
            if current.access_logs:
                ts = max(ts, current.access_logs[-1].timestamp)
            entry = AccessLogEntry(timestamp=ts, viewer_role=role)
            return await self._commit(current.model_copy(update={"access_logs": [*current.access_logs, entry]}))

    async def resolve_shared_link(self, meeting_id: str, role: ViewerRole = ViewerRole.MEMBER) -> MeetingRecord:
        """Open a meeting through its share link. Unknown and unpublished meetings look the same to the visitor: not found."""
        try:
            meeting = self.get(meeting_id)
        except MeetingNotFound:
            raise MeetingNotFound("This meeting is not available.") from None
        if not meeting.is_published:
            raise MeetingNotFound("This meeting is not available.")
        return await self.record_access(meeting_id, role)
