from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class TaskStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class MeetingStatus(str, Enum):
    """Lifecycle state. Transitions only move forward: draft -> analyzed -> published."""

    DRAFT = "draft"
    ANALYZED = "analyzed"
    PUBLISHED = "published"


class ViewerRole(str, Enum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class CamelModel(BaseModel):
    """Serializes with camelCase keys (strategyShifts, mindMap, accessLogs) so stored meeting lists stay readable by existing clients."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Participant(CamelModel):
    id: str
    name: str
    email: str


class Task(CamelModel):
    """One action item. assignee is free text copied from the model output; it is not matched against participants."""

    id: str
    title: str
    assignee: str
    status: TaskStatus = TaskStatus.PENDING


class MindMapNode(CamelModel):
    name: str
    children: List["MindMapNode"] = Field(default_factory=list)

    @field_validator("children", mode="before")
    @classmethod
    def _none_is_empty(cls, v):
        return [] if v is None else v


PLACEHOLDER_MIND_MAP_NAME = "Meeting Overview"


def placeholder_mind_map() -> MindMapNode:
    """Renderable stand-in used whenever the synthesized mind map is missing or unparseable."""
    return MindMapNode(name=PLACEHOLDER_MIND_MAP_NAME, children=[])


class AccessLogEntry(CamelModel):
    timestamp: int = Field(..., description="Epoch milliseconds")
    viewer_role: ViewerRole


class MeetingRecord(CamelModel):
    """A recorded meeting: immutable inputs, derived intelligence (empty until analysis), publish state and access audit trail."""

    id: str
    title: str
    agenda: str
    date: str
    time: str
    participants: List[Participant] = Field(default_factory=list)
    transcript: str = ""
    summary: str = ""
    conclusion: str = ""
    strategy_shifts: List[str] = Field(default_factory=list)
    tasks: List[Task] = Field(default_factory=list)
    mind_map: Optional[MindMapNode] = None
    status: MeetingStatus = MeetingStatus.DRAFT
    created_at: int = Field(..., description="Epoch milliseconds")
    access_logs: List[AccessLogEntry] = Field(default_factory=list)

    @property
    def is_analyzed(self) -> bool:
        return self.status in (MeetingStatus.ANALYZED, MeetingStatus.PUBLISHED)

    @property
    def is_published(self) -> bool:
        return self.status == MeetingStatus.PUBLISHED


class MeetingCreate(BaseModel):
    """Request body for POST /meetings. Participants may be a list of names or one comma-separated string ("Alex, Riya, Aman")."""

    title: str = ""
    agenda: str = ""
    date: str = ""
    time: str = ""
    participants: List[str] = Field(default_factory=list)

    @field_validator("participants", mode="before")
    @classmethod
    def _split_participants(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        return [str(p).strip() for p in v if str(p).strip()]


class ExtractedTask(CamelModel):
    title: str
    assignee: str


class MeetingIntelligence(CamelModel):
    """Shape the transcription call must return. All fields are required; strategy shifts are nominally three but not enforced."""

    transcript: str
    summary: str
    conclusion: str
    strategy_shifts: List[str]
    tasks: List[ExtractedTask]


class SummaryUpdate(BaseModel):
    """Request body for PUT /meetings/{id}/summary: the admin's edited summary text."""

    summary: str


class PublishResponse(BaseModel):
    """Response for POST /meetings/{id}/publish. notification_warning is set when the report could not be delivered; the publish itself still stands."""

    meeting: MeetingRecord
    share_link: str
    notification_warning: Optional[str] = None


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)


class ChatResponse(BaseModel):
    reply: str


class ReportResponse(BaseModel):
    meeting_id: str
    report: str


class AnalysisJobResponse(BaseModel):
    """Response for POST /meetings/{id}/analyze_async. Clients poll GET /jobs/{job_id} until done or failed."""

    job_id: str
    meeting_id: str


class JobStatusResponse(BaseModel):
    job_id: str
    meeting_id: str
    status: str
    error: Optional[str] = None


class LimitsResponse(BaseModel):
    """Response for GET /limits: upload size, per-call deadlines and retries, rate limit."""

    max_audio_kb: int
    transcription_timeout_seconds: float
    transcription_retries: int
    mind_map_timeout_seconds: float
    mind_map_retries: int
    chat_timeout_seconds: float
    chat_retries: int
    rate_limit_requests: int
    rate_limit_window_seconds: int
