from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import List, Optional

import structlog
from fastapi import (
    BackgroundTasks,
    Depends,
    FastAPI,
    File,
    HTTPException,
    Request,
    UploadFile,
)

from syncnotes.chat.answerer import ConversationalGrounding
from syncnotes.core.config import settings
from syncnotes.core.inference import DEFAULT_AUDIO_MIME, OpenAIInferenceClient
from syncnotes.core.logging import configure_logging
from syncnotes.extract.mindmap import MindMapSynthesizer
from syncnotes.extract.transcriber import TranscriptionExtractor
from syncnotes.guardrails.errors import PermissionDenied, as_http_error
from syncnotes.guardrails.rate_limit import SimpleRateLimiter
from syncnotes.meetings.jobs import JOBS
from syncnotes.meetings.lifecycle import MeetingLifecycle
from syncnotes.meetings.pipeline import run_analysis, run_analysis_job, validate_audio
from syncnotes.meetings.store import JsonFileMeetingStore
from syncnotes.models.schemas import (
    AnalysisJobResponse,
    ChatRequest,
    ChatResponse,
    JobStatusResponse,
    LimitsResponse,
    MeetingCreate,
    MeetingRecord,
    PublishResponse,
    ReportResponse,
    SummaryUpdate,
    ViewerRole,
)
from syncnotes.notify.notifier import PublishNotifier
from syncnotes.notify.report import SmtpReportDelivery, render_report_text
from syncnotes.observability.middleware import RequestTimingMiddleware

logger = structlog.get_logger(__name__)


# -------------------------
# App setup
# -------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    yield


app = FastAPI(title="SyncNotes Meeting Intelligence", lifespan=lifespan)
app.add_middleware(RequestTimingMiddleware)


RATE_LIMIT_REQUESTS = 20
RATE_LIMIT_WINDOW_SECONDS = 60
rate_limiter = SimpleRateLimiter(max_requests=RATE_LIMIT_REQUESTS, window_seconds=RATE_LIMIT_WINDOW_SECONDS)


@dataclass
class Services:
    """Everything the routes need: the lifecycle plus the three inference-backed components."""

    lifecycle: MeetingLifecycle
    extractor: TranscriptionExtractor
    synthesizer: MindMapSynthesizer
    chat: ConversationalGrounding


_services: Optional[Services] = None


def build_services() -> Services:
    """Wire the production stack: JSON file store, SMTP report delivery and one shared OpenAI inference client."""
    inference = OpenAIInferenceClient()
    lifecycle = MeetingLifecycle(
        JsonFileMeetingStore(settings.meetings_store_path),
        PublishNotifier(SmtpReportDelivery()),
    )
    return Services(
        lifecycle=lifecycle,
        extractor=TranscriptionExtractor(inference),
        synthesizer=MindMapSynthesizer(inference),
        chat=ConversationalGrounding(inference),
    )


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services()
    return _services


# -------------------------
# Root
# -------------------------

@app.get("/")
def root():
    """Returns a minimal welcome payload with app name and docs URL."""
    return {"app": "SyncNotes Meeting Intelligence", "docs": "/docs"}


@app.get("/health")
def health():
    """Returns 200 OK with status. Used by load balancers and probes to check if the API is up."""
    return {"status": "ok"}


@app.get("/limits", response_model=LimitsResponse)
def limits(request: Request):
    """Returns the audio size limit, per-call deadlines and retries, and the rate limit window.
    Why available: Lets clients show how long an analysis may take before it gives up."""
    rate_limiter.check(request, scope="limits")
    return LimitsResponse(
        max_audio_kb=settings.max_audio_kb,
        transcription_timeout_seconds=settings.transcription_timeout_seconds,
        transcription_retries=settings.transcription_retries,
        mind_map_timeout_seconds=settings.mind_map_timeout_seconds,
        mind_map_retries=settings.mind_map_retries,
        chat_timeout_seconds=settings.chat_timeout_seconds,
        chat_retries=settings.chat_retries,
        rate_limit_requests=RATE_LIMIT_REQUESTS,
        rate_limit_window_seconds=RATE_LIMIT_WINDOW_SECONDS,
    )


# -------------------------
# Meetings
# -------------------------

def require_admin(role: ViewerRole = ViewerRole.ADMIN) -> ViewerRole:
    """Gate for admin-only routes (create, analyze, edit summary, publish). The role is the coarse ?role= flag, not authentication."""
    if role != ViewerRole.ADMIN:
        raise as_http_error(PermissionDenied("Only admins can create, analyze, edit or publish meetings."))
    return role


@app.post("/meetings", response_model=MeetingRecord, dependencies=[Depends(require_admin)])
async def create_meeting(req: MeetingCreate, services: Services = Depends(get_services)):
    """Creates a draft meeting from title, agenda, date, time and participant names."""
    try:
        return await services.lifecycle.create(req)
    except Exception as e:
        raise as_http_error(e)


@app.get("/meetings", response_model=List[MeetingRecord])
def list_meetings(role: ViewerRole = ViewerRole.ADMIN, services: Services = Depends(get_services)):
    """Lists meetings newest first. Admins see every meeting; members only published ones."""
    return services.lifecycle.list_meetings(role)


@app.get("/meetings/{meeting_id}", response_model=MeetingRecord)
def get_meeting(meeting_id: str, services: Services = Depends(get_services)):
    try:
        return services.lifecycle.get(meeting_id)
    except Exception as e:
        raise as_http_error(e)


# -------------------------
# Analysis (sync + background)
# -------------------------

@app.post("/meetings/{meeting_id}/analyze", response_model=MeetingRecord, dependencies=[Depends(require_admin)])
async def analyze_meeting(
    meeting_id: str,
    request: Request,
    audio: UploadFile = File(...),
    services: Services = Depends(get_services),
):
    """Transcribes the uploaded audio, extracts intelligence and the mind map, and stores them on the meeting in one update.
    Why available: Core feature; turns a recording into summary, strategy shifts, tasks and conclusion."""
    rate_limiter.check(request, scope="analysis")
    try:
        content = await audio.read()
        return await run_analysis(
            services.lifecycle,
            services.extractor,
            services.synthesizer,
            meeting_id,
            content,
            audio.content_type or DEFAULT_AUDIO_MIME,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.warning("analysis.failed", meeting_id=meeting_id, error=str(e))
        raise as_http_error(e)


@app.post("/meetings/{meeting_id}/analyze_async", response_model=AnalysisJobResponse, dependencies=[Depends(require_admin)])
async def analyze_meeting_async(
    meeting_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    audio: UploadFile = File(...),
    services: Services = Depends(get_services),
):
    """Validates the upload, enqueues a background analysis job and returns job_id. Client polls GET /jobs/{job_id}."""
    rate_limiter.check(request, scope="analysis")
    try:
        services.lifecycle.get(meeting_id)
        mime_type = audio.content_type or DEFAULT_AUDIO_MIME
        content = await audio.read()
        validate_audio(content, mime_type)
    except Exception as e:
        raise as_http_error(e)

    job = JOBS.queue(meeting_id)

    background_tasks.add_task(
        run_analysis_job,
        job,
        services.lifecycle,
        services.extractor,
        services.synthesizer,
        content,
        mime_type,
    )
    return AnalysisJobResponse(job_id=job.job_id, meeting_id=meeting_id)


@app.get("/jobs/{job_id}", response_model=JobStatusResponse)
def job_status(job_id: str):
    """Returns the status of a background analysis job (queued / running / done / failed) and the error if it failed."""
    job = JOBS.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobStatusResponse(job_id=job.job_id, meeting_id=job.meeting_id, status=job.status, error=job.error)


# -------------------------
# Tasks, publish, report
# -------------------------

@app.post("/meetings/{meeting_id}/tasks/{task_id}/toggle", response_model=MeetingRecord)
async def toggle_task(meeting_id: str, task_id: str, services: Services = Depends(get_services)):
    try:
        return await services.lifecycle.toggle_task(meeting_id, task_id)
    except Exception as e:
        raise as_http_error(e)


@app.put("/meetings/{meeting_id}/summary", response_model=MeetingRecord, dependencies=[Depends(require_admin)])
async def edit_summary(meeting_id: str, req: SummaryUpdate, services: Services = Depends(get_services)):
    """Replaces the generated summary with an admin's edit. Only analyzed or published meetings have one."""
    try:
        return await services.lifecycle.update_summary(meeting_id, req.summary)
    except Exception as e:
        raise as_http_error(e)


@app.post("/meetings/{meeting_id}/publish", response_model=PublishResponse, dependencies=[Depends(require_admin)])
async def publish_meeting(meeting_id: str, services: Services = Depends(get_services)):
    """Publishes an analyzed meeting and emails the report to participants. Delivery problems come back as notification_warning; the publish stands."""
    try:
        return await services.lifecycle.publish(meeting_id)
    except Exception as e:
        raise as_http_error(e)


@app.get("/meetings/{meeting_id}/report", response_model=ReportResponse)
def meeting_report(meeting_id: str, services: Services = Depends(get_services)):
    try:
        meeting = services.lifecycle.get(meeting_id)
    except Exception as e:
        raise as_http_error(e)
    return ReportResponse(meeting_id=meeting_id, report=render_report_text(meeting))


# -------------------------
# Chat (grounded on one meeting)
# -------------------------

@app.post("/meetings/{meeting_id}/chat", response_model=ChatResponse)
async def chat(meeting_id: str, req: ChatRequest, request: Request, services: Services = Depends(get_services)):
    """Answers a question using only this meeting's title, agenda, summary, transcript and tasks. Upstream failures return an apology, not an error."""
    rate_limiter.check(request, scope="chat")
    try:
        meeting = services.lifecycle.get(meeting_id)
        reply = await services.chat.ask(meeting, req.message)
    except Exception as e:
        raise as_http_error(e)
    return ChatResponse(reply=reply)


# -------------------------
# Shared link
# -------------------------

@app.get("/shared/{meeting_id}", response_model=MeetingRecord)
async def open_shared_link(
    meeting_id: str,
    role: ViewerRole = ViewerRole.MEMBER,
    services: Services = Depends(get_services),
):
    """Opens a meeting through its share link and records the visit. Only published meetings resolve."""
    try:
        return await services.lifecycle.resolve_shared_link(meeting_id, role)
    except Exception as e:
        raise as_http_error(e)
