import time

import structlog

from syncnotes.core.config import settings
from syncnotes.core.inference import DEFAULT_AUDIO_MIME, SUPPORTED_AUDIO_FORMATS, is_supported_audio
from syncnotes.extract.mindmap import MindMapSynthesizer
from syncnotes.extract.transcriber import TranscriptionExtractor
from syncnotes.guardrails.errors import ValidationFailure
from syncnotes.meetings.jobs import AnalysisJob
from syncnotes.meetings.lifecycle import MeetingLifecycle
from syncnotes.models.schemas import MeetingRecord

logger = structlog.get_logger(__name__)


def validate_audio(audio: bytes, mime_type: str = DEFAULT_AUDIO_MIME) -> None:
    """Reject empty, oversized or unsupported recordings before any inference call is made."""
    if not audio:
        raise ValidationFailure("Audio payload is empty.")
    if len(audio) > settings.max_audio_kb * 1024:
        raise ValidationFailure(f"Audio exceeds the {settings.max_audio_kb} KB limit.")
    if not is_supported_audio(mime_type):
        raise ValidationFailure(
            f"Unsupported audio type {mime_type!r}; upload one of: {', '.join(SUPPORTED_AUDIO_FORMATS)}."
        )


async def run_analysis(
    lifecycle: MeetingLifecycle,
    extractor: TranscriptionExtractor,
    synthesizer: MindMapSynthesizer,
    meeting_id: str,
    audio: bytes,
    mime_type: str,
) -> MeetingRecord:
    """Transcribe and extract intelligence, synthesize the mind map from the new summary, then commit both in one lifecycle update.
    Why available: Single entry point for the sync and background analyze routes. Any failure before the commit leaves the meeting as it was."""
    validate_audio(audio, mime_type)
    meeting = lifecycle.get(meeting_id)

    t0 = time.perf_counter()
    intelligence = await extractor.extract(audio, mime_type, meeting.agenda)
    extract_ms = (time.perf_counter() - t0) * 1000.0

    t1 = time.perf_counter()
    mind_map = await synthesizer.synthesize(intelligence.summary)
    mind_map_ms = (time.perf_counter() - t1) * 1000.0

    updated = await lifecycle.complete_analysis(meeting_id, intelligence, mind_map)
    logger.info(
        "analysis.completed",
        meeting_id=meeting_id,
        extract_ms=round(extract_ms, 2),
        mind_map_ms=round(mind_map_ms, 2),
    )
    return updated


async def run_analysis_job(
    job: AnalysisJob,
    lifecycle: MeetingLifecycle,
    extractor: TranscriptionExtractor,
    synthesizer: MindMapSynthesizer,
    audio: bytes,
    mime_type: str,
) -> None:
    """Background runner: run_analysis with job status bookkeeping. Failures are stored on the job, not raised."""
    job.status = "running"
    job.started_at = time.time()
    try:
        await run_analysis(lifecycle, extractor, synthesizer, job.meeting_id, audio, mime_type)
        job.status = "done"
    except Exception as e:
        logger.warning("analysis.job_failed", job_id=job.job_id, meeting_id=job.meeting_id, error=str(e))
        job.status = "failed"
        job.error = str(e)
    finally:
        job.finished_at = time.time()
