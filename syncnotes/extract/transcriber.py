"""Audio + agenda -> MeetingIntelligence through one schema-constrained inference call."""
from typing import Optional

import structlog

from syncnotes.core.config import settings
from syncnotes.core.inference import DEFAULT_AUDIO_MIME, AudioPart, InferenceClient, InferenceRequest
from syncnotes.extract.structured import parse_structured
from syncnotes.guardrails.errors import ProcessingFailure, SchemaParseFailure
from syncnotes.models.schemas import MeetingIntelligence
from syncnotes.prompts.loader import get_system_prompt, get_user_prompt
from syncnotes.utils.retry import TRANSCRIPTION_POLICY, RequestGuard

logger = structlog.get_logger(__name__)

PROCESSING_FAILURE_MESSAGE = "Failed to parse meeting intelligence. Please try again with clearer audio."

INTELLIGENCE_SCHEMA = {
    "type": "object",
    "properties": {
        "transcript": {"type": "string"},
        "summary": {"type": "string"},
        "conclusion": {"type": "string"},
        "strategyShifts": {"type": "array", "items": {"type": "string"}},
        "tasks": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "assignee": {"type": "string"},
                },
                "required": ["title", "assignee"],
            },
        },
    },
    "required": ["transcript", "summary", "strategyShifts", "tasks", "conclusion"],
}


class TranscriptionExtractor:
    """Transcribes meeting audio verbatim and extracts summary, strategy shifts, tasks and conclusion in a single call.

    Transport and timeout failures are retried by the guard. A reply that does
    not parse into MeetingIntelligence raises ProcessingFailure straight away;
    re-sending the same audio rarely helps, so it is left to the user.
    """

    def __init__(
        self,
        client: InferenceClient,
        guard: Optional[RequestGuard] = None,
        model: Optional[str] = None,
    ):
        self.client = client
        self.guard = guard or RequestGuard(TRANSCRIPTION_POLICY)
        self.model = model or settings.transcription_model

    def build_request(self, audio: bytes, mime_type: str, agenda: str) -> InferenceRequest:
        user_prompt = get_user_prompt("transcribe_meeting", AGENDA=agenda or "")
        return InferenceRequest(
            model=self.model,
            parts=[AudioPart(data=audio, mime_type=mime_type or DEFAULT_AUDIO_MIME), user_prompt],
            response_schema=INTELLIGENCE_SCHEMA,
            schema_name="meeting_intelligence",
            system_instruction=get_system_prompt("transcribe_meeting"),
        )

    async def extract(self, audio: bytes, mime_type: str, agenda: str) -> MeetingIntelligence:
        request = self.build_request(audio, mime_type, agenda)
        raw = await self.guard.run(lambda: self.client.generate(request), label="transcription")
        try:
            intelligence = parse_structured(raw, MeetingIntelligence)
        except SchemaParseFailure as e:
            logger.error("transcription.parse_failed", error=str(e))
            raise ProcessingFailure(PROCESSING_FAILURE_MESSAGE) from e

        logger.info(
            "transcription.extracted",
            transcript_chars=len(intelligence.transcript),
            strategy_shifts=len(intelligence.strategy_shifts),
            tasks=len(intelligence.tasks),
        )
        return intelligence
