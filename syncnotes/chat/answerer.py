from typing import Optional

import structlog

from syncnotes.chat.context import build_grounding_context
from syncnotes.core.config import settings
from syncnotes.core.inference import InferenceClient, InferenceRequest
from syncnotes.guardrails.errors import MeetingError, ValidationFailure
from syncnotes.models.schemas import MeetingRecord
from syncnotes.prompts.loader import get_system_prompt
from syncnotes.utils.retry import CHAT_POLICY, RequestGuard

logger = structlog.get_logger(__name__)

APOLOGY_REPLY = "I'm sorry, I couldn't process that. Please try again in a moment."


class ConversationalGrounding:
    """Answers questions about one analyzed meeting.

    Every call opens a fresh session: the full grounding context goes out as the
    system instruction with the single user message, and nothing is remembered
    between questions. Upstream failures come back as APOLOGY_REPLY instead of
    an error.
    """

    def __init__(
        self,
        client: InferenceClient,
        guard: Optional[RequestGuard] = None,
        model: Optional[str] = None,
    ):
        self.client = client
        self.guard = guard or RequestGuard(CHAT_POLICY)
        self.model = model or settings.chat_model

    def build_request(self, meeting: MeetingRecord, message: str) -> InferenceRequest:
        system = get_system_prompt("meeting_chat", CONTEXT=build_grounding_context(meeting))
        return InferenceRequest(
            model=self.model,
            parts=[message],
            system_instruction=system,
            temperature=0.2,
        )

    async def ask(self, meeting: MeetingRecord, message: str) -> str:
        if not (message or "").strip():
            raise ValidationFailure("Message must not be empty.")
        if not meeting.is_analyzed:
            raise ValidationFailure("Meeting has not been analyzed yet; there is nothing to ask about.")

        request = self.build_request(meeting, message.strip())
        try:
            reply = await self.guard.run(lambda: self.client.generate(request), label="chat")
        except MeetingError as e:
            logger.warning("chat.degraded", meeting_id=meeting.id, error=str(e))
            return APOLOGY_REPLY

        reply = (reply or "").strip()
        return reply or APOLOGY_REPLY
