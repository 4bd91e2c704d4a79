from typing import Optional

import structlog

from syncnotes.core.config import settings
from syncnotes.core.inference import InferenceClient, InferenceRequest
from syncnotes.extract.structured import parse_structured
from syncnotes.guardrails.errors import SchemaParseFailure
from syncnotes.models.schemas import MindMapNode, placeholder_mind_map
from syncnotes.prompts.loader import get_system_prompt, get_user_prompt
from syncnotes.utils.retry import MIND_MAP_POLICY, RequestGuard

logger = structlog.get_logger(__name__)

# Root theme -> primary topics -> leaf names.
MIND_MAP_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "children": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "children": {
                        "type": "array",
                        "items": {"type": "object", "properties": {"name": {"type": "string"}}},
                    },
                },
            },
        },
    },
    "required": ["name"],
}


class MindMapSynthesizer:
    """Builds a shallow topic tree from a meeting summary. Unparseable replies fall back to the "Meeting Overview" placeholder."""

    def __init__(
        self,
        client: InferenceClient,
        guard: Optional[RequestGuard] = None,
        model: Optional[str] = None,
    ):
        self.client = client
        self.guard = guard or RequestGuard(MIND_MAP_POLICY)
        self.model = model or settings.chat_model

    def build_request(self, summary: str) -> InferenceRequest:
        user_prompt = get_user_prompt("mind_map", SUMMARY=summary or "")
        return InferenceRequest(
            model=self.model,
            parts=[user_prompt],
            response_schema=MIND_MAP_SCHEMA,
            schema_name="mind_map",
            system_instruction=get_system_prompt("mind_map"),
        )

    async def synthesize(self, summary: str) -> MindMapNode:
        request = self.build_request(summary)
        raw = await self.guard.run(lambda: self.client.generate(request), label="mind_map")
        try:
            return parse_structured(raw, MindMapNode)
        except SchemaParseFailure as e:
            logger.warning("mind_map.placeholder_used", error=str(e))
            return placeholder_mind_map()
