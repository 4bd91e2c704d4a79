from typing import List, Protocol

import structlog

from syncnotes.guardrails.errors import NotificationFailure, ValidationFailure
from syncnotes.models.schemas import MeetingRecord

logger = structlog.get_logger(__name__)


class ReportDelivery(Protocol):
    async def deliver_report(self, meeting: MeetingRecord, recipients: List[str], share_link: str) -> None:
        ...


class PublishNotifier:
    """Hands a published meeting to the reporting collaborator.

    Runs after the publish transition has committed. Callers get a
    ValidationFailure for an empty recipient list (checked before any
    delivery) and a NotificationFailure for anything the collaborator raises.
    """

    def __init__(self, delivery: ReportDelivery):
        self.delivery = delivery

    async def notify(self, meeting: MeetingRecord, recipients: List[str], share_link: str) -> None:
        recipients = [r for r in recipients if r]
        if not recipients:
            raise ValidationFailure("No recipients to notify.")
        try:
            await self.delivery.deliver_report(meeting, recipients, share_link)
        except Exception as e:
            raise NotificationFailure(f"Failed to send report: {e}") from e
        logger.info("publish.notified", meeting_id=meeting.id, recipients=len(recipients))
