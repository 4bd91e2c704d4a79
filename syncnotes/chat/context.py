import json

from syncnotes.models.schemas import MeetingRecord


def build_grounding_context(meeting: MeetingRecord) -> str:
    """Build the chat grounding context: title, agenda, summary, transcript and the task list as JSON, in that order and untruncated.
    Why available: Resent as the system instruction on every question so answers stay confined to this one meeting."""
    tasks = json.dumps([t.model_dump(mode="json") for t in meeting.tasks], ensure_ascii=False)
    return (
        f"Meeting Title: {meeting.title}. "
        f"Agenda: {meeting.agenda}. "
        f"Summary: {meeting.summary}. "
        f"Transcript: {meeting.transcript}. "
        f"Tasks: {tasks}"
    )
