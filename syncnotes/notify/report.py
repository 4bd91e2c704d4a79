"""Reporting collaborator: renders the meeting report and emails it to participants."""
import asyncio
import smtplib
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional

import structlog

from syncnotes.core.config import settings
from syncnotes.models.schemas import MeetingRecord

logger = structlog.get_logger(__name__)


def format_task_line(index: int, title: str, assignee: str, status: Optional[str]) -> str:
    return f"{index}. {title} — {assignee} [{status or 'pending'}]"


def render_report_text(meeting: MeetingRecord) -> str:
    """Render the plain-text report: title, date/time, agenda, summary, conclusion and the numbered task list.
    Why available: Attached to the publish email and served by GET /meetings/{id}/report."""
    lines = [
        meeting.title,
        "",
        f"Date: {meeting.date} {meeting.time}",
        f"Agenda: {meeting.agenda}",
        "",
        "Summary",
        meeting.summary or "N/A",
        "",
        "Conclusion",
        meeting.conclusion or "N/A",
        "",
        "Tasks",
    ]
    for idx, t in enumerate(meeting.tasks, start=1):
        status = t.status.value if t.status else None
        lines.append(format_task_line(idx, t.title, t.assignee, status))
    return "\n".join(lines) + "\n"


def build_report_message(meeting: MeetingRecord, recipients: List[str], share_link: str, sender: str) -> MIMEMultipart:
    msg = MIMEMultipart()
    msg["From"] = sender
    msg["To"] = ", ".join(recipients)
    msg["Subject"] = f"Published Meeting: {meeting.title}"
    msg.attach(MIMEText(f"Your meeting has been published. View it here: {share_link}", "plain", "utf-8"))

    filename = f"report-{meeting.id}.txt"
    part = MIMEApplication(render_report_text(meeting).encode("utf-8"), Name=filename)
    part["Content-Disposition"] = f'attachment; filename="{filename}"'
    msg.attach(part)
    return msg


class SmtpReportDelivery:
    """Emails the report over SMTP (SSL). Without SMTP_USER / SMTP_PASS it logs a warning and sends nothing."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
    ):
        self.host = host or settings.smtp_host
        self.port = port or settings.smtp_port
        self.user = settings.smtp_user if user is None else user
        self.password = settings.smtp_pass if password is None else password
        self.sender = sender or settings.email_from or self.user

    @property
    def has_credentials(self) -> bool:
        return bool(self.user and self.password)

    def _send(self, msg: MIMEMultipart) -> None:
        with smtplib.SMTP_SSL(self.host, self.port) as server:
            server.login(self.user, self.password)
            server.send_message(msg)

    async def deliver_report(self, meeting: MeetingRecord, recipients: List[str], share_link: str) -> None:
        if not self.has_credentials:
            logger.warning("report.smtp_credentials_missing", meeting_id=meeting.id, recipients=len(recipients))
            return
        msg = build_report_message(meeting, recipients, share_link, self.sender)
        await asyncio.to_thread(self._send, msg)
        logger.info("report.sent", meeting_id=meeting.id, recipients=len(recipients))
