"""
Meeting persistence: one key holding the full serialized meeting list.
Every mutation rewrites the whole list; a missing key reads as an empty list.
"""
import json
import os
import tempfile
from typing import Any, Dict, List, Optional, Protocol

import structlog

from syncnotes.models.schemas import MeetingRecord, MeetingStatus

logger = structlog.get_logger(__name__)

STORE_KEY = "syncnotes_meetings"


def migrate_status(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Infer the analyzed state for records written before it was stored: a draft with a non-empty summary is analyzed.
    Why available: Older meeting lists only distinguish draft/published and signal analysis by summary presence."""
    status = raw.get("status") or MeetingStatus.DRAFT.value
    if status == MeetingStatus.DRAFT.value and (raw.get("summary") or "").strip():
        raw = {**raw, "status": MeetingStatus.ANALYZED.value}
    return raw


def decode_meetings(payload: Any) -> List[MeetingRecord]:
    if not isinstance(payload, list):
        return []
    return [MeetingRecord.model_validate(migrate_status(m)) for m in payload if isinstance(m, dict)]


def encode_meetings(meetings: List[MeetingRecord]) -> List[Dict[str, Any]]:
    return [m.model_dump(mode="json", by_alias=True) for m in meetings]


class MeetingStore(Protocol):
    """Single-key store used by MeetingLifecycle. save_all may run in a worker thread."""

    def load_all(self) -> List[MeetingRecord]:
        ...

    def save_all(self, meetings: List[MeetingRecord]) -> None:
        ...


class InMemoryMeetingStore:
    """Keeps the serialized list in a dict, the way a browser key-value store would."""

    def __init__(self, initial: Optional[List[Dict[str, Any]]] = None):
        self.data: Dict[str, str] = {}
        self.writes = 0
        if initial is not None:
            self.data[STORE_KEY] = json.dumps(initial)

    def load_all(self) -> List[MeetingRecord]:
        raw = self.data.get(STORE_KEY)
        if raw is None:
            return []
        return decode_meetings(json.loads(raw))

    def save_all(self, meetings: List[MeetingRecord]) -> None:
        self.data[STORE_KEY] = json.dumps(encode_meetings(meetings), ensure_ascii=False)
        self.writes += 1


class JsonFileMeetingStore:
    """Stores the meeting list as one JSON file (default data/syncnotes_meetings.json)."""

    def __init__(self, path: str):
        self.path = path

    def load_all(self) -> List[MeetingRecord]:
        if not os.path.isfile(self.path):
            return []
        try:
            with open(self.path, encoding="utf-8") as f:
                payload = json.load(f)
        except json.JSONDecodeError:
            logger.warning("meeting_store.unreadable", path=self.path)
            return []
        return decode_meetings(payload)

    def save_all(self, meetings: List[MeetingRecord]) -> None:
        """Write to a private temp file next to the target, then os.replace it in. Concurrent writers never share a temp file."""
        parent = os.path.dirname(self.path) or "."
        os.makedirs(parent, exist_ok=True)
        payload = encode_meetings(meetings)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=parent,
            prefix=os.path.basename(self.path) + ".",
            suffix=".tmp",
            delete=False,
        ) as f:
            tmp_path = f.name
            try:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            except Exception:
                f.close()
                os.unlink(tmp_path)
                raise
        os.replace(tmp_path, self.path)
