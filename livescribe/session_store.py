"""
In-memory session store. session_id is generated on the backend (WebSocket).
The transcript is updated only by the live session; HTTP handlers only read it.
"""
from __future__ import annotations

import time
import uuid
from typing import Any

# session_id -> {
#   "transcript_text": str,
#   "entries": list[dict],        # rendered transcript entries
#   "transcript_finalized": bool, # True once the session stopped and drained
#   "status": str,                # last SessionStatus value
#   "created_at": float,
# }
_session_store: dict[str, dict[str, Any]] = {}


def generate_session_id() -> str:
    """Generate a new session_id (UUID hex, 12 chars). Backend only."""
    return uuid.uuid4().hex[:12]


def get_session(session_id: str) -> dict[str, Any] | None:
    """Return session dict or None if not found."""
    return _session_store.get(session_id)


def ensure_session(session_id: str) -> dict[str, Any]:
    """Create session if not exists. Called when a live session starts."""
    if session_id not in _session_store:
        _session_store[session_id] = {
            "transcript_text": "",
            "entries": [],
            "transcript_finalized": False,
            "status": "Starting",
            "created_at": time.time(),
        }
    return _session_store[session_id]


def update_session_transcript(
    session_id: str,
    transcript_text: str,
    entries: list[dict[str, Any]] | None = None,
    transcript_finalized: bool = False,
) -> None:
    """Update transcript for session. Only the live session calls this."""
    s = _session_store.get(session_id)
    if s is None:
        return
    s["transcript_text"] = transcript_text
    if entries is not None:
        s["entries"] = entries
    s["transcript_finalized"] = transcript_finalized


def update_session_status(session_id: str, status: str) -> None:
    s = _session_store.get(session_id)
    if s is not None:
        s["status"] = status


def clear_sessions() -> None:
    _session_store.clear()
