"""
core/session_manager.py — Redis-backed audit store for assessment sessions.

Owner: WS1 (Data & Retrieval)

Keeps a short-lived, per-session trail: session metadata, the ordered
response log, the latest session snapshot, collaborator calls, the
diagnosis and the final clinical record.  Audit failures are logged and
never raised; the engine keeps working without Redis.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable

import redis

logger = logging.getLogger(__name__)


class SessionManager:
    """Thin wrapper around Redis for per-session audit state."""

    TTL: int = 3600  # 1 hour

    def __init__(self, redis_url: str) -> None:
        """
        Connect to Redis.

        Parameters
        ----------
        redis_url : str
            Full Redis connection string (e.g. ``redis://default:pw@host:port``).
        """
        self._r = redis.from_url(redis_url, decode_responses=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _key(session_id: str, part: str) -> str:
        return f"assessment:{session_id}:{part}"

    def _set_json(self, session_id: str, part: str, payload: Any, op: str) -> None:
        try:
            self._r.set(self._key(session_id, part), json.dumps(payload, default=str), ex=self.TTL)
        except Exception as exc:
            logger.error("Redis %s failed: %s", op, exc)

    def _get_json(self, session_id: str, part: str, op: str) -> Any:
        try:
            raw = self._r.get(self._key(session_id, part))
            return json.loads(raw) if raw else None
        except Exception as exc:
            logger.error("Redis %s failed: %s", op, exc)
            return None

    def _append(self, session_id: str, part: str, record: dict, op: str) -> None:
        key = self._key(session_id, part)
        record = {**record, "timestamp": datetime.now(timezone.utc).isoformat()}
        try:
            self._r.rpush(key, json.dumps(record, default=str))
            self._r.expire(key, self.TTL)
        except Exception as exc:
            logger.error("Redis %s failed: %s", op, exc)

    def _read_list(self, session_id: str, part: str, op: str) -> list[dict]:
        try:
            return [json.loads(item) for item in self._r.lrange(self._key(session_id, part), 0, -1)]
        except Exception as exc:
            logger.error("Redis %s failed: %s", op, exc)
            return []

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def create_session(self, session_id: str, metadata: dict) -> None:
        """Create a new session entry (patient id, start time, ...)."""
        self._set_json(session_id, "meta", metadata, "create_session")

    # ------------------------------------------------------------------
    # Response log
    # ------------------------------------------------------------------

    def log_response(self, session_id: str, question_id: str, value: Any, revision: bool = False) -> None:
        """Append one answer to the session's response log."""
        record = {"question_id": question_id, "value": value, "revision": revision}
        self._append(session_id, "responses", record, "log_response")

    def get_response_log(self, session_id: str) -> list[dict]:
        """Return every logged answer for the session in submission order."""
        return self._read_list(session_id, "responses", "get_response_log")

    # ------------------------------------------------------------------
    # Snapshot (intermediate session state)
    # ------------------------------------------------------------------

    def set_snapshot(self, session_id: str, snapshot: dict) -> None:
        """Store / overwrite the latest session snapshot."""
        self._set_json(session_id, "snapshot", snapshot, "set_snapshot")

    def get_snapshot(self, session_id: str) -> dict | None:
        return self._get_json(session_id, "snapshot", "get_snapshot")

    # ------------------------------------------------------------------
    # Diagnostic collaborator
    # ------------------------------------------------------------------

    def log_collaborator_call(self, session_id: str, record: dict) -> None:
        """Append a collaborator-call record (outcome, duration, error)."""
        self._append(session_id, "collaborator", record, "log_collaborator_call")

    def get_collaborator_log(self, session_id: str) -> list[dict]:
        return self._read_list(session_id, "collaborator", "get_collaborator_log")

    def set_diagnosis(self, session_id: str, result: dict) -> None:
        """Cache the delivered DiagnosticResult (serialised as dict)."""
        self._set_json(session_id, "diagnosis", result, "set_diagnosis")

    def get_diagnosis(self, session_id: str) -> dict | None:
        return self._get_json(session_id, "diagnosis", "get_diagnosis")

    # ------------------------------------------------------------------
    # Final record
    # ------------------------------------------------------------------

    def set_record(self, session_id: str, record: dict) -> None:
        """Cache the final ClinicalRecord (serialised as dict)."""
        self._set_json(session_id, "record", record, "set_record")

    def get_record(self, session_id: str) -> dict | None:
        return self._get_json(session_id, "record", "get_record")


def safe_session(method: Callable, *args: Any, **kwargs: Any) -> None:
    """Fire-and-forget a SessionManager method; audit failures never propagate."""
    try:
        method(*args, **kwargs)
    except Exception:
        logger.debug("SessionManager call failed: %s", getattr(method, "__name__", method), exc_info=True)
