"""
engine/state.py — The per-interview session value.

One ``AssessmentSession`` per patient encounter.  It is passed explicitly
into every engine call and mutated only by ``engine.pathways``; everything
else reads it.

Owner: WS2
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from core.models import ResponseEvent


def _new_session_id() -> str:
    return f"assessment_{uuid.uuid4().hex[:12]}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AssessmentSession:
    """Mutable record of one interview instance."""

    # ── Identity ────────────────────────────────────────────────────────
    session_id: str = field(default_factory=_new_session_id)
    patient_id: str = ""
    started_at: datetime = field(default_factory=_utcnow)

    # ── Collected answers ───────────────────────────────────────────────
    # Insertion order is interview order; a revised answer moves to the end.
    responses: dict[str, Any] = field(default_factory=dict)
    history: list[ResponseEvent] = field(default_factory=list)
    skipped: set[str] = field(default_factory=set)

    # ── Derived state (recomputed after every response) ─────────────────
    activated_pathways: frozenset[str] = frozenset()
    subjective: dict[str, Any] = field(default_factory=dict)
    objective: dict[str, Any] = field(default_factory=dict)
    functional: dict[str, Any] = field(default_factory=dict)
    completion_percentage: int = 0
    current_question_id: Optional[str] = None

    # ── Helpers ─────────────────────────────────────────────────────────

    @property
    def regions(self) -> list[str]:
        """Normalised body regions chosen so far (empty until ``body_region`` is answered)."""
        return list(self.responses.get("body_region") or [])

    @property
    def is_complete(self) -> bool:
        return self.current_question_id is None and bool(self.responses)

    def snapshot(self) -> dict:
        """Return a plain-dict snapshot suitable for JSON serialisation."""
        return {
            "session_id": self.session_id,
            "patient_id": self.patient_id,
            "started_at": self.started_at.isoformat(),
            "responses": dict(self.responses),
            "history": [e.model_dump() for e in self.history],
            "skipped": sorted(self.skipped),
            "activated_pathways": sorted(self.activated_pathways),
            "subjective": self.subjective,
            "objective": self.objective,
            "functional": self.functional,
            "completion_percentage": self.completion_percentage,
            "current_question_id": self.current_question_id,
        }
