"""
engine/assessment_queue.py — Lifecycle of the queued physical tests.

Each item moves forward only: pending -> in_progress -> completed | skipped.
At most one item is in progress, the current index never moves backwards,
and completed + skipped never decreases.  Every operation checks its
preconditions before touching the queue, so a rejected call (raised as
``InvalidTransition``) leaves it unchanged.

Owner: WS2
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Literal, Optional, Union

from core.assessments import ASSESSMENT_INDEX
from core.errors import InvalidTransition
from core.models import AssessmentCandidate, QueuedAssessment

logger = logging.getLogger(__name__)

Outcome = Literal["submitted", "skipped"]
TERMINAL = frozenset({"completed", "skipped"})


@dataclass
class AssessmentQueue:
    items: list[QueuedAssessment] = field(default_factory=list)
    current_index: Optional[int] = None

    @property
    def started(self) -> bool:
        """True once any item has left ``pending``."""
        return any(item.status != "pending" for item in self.items)

    @property
    def current(self) -> Optional[QueuedAssessment]:
        return self.items[self.current_index] if self.current_index is not None else None

    def snapshot(self) -> dict:
        return {
            "items": [item.model_dump() for item in self.items],
            "current_index": self.current_index,
        }


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_item(candidate: Union[AssessmentCandidate, QueuedAssessment, dict]) -> QueuedAssessment:
    if isinstance(candidate, dict):
        candidate = AssessmentCandidate(**candidate)
    return QueuedAssessment(
        assessment_id=candidate.assessment_id,
        name=candidate.name,
        relevance_score=candidate.relevance_score,
        category=candidate.category,
        catalog_index=ASSESSMENT_INDEX.get(candidate.assessment_id),
    )


def _catalog_key(item: QueuedAssessment) -> int:
    return item.catalog_index if item.catalog_index is not None else len(ASSESSMENT_INDEX)


# ── Construction ────────────────────────────────────────────────────────

def initialize(candidates: Iterable[Union[AssessmentCandidate, QueuedAssessment, dict]]) -> AssessmentQueue:
    """
    Seed a queue with every candidate ``pending``.

    Order: descending relevance score, then catalog order, then the order
    the candidates were given in.  Duplicate ids keep their first occurrence.
    """
    items: list[QueuedAssessment] = []
    seen: set[str] = set()
    for candidate in candidates:
        item = _to_item(candidate)
        if item.assessment_id in seen:
            continue
        seen.add(item.assessment_id)
        items.append(item)

    ordered = sorted(
        enumerate(items),
        key=lambda pair: (-pair[1].relevance_score, _catalog_key(pair[1]), pair[0]),
    )
    return AssessmentQueue(items=[item for _, item in ordered])


# ── Queries ─────────────────────────────────────────────────────────────

def _next_pending(queue: AssessmentQueue, after: int = -1) -> Optional[int]:
    for idx in range(after + 1, len(queue.items)):
        if queue.items[idx].status == "pending":
            return idx
    return None


def in_progress_count(queue: AssessmentQueue) -> int:
    return sum(1 for item in queue.items if item.status == "in_progress")


def completed_assessments(queue: AssessmentQueue) -> list[QueuedAssessment]:
    return [item for item in queue.items if item.status == "completed"]


def terminal_assessments(queue: AssessmentQueue) -> list[QueuedAssessment]:
    return [item for item in queue.items if item.status in TERMINAL]


def is_finished(queue: AssessmentQueue) -> bool:
    return all(item.status in TERMINAL for item in queue.items)


def progress(queue: AssessmentQueue) -> dict[str, int]:
    counts = {"pending": 0, "in_progress": 0, "completed": 0, "skipped": 0}
    for item in queue.items:
        counts[item.status] += 1
    counts["total"] = len(queue.items)
    return counts


# ── Transitions ─────────────────────────────────────────────────────────

def start(queue: AssessmentQueue) -> Optional[int]:
    """Put the first pending item in progress.  Idempotent once started."""
    if queue.current_index is not None:
        return queue.current_index
    idx = _next_pending(queue)
    if idx is None:
        return None
    queue.items[idx].status = "in_progress"
    queue.items[idx].updated_at = _now()
    queue.current_index = idx
    return idx


def advance(
    queue: AssessmentQueue,
    current_index: int,
    outcome: Outcome,
    form_data: Optional[dict[str, Any]] = None,
) -> Optional[int]:
    """
    Finish the item at *current_index* and move to the next pending one.

    A still-pending first item is accepted when nothing is in progress
    (the queue is started implicitly).

    Returns
    -------
    int or None
        Index of the item now in progress, or ``None`` when the queue is
        exhausted.

    Raises
    ------
    InvalidTransition
        Unknown outcome, index out of range, the item already completed or
        skipped, or the item is not the current one.
    """
    if outcome not in ("submitted", "skipped"):
        raise InvalidTransition(f"Unknown queue outcome '{outcome}'.", code="UNKNOWN_OUTCOME")
    if not 0 <= current_index < len(queue.items):
        raise InvalidTransition(
            f"Queue index {current_index} is out of range.",
            code="INDEX_OUT_OF_RANGE",
            details={"index": current_index, "size": len(queue.items)},
        )

    item = queue.items[current_index]
    if item.status in TERMINAL:
        raise InvalidTransition(
            f"Assessment '{item.assessment_id}' is already {item.status}.",
            code="ALREADY_TERMINAL",
            details={"index": current_index, "status": item.status},
        )
    if item.status == "pending":
        if queue.current_index is not None or current_index != _next_pending(queue):
            raise InvalidTransition(
                f"Assessment '{item.assessment_id}' is not the current item.",
                code="NOT_CURRENT",
                details={"index": current_index, "current_index": queue.current_index},
            )
    elif current_index != queue.current_index:
        raise InvalidTransition(
            f"Assessment '{item.assessment_id}' is not the current item.",
            code="NOT_CURRENT",
            details={"index": current_index, "current_index": queue.current_index},
        )

    item.status = "completed" if outcome == "submitted" else "skipped"
    if outcome == "submitted" and form_data is not None:
        item.form_data = dict(form_data)
    item.updated_at = _now()

    nxt = _next_pending(queue, after=current_index)
    if nxt is not None:
        queue.items[nxt].status = "in_progress"
        queue.items[nxt].updated_at = _now()
    queue.current_index = nxt
    logger.debug("Queue advanced %s -> %s (%s)", current_index, nxt, item.status)
    return nxt


def add_custom(queue: AssessmentQueue, test: Union[AssessmentCandidate, QueuedAssessment, dict]) -> QueuedAssessment:
    """Append a clinician-chosen test.  Only legal before the queue starts."""
    if queue.started:
        raise InvalidTransition("Cannot add assessments after the queue has started.",
                                code="QUEUE_STARTED")
    item = _to_item(test)
    if any(existing.assessment_id == item.assessment_id for existing in queue.items):
        raise InvalidTransition(
            f"Assessment '{item.assessment_id}' is already queued.",
            code="DUPLICATE_ASSESSMENT",
            details={"assessment_id": item.assessment_id},
        )
    queue.items.append(item)
    return item


def remove(queue: AssessmentQueue, assessment_id: str) -> QueuedAssessment:
    """Remove a pending test.  In-progress and finished items cannot be removed."""
    idx = next((i for i, item in enumerate(queue.items) if item.assessment_id == assessment_id), None)
    if idx is None:
        raise InvalidTransition(
            f"Assessment '{assessment_id}' is not queued.",
            code="NOT_QUEUED",
            details={"assessment_id": assessment_id},
        )
    item = queue.items[idx]
    if item.status != "pending":
        raise InvalidTransition(
            f"Cannot remove assessment '{assessment_id}' in state {item.status}.",
            code="NOT_REMOVABLE",
            details={"assessment_id": assessment_id, "status": item.status},
        )
    del queue.items[idx]
    if queue.current_index is not None and idx < queue.current_index:
        queue.current_index -= 1
    return item


def skip_all(queue: AssessmentQueue) -> int:
    """Skip the in-progress item and everything still pending.  Returns the count skipped."""
    count = 0
    for item in queue.items:
        if item.status in ("pending", "in_progress"):
            item.status = "skipped"
            item.updated_at = _now()
            count += 1
    queue.current_index = None
    return count
