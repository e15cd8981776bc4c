"""
engine/pathways.py — Pathway state machine (decision-engine core).

States are "awaiting question Q" for every reachable Q plus a terminal
"complete" state (``current_question`` returns ``None``).  A transition is
one validated ``process_response`` call.

Pathway activation is a declarative rule table, ``PATHWAY_RULES``: each rule
is a pathway tag plus a predicate over the current responses.  The table is
re-evaluated in full after every response, so revising an earlier answer can
remove pathways as well as add them, and the activated set is always a pure
function of the responses.

Owner: WS2 (Decision Engine)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Optional

from core.errors import ValidationError
from core.models import ResponseEvent
from core.regions import LOWER_LIMB_REGIONS
from engine.catalog import (
    BALANCE,
    CORE,
    FUNCTIONAL,
    GAIT,
    INFLAMMATION,
    MOBILITY,
    MOTOR,
    NEUROLOGICAL,
    OBJECTIVE,
    PAIN,
    PAIN_MODERATE,
    PAIN_SEVERE,
    QUESTION_CATALOG,
    SENSORY,
    QuestionTemplate,
    referral_tag,
    region_tag,
)
from engine.findings import (
    completion_percentage,
    functional_findings,
    objective_findings,
    subjective_findings,
)
from engine.state import AssessmentSession
from engine.validation import validate_response

logger = logging.getLogger(__name__)


# ── Activation rule table ───────────────────────────────────────────────

Responses = Mapping[str, Any]


@dataclass(frozen=True)
class PathwayRule:
    pathway: str
    predicate: Callable[[Responses], bool]
    description: str = ""


def _yes(qid: str) -> Callable[[Responses], bool]:
    return lambda r: r.get(qid) == "yes"


def _vas_at_least(threshold: float) -> Callable[[Responses], bool]:
    def predicate(r: Responses) -> bool:
        vas = r.get("vas_score")
        return r.get("pain_screening") == "yes" and vas is not None and vas >= threshold
    return predicate


_BALANCE_KEYWORDS = ("balance", "fall", "unsteady", "dizzy")


def _balance_concern(r: Responses) -> bool:
    complaint = str(r.get("chief_complaint", "")).lower()
    if any(word in complaint for word in _BALANCE_KEYWORDS):
        return True
    return bool({"walking", "stairs"} & set(r.get("mobility_limitations") or []))


def _gait_relevant(r: Responses) -> bool:
    if r.get("weakness_screening") == "yes" or _balance_concern(r):
        return True
    return any(region in LOWER_LIMB_REGIONS for region in r.get("body_region") or [])


def _swelling_present(r: Responses) -> bool:
    return r.get("swelling_assessment") not in (None, "absent")


PATHWAY_RULES: tuple[PathwayRule, ...] = (
    PathwayRule(CORE, lambda r: True, "always asked"),
    PathwayRule(OBJECTIVE, lambda r: True, "always examined"),
    PathwayRule(FUNCTIONAL, lambda r: True, "always scored"),
    PathwayRule(PAIN, _yes("pain_screening"), "pain_screening = yes"),
    PathwayRule(PAIN_MODERATE, _vas_at_least(4), "pain and VAS >= 4"),
    PathwayRule(PAIN_SEVERE, _vas_at_least(7), "pain and VAS >= 7"),
    PathwayRule(MOTOR, _yes("weakness_screening"), "weakness_screening = yes"),
    PathwayRule(SENSORY, _yes("sensation_screening"), "sensation_screening = yes"),
    PathwayRule(NEUROLOGICAL, _yes("sensation_screening"), "sensation_screening = yes"),
    PathwayRule(MOBILITY, _yes("mobility_screening"), "mobility_screening = yes"),
    PathwayRule(BALANCE, _balance_concern, "balance complaint or walking/stairs limited"),
    PathwayRule(GAIT, _gait_relevant, "weakness, balance concern or lower-limb region"),
    PathwayRule(INFLAMMATION, _swelling_present, "swelling observed"),
)


def resolve_pathways(responses: Responses) -> frozenset[str]:
    """Evaluate ``PATHWAY_RULES`` plus the per-region tags against *responses*."""
    active = {rule.pathway for rule in PATHWAY_RULES if rule.predicate(responses)}
    for region in responses.get("body_region") or []:
        active.add(referral_tag(region))
        active.add(region_tag(region))
    return frozenset(active)


# ── Queries ─────────────────────────────────────────────────────────────

def current_question(session: AssessmentSession) -> Optional[QuestionTemplate]:
    """
    The next unanswered, unskipped question among the active pathways, in
    catalog order.  ``None`` means the interview is complete.
    """
    for template in QUESTION_CATALOG.values():
        if template.id in session.responses or template.id in session.skipped:
            continue
        if template.is_active(session.activated_pathways):
            return template
    return None


def _refresh(session: AssessmentSession) -> None:
    """Recompute every derived field from the responses."""
    session.activated_pathways = resolve_pathways(session.responses)
    session.subjective = subjective_findings(session.responses, session.activated_pathways)
    session.objective = objective_findings(session.responses)
    session.functional = functional_findings(session.responses)
    session.completion_percentage = completion_percentage(session.responses, session.activated_pathways)
    nxt = current_question(session)
    session.current_question_id = nxt.id if nxt else None


def start_session(patient_id: str = "", session_id: Optional[str] = None) -> AssessmentSession:
    """Create a fresh session positioned on the catalog's first question."""
    session = AssessmentSession(patient_id=patient_id)
    if session_id:
        session.session_id = session_id
    _refresh(session)
    logger.info("Assessment session %s started (first question: %s)",
                session.session_id, session.current_question_id)
    return session


# ── Transitions ─────────────────────────────────────────────────────────

def _active_template(session: AssessmentSession, question_id: str) -> QuestionTemplate:
    template = QUESTION_CATALOG.get(question_id)
    if template is None:
        raise ValidationError(
            f"Unknown question '{question_id}'.",
            code="UNKNOWN_QUESTION",
            details={"question_id": question_id},
        )
    if not template.is_active(session.activated_pathways):
        raise ValidationError(
            f"Question '{question_id}' is not part of an active pathway.",
            code="QUESTION_INACTIVE",
            details={"question_id": question_id, "pathways": sorted(template.pathways)},
        )
    return template


def process_response(session: AssessmentSession, question_id: str, value: Any) -> Optional[str]:
    """
    Validate and record one answer, then advance the state machine.

    Any active question may be answered, including ones answered before
    (a revision).  Validation happens before any mutation, so a rejected
    answer leaves the session exactly as it was.

    Parameters
    ----------
    session : AssessmentSession
        The session to update.
    question_id : str
        Catalog id of the question being answered.
    value : Any
        Raw answer; its shape must match the question's input kind.

    Returns
    -------
    str or None
        Id of the next question to ask, or ``None`` when the interview is
        complete.

    Raises
    ------
    ValidationError
        Unknown or inactive question, or a value that fails validation.
    """
    template = _active_template(session, question_id)
    normalised = validate_response(template, value, session.regions)

    revision = question_id in session.responses
    if revision:
        del session.responses[question_id]
    session.responses[question_id] = normalised
    session.skipped.discard(question_id)
    session.history.append(ResponseEvent(
        question_id=question_id,
        value=normalised,
        recorded_at=datetime.now(timezone.utc).isoformat(),
        revision=revision,
    ))

    before = session.activated_pathways
    _refresh(session)
    added = session.activated_pathways - before
    removed = before - session.activated_pathways
    if added or removed:
        logger.debug("Session %s pathways +%s -%s", session.session_id, sorted(added), sorted(removed))

    return session.current_question_id


def skip_question(session: AssessmentSession, question_id: str) -> Optional[str]:
    """Skip an active optional question.  Required questions cannot be skipped."""
    template = _active_template(session, question_id)
    if template.required:
        raise ValidationError(
            f"Question '{question_id}' is required and cannot be skipped.",
            code="REQUIRED_QUESTION",
            details={"question_id": question_id},
        )
    session.skipped.add(question_id)
    _refresh(session)
    return session.current_question_id


def replay(
    events: Iterable[tuple[str, Any]],
    *,
    patient_id: str = "",
) -> tuple[AssessmentSession, list[Optional[str]]]:
    """
    Re-apply an ordered sequence of ``(question_id, value)`` pairs to a fresh
    session.  Returns the session and the next-question id after each step.
    """
    session = start_session(patient_id)
    sequence = [process_response(session, qid, value) for qid, value in events]
    return session, sequence
