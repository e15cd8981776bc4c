"""
tools/record_builder.py — Flatten a finished interview into a ClinicalRecord.

Owner: WS2 (Decision Engine)

Pure aggregation, no side effects.  Every answered question ends up either
as a categorised clinical parameter or, when its pathway is no longer
active (the answer that opened it was revised), in ``additional_findings``.
Nothing in the session is dropped.  Handing the record to persistence is
the caller's job (see ``to_persistence_payload``).
"""

from __future__ import annotations

import copy
from datetime import date, datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from core.conditions import CONDITION_INDEX
from core.errors import ValidationError
from core.models import (
    ClinicalParameter,
    ClinicalRecord,
    ConditionCandidate,
    DiagnosisRecord,
    DiagnosticResult,
    DifferentialEntry,
    FunctionalBaseline,
    QueuedAssessment,
    RedFlag,
    RedFlagSummary,
)
from engine.catalog import QUESTION_CATALOG
from engine.findings import adl_average
from engine.state import AssessmentSession

import tools.red_flag as red_flag_tool
import tools.referral as referral_tool

SelectedCondition = Union[DifferentialEntry, ConditionCandidate, str]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def derive_condition_type(onset: Optional[str], reference: date, classification: Optional[str] = None) -> str:
    """≤ 6 weeks ACUTE, ≤ 12 weeks SUBACUTE, otherwise CHRONIC."""
    if onset:
        days = (reference - date.fromisoformat(onset)).days
        if days <= 42:
            return "ACUTE"
        if days <= 84:
            return "SUBACUTE"
        return "CHRONIC"
    if classification in ("CHRONIC", "RECURRING"):
        return "CHRONIC"
    return "ACUTE"


def _urgency_level(flags: list[RedFlag], vas: Any) -> str:
    if red_flag_tool.urgent(flags) or len(flags) > 2:
        return "URGENT"
    if isinstance(vas, (int, float)) and vas >= 8:
        return "HIGH"
    if flags or (isinstance(vas, (int, float)) and vas >= 6):
        return "MODERATE"
    return "LOW"


def _resolve_selection(
    selected: SelectedCondition,
    result: DiagnosticResult,
    index: Mapping[str, ConditionCandidate],
) -> tuple[str, str, str, Optional[float]]:
    """Return (condition_id, name, selection_source, confidence)."""
    ranked = {e.condition_id: e for e in result.differential_diagnosis}
    if isinstance(selected, DifferentialEntry):
        cid, name = selected.condition_id, selected.condition_name
    elif isinstance(selected, ConditionCandidate):
        cid, name = selected.id, selected.name
    elif isinstance(selected, str) and selected in ranked:
        cid, name = selected, ranked[selected].condition_name
    elif isinstance(selected, str) and selected in index:
        cid, name = selected, index[selected].name
    else:
        raise ValidationError(
            f"Selected condition {selected!r} is neither in the differential nor the catalog.",
            code="UNKNOWN_CONDITION",
        )
    if cid in ranked:
        return cid, name, "differential", ranked[cid].confidence_score
    return cid, name, "manual_search", None


def _last_recorded(session: AssessmentSession) -> dict[str, str]:
    stamps: dict[str, str] = {}
    for event in session.history:
        stamps[event.question_id] = event.recorded_at
    return stamps


def _as_datetime(value: Union[datetime, str]) -> datetime:
    moment = datetime.fromisoformat(value) if isinstance(value, str) else value
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build(
    session: AssessmentSession,
    diagnosis_result: DiagnosticResult,
    selected_condition: SelectedCondition,
    started_at: Union[datetime, str],
    *,
    completed_assessments: Iterable[QueuedAssessment] = (),
    finished_at: Optional[datetime] = None,
    clinician_notes: str = "",
    catalog: Optional[Sequence[ConditionCandidate]] = None,
) -> ClinicalRecord:
    """
    Aggregate session + diagnosis into the final, immutable record.

    Parameters
    ----------
    session : AssessmentSession
        The finished interview.  Not modified.
    diagnosis_result : DiagnosticResult
        Full differential (collaborator or fallback), kept for audit.
    selected_condition : DifferentialEntry | ConditionCandidate | str
        The clinician's choice: an entry of the differential, a catalog
        entry found by manual search, or a condition id.
    started_at : datetime or ISO string
        When the interview started.
    completed_assessments : iterable of QueuedAssessment
        Queue items in a terminal state.
    finished_at : datetime, optional
        Defaults to now (UTC).
    catalog : sequence of ConditionCandidate, optional
        Conditions a manual-search id is resolved against; defaults to
        the built-in ``CONDITION_CATALOG``.  Pass the hydrated catalog
        when conditions were loaded from MongoDB.

    Returns
    -------
    ClinicalRecord

    Raises
    ------
    ValidationError
        The selected condition cannot be resolved.
    """
    index = CONDITION_INDEX if catalog is None else {c.id: c for c in catalog}
    cid, name, source, confidence = _resolve_selection(selected_condition, diagnosis_result, index)

    started = _as_datetime(started_at)
    finished = _as_datetime(finished_at) if finished_at else datetime.now(timezone.utc)
    duration = max(0, round((finished - started).total_seconds() / 60))

    stamps = _last_recorded(session)
    parameters: dict[str, ClinicalParameter] = {}
    additional: dict[str, Any] = {}
    for qid, value in session.responses.items():
        template = QUESTION_CATALOG.get(qid)
        if template is None or not template.is_active(session.activated_pathways):
            additional[qid] = {
                "value": copy.deepcopy(value),
                "reason": "pathway no longer active" if template else "not a catalog question",
                "pathways": sorted(template.pathways) if template else [],
            }
            continue
        parameters[qid] = ClinicalParameter(
            question_id=qid,
            value=copy.deepcopy(value),
            category=template.section,
            method=template.method,
            timestamp=stamps.get(qid, finished.isoformat()),
        )

    flags = red_flag_tool.run(session)
    responses = session.responses
    onset = responses.get("symptom_onset")

    return ClinicalRecord(
        assessment_id=session.session_id,
        session_id=session.session_id,
        patient_id=session.patient_id,
        assessment_date=finished.date().isoformat(),
        started_at=started.isoformat(),
        completed_at=finished.isoformat(),
        duration_minutes=duration,
        chief_complaint=responses.get("chief_complaint", ""),
        condition_type=derive_condition_type(onset, finished.date(), responses.get("condition_classification")),
        onset_date=onset,
        activated_pathways=sorted(session.activated_pathways),
        completion_percentage=session.completion_percentage,
        clinical_parameters=parameters,
        findings={
            "subjective": copy.deepcopy(session.subjective),
            "objective": copy.deepcopy(session.objective),
            "functional": copy.deepcopy(session.functional),
        },
        additional_findings=additional,
        red_flags=RedFlagSummary(
            flags_present=flags,
            urgency_level=_urgency_level(flags, responses.get("vas_score")),
            assessment_notes="; ".join(f.text for f in flags) or "No red flags identified",
        ),
        referral_findings=referral_tool.evaluate_session(session),
        functional_baseline=FunctionalBaseline(
            adl_scores=dict(responses.get("adl_scoring") or {}),
            adl_average=adl_average(responses),
            functional_limitations=list(responses.get("functional_impact") or []),
            mobility_limitations=list(responses.get("mobility_limitations") or []),
        ),
        completed_assessments=[a.model_copy(deep=True) for a in completed_assessments],
        differential_diagnosis=DiagnosisRecord(
            ai_generated=diagnosis_result.model_copy(deep=True),
            selected_primary=cid,
            selected_name=name,
            selection_source=source,
            confidence_score=confidence,
            clinician_notes=clinician_notes,
        ),
        raw_responses=[{"question_id": q, "value": copy.deepcopy(v)} for q, v in responses.items()],
    )


def to_persistence_payload(patient_id: str, record: ClinicalRecord) -> dict[str, Any]:
    """JSON-serialisable "create condition with assessment" payload."""
    diagnosis = record.differential_diagnosis
    description = diagnosis.selected_name
    if record.chief_complaint:
        description = f"{diagnosis.selected_name} - {record.chief_complaint}"
    return {
        "patient_id": patient_id,
        "condition_id": diagnosis.selected_primary,
        "description": description,
        "condition_type": record.condition_type,
        "onset_date": record.onset_date,
        "assessment_method": record.assessment_method,
        "initial_assessment_data": record.model_dump(mode="json"),
    }
