"""
engine/findings.py — Derived subjective / objective / functional buckets.

Pure functions of (responses, activated pathways).  The session recomputes
them after every response; the diagnosis request and the clinical record
read them from there.
"""

from __future__ import annotations

from typing import Any, Mapping

from engine.catalog import (
    MOTOR,
    PAIN,
    QUESTION_CATALOG,
    SENSORY,
    QuestionTemplate,
)


def _pick(responses: Mapping[str, Any], **fields: str) -> dict[str, Any]:
    """Map output key -> question id, skipping unanswered questions."""
    return {key: responses[qid] for key, qid in fields.items() if qid in responses}


def _region_grids(responses: Mapping[str, Any], prefix: str) -> dict[str, Any]:
    return {
        qid[len(prefix):]: value
        for qid, value in responses.items()
        if qid.startswith(prefix)
    }


def adl_average(responses: Mapping[str, Any]) -> float | None:
    scores = responses.get("adl_scoring") or {}
    if not scores:
        return None
    return round(sum(scores.values()) / len(scores), 1)


def subjective_findings(responses: Mapping[str, Any], activated: frozenset[str]) -> dict[str, Any]:
    subjective: dict[str, Any] = _pick(
        responses,
        chief_complaint="chief_complaint",
        onset_date="symptom_onset",
        onset_nature="onset_nature",
        progression="symptom_progression",
        previous_episodes="previous_episodes",
        body_regions="body_region",
        systemic_screening="systemic_screening",
    )
    if PAIN in activated:
        subjective["pain"] = {
            "present": True,
            **_pick(
                responses,
                vas_score="vas_score",
                nature="pain_nature",
                timing="pain_timing",
                movement_relation="pain_movement",
                aggravating_factors="aggravating_factors",
                relieving_factors="relieving_factors",
            ),
        }
    if MOTOR in activated:
        subjective["motor"] = {"weakness_present": True, **_pick(responses, location="weakness_location")}
    if SENSORY in activated:
        subjective["sensory"] = {"changes_present": True, **_pick(responses, sensation_type="sensation_type")}
    return subjective


def objective_findings(responses: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "observation": _pick(
            responses,
            swelling="swelling_assessment",
            posture="posture_assessment",
            gait="gait_analysis",
            balance="balance_assessment",
        ),
        "palpation": _pick(responses, tenderness="tenderness_assessment"),
        "measurements": {
            **_pick(responses, girth="girth_measurement"),
            "active_rom": _region_grids(responses, "rom_"),
        },
        "neurological": _pick(
            responses,
            dermatomes="dermatome_assessment",
            myotomes="myotome_assessment",
            reflexes="reflex_testing",
            neurodynamic_tests="neurodynamic_tests",
        ),
        "strength": {"manual_muscle_testing": _region_grids(responses, "mmt_")},
        **_pick(responses, special_tests="special_tests"),
    }


def functional_findings(responses: Mapping[str, Any]) -> dict[str, Any]:
    functional = _pick(
        responses,
        adl_scoring="adl_scoring",
        functional_impact="functional_impact",
        mobility_limitations="mobility_limitations",
        gait_analysis="gait_analysis",
        balance_assessment="balance_assessment",
    )
    average = adl_average(responses)
    if average is not None:
        functional["adl_average"] = average
    return functional


def active_templates(activated: frozenset[str]) -> list[QuestionTemplate]:
    return [t for t in QUESTION_CATALOG.values() if t.is_active(activated)]


def completion_percentage(responses: Mapping[str, Any], activated: frozenset[str]) -> int:
    """answered-required / total-activated-required, as a rounded percentage."""
    required = [t.id for t in active_templates(activated) if t.required]
    if not required:
        return 100
    answered = sum(1 for qid in required if qid in responses)
    return round(100 * answered / len(required))
