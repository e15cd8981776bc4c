"""
tools/red_flag.py — Screen interview responses for danger signs.

Owner: WS2 (Decision Engine)

Deterministic, auditable rule table. NO LLM calls; escalation decisions
must be reproducible and explainable.  ``run`` is a read-only pass over the
session: it never consumes or alters a response and is safe to call after
every answer.  Every stored answer is screened, including answers whose
pathway was later switched off by a revision; a danger sign the patient
reported stays on the record and counts towards urgency.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Literal, Mapping

from core.models import RedFlag
from core.referral_patterns import REFERRAL_SCREENING
from engine.state import AssessmentSession

Severity = Literal["advisory", "urgent"]


@dataclass(frozen=True)
class RedFlagRule:
    """question id + predicate over its value -> flag text and severity."""

    question_id: str
    predicate: Callable[[Any, Mapping[str, Any]], bool]
    text: str
    severity: Severity
    recommended_action: str = ""


def _selected(option: str) -> Callable[[Any, Mapping[str, Any]], bool]:
    return lambda value, _: option in (value or [])


def _complaint_mentions(*words: str) -> Callable[[Any, Mapping[str, Any]], bool]:
    return lambda value, _: any(w in str(value).lower() for w in words)


def _severe_constant_pain(value: Any, responses: Mapping[str, Any]) -> bool:
    return value > 8 and responses.get("pain_timing") == "constant"


def _any_grade(op: Callable[[float], bool]) -> Callable[[Any, Mapping[str, Any]], bool]:
    return lambda value, _: any(op(v) for v in (value or {}).values())


# ---------------------------------------------------------------------------
# Curated rule table
# ---------------------------------------------------------------------------
_CURATED_RULES: tuple[RedFlagRule, ...] = (
    RedFlagRule("systemic_screening", _selected("bladder_bowel_change"),
                "Bowel/bladder dysfunction - urgent referral required", "urgent",
                "Same-day medical review to exclude cauda equina syndrome"),
    RedFlagRule("systemic_screening", _selected("saddle_anaesthesia"),
                "Saddle anaesthesia - possible cauda equina syndrome", "urgent",
                "Emergency referral; do not continue with manual therapy"),
    RedFlagRule("chief_complaint", _complaint_mentions("bowel", "bladder"),
                "Bowel/bladder dysfunction - urgent referral required", "urgent",
                "Same-day medical review to exclude cauda equina syndrome"),
    RedFlagRule("sensation_type", _selected("complete_loss"),
                "Complete sensory loss - neurological evaluation required", "urgent",
                "Urgent neurological assessment"),
    RedFlagRule("vas_score", _severe_constant_pain,
                "Severe constant pain - requires immediate evaluation", "urgent",
                "Screen for non-mechanical pathology before treatment"),
    RedFlagRule("reflex_testing", _any_grade(lambda g: g >= 4),
                "Clonus recorded - upper motor neuron sign", "urgent",
                "Refer for neurological investigation"),
    RedFlagRule("myotome_assessment", _any_grade(lambda g: g <= 2),
                "Significant myotomal weakness (grade 2 or below)", "advisory",
                "Monitor for progressive neurological deficit"),
    RedFlagRule("systemic_screening", _selected("night_pain"),
                "Unremitting night pain", "advisory",
                "Consider non-mechanical causes; review if persistent"),
    RedFlagRule("systemic_screening", _selected("unexplained_weight_loss"),
                "Unexplained weight loss", "advisory",
                "GP review to exclude systemic or neoplastic disease"),
    RedFlagRule("systemic_screening", _selected("fever"),
                "Fever with musculoskeletal symptoms", "advisory",
                "Exclude infection before loading the area"),
    RedFlagRule("systemic_screening", _selected("cancer_history"),
                "History of cancer", "advisory",
                "Maintain high index of suspicion for metastatic disease"),
    RedFlagRule("systemic_screening", _selected("recent_trauma"),
                "Recent significant trauma", "advisory",
                "Consider imaging to exclude fracture"),
)


def _referral_rules() -> tuple[RedFlagRule, ...]:
    """One urgent rule per referral screening question carrying the red-flag bit."""
    rules: list[RedFlagRule] = []
    for data in REFERRAL_SCREENING.values():
        for q in data.questions:
            if q.is_red_flag:
                rules.append(RedFlagRule(
                    q.id,
                    lambda value, _: value == "yes",
                    q.positive_implication,
                    "urgent",
                    f"Medical referral ({q.source_region}) before musculoskeletal treatment",
                ))
    return tuple(rules)


RED_FLAG_RULES: tuple[RedFlagRule, ...] = _CURATED_RULES + _referral_rules()


def run(session: AssessmentSession) -> list[RedFlag]:
    """
    Evaluate every rule against the session's current responses.

    Parameters
    ----------
    session : AssessmentSession
        The session to screen.  Not modified.

    Returns
    -------
    list[RedFlag]
        Flags in rule order, de-duplicated by text.
    """
    responses = session.responses
    flags: list[RedFlag] = []
    seen_texts: set[str] = set()  # avoid duplicate flags

    for rule in RED_FLAG_RULES:
        if rule.question_id not in responses:
            continue
        if not rule.predicate(responses[rule.question_id], responses):
            continue
        if rule.text in seen_texts:
            continue
        flags.append(RedFlag(
            text=rule.text,
            source_question_id=rule.question_id,
            severity=rule.severity,
            recommended_action=rule.recommended_action,
        ))
        seen_texts.add(rule.text)

    return flags


def urgent(flags: list[RedFlag]) -> list[RedFlag]:
    return [f for f in flags if f.severity == "urgent"]


def advisory(flags: list[RedFlag]) -> list[RedFlag]:
    return [f for f in flags if f.severity == "advisory"]
