"""
tools/referral.py — Classify regional pain as local or referred.

Owner: WS2 (Decision Engine)

Pure programmatic, no LLM calls.  Scoring rule: any "yes" to a
referral-indicating screening question classifies the region as
``referred`` and implicates that question's source region; otherwise the
pain is ``local``.  Regions without a screening table fall back to a
generic clinical note and an empty question set.
"""

from __future__ import annotations

import logging
from typing import Mapping

from core.errors import UnknownRegion
from core.models import ReferralFinding, ReferralQuestion
from core.referral_patterns import GENERIC_CLINICAL_NOTE, REFERRAL_SCREENING, RegionReferralData
from core.regions import normalize_region
from engine.state import AssessmentSession

logger = logging.getLogger(__name__)


def _lookup(region: str) -> RegionReferralData:
    key = normalize_region(region)
    data = REFERRAL_SCREENING.get(key)
    if data is None:
        raise UnknownRegion(f"No referral screening table for region '{region}'.",
                            details={"region": key})
    return data


def questions_for(region: str) -> list[ReferralQuestion]:
    """Screening questions for *region*; ``[]`` for unmapped regions."""
    try:
        return list(_lookup(region).questions)
    except UnknownRegion:
        return []


def clinical_note(region: str) -> str:
    try:
        return _lookup(region).clinical_note
    except UnknownRegion:
        return GENERIC_CLINICAL_NOTE


def red_flag_question_ids(region: str) -> list[str]:
    return [q.id for q in questions_for(region) if q.is_red_flag]


def supported_regions() -> list[str]:
    return list(REFERRAL_SCREENING)


def evaluate(region: str, answers: Mapping[str, str]) -> ReferralFinding:
    """
    Combine yes/no screening answers into a ``ReferralFinding``.

    Parameters
    ----------
    region : str
        Body region as chosen by the patient; aliases are resolved.
    answers : Mapping[str, str]
        Question id -> ``"yes"`` / ``"no"``.  Extra keys are ignored, so a
        whole session response map can be passed in.

    Returns
    -------
    ReferralFinding
        ``referred`` with implicated sources and the positive question ids,
        or ``local`` with the answered-negative question ids.
    """
    key = normalize_region(region)
    try:
        data = _lookup(key)
    except UnknownRegion as exc:
        logger.info("%s Using generic referral note.", exc.message)
        return ReferralFinding(
            region=key,
            classification="local",
            clinical_note=GENERIC_CLINICAL_NOTE,
            region_known=False,
        )

    positives = [
        q for q in data.questions
        if q.implies_referral and str(answers.get(q.id, "")).lower() == "yes"
    ]
    if positives:
        sources: list[str] = []
        for q in positives:
            if q.source_region not in sources:
                sources.append(q.source_region)
        return ReferralFinding(
            region=key,
            classification="referred",
            implicated_sources=sources,
            supporting_question_ids=[q.id for q in positives],
            clinical_note=data.clinical_note,
            red_flag=any(q.is_red_flag for q in positives),
        )

    negatives = [q.id for q in data.questions if str(answers.get(q.id, "")).lower() == "no"]
    return ReferralFinding(
        region=key,
        classification="local",
        supporting_question_ids=negatives,
        clinical_note=data.clinical_note,
    )


def evaluate_session(session: AssessmentSession) -> list[ReferralFinding]:
    """One finding per body region chosen in the session."""
    return [evaluate(region, session.responses) for region in session.regions]
