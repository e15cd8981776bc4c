"""
tools/assessment_recommender.py — Suggest physical tests for the queue.

Owner: WS2 (Decision Engine)

Deterministic scoring over ``core.assessments.ASSESSMENT_CATALOG``:
region match and pathway overlap raise a test's relevance.  Tests pinned to
other regions are left out.  When nothing matches, a single basic movement
assessment is recommended.
"""

from __future__ import annotations

from typing import Optional, Sequence

from core.assessments import ASSESSMENT_CATALOG, ASSESSMENT_INDEX, AssessmentDefinition
from core.models import AssessmentCandidate
from engine.state import AssessmentSession

_REGION_BONUS = 30
_PATHWAY_BONUS = 10
_FALLBACK_ID = "basic_movement_screen"


def _score(defn: AssessmentDefinition, regions: set[str], pathways: frozenset[str]) -> int | None:
    region_hit = bool(regions & set(defn.regions))
    if defn.regions and not region_hit:
        return None
    pathway_hits = len(pathways & set(defn.pathways))
    if not defn.regions and defn.pathways and not pathway_hits:
        return None
    score = defn.base_relevance + (_REGION_BONUS if region_hit else 0) + _PATHWAY_BONUS * pathway_hits
    return min(score, 100)


def run(
    session: AssessmentSession,
    catalog: Optional[Sequence[AssessmentDefinition]] = None,
) -> list[AssessmentCandidate]:
    """
    Rank catalog tests against the session.

    Parameters
    ----------
    session : AssessmentSession
    catalog : sequence of AssessmentDefinition, optional
        Hydrated catalog from ``core.data_loader``; defaults to the built-in one.

    Returns
    -------
    list[AssessmentCandidate]
        Highest relevance first; ties keep catalog order.
    """
    regions = set(session.regions)
    scored: list[tuple[int, int, AssessmentCandidate]] = []

    catalog = ASSESSMENT_CATALOG if catalog is None else catalog
    for idx, defn in enumerate(catalog):
        if defn.assessment_id == _FALLBACK_ID:
            continue
        score = _score(defn, regions, session.activated_pathways)
        if score is None:
            continue
        reasons = [r for r in defn.regions if r in regions]
        reasons += [p for p in defn.pathways if p in session.activated_pathways]
        scored.append((score, idx, AssessmentCandidate(
            assessment_id=defn.assessment_id,
            name=defn.name,
            relevance_score=score,
            category=defn.category,
            reason="Matches " + ", ".join(reasons) if reasons else "",
        )))

    if not scored:
        fallback = next(
            (d for d in catalog if d.assessment_id == _FALLBACK_ID),
            ASSESSMENT_CATALOG[ASSESSMENT_INDEX[_FALLBACK_ID]],
        )
        return [AssessmentCandidate(
            assessment_id=fallback.assessment_id,
            name=fallback.name,
            relevance_score=85,
            category=fallback.category,
            reason="Basic movement assessment recommended",
        )]

    scored.sort(key=lambda item: (-item[0], item[1]))
    return [candidate for _, _, candidate in scored]
