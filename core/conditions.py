"""
core/conditions.py — Static condition catalog and manual condition search.

The catalog order is significant: the diagnosis fallback takes the first N
entries in this order.  ``search_conditions`` backs the clinician's manual
out-of-band search when none of the ranked candidates fits.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Optional, Sequence

from rapidfuzz import fuzz
from rapidfuzz import process as rfprocess

from core.models import ConditionCandidate


def _c(cid: str, name: str, region: str, rank: int, chronicity: str = "either",
       specialty: str = "musculoskeletal") -> ConditionCandidate:
    return ConditionCandidate(
        id=cid,
        name=name,
        body_region=region,
        specialty=specialty,
        prevalence_rank=rank,
        chronicity=chronicity,
    )


CONDITION_CATALOG: tuple[ConditionCandidate, ...] = (
    _c("msk_nonspecific_lbp", "Non-specific low back pain", "lower-back", 1),
    _c("msk_rotator_cuff_tendinopathy", "Rotator cuff tendinopathy", "shoulder", 2, "chronic"),
    _c("msk_knee_oa", "Knee osteoarthritis", "knee", 3, "chronic"),
    _c("msk_mechanical_neck_pain", "Mechanical neck pain", "neck", 4),
    _c("msk_subacromial_pain", "Subacromial pain syndrome", "shoulder", 5),
    _c("neuro_lumbar_radiculopathy", "Lumbar radiculopathy", "lower-back", 6, specialty="neuromusculoskeletal"),
    _c("msk_patellofemoral_pain", "Patellofemoral pain syndrome", "knee", 7, "chronic"),
    _c("msk_lateral_epicondylalgia", "Lateral epicondylalgia", "elbow", 8, "chronic"),
    _c("msk_ankle_sprain", "Lateral ankle sprain", "ankle", 9, "acute"),
    _c("msk_frozen_shoulder", "Adhesive capsulitis", "shoulder", 10, "chronic"),
    _c("neuro_cervical_radiculopathy", "Cervical radiculopathy", "neck", 11, specialty="neuromusculoskeletal"),
    _c("msk_hip_oa", "Hip osteoarthritis", "hip", 12, "chronic"),
    _c("msk_greater_trochanteric_pain", "Greater trochanteric pain syndrome", "hip", 13, "chronic"),
    _c("neuro_carpal_tunnel", "Carpal tunnel syndrome", "wrist", 14, "chronic", "neuromusculoskeletal"),
    _c("msk_acl_injury", "Anterior cruciate ligament injury", "knee", 15, "acute"),
    _c("msk_meniscal_tear", "Meniscal tear", "knee", 16, "acute"),
    _c("msk_achilles_tendinopathy", "Achilles tendinopathy", "ankle", 17, "chronic"),
    _c("msk_plantar_fasciopathy", "Plantar fasciopathy", "foot", 18, "chronic"),
    _c("msk_thoracic_facet", "Thoracic facet joint dysfunction", "thoracic", 19),
    _c("msk_si_joint_dysfunction", "Sacroiliac joint dysfunction", "lower-back", 20),
    _c("msk_de_quervain", "De Quervain tenosynovitis", "wrist", 21, "chronic"),
    _c("msk_hamstring_strain", "Hamstring strain", "thigh", 22, "acute"),
    _c("neuro_cervicogenic_headache", "Cervicogenic headache", "head", 23, "chronic", "neuromusculoskeletal"),
    _c("msk_medial_tibial_stress", "Medial tibial stress syndrome", "lower-leg", 24),
)

CONDITION_INDEX: Mapping[str, ConditionCandidate] = MappingProxyType({c.id: c for c in CONDITION_CATALOG})


def search_conditions(
    query: str,
    *,
    catalog: Optional[Sequence[ConditionCandidate]] = None,
    limit: int = 10,
    score_cutoff: float = 60,
) -> list[ConditionCandidate]:
    """
    Fuzzy-search the condition catalog by name.

    Parameters
    ----------
    query : str
        Free text typed by the clinician, e.g. ``"frozen shoulder"``.
    catalog : sequence of ConditionCandidate, optional
        Defaults to ``CONDITION_CATALOG``.
    limit : int
        Maximum number of hits.
    score_cutoff : float
        Minimum rapidfuzz WRatio (0-100) for a hit.

    Returns
    -------
    list[ConditionCandidate]
        Best match first; ties keep catalog order.
    """
    entries = list(catalog if catalog is not None else CONDITION_CATALOG)
    needle = query.strip().lower()
    if not needle:
        return []

    choices = {i: f"{c.name} {c.id.replace('_', ' ')}".lower() for i, c in enumerate(entries)}
    hits = rfprocess.extract(
        needle,
        choices,
        scorer=fuzz.WRatio,
        limit=limit,
        score_cutoff=score_cutoff,
    )
    hits.sort(key=lambda h: (-h[1], h[2]))
    return [entries[idx] for _, _, idx in hits]
