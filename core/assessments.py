"""
core/assessments.py — Static catalog of physical / clinical tests that can be
queued after the interview.

``regions`` lists the body regions a test applies to (empty = any region);
``pathways`` lists the interview pathways that make it more relevant.
Catalog order is the tie-breaker for queue ordering.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping


@dataclass(frozen=True)
class AssessmentDefinition:
    assessment_id: str
    name: str
    category: str
    regions: tuple[str, ...] = ()
    pathways: tuple[str, ...] = ()
    base_relevance: int = 40


ASSESSMENT_CATALOG: tuple[AssessmentDefinition, ...] = (
    AssessmentDefinition("basic_movement_screen", "Basic movement assessment", "Clinical Assessment",
                         base_relevance=50),
    AssessmentDefinition("neer_test", "Neer impingement test", "Special Test", ("shoulder",), ("pain",)),
    AssessmentDefinition("hawkins_kennedy", "Hawkins-Kennedy test", "Special Test", ("shoulder",), ("pain",)),
    AssessmentDefinition("empty_can", "Empty can (Jobe) test", "Special Test", ("shoulder",), ("motor",)),
    AssessmentDefinition("spurling_test", "Spurling's test", "Neurological", ("neck", "shoulder"),
                         ("neurological", "sensory")),
    AssessmentDefinition("ultt_median", "Upper limb tension test (median)", "Neurodynamic",
                         ("neck", "shoulder", "elbow", "wrist"), ("neurological",)),
    AssessmentDefinition("cozen_test", "Cozen's test", "Special Test", ("elbow",), ("pain",)),
    AssessmentDefinition("phalen_test", "Phalen's test", "Special Test", ("wrist", "hand"), ("sensory",)),
    AssessmentDefinition("slr_test", "Straight leg raise", "Neurodynamic", ("lower-back", "thigh"),
                         ("neurological", "sensory")),
    AssessmentDefinition("slump_test", "Slump test", "Neurodynamic", ("lower-back",), ("neurological",)),
    AssessmentDefinition("faber_test", "FABER test", "Special Test", ("hip", "lower-back"), ("pain",)),
    AssessmentDefinition("lachman_test", "Lachman test", "Special Test", ("knee",), ("pain", "inflammation")),
    AssessmentDefinition("mcmurray_test", "McMurray test", "Special Test", ("knee",), ("pain",)),
    AssessmentDefinition("anterior_drawer_ankle", "Anterior drawer (ankle)", "Special Test", ("ankle",),
                         ("inflammation",)),
    AssessmentDefinition("timed_up_and_go", "Timed Up and Go", "Functional", (), ("balance", "gait", "mobility")),
    AssessmentDefinition("single_leg_stance", "Single leg stance", "Balance", (), ("balance",)),
    AssessmentDefinition("grip_dynamometry", "Grip dynamometry", "Strength", ("elbow", "wrist", "hand"), ("motor",)),
    AssessmentDefinition("thirty_second_sit_to_stand", "30-second sit to stand", "Functional",
                         ("hip", "knee"), ("mobility", "motor")),
)

ASSESSMENT_INDEX: Mapping[str, int] = MappingProxyType(
    {a.assessment_id: i for i, a in enumerate(ASSESSMENT_CATALOG)}
)
