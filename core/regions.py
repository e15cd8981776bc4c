"""
core/regions.py — Per-body-region reference tables.

Static, read-only lookup data: region aliases, region-adapted option lists
(aggravating / relieving factors, functional limitations) and the
neuromusculoskeletal tables (ROM movements, MMT muscle groups, dermatomes,
myotomes, reflexes) used to build region-specific questions.

Everything here is immutable and safe to share between sessions.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional


# ---------------------------------------------------------------------------
# Region name normalisation
# ---------------------------------------------------------------------------

REGION_ALIASES: Mapping[str, str] = MappingProxyType({
    "lumbar": "lower-back",
    "lowerback": "lower-back",
    "low-back": "lower-back",
    "lumbar-spine": "lower-back",
    "back": "lower-back",
    "cervical": "neck",
    "cervical-spine": "neck",
    "upper-back": "thoracic",
    "upperback": "thoracic",
    "midback": "thoracic",
    "mid-back": "thoracic",
    "thoracic-spine": "thoracic",
    "calf": "lower-leg",
    "lowerleg": "lower-leg",
    "leg": "lower-leg",
    "shin": "lower-leg",
    "upper-arm": "arm",
    "upperarm": "arm",
    "bicep": "arm",
    "tricep": "arm",
    "fingers": "hand",
    "toes": "foot",
    "groin": "hip",
    "buttock": "hip",
    "jaw": "head",
})

LOWER_LIMB_REGIONS: frozenset[str] = frozenset(
    {"lower-back", "hip", "thigh", "knee", "lower-leg", "ankle", "foot"}
)


def normalize_region(region: str) -> str:
    """Lower-case, hyphenate and resolve aliases: ``"Lumbar"`` -> ``"lower-back"``."""
    key = "-".join(region.strip().lower().replace("_", " ").split())
    return REGION_ALIASES.get(key, key)


# ---------------------------------------------------------------------------
# Region tables
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RegionTable:
    """Reference data for one body region."""

    label: str
    aggravating_factors: tuple[str, ...]
    relieving_factors: tuple[str, ...]
    functional_limitations: tuple[str, ...]
    rom_movements: tuple[str, ...]
    mmt_muscle_groups: tuple[str, ...]
    dermatomes: tuple[str, ...]
    myotomes: tuple[tuple[str, str, str], ...]          # (level, muscle, action)
    reflexes: tuple[tuple[str, str, str], ...]          # (reflex, nerve, level)

    @property
    def myotome_levels(self) -> tuple[str, ...]:
        return tuple(level for level, _, _ in self.myotomes)

    @property
    def reflex_names(self) -> tuple[str, ...]:
        return tuple(name for name, _, _ in self.reflexes)


REGION_TABLES: Mapping[str, RegionTable] = MappingProxyType({
    "shoulder": RegionTable(
        label="Shoulder",
        aggravating_factors=(
            "overhead_reaching", "lifting", "lying_on_affected_side",
            "reaching_behind_back", "throwing", "pushing_pulling",
        ),
        relieving_factors=("rest", "arm_supported", "ice", "heat", "gentle_movement", "medication"),
        functional_limitations=(
            "dressing", "hair_combing", "reaching_high_shelves",
            "sleeping_on_side", "carrying_bags", "driving",
        ),
        rom_movements=(
            "flexion", "extension", "abduction", "adduction",
            "internal_rotation", "external_rotation",
        ),
        mmt_muscle_groups=(
            "deltoid", "supraspinatus", "infraspinatus", "subscapularis",
            "biceps", "triceps",
        ),
        dermatomes=("C4", "C5", "C6"),
        myotomes=(
            ("C4", "upper_trapezius", "shoulder_elevation"),
            ("C5", "deltoid", "shoulder_abduction"),
            ("C6", "biceps", "elbow_flexion"),
        ),
        reflexes=(
            ("biceps", "musculocutaneous", "C5-C6"),
            ("brachioradialis", "radial", "C5-C6"),
        ),
    ),
    "elbow": RegionTable(
        label="Elbow",
        aggravating_factors=("gripping", "lifting", "typing", "turning_door_handles", "repetitive_use"),
        relieving_factors=("rest", "ice", "brace", "stretching", "medication"),
        functional_limitations=("carrying", "opening_jars", "writing", "shaking_hands", "lifting_objects"),
        rom_movements=("flexion", "extension", "pronation", "supination"),
        mmt_muscle_groups=("biceps", "triceps", "brachioradialis", "wrist_extensors", "wrist_flexors"),
        dermatomes=("C5", "C6", "C7", "T1"),
        myotomes=(
            ("C5", "biceps", "elbow_flexion"),
            ("C6", "wrist_extensors", "wrist_extension"),
            ("C7", "triceps", "elbow_extension"),
        ),
        reflexes=(
            ("biceps", "musculocutaneous", "C5-C6"),
            ("triceps", "radial", "C7-C8"),
        ),
    ),
    "wrist": RegionTable(
        label="Wrist",
        aggravating_factors=("typing", "gripping", "weight_bearing_on_hands", "twisting", "repetitive_use"),
        relieving_factors=("rest", "splint", "ice", "shaking_hand_out", "medication"),
        functional_limitations=("writing", "typing", "opening_jars", "buttoning", "carrying"),
        rom_movements=("flexion", "extension", "radial_deviation", "ulnar_deviation"),
        mmt_muscle_groups=("wrist_flexors", "wrist_extensors", "grip", "thumb_abductors"),
        dermatomes=("C6", "C7", "C8"),
        myotomes=(
            ("C6", "wrist_extensors", "wrist_extension"),
            ("C7", "wrist_flexors", "wrist_flexion"),
            ("C8", "finger_flexors", "finger_flexion"),
        ),
        reflexes=(("brachioradialis", "radial", "C5-C6"),),
    ),
    "neck": RegionTable(
        label="Neck",
        aggravating_factors=(
            "looking_up", "looking_down", "turning_head", "prolonged_sitting",
            "computer_work", "driving",
        ),
        relieving_factors=("rest", "heat", "support_pillow", "gentle_movement", "medication"),
        functional_limitations=("driving", "reading", "computer_work", "sleeping", "looking_over_shoulder"),
        rom_movements=("flexion", "extension", "left_rotation", "right_rotation", "left_side_flexion", "right_side_flexion"),
        mmt_muscle_groups=("deep_neck_flexors", "neck_extensors", "upper_trapezius", "levator_scapulae"),
        dermatomes=("C2", "C3", "C4", "C5", "C6", "C7", "C8"),
        myotomes=(
            ("C3", "neck_lateral_flexors", "neck_side_flexion"),
            ("C4", "upper_trapezius", "shoulder_elevation"),
            ("C5", "deltoid", "shoulder_abduction"),
            ("C6", "biceps", "elbow_flexion"),
            ("C7", "triceps", "elbow_extension"),
            ("C8", "finger_flexors", "finger_flexion"),
        ),
        reflexes=(
            ("biceps", "musculocutaneous", "C5-C6"),
            ("brachioradialis", "radial", "C5-C6"),
            ("triceps", "radial", "C7-C8"),
        ),
    ),
    "lower-back": RegionTable(
        label="Lower back",
        aggravating_factors=(
            "bending_forward", "lifting", "prolonged_sitting", "prolonged_standing",
            "coughing_sneezing", "getting_out_of_bed",
        ),
        relieving_factors=("lying_down", "walking", "heat", "changing_position", "medication"),
        functional_limitations=(
            "putting_on_socks", "lifting_objects", "sitting_long_periods",
            "walking_distance", "sleeping", "housework",
        ),
        rom_movements=("flexion", "extension", "left_side_flexion", "right_side_flexion", "left_rotation", "right_rotation"),
        mmt_muscle_groups=("hip_flexors", "hip_extensors", "knee_extensors", "ankle_dorsiflexors", "great_toe_extensors"),
        dermatomes=("L1", "L2", "L3", "L4", "L5", "S1", "S2"),
        myotomes=(
            ("L2", "iliopsoas", "hip_flexion"),
            ("L3", "quadriceps", "knee_extension"),
            ("L4", "tibialis_anterior", "ankle_dorsiflexion"),
            ("L5", "extensor_hallucis_longus", "great_toe_extension"),
            ("S1", "gastrocnemius", "ankle_plantarflexion"),
        ),
        reflexes=(
            ("patellar", "femoral", "L3-L4"),
            ("achilles", "tibial", "S1-S2"),
        ),
    ),
    "hip": RegionTable(
        label="Hip",
        aggravating_factors=("walking", "stairs", "getting_up_from_chair", "lying_on_side", "crossing_legs"),
        relieving_factors=("rest", "sitting", "heat", "stretching", "medication"),
        functional_limitations=("putting_on_shoes", "getting_in_car", "stairs", "walking_distance", "sleeping_on_side"),
        rom_movements=("flexion", "extension", "abduction", "adduction", "internal_rotation", "external_rotation"),
        mmt_muscle_groups=("hip_flexors", "gluteus_maximus", "gluteus_medius", "hip_adductors", "hip_rotators"),
        dermatomes=("L1", "L2", "L3"),
        myotomes=(
            ("L2", "iliopsoas", "hip_flexion"),
            ("L3", "quadriceps", "knee_extension"),
            ("L5", "gluteus_medius", "hip_abduction"),
        ),
        reflexes=(("patellar", "femoral", "L3-L4"),),
    ),
    "knee": RegionTable(
        label="Knee",
        aggravating_factors=("stairs", "squatting", "kneeling", "running", "prolonged_sitting", "twisting"),
        relieving_factors=("rest", "ice", "elevation", "brace", "straightening_leg"),
        functional_limitations=("stairs", "squatting", "kneeling", "running", "getting_up_from_chair", "walking_distance"),
        rom_movements=("flexion", "extension"),
        mmt_muscle_groups=("quadriceps", "hamstrings", "gastrocnemius", "hip_abductors"),
        dermatomes=("L3", "L4"),
        myotomes=(
            ("L3", "quadriceps", "knee_extension"),
            ("L4", "tibialis_anterior", "ankle_dorsiflexion"),
            ("S1", "hamstrings", "knee_flexion"),
        ),
        reflexes=(("patellar", "femoral", "L3-L4"),),
    ),
    "ankle": RegionTable(
        label="Ankle",
        aggravating_factors=("walking", "uneven_ground", "running", "stairs", "jumping"),
        relieving_factors=("rest", "ice", "elevation", "supportive_footwear", "brace"),
        functional_limitations=("walking_distance", "running", "stairs", "standing", "sport"),
        rom_movements=("dorsiflexion", "plantarflexion", "inversion", "eversion"),
        mmt_muscle_groups=("tibialis_anterior", "gastrocnemius_soleus", "peroneals", "tibialis_posterior"),
        dermatomes=("L4", "L5", "S1"),
        myotomes=(
            ("L4", "tibialis_anterior", "ankle_dorsiflexion"),
            ("L5", "extensor_hallucis_longus", "great_toe_extension"),
            ("S1", "gastrocnemius", "ankle_plantarflexion"),
        ),
        reflexes=(("achilles", "tibial", "S1-S2"),),
    ),
})


# ---------------------------------------------------------------------------
# Generic fallbacks (regions without a table)
# ---------------------------------------------------------------------------

GENERIC_AGGRAVATING: tuple[str, ...] = (
    "movement", "lifting", "prolonged_sitting", "prolonged_standing", "walking", "exercise",
)
GENERIC_RELIEVING: tuple[str, ...] = ("rest", "ice", "heat", "medication", "gentle_movement", "stretching")
GENERIC_FUNCTIONAL: tuple[str, ...] = (
    "self_care", "household_tasks", "work", "sleep", "sport_recreation", "walking",
)
GENERIC_DERMATOMES: tuple[str, ...] = (
    "C5", "C6", "C7", "C8", "T1", "L2", "L3", "L4", "L5", "S1",
)
GENERIC_MYOTOMES: tuple[str, ...] = ("C5", "C6", "C7", "C8", "T1", "L2", "L3", "L4", "L5", "S1")
GENERIC_REFLEXES: tuple[str, ...] = ("biceps", "triceps", "brachioradialis", "patellar", "achilles")


def region_table(region: str) -> Optional[RegionTable]:
    """Return the table for *region* (aliases resolved) or ``None``."""
    return REGION_TABLES.get(normalize_region(region))
