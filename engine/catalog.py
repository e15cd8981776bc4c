"""
engine/catalog.py — The static question catalog.

``QUESTION_CATALOG`` is an ordered, read-only mapping of question id ->
``QuestionTemplate``.  Its order is the interview priority order: the state
machine always asks the first active, unanswered question.  Region-specific
templates (referral screens, ROM and MMT grids) are generated once at import
from ``core.regions`` / ``core.referral_patterns``.

Owner: WS2 (Decision Engine)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from types import MappingProxyType
from typing import Any, Callable, Literal, Mapping, Optional, Sequence

from core.referral_patterns import REFERRAL_SCREENING
from core.regions import (
    GENERIC_AGGRAVATING,
    GENERIC_DERMATOMES,
    GENERIC_FUNCTIONAL,
    GENERIC_MYOTOMES,
    GENERIC_REFLEXES,
    GENERIC_RELIEVING,
    REGION_TABLES,
    normalize_region,
    region_table,
)

InputKind = Literal[
    "text",
    "date",
    "yes_no",
    "single_choice",
    "multi_choice",
    "slider",
    "body_map",
    "scale_grid",
    "measurement",
]
Section = Literal["subjective", "objective", "functional", "referral"]

# ── Pathway tags ────────────────────────────────────────────────────────
CORE = "core"
OBJECTIVE = "objective"
FUNCTIONAL = "functional"
PAIN = "pain"
PAIN_MODERATE = "pain_moderate"
PAIN_SEVERE = "pain_severe"
MOTOR = "motor"
SENSORY = "sensory"
NEUROLOGICAL = "neurological"
MOBILITY = "mobility"
BALANCE = "balance"
GAIT = "gait"
INFLAMMATION = "inflammation"

PAIN_PATHWAYS: frozenset[str] = frozenset({PAIN, PAIN_MODERATE, PAIN_SEVERE})


def referral_tag(region: str) -> str:
    return f"referral:{normalize_region(region)}"


def region_tag(region: str) -> str:
    return f"region:{normalize_region(region)}"


@dataclass(frozen=True)
class QuestionTemplate:
    """One immutable question definition."""

    id: str
    prompt: str
    kind: InputKind
    pathways: frozenset[str]
    section: Section = "subjective"
    options: tuple[str, ...] = ()
    required: bool = True
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    # Name of a RegionTable attribute whose values replace ``options`` for
    # the session's chosen regions.
    region_options: Optional[str] = None
    # Generated templates are pinned to a single region.
    region: Optional[str] = None
    validator: Optional[Callable[[Any], bool]] = None
    validator_message: str = ""
    method: Literal["PATIENT_REPORTED", "CLINICIAN_ASSESSED"] = "PATIENT_REPORTED"

    def options_for(self, regions: Sequence[str] = ()) -> tuple[str, ...]:
        """Options adapted to the chosen regions, falling back to ``options``."""
        if self.region_options is None:
            return self.options
        scope = (self.region,) if self.region else tuple(regions)
        merged: list[str] = []
        for name in scope:
            table = region_table(name)
            if table is None:
                continue
            for opt in getattr(table, self.region_options):
                if opt not in merged:
                    merged.append(opt)
        return tuple(merged) or self.options

    def is_active(self, activated: frozenset[str] | set[str]) -> bool:
        return not self.pathways.isdisjoint(activated)


# ── Predicates ──────────────────────────────────────────────────────────

def _meaningful_text(value: str) -> bool:
    return len(value.strip()) > 2


def _not_in_future(value: str) -> bool:
    return date.fromisoformat(value) <= date.today()


def _none_is_exclusive(value: list[str]) -> bool:
    return "none" not in value or len(value) == 1


# ── Catalog construction ────────────────────────────────────────────────

def _t(qid: str, prompt: str, kind: InputKind, *pathways: str, **kwargs: Any) -> QuestionTemplate:
    return QuestionTemplate(id=qid, prompt=prompt, kind=kind, pathways=frozenset(pathways), **kwargs)


def _referral_templates() -> list[QuestionTemplate]:
    templates: list[QuestionTemplate] = []
    for region, data in REFERRAL_SCREENING.items():
        for q in data.questions:
            templates.append(_t(
                q.id, q.question, "yes_no", referral_tag(region),
                section="referral", options=("yes", "no"), region=region,
            ))
    return templates


def _region_exam_templates() -> list[QuestionTemplate]:
    templates: list[QuestionTemplate] = []
    for region, table in REGION_TABLES.items():
        templates.append(_t(
            f"rom_{region}", f"{table.label}: active range of motion (degrees)", "measurement",
            region_tag(region),
            section="objective", options=table.rom_movements, min_value=0, max_value=360,
            region=region, method="CLINICIAN_ASSESSED",
        ))
        templates.append(_t(
            f"mmt_{region}", f"{table.label}: manual muscle testing (Oxford 0-5)", "scale_grid",
            region_tag(region),
            section="objective", options=table.mmt_muscle_groups, min_value=0, max_value=5,
            region=region, method="CLINICIAN_ASSESSED",
        ))
    return templates


_INTAKE: list[QuestionTemplate] = [
    _t("chief_complaint", "What brings you in today? Describe your main problem.", "text", CORE,
       validator=_meaningful_text, validator_message="Please describe the problem in a few words."),
    _t("symptom_onset", "When did the symptoms start?", "date", CORE,
       validator=_not_in_future, validator_message="Onset date cannot be in the future."),
    _t("onset_nature", "How did it start?", "single_choice", CORE,
       options=("sudden", "gradual", "after_injury", "unknown")),
    _t("symptom_progression", "Since it started, is it getting better or worse?", "single_choice", CORE,
       options=("improving", "worsening", "unchanged", "fluctuating")),
    _t("previous_episodes", "Have you had this problem before?", "yes_no", CORE, options=("yes", "no")),
    _t("body_region", "Where is the problem? Mark the affected area(s).", "body_map", CORE),
    _t("pain_screening", "Are you experiencing pain?", "yes_no", CORE, options=("yes", "no")),
    _t("weakness_screening", "Have you noticed any weakness?", "yes_no", CORE, options=("yes", "no")),
    _t("sensation_screening", "Any numbness, tingling or change in sensation?", "yes_no", CORE,
       options=("yes", "no")),
    _t("mobility_screening", "Is your movement or mobility limited?", "yes_no", CORE, options=("yes", "no")),
    _t("systemic_screening", "Have you noticed any of the following?", "multi_choice", CORE,
       options=(
           "none", "night_pain", "unexplained_weight_loss", "fever", "bladder_bowel_change",
           "saddle_anaesthesia", "cancer_history", "recent_trauma",
       ),
       validator=_none_is_exclusive, validator_message='"none" cannot be combined with other answers.'),
]

_SUBJECTIVE_PATHWAYS: list[QuestionTemplate] = [
    _t("vas_score", "Rate your pain right now (0 = none, 10 = worst imaginable).", "slider", PAIN,
       min_value=0, max_value=10),
    _t("pain_nature", "How would you describe the pain?", "multi_choice", PAIN_MODERATE,
       options=("sharp", "dull", "aching", "burning", "throbbing", "shooting", "stabbing")),
    _t("pain_timing", "When is the pain present?", "single_choice", PAIN_MODERATE,
       options=("constant", "intermittent", "morning", "evening", "activity", "rest")),
    _t("pain_movement", "How does movement affect the pain?", "single_choice", PAIN,
       options=("increases", "decreases", "no_change")),
    _t("aggravating_factors", "What makes it worse?", "multi_choice", PAIN_SEVERE,
       options=GENERIC_AGGRAVATING, region_options="aggravating_factors"),
    _t("relieving_factors", "What makes it better?", "multi_choice", PAIN_SEVERE,
       options=GENERIC_RELIEVING, region_options="relieving_factors"),
    _t("weakness_location", "Where do you notice the weakness?", "multi_choice", MOTOR,
       options=("upper_limb", "lower_limb", "core", "general")),
    _t("sensation_type", "What kind of sensation change?", "multi_choice", SENSORY,
       options=("numbness", "tingling", "burning", "hypersensitive", "complete_loss")),
    _t("mobility_limitations", "Which movements are limited?", "multi_choice", MOBILITY,
       options=("walking", "stairs", "bending", "reaching", "getting_up", "turning")),
]

_OBJECTIVE: list[QuestionTemplate] = [
    _t("swelling_assessment", "Swelling on observation", "single_choice", OBJECTIVE,
       section="objective", options=("absent", "mild", "moderate", "severe"), method="CLINICIAN_ASSESSED"),
    _t("girth_measurement", "Girth measurements (cm)", "measurement", INFLAMMATION,
       section="objective", min_value=0, max_value=200, method="CLINICIAN_ASSESSED"),
    _t("tenderness_assessment", "Tenderness grade on palpation", "single_choice", PAIN,
       section="objective", options=("none", "grade_1", "grade_2", "grade_3", "grade_4"),
       method="CLINICIAN_ASSESSED"),
]

_NEURO_AND_OBSERVATION: list[QuestionTemplate] = [
    _t("dermatome_assessment", "Dermatomal sensation (0 absent, 1 impaired, 2 normal)", "scale_grid",
       NEUROLOGICAL, section="objective", options=GENERIC_DERMATOMES, region_options="dermatomes",
       min_value=0, max_value=2, method="CLINICIAN_ASSESSED"),
    _t("myotome_assessment", "Myotome strength (Oxford 0-5)", "scale_grid", NEUROLOGICAL,
       section="objective", options=GENERIC_MYOTOMES, region_options="myotome_levels",
       min_value=0, max_value=5, method="CLINICIAN_ASSESSED"),
    _t("reflex_testing", "Deep tendon reflexes (0 absent - 4 clonus)", "scale_grid", NEUROLOGICAL,
       section="objective", options=GENERIC_REFLEXES, region_options="reflex_names",
       min_value=0, max_value=4, method="CLINICIAN_ASSESSED"),
    _t("neurodynamic_tests", "Positive neurodynamic tests", "multi_choice", NEUROLOGICAL,
       section="objective", required=False, method="CLINICIAN_ASSESSED",
       options=("ultt_median", "ultt_radial", "ultt_ulnar", "slr", "slump", "prone_knee_bend")),
    _t("balance_assessment", "Static and dynamic balance", "single_choice", BALANCE,
       section="objective", method="CLINICIAN_ASSESSED",
       options=("normal", "mildly_impaired", "moderately_impaired", "severely_impaired")),
    _t("gait_analysis", "Gait observation", "multi_choice", GAIT,
       section="objective", method="CLINICIAN_ASSESSED",
       options=("normal", "antalgic", "trendelenburg", "high_stepping", "ataxic", "shuffling")),
    _t("posture_assessment", "Posture observation", "multi_choice", OBJECTIVE,
       section="objective", method="CLINICIAN_ASSESSED",
       options=(
           "normal", "forward_head", "rounded_shoulders", "increased_kyphosis",
           "increased_lordosis", "flat_back", "scoliosis", "pelvic_tilt",
       )),
    _t("special_tests", "Special test notes", "text", OBJECTIVE,
       section="objective", required=False, method="CLINICIAN_ASSESSED"),
]

_FUNCTIONAL_AND_CLOSE: list[QuestionTemplate] = [
    _t("functional_impact", "Which daily activities are affected?", "multi_choice", FUNCTIONAL,
       section="functional", options=GENERIC_FUNCTIONAL, region_options="functional_limitations"),
    _t("adl_scoring", "Rate each activity (0 = unable, 10 = no difficulty)", "scale_grid", FUNCTIONAL,
       section="functional", min_value=0, max_value=10,
       options=("self_care", "household", "work", "sleep", "recreation", "mobility")),
    _t("condition_classification", "How would you classify this presentation?", "single_choice", CORE,
       options=("ACUTE", "CHRONIC", "RECURRING"), method="CLINICIAN_ASSESSED"),
]


def _build_catalog() -> Mapping[str, QuestionTemplate]:
    ordered = (
        _INTAKE
        + _referral_templates()
        + _SUBJECTIVE_PATHWAYS
        + _OBJECTIVE
        + _region_exam_templates()
        + _NEURO_AND_OBSERVATION
        + _FUNCTIONAL_AND_CLOSE
    )
    catalog: dict[str, QuestionTemplate] = {}
    for template in ordered:
        if template.id in catalog:
            raise ValueError(f"Duplicate question id in catalog: {template.id}")
        catalog[template.id] = template
    return MappingProxyType(catalog)


QUESTION_CATALOG: Mapping[str, QuestionTemplate] = _build_catalog()
FIRST_QUESTION_ID: str = next(iter(QUESTION_CATALOG))
