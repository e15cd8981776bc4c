"""
core/models.py — Single source of truth for the data models shared across the
decision engine.  Engine, tools and tests all import from here.

Mutable per-session containers (``AssessmentSession``, ``AssessmentQueue``)
are dataclasses in ``engine/``; everything that crosses a boundary is a
pydantic model.
"""

from __future__ import annotations

from typing import Any, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Interview responses
# ---------------------------------------------------------------------------

class ResponseEvent(BaseModel):
    """One submitted answer, kept in submission order for replay/audit."""
    question_id: str
    value: Any
    recorded_at: str                                     # ISO-8601 UTC
    revision: bool = False                               # question was already answered


# ---------------------------------------------------------------------------
# Red Flag Evaluator output
# ---------------------------------------------------------------------------

class RedFlag(BaseModel):
    """Output of the Red-Flag Evaluator.  Always derived, never stored."""
    text: str
    source_question_id: str
    severity: Literal["advisory", "urgent"]
    recommended_action: str = ""


# ---------------------------------------------------------------------------
# Referral Pattern Evaluator
# ---------------------------------------------------------------------------

class ReferralQuestion(BaseModel):
    """A yes/no screening question for pain referred into a region."""
    model_config = ConfigDict(frozen=True)

    id: str                                              # e.g. "shoulder_cardiac_screen"
    question: str
    positive_implication: str
    source_region: str                                   # e.g. "cardiac", "cervical"
    implies_referral: bool = True                        # False: a "yes" confirms a local source
    is_red_flag: bool = False


class ReferralFinding(BaseModel):
    """Local-vs-referred classification for one active body region."""
    region: str
    classification: Literal["local", "referred"]
    implicated_sources: list[str] = Field(default_factory=list)
    supporting_question_ids: list[str] = Field(default_factory=list)
    clinical_note: str
    red_flag: bool = False
    region_known: bool = True


# ---------------------------------------------------------------------------
# Reference catalogs
# ---------------------------------------------------------------------------

class ConditionCandidate(BaseModel):
    """One entry of the static condition catalog."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    body_region: str
    specialty: str = "musculoskeletal"
    prevalence_rank: int = 100
    chronicity: Literal["acute", "chronic", "either"] = "either"


class AssessmentCandidate(BaseModel):
    """A physical test offered for the assessment queue."""
    assessment_id: str
    name: str
    relevance_score: int = Field(default=50, ge=0, le=100)
    category: str = "Clinical Assessment"
    reason: str = ""


# ---------------------------------------------------------------------------
# Assessment Queue
# ---------------------------------------------------------------------------

class QueuedAssessment(BaseModel):
    """One physical test in the queue, with its lifecycle state."""
    assessment_id: str
    name: str
    relevance_score: int = Field(default=50, ge=0, le=100)
    category: str = "Clinical Assessment"
    status: Literal["pending", "in_progress", "completed", "skipped"] = "pending"
    form_data: Optional[dict[str, Any]] = None
    catalog_index: Optional[int] = None                  # position in ASSESSMENT_CATALOG, None for custom
    updated_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Diagnostic request / response (external collaborator contract)
# ---------------------------------------------------------------------------

class AvailableCondition(BaseModel):
    """Condition as advertised to the diagnostic collaborator."""
    id: str
    name: str
    body_region: str
    specialty: str


class DiagnosticRequest(BaseModel):
    """Payload sent to the diagnostic collaborator."""
    assessment_data: dict[str, Any]
    available_conditions: list[AvailableCondition]
    request_type: Literal["differential_diagnosis"] = "differential_diagnosis"
    max_conditions: int = 5
    confidence_threshold: float = Field(default=0.3, ge=0.0, le=1.0)


class DifferentialEntry(BaseModel):
    """One ranked condition in the differential."""
    condition_id: str
    condition_name: str
    confidence_score: float = Field(ge=0.0, le=1.0)
    supporting_evidence: list[str] = Field(default_factory=list)
    clinical_reasoning: str = ""


class ExcludedCondition(BaseModel):
    """A condition the collaborator ruled out."""
    model_config = ConfigDict(extra="ignore")

    condition_id: str = ""
    condition_name: str = ""
    reason_for_exclusion: str = ""


class DiagnosticResult(BaseModel):
    """Collaborator response, or the deterministic fallback."""
    model_config = ConfigDict(extra="ignore")

    differential_diagnosis: list[DifferentialEntry] = Field(default_factory=list)
    excluded_conditions: list[ExcludedCondition] = Field(default_factory=list)
    additional_testing_needed: list[str] = Field(default_factory=list)
    red_flags_identified: list[str] = Field(default_factory=list)
    treatment_urgency: Literal["low", "moderate", "high", "urgent"] = "moderate"
    source: Literal["collaborator", "fallback"] = "collaborator"
    fallback_reason: Optional[str] = None


class CollaboratorCallRecord(BaseModel):
    """Audit entry for one collaborator invocation."""
    session_id: str
    outcome: Literal["success", "fallback"]
    duration_ms: int
    condition_ids: list[str] = Field(default_factory=list)
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Clinical record (final artifact)
# ---------------------------------------------------------------------------

class ClinicalParameter(BaseModel):
    """One answered question, categorised for the clinical record."""
    model_config = ConfigDict(frozen=True)

    question_id: str
    value: Any
    category: Literal["subjective", "objective", "functional", "referral"]
    method: Literal["PATIENT_REPORTED", "CLINICIAN_ASSESSED"]
    timestamp: str


class RedFlagSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    flags_present: list[RedFlag] = Field(default_factory=list)
    urgency_level: Literal["LOW", "MODERATE", "HIGH", "URGENT"] = "LOW"
    assessment_notes: str = ""


class FunctionalBaseline(BaseModel):
    model_config = ConfigDict(frozen=True)

    adl_scores: dict[str, float] = Field(default_factory=dict)
    adl_average: Optional[float] = None
    functional_limitations: list[str] = Field(default_factory=list)
    mobility_limitations: list[str] = Field(default_factory=list)


class DiagnosisRecord(BaseModel):
    """The chosen diagnosis plus the full differential kept for audit."""
    model_config = ConfigDict(frozen=True)

    ai_generated: DiagnosticResult
    selected_primary: str                                # condition id
    selected_name: str
    selection_source: Literal["differential", "manual_search"]
    confidence_score: Optional[float] = None
    clinician_notes: str = ""


class ClinicalRecord(BaseModel):
    """Immutable record handed to the persistence collaborator."""
    model_config = ConfigDict(frozen=True)

    assessment_id: str
    session_id: str
    patient_id: str
    assessment_type: str = "CHATBOT_COMPREHENSIVE"
    assessment_method: str = "CHATBOT"
    assessment_date: str
    started_at: str
    completed_at: str
    duration_minutes: int
    chief_complaint: str = ""
    condition_type: Literal["ACUTE", "SUBACUTE", "CHRONIC"] = "ACUTE"
    onset_date: Optional[str] = None
    activated_pathways: list[str] = Field(default_factory=list)
    completion_percentage: int = 0
    clinical_parameters: dict[str, ClinicalParameter] = Field(default_factory=dict)
    findings: dict[str, dict[str, Any]] = Field(default_factory=dict)
    additional_findings: dict[str, Any] = Field(default_factory=dict)
    red_flags: RedFlagSummary = Field(default_factory=RedFlagSummary)
    referral_findings: list[ReferralFinding] = Field(default_factory=list)
    functional_baseline: FunctionalBaseline = Field(default_factory=FunctionalBaseline)
    completed_assessments: list[QueuedAssessment] = Field(default_factory=list)
    differential_diagnosis: DiagnosisRecord
    raw_responses: list[dict[str, Any]] = Field(default_factory=list)
