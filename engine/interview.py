"""
engine/interview.py — One clinician-facing assessment, end to end.

Owner: WS2 (Decision Engine)

``AssessmentInterview`` ties the pieces together for a UI or an API layer:
the question state machine, red-flag and referral screening, the physical
test queue, the diagnosis orchestrator and the final record.  Engine errors
raised by interview and queue steps come back as typed results
(``StepResult``, ``QueueResult``, ``RecordResult``) so a bad input never ends a session.
Every step is mirrored to the redis audit store when one is configured.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Optional, Union

from pydantic import BaseModel, Field

from core.assessments import AssessmentDefinition
from core.conditions import CONDITION_CATALOG, search_conditions
from core.config import AZURE_API_KEY, AZURE_ENDPOINT, MONGODB_URI, REDIS_URL
from core.data_loader import load_all
from core.database import get_db
from core.errors import AssessmentError, InvalidTransition
from core.models import (
    AssessmentCandidate,
    ClinicalRecord,
    ConditionCandidate,
    DiagnosticResult,
    QueuedAssessment,
    RedFlag,
    ReferralFinding,
)
from core.session_manager import SessionManager, safe_session
from engine import assessment_queue
from engine.assessment_queue import AssessmentQueue
from engine.catalog import QuestionTemplate
from engine.collaborator import OpenAIDiagnosticCollaborator
from engine.diagnosis import Collaborator, DiagnosisOrchestrator, DiagnosisPhase
from engine.pathways import current_question, process_response, skip_question, start_session

import tools.assessment_recommender as recommender_tool
import tools.record_builder as record_builder_tool
import tools.red_flag as red_flag_tool
import tools.referral as referral_tool

logger = logging.getLogger(__name__)

# Process-wide, loaded on first use by ``AssessmentInterview.from_environment``
_REFERENCE_DATA: Optional[dict[str, Any]] = None
_SESSION_MGR: Optional[SessionManager] = None


class StepResult(BaseModel):
    """Outcome of one interview step (answer or skip)."""
    ok: bool
    next_question_id: Optional[str] = None
    error: Optional[dict[str, Any]] = None
    urgent_flags: list[RedFlag] = Field(default_factory=list)
    advisory_flags: list[RedFlag] = Field(default_factory=list)
    completion_percentage: int = 0
    complete: bool = False


class QueueResult(BaseModel):
    """Outcome of one assessment-queue operation."""
    ok: bool
    current_index: Optional[int] = None
    error: Optional[dict[str, Any]] = None
    progress: dict[str, int] = Field(default_factory=dict)
    finished: bool = False


class RecordResult(BaseModel):
    """Outcome of finalising the assessment into a clinical record."""
    ok: bool
    record: Optional[ClinicalRecord] = None
    error: Optional[dict[str, Any]] = None


class AssessmentInterview:
    """
    Facade over a single assessment session.

    Parameters
    ----------
    patient_id : str
        Opaque patient identifier, copied into the record.
    collaborator : callable, optional
        Diagnostic collaborator (see ``engine.collaborator``).  ``None``
        means diagnosis always uses the catalog fallback.
    session_mgr : SessionManager, optional
        Redis audit store.
    reference_data : dict, optional
        Output of ``core.data_loader.load_all``; defaults to the built-in
        condition and assessment catalogs.
    session_id : str, optional
        Reuse an existing id instead of generating one.
    diagnosis_delay, diagnosis_timeout : float, optional
        Forwarded to ``DiagnosisOrchestrator``.
    """

    def __init__(
        self,
        patient_id: str = "",
        *,
        collaborator: Optional[Collaborator] = None,
        session_mgr: Optional[SessionManager] = None,
        reference_data: Optional[dict[str, Any]] = None,
        session_id: Optional[str] = None,
        diagnosis_delay: Optional[float] = None,
        diagnosis_timeout: Optional[float] = None,
    ) -> None:
        reference_data = reference_data or {}
        self.conditions: tuple[ConditionCandidate, ...] = tuple(
            reference_data.get("conditions") or CONDITION_CATALOG
        )
        self.assessments: Optional[tuple[AssessmentDefinition, ...]] = reference_data.get("assessments")
        self.session_mgr = session_mgr

        self.session = start_session(patient_id, session_id)
        self.queue = AssessmentQueue()

        orchestrator_kwargs: dict[str, Any] = {"catalog": self.conditions, "session_mgr": session_mgr}
        if diagnosis_delay is not None:
            orchestrator_kwargs["delay"] = diagnosis_delay
        if diagnosis_timeout is not None:
            orchestrator_kwargs["timeout"] = diagnosis_timeout
        self.diagnosis = DiagnosisOrchestrator(self.session, collaborator, **orchestrator_kwargs)
        self.record: Optional[ClinicalRecord] = None

        if session_mgr is not None:
            safe_session(session_mgr.create_session, self.session.session_id, {
                "patient_id": patient_id,
                "started_at": self.session.started_at.isoformat(),
            })

    @classmethod
    def from_environment(cls, patient_id: str = "") -> "AssessmentInterview":
        """
        Build an interview wired to whatever ``.env`` configures: MongoDB
        reference data, the redis audit store and the LLM collaborator.
        Anything not configured is left out.
        """
        global _REFERENCE_DATA, _SESSION_MGR

        if _REFERENCE_DATA is None:
            _REFERENCE_DATA = load_all(get_db()) if MONGODB_URI else {}
        if _SESSION_MGR is None and REDIS_URL:
            _SESSION_MGR = SessionManager(REDIS_URL)

        collaborator = OpenAIDiagnosticCollaborator() if AZURE_ENDPOINT and AZURE_API_KEY else None
        return cls(
            patient_id,
            collaborator=collaborator,
            session_mgr=_SESSION_MGR,
            reference_data=_REFERENCE_DATA,
        )

    @property
    def session_id(self) -> str:
        return self.session.session_id

    # ── Interview ───────────────────────────────────────────────────────

    def current_question(self) -> Optional[QuestionTemplate]:
        return current_question(self.session)

    def options_for(self, question: QuestionTemplate) -> tuple[str, ...]:
        """Options to present, specialised to the selected body regions."""
        return question.options_for(self.session.regions)

    def _step_result(self, next_id: Optional[str]) -> StepResult:
        flags = red_flag_tool.run(self.session)
        return StepResult(
            ok=True,
            next_question_id=next_id,
            urgent_flags=red_flag_tool.urgent(flags),
            advisory_flags=red_flag_tool.advisory(flags),
            completion_percentage=self.session.completion_percentage,
            complete=next_id is None,
        )

    def _error_result(self, exc: AssessmentError) -> StepResult:
        logger.info("Session %s rejected step: %s (%s)", self.session_id, exc.message, exc.code)
        return StepResult(
            ok=False,
            next_question_id=self.session.current_question_id,
            error=exc.to_dict(),
            completion_percentage=self.session.completion_percentage,
            complete=self.session.is_complete,
        )

    def _audit_snapshot(self) -> None:
        if self.session_mgr is not None:
            safe_session(self.session_mgr.set_snapshot, self.session_id, self.snapshot())

    def submit(self, question_id: str, value: Any) -> StepResult:
        """Answer (or revise) a question.  Urgent flags surface with the next question."""
        revision = question_id in self.session.responses
        try:
            next_id = process_response(self.session, question_id, value)
        except AssessmentError as exc:
            return self._error_result(exc)

        if self.session_mgr is not None:
            safe_session(self.session_mgr.log_response, self.session_id, question_id,
                         self.session.responses[question_id], revision)
        self._audit_snapshot()
        result = self._step_result(next_id)
        if result.urgent_flags:
            logger.warning("Session %s: %d urgent red flag(s)", self.session_id, len(result.urgent_flags))
        return result

    def skip(self, question_id: str) -> StepResult:
        try:
            next_id = skip_question(self.session, question_id)
        except AssessmentError as exc:
            return self._error_result(exc)
        self._audit_snapshot()
        return self._step_result(next_id)

    def red_flags(self) -> list[RedFlag]:
        return red_flag_tool.run(self.session)

    def referral_findings(self) -> list[ReferralFinding]:
        return referral_tool.evaluate_session(self.session)

    def recommended_assessments(self) -> list[AssessmentCandidate]:
        return recommender_tool.run(self.session, self.assessments)

    # ── Assessment queue ────────────────────────────────────────────────

    def _queue_result(self, current_index: Optional[int] = None) -> QueueResult:
        return QueueResult(
            ok=True,
            current_index=current_index if current_index is not None else self.queue.current_index,
            progress=assessment_queue.progress(self.queue),
            finished=assessment_queue.is_finished(self.queue),
        )

    def _queue_error(self, exc: AssessmentError) -> QueueResult:
        logger.info("Session %s rejected queue operation: %s (%s)", self.session_id, exc.message, exc.code)
        return QueueResult(
            ok=False,
            current_index=self.queue.current_index,
            error=exc.to_dict(),
            progress=assessment_queue.progress(self.queue),
            finished=assessment_queue.is_finished(self.queue),
        )

    def queue_assessments(
        self,
        candidates: Optional[Iterable[Union[AssessmentCandidate, QueuedAssessment, dict]]] = None,
    ) -> QueueResult:
        """Seed the queue (recommendations by default).  Only before it has started."""
        if self.queue.started:
            return self._queue_error(InvalidTransition(
                "Cannot re-seed the assessment queue after it has started.", code="QUEUE_STARTED",
            ))
        self.queue = assessment_queue.initialize(
            self.recommended_assessments() if candidates is None else candidates
        )
        return self._queue_result()

    def add_assessment(self, test: Union[AssessmentCandidate, QueuedAssessment, dict]) -> QueueResult:
        try:
            assessment_queue.add_custom(self.queue, test)
        except AssessmentError as exc:
            return self._queue_error(exc)
        return self._queue_result()

    def remove_assessment(self, assessment_id: str) -> QueueResult:
        try:
            assessment_queue.remove(self.queue, assessment_id)
        except AssessmentError as exc:
            return self._queue_error(exc)
        return self._queue_result()

    def start_assessments(self) -> QueueResult:
        idx = assessment_queue.start(self.queue)
        self._maybe_schedule_diagnosis()
        return self._queue_result(idx)

    def submit_assessment(self, index: int, form_data: Optional[dict[str, Any]] = None) -> QueueResult:
        return self._advance(index, "submitted", form_data)

    def skip_assessment(self, index: int) -> QueueResult:
        return self._advance(index, "skipped")

    def skip_all_assessments(self) -> QueueResult:
        skipped = assessment_queue.skip_all(self.queue)
        logger.info("Session %s skipped %d assessment(s)", self.session_id, skipped)
        self._maybe_schedule_diagnosis()
        return self._queue_result()

    def _advance(self, index: int, outcome: str, form_data: Optional[dict[str, Any]] = None) -> QueueResult:
        try:
            nxt = assessment_queue.advance(self.queue, index, outcome, form_data)
        except AssessmentError as exc:
            return self._queue_error(exc)
        self._maybe_schedule_diagnosis()
        return self._queue_result(nxt)

    def _maybe_schedule_diagnosis(self) -> None:
        """Arm the debounced diagnosis once every queued test is finished."""
        if not assessment_queue.is_finished(self.queue):
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("Session %s: no running loop, diagnosis left to diagnose()", self.session_id)
            return
        self.diagnosis.schedule(assessment_queue.completed_assessments(self.queue))

    # ── Diagnosis & record ──────────────────────────────────────────────

    async def diagnose(self) -> DiagnosticResult:
        """Run (or join) the diagnosis with the tests completed so far."""
        return await self.diagnosis.run_diagnosis(assessment_queue.completed_assessments(self.queue))

    def search_conditions(self, query: str, limit: int = 10) -> list[ConditionCandidate]:
        """Manual search for a condition outside the differential."""
        return search_conditions(query, catalog=self.conditions, limit=limit)

    def finalize(
        self,
        selected: Union[str, ConditionCandidate, Any],
        *,
        clinician_notes: str = "",
    ) -> RecordResult:
        """
        Build the clinical record for the clinician's selected condition.

        The selection is resolved against the differential first, then
        against this interview's condition catalog (hydrated from MongoDB
        when configured), so any hit from ``search_conditions`` is valid.
        Errors come back as ``RecordResult(ok=False)``: ``DIAGNOSIS_PENDING``
        before the diagnosis is delivered, ``UNKNOWN_CONDITION`` for an
        unresolvable selection.
        """
        try:
            if self.diagnosis.phase is not DiagnosisPhase.DONE:
                raise InvalidTransition(
                    "Cannot finalise before the diagnosis is delivered.",
                    code="DIAGNOSIS_PENDING",
                    details={"phase": self.diagnosis.phase.value},
                )
            record = record_builder_tool.build(
                self.session,
                self.diagnosis.result,
                selected,
                self.session.started_at,
                completed_assessments=assessment_queue.terminal_assessments(self.queue),
                clinician_notes=clinician_notes,
                catalog=self.conditions,
            )
        except AssessmentError as exc:
            logger.info("Session %s could not be finalised: %s (%s)", self.session_id, exc.message, exc.code)
            return RecordResult(ok=False, record=self.record, error=exc.to_dict())

        self.record = record
        if self.session_mgr is not None:
            safe_session(self.session_mgr.set_record, self.session_id, record.model_dump(mode="json"))
        logger.info("Session %s finalised: %s (%s)", self.session_id,
                    record.differential_diagnosis.selected_primary,
                    record.differential_diagnosis.selection_source)
        return RecordResult(ok=True, record=record)

    def persistence_payload(self) -> dict[str, Any]:
        """
        Document for the patient-condition store.

        Raises ``InvalidTransition`` (``NOT_FINALISED``) when no record has
        been built; callers check ``RecordResult.ok`` first.
        """
        if self.record is None:
            raise InvalidTransition("No clinical record has been built yet.", code="NOT_FINALISED")
        return record_builder_tool.to_persistence_payload(self.session.patient_id, self.record)

    def snapshot(self) -> dict:
        return {
            "session": self.session.snapshot(),
            "queue": self.queue.snapshot(),
            "diagnosis_phase": self.diagnosis.phase.value,
        }
