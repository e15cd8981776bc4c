"""
engine/diagnosis.py — Diagnosis orchestrator.

Owner: WS3 (Diagnosis)

Builds a DiagnosticRequest from the session and the completed tests, calls
the external diagnostic collaborator, validates what comes back and falls
back to a deterministic ranking on any failure.  The whole thing runs at
most once per session.

Several independent triggers race to start it ("assessments skipped",
"all assessments completed", a delayed retry).  Instead of guard flags the
orchestrator is an explicit state machine::

    idle ──schedule──▶ scheduled ──timer fires / run now──▶ running ──▶ done
      ▲                   │  ▲
      └─────cancel────────┘  └── re-arm (schedule again while scheduled)

There is exactly one debounce task (``_timer``) and one execution task
(``_task``).  Every caller shares one future; once ``done`` the cached
result is returned and the collaborator is never invoked again.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import logging
import time
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

import pydantic

from core.conditions import CONDITION_CATALOG
from core.config import (
    CONFIDENCE_THRESHOLD,
    DIAGNOSIS_DELAY_SECONDS,
    DIAGNOSIS_TIMEOUT_SECONDS,
    MAX_CONDITIONS,
)
from core.errors import CollaboratorFailure, InvalidTransition
from core.models import (
    AvailableCondition,
    CollaboratorCallRecord,
    ConditionCandidate,
    DiagnosticRequest,
    DiagnosticResult,
    DifferentialEntry,
    QueuedAssessment,
)
from core.session_manager import SessionManager, safe_session
from engine.state import AssessmentSession

import tools.red_flag as red_flag_tool
import tools.referral as referral_tool

logger = logging.getLogger(__name__)

Collaborator = Callable[[DiagnosticRequest], Any]
Observer = Callable[[DiagnosticResult], None]


class DiagnosisPhase(str, Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    DONE = "done"


_ALLOWED_TRANSITIONS: Mapping[DiagnosisPhase, frozenset[DiagnosisPhase]] = {
    DiagnosisPhase.IDLE: frozenset({DiagnosisPhase.SCHEDULED}),
    DiagnosisPhase.SCHEDULED: frozenset({DiagnosisPhase.IDLE, DiagnosisPhase.RUNNING}),
    DiagnosisPhase.RUNNING: frozenset({DiagnosisPhase.DONE}),
    DiagnosisPhase.DONE: frozenset(),
}

# Synthetic confidence ladder for the fallback ranking.
FALLBACK_SCORES: tuple[float, ...] = (0.6, 0.5, 0.4, 0.3, 0.2)
FALLBACK_EVIDENCE = "Clinical assessment data available"
FALLBACK_TESTS = ("Detailed clinical examination", "Consider imaging if indicated")
_URGENCY_LEVELS = ("low", "moderate", "high", "urgent")


# ── Request building ────────────────────────────────────────────────────

def _test_record(test: QueuedAssessment) -> dict[str, Any]:
    return {
        "assessment_id": test.assessment_id,
        "name": test.name,
        "category": test.category,
        "status": test.status,
        "form_data": copy.deepcopy(test.form_data),
    }


def build_request(
    session: AssessmentSession,
    completed_tests: Iterable[QueuedAssessment] = (),
    catalog: Sequence[ConditionCandidate] = CONDITION_CATALOG,
    *,
    max_conditions: int = MAX_CONDITIONS,
    confidence_threshold: float = CONFIDENCE_THRESHOLD,
) -> DiagnosticRequest:
    """Assemble the collaborator request from the session and completed tests."""
    assessment_data = {
        "assessment_id": session.session_id,
        "chief_complaint": session.responses.get("chief_complaint", ""),
        "body_regions": session.regions,
        "subjective": copy.deepcopy(session.subjective),
        "objective": copy.deepcopy(session.objective),
        "functional": copy.deepcopy(session.functional),
        "activated_pathways": sorted(session.activated_pathways),
        "completion_percentage": session.completion_percentage,
        "red_flags": [f.model_dump() for f in red_flag_tool.run(session)],
        "referral_findings": [f.model_dump() for f in referral_tool.evaluate_session(session)],
        "completed_tests": [_test_record(t) for t in completed_tests],
    }
    return DiagnosticRequest(
        assessment_data=assessment_data,
        available_conditions=[
            AvailableCondition(id=c.id, name=c.name, body_region=c.body_region, specialty=c.specialty)
            for c in catalog
        ],
        max_conditions=max_conditions,
        confidence_threshold=confidence_threshold,
    )


# ── Response validation & fallback ──────────────────────────────────────

def _coerce_payload(raw: Mapping[str, Any]) -> dict[str, Any]:
    payload = dict(raw)
    urgency = payload.get("treatment_urgency")
    if isinstance(urgency, str) and urgency.strip().lower() in _URGENCY_LEVELS:
        payload["treatment_urgency"] = urgency.strip().lower()
    else:
        payload.pop("treatment_urgency", None)
    return payload


def validate_result(raw: Any, request: DiagnosticRequest) -> DiagnosticResult:
    """
    Check a collaborator response and return it ranked by confidence.

    Raises
    ------
    CollaboratorFailure
        Not an object, fails the schema, empty ranking, references a
        condition id that is not among the request's candidates, or lists
        the same condition id twice.
    """
    if isinstance(raw, DiagnosticResult):
        result = raw
    elif isinstance(raw, Mapping):
        try:
            result = DiagnosticResult.model_validate(_coerce_payload(raw))
        except pydantic.ValidationError as exc:
            raise CollaboratorFailure(
                "Malformed diagnostic response.",
                code="MALFORMED_RESPONSE",
                details={"errors": exc.errors(include_url=False)},
            ) from exc
    else:
        raise CollaboratorFailure(
            f"Diagnostic response is a {type(raw).__name__}, expected an object.",
            code="MALFORMED_RESPONSE",
        )

    if not result.differential_diagnosis:
        raise CollaboratorFailure("Diagnostic response has an empty differential.", code="EMPTY_RESULT")

    known = {c.id for c in request.available_conditions}
    unknown = [e.condition_id for e in result.differential_diagnosis if e.condition_id not in known]
    if unknown:
        raise CollaboratorFailure(
            f"Diagnostic response references unknown condition ids: {unknown}",
            code="UNKNOWN_CONDITION",
            details={"condition_ids": unknown},
        )

    ids = [e.condition_id for e in result.differential_diagnosis]
    duplicates = sorted({cid for cid in ids if ids.count(cid) > 1})
    if duplicates:
        raise CollaboratorFailure(
            f"Diagnostic response lists condition ids more than once: {duplicates}",
            code="DUPLICATE_CONDITION",
            details={"condition_ids": duplicates},
        )

    ranked = sorted(result.differential_diagnosis, key=lambda e: -e.confidence_score)
    return result.model_copy(update={
        "differential_diagnosis": ranked,
        "source": "collaborator",
        "fallback_reason": None,
    })


def build_fallback(request: DiagnosticRequest, reason: str = "") -> DiagnosticResult:
    """
    Deterministic ranking used whenever the collaborator cannot be used.

    The first candidates in catalog order get the synthetic scores
    0.6, 0.5, 0.4, 0.3, 0.2.  Never raises.
    """
    limit = min(request.max_conditions, len(FALLBACK_SCORES))
    entries = [
        DifferentialEntry(
            condition_id=c.id,
            condition_name=c.name,
            confidence_score=score,
            supporting_evidence=[FALLBACK_EVIDENCE],
            clinical_reasoning=f"Condition in {c.body_region} region - requires manual clinical correlation",
        )
        for c, score in zip(request.available_conditions[:limit], FALLBACK_SCORES)
    ]
    return DiagnosticResult(
        differential_diagnosis=entries,
        additional_testing_needed=list(FALLBACK_TESTS),
        treatment_urgency="moderate",
        source="fallback",
        fallback_reason=reason or None,
    )


# ── Orchestrator ────────────────────────────────────────────────────────

class DiagnosisOrchestrator:
    """
    Single-execution diagnosis for one session.

    Parameters
    ----------
    session : AssessmentSession
        The interview being diagnosed (read only).
    collaborator : callable, optional
        ``(DiagnosticRequest) -> dict | DiagnosticResult`` or a coroutine
        function returning one.  Sync callables run on the event loop and
        should not block; wrap blocking I/O with ``asyncio.to_thread``.
        ``None`` means every run takes the fallback path.
    catalog : sequence of ConditionCandidate, optional
        Candidate conditions; defaults to the static catalog.
    delay : float
        Debounce before a scheduled run starts.
    timeout : float
        Upper bound on one collaborator call.
    session_mgr : SessionManager, optional
        Audit store for collaborator calls and the delivered result.
    """

    def __init__(
        self,
        session: AssessmentSession,
        collaborator: Optional[Collaborator] = None,
        *,
        catalog: Optional[Sequence[ConditionCandidate]] = None,
        delay: float = DIAGNOSIS_DELAY_SECONDS,
        timeout: float = DIAGNOSIS_TIMEOUT_SECONDS,
        max_conditions: int = MAX_CONDITIONS,
        confidence_threshold: float = CONFIDENCE_THRESHOLD,
        session_mgr: Optional[SessionManager] = None,
    ) -> None:
        self.session = session
        self.collaborator = collaborator
        self.catalog = tuple(catalog) if catalog is not None else CONDITION_CATALOG
        self.delay = delay
        self.timeout = timeout
        self.max_conditions = max_conditions
        self.confidence_threshold = confidence_threshold
        self.session_mgr = session_mgr

        self._phase = DiagnosisPhase.IDLE
        self.phase_history: list[DiagnosisPhase] = [DiagnosisPhase.IDLE]
        self._timer: Optional[asyncio.Task] = None
        self._task: Optional[asyncio.Task] = None
        self._future: Optional[asyncio.Future] = None
        self._result: Optional[DiagnosticResult] = None
        self._completed_tests: list[QueuedAssessment] = []
        self._observers: list[Observer] = []

        self.executions = 0
        self.request: Optional[DiagnosticRequest] = None

    # ── State ───────────────────────────────────────────────────────────

    @property
    def phase(self) -> DiagnosisPhase:
        return self._phase

    @property
    def result(self) -> Optional[DiagnosticResult]:
        return self._result

    def _transition(self, target: DiagnosisPhase) -> None:
        if target not in _ALLOWED_TRANSITIONS[self._phase]:
            raise InvalidTransition(
                f"Diagnosis cannot move from {self._phase.value} to {target.value}.",
                details={"from": self._phase.value, "to": target.value},
            )
        logger.info("Diagnosis %s: %s → %s", self.session.session_id, self._phase.value, target.value)
        self._phase = target
        self.phase_history.append(target)

    def add_observer(self, callback: Observer) -> None:
        """Register a callback invoked exactly once with the delivered result."""
        self._observers.append(callback)

    def _ensure_future(self) -> asyncio.Future:
        if self._future is None:
            self._future = asyncio.get_running_loop().create_future()
        return self._future

    # ── Triggers ────────────────────────────────────────────────────────

    def schedule(
        self,
        completed_tests: Optional[Iterable[QueuedAssessment]] = None,
        delay: Optional[float] = None,
    ) -> asyncio.Future:
        """
        Arm (or re-arm) the debounce timer and return the shared result future.

        Re-arming is only possible while ``idle`` or ``scheduled``; once the
        run has started the call is ignored and the same future returned.
        Must be called from inside a running event loop.
        """
        if self._phase in (DiagnosisPhase.RUNNING, DiagnosisPhase.DONE):
            logger.debug("Diagnosis %s already %s; trigger ignored",
                         self.session.session_id, self._phase.value)
            return self._ensure_future()

        future = self._ensure_future()
        if completed_tests is not None:
            self._completed_tests = list(completed_tests)
        if self._phase is DiagnosisPhase.SCHEDULED:
            self._timer.cancel()
            logger.debug("Diagnosis %s re-armed", self.session.session_id)
        else:
            self._transition(DiagnosisPhase.SCHEDULED)

        wait = self.delay if delay is None else delay
        self._timer = asyncio.get_running_loop().create_task(self._fire_after(wait))
        return future

    def cancel(self) -> bool:
        """
        Cancel a scheduled run.  Returns False when nothing was scheduled.

        Callers already awaiting the future from ``schedule`` (or a
        ``wait``/``run_diagnosis`` in progress) get ``InvalidTransition``
        with code ``DIAGNOSIS_CANCELLED``; the next ``schedule`` hands out
        a fresh future.
        """
        if self._phase is not DiagnosisPhase.SCHEDULED:
            return False
        self._timer.cancel()
        self._timer = None
        self._transition(DiagnosisPhase.IDLE)

        future, self._future = self._future, None
        if future is not None and not future.done():
            future.set_exception(InvalidTransition(
                "Scheduled diagnosis was cancelled.", code="DIAGNOSIS_CANCELLED",
            ))
            # Mark retrieved so an unawaited future does not log on collection.
            future.exception()
        logger.debug("Diagnosis %s cancelled", self.session.session_id)
        return True

    async def run_diagnosis(
        self,
        completed_tests: Optional[Iterable[QueuedAssessment]] = None,
    ) -> DiagnosticResult:
        """
        Run now (or join the run in flight) and return the result.

        Every caller receives the same ``DiagnosticResult`` object; once
        ``done`` the cached result is returned without any new work.
        """
        if self._phase is DiagnosisPhase.DONE:
            return self._result
        future = self.schedule(completed_tests, delay=0)
        # Cancelling a waiting caller must not cancel the shared run.
        return await asyncio.shield(future)

    async def wait(self) -> DiagnosticResult:
        """Await the result of a scheduled or running diagnosis."""
        if self._phase is DiagnosisPhase.DONE:
            return self._result
        if self._phase is DiagnosisPhase.IDLE:
            raise InvalidTransition("No diagnosis has been scheduled.", code="NOT_SCHEDULED")
        return await asyncio.shield(self._ensure_future())

    # ── Execution ───────────────────────────────────────────────────────

    async def _fire_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._phase is not DiagnosisPhase.SCHEDULED:
            return
        self._transition(DiagnosisPhase.RUNNING)
        self._timer = None
        self._task = asyncio.get_running_loop().create_task(self._execute())

    async def _invoke(self, request: DiagnosticRequest) -> DiagnosticResult:
        if self.collaborator is None:
            raise CollaboratorFailure("No diagnostic collaborator configured.", code="NO_COLLABORATOR")
        try:
            raw = self.collaborator(request)
            if inspect.isawaitable(raw):
                raw = await asyncio.wait_for(raw, timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise CollaboratorFailure(
                f"Diagnostic collaborator timed out after {self.timeout}s.", code="TIMEOUT",
            ) from exc
        except CollaboratorFailure:
            raise
        except Exception as exc:
            raise CollaboratorFailure(
                f"Diagnostic collaborator failed: {type(exc).__name__}: {exc}", code="TRANSPORT_ERROR",
            ) from exc
        return validate_result(raw, request)

    async def _execute(self) -> None:
        self.executions += 1
        request = build_request(
            self.session,
            self._completed_tests,
            self.catalog,
            max_conditions=self.max_conditions,
            confidence_threshold=self.confidence_threshold,
        )
        self.request = request
        t0 = time.perf_counter()
        try:
            result = await self._invoke(request)
            error = None
        except CollaboratorFailure as exc:
            logger.warning("Diagnosis %s falling back to catalog ranking (%s): %s",
                           self.session.session_id, exc.code, exc.message)
            result = build_fallback(request, reason=exc.code)
            error = exc.message
        except asyncio.CancelledError:
            # A running diagnosis still resolves; the fallback is delivered.
            self._deliver(build_fallback(request, reason="CANCELLED"), t0, "cancelled")
            raise
        self._deliver(result, t0, error)

    def _deliver(self, result: DiagnosticResult, t0: float, error: Optional[str]) -> None:
        self._result = result
        self._transition(DiagnosisPhase.DONE)
        if self._future is not None and not self._future.done():
            self._future.set_result(result)

        if self.session_mgr is not None:
            record = CollaboratorCallRecord(
                session_id=self.session.session_id,
                outcome="success" if result.source == "collaborator" else "fallback",
                duration_ms=int((time.perf_counter() - t0) * 1000),
                condition_ids=[e.condition_id for e in result.differential_diagnosis],
                error=error,
            )
            safe_session(self.session_mgr.log_collaborator_call, self.session.session_id, record.model_dump())
            safe_session(self.session_mgr.set_diagnosis, self.session.session_id, result.model_dump())

        for callback in self._observers:
            try:
                callback(result)
            except Exception:
                logger.exception("Diagnosis observer %r failed", callback)
