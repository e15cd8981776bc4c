"""
tests/test_interview.py — End-to-end tests through the AssessmentInterview
facade: interview steps, the assessment queue, diagnosis and the record.

Redis is replaced with a MagicMock; the collaborator is a local fake.
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from core.errors import InvalidTransition


SHOULDER_INTAKE = [
    ("chief_complaint", "Right shoulder pain when reaching overhead"),
    ("symptom_onset", "2024-09-01"),
    ("onset_nature", "gradual"),
    ("symptom_progression", "unchanged"),
    ("previous_episodes", "no"),
    ("body_region", ["shoulder"]),
    ("pain_screening", "yes"),
    ("weakness_screening", "no"),
    ("sensation_screening", "no"),
    ("mobility_screening", "no"),
]

THREE_TESTS = [
    {"assessment_id": "neer_test", "name": "Neer impingement test", "relevance_score": 80},
    {"assessment_id": "hawkins_kennedy", "name": "Hawkins-Kennedy test", "relevance_score": 80},
    {"assessment_id": "empty_can", "name": "Empty can (Jobe) test", "relevance_score": 70},
]

DIAGNOSIS = {
    "differential_diagnosis": [
        {
            "condition_id": "msk_rotator_cuff_tendinopathy",
            "condition_name": "Rotator cuff tendinopathy",
            "confidence_score": 0.72,
            "supporting_evidence": ["Positive Neer and Hawkins-Kennedy"],
        },
    ],
}


class FakeCollaborator:
    def __init__(self):
        self.requests = []

    async def __call__(self, request):
        self.requests.append(request)
        await asyncio.sleep(0)
        return DIAGNOSIS


def _interview(**kwargs):
    from engine.interview import AssessmentInterview

    interview = AssessmentInterview("patient-7", **kwargs)
    for qid, value in SHOULDER_INTAKE:
        result = interview.submit(qid, value)
        assert result.ok, result.error
    return interview


# ═══════════════════════════════════════════════════════════════════════════
# 1. Interview steps
# ═══════════════════════════════════════════════════════════════════════════


class TestInterviewSteps:
    def test_first_question(self):
        from engine.interview import AssessmentInterview

        interview = AssessmentInterview()
        assert interview.current_question().id == "chief_complaint"

    def test_invalid_answer_returns_error(self):
        interview = _interview()
        before = interview.session.snapshot()
        result = interview.submit("vas_score", 42)
        assert result.ok is False
        assert result.error["code"] == "OUT_OF_RANGE"
        assert result.next_question_id == interview.session.current_question_id
        assert interview.session.snapshot() == before

    def test_urgent_flags_come_with_next_question(self):
        interview = _interview()
        result = interview.submit("systemic_screening", ["bladder_bowel_change"])
        assert result.ok
        assert result.next_question_id == "shoulder_cardiac_screen"
        assert [f.text for f in result.urgent_flags] == ["Bowel/bladder dysfunction - urgent referral required"]

    def test_skip_required_is_rejected(self):
        interview = _interview()
        result = interview.skip("systemic_screening")
        assert result.ok is False
        assert result.error["code"] == "REQUIRED_QUESTION"

    def test_skip_optional(self):
        interview = _interview()
        result = interview.skip("special_tests")
        assert result.ok
        assert "special_tests" in interview.session.skipped

    def test_region_specific_options(self):
        interview = _interview()
        from engine.catalog import QUESTION_CATALOG

        options = interview.options_for(QUESTION_CATALOG["functional_impact"])
        assert "hair_combing" in options

    def test_audit_calls(self):
        mgr = MagicMock()
        interview = _interview(session_mgr=mgr)
        mgr.create_session.assert_called_once()
        assert mgr.log_response.call_count == len(SHOULDER_INTAKE)

        interview.submit("pain_screening", "no")
        args = mgr.log_response.call_args.args
        assert args[1:] == ("pain_screening", "no", True)

    def test_redis_failure_does_not_break_interview(self):
        mgr = MagicMock()
        mgr.log_response.side_effect = ConnectionError("redis down")
        interview = _interview(session_mgr=mgr)
        assert interview.session.responses["pain_screening"] == "yes"


# ═══════════════════════════════════════════════════════════════════════════
# 2. Queue through the facade
# ═══════════════════════════════════════════════════════════════════════════


class TestInterviewQueue:
    def test_recommendations_seed_queue(self):
        interview = _interview()
        result = interview.queue_assessments()
        assert result.ok
        assert interview.queue.items[0].assessment_id == "neer_test"
        assert result.progress["pending"] == len(interview.queue.items)

    def test_queue_errors_are_typed(self):
        interview = _interview()
        interview.queue_assessments(THREE_TESTS)
        interview.start_assessments()

        result = interview.submit_assessment(0, {"result": "positive"})
        assert result.ok and result.current_index == 1

        again = interview.submit_assessment(0)
        assert again.ok is False
        assert again.error["code"] == "ALREADY_TERMINAL"

        added = interview.add_assessment({"assessment_id": "custom", "name": "Custom"})
        assert added.error["code"] == "QUEUE_STARTED"

        reseed = interview.queue_assessments(THREE_TESTS)
        assert reseed.error["code"] == "QUEUE_STARTED"

    def test_finishing_without_loop_leaves_diagnosis_idle(self):
        from engine.diagnosis import DiagnosisPhase

        interview = _interview()
        interview.queue_assessments(THREE_TESTS)
        result = interview.skip_all_assessments()
        assert result.finished
        assert interview.diagnosis.phase is DiagnosisPhase.IDLE


# ═══════════════════════════════════════════════════════════════════════════
# 3. Diagnosis & record end to end
# ═══════════════════════════════════════════════════════════════════════════


class TestInterviewDiagnosis:
    def test_three_submitted_tests_trigger_one_diagnosis(self):
        collaborator = FakeCollaborator()

        async def scenario():
            interview = _interview(collaborator=collaborator, diagnosis_delay=0.01)
            interview.queue_assessments(THREE_TESTS)
            interview.start_assessments()
            for idx in range(3):
                assert interview.submit_assessment(idx, {"result": "positive"}).ok
            result = await interview.diagnosis.wait()
            again = await interview.diagnose()
            return interview, result, again

        interview, result, again = asyncio.run(scenario())
        assert [item.status for item in interview.queue.items] == ["completed"] * 3
        assert interview.queue.current_index is None
        assert interview.diagnosis.phase_history == ["idle", "scheduled", "running", "done"]
        assert len(collaborator.requests) == 1
        assert len(collaborator.requests[0].assessment_data["completed_tests"]) == 3
        assert result is again
        assert result.source == "collaborator"

    def test_skip_all_then_fallback(self):
        async def scenario():
            interview = _interview(diagnosis_delay=0)
            interview.queue_assessments(THREE_TESTS)
            interview.skip_all_assessments()
            return interview, await interview.diagnosis.wait()

        interview, result = asyncio.run(scenario())
        assert result.source == "fallback"
        assert interview.diagnosis.request.assessment_data["completed_tests"] == []

    def test_finalize_requires_diagnosis(self):
        interview = _interview()
        result = interview.finalize("msk_rotator_cuff_tendinopathy")
        assert result.ok is False
        assert result.record is None
        assert result.error["code"] == "DIAGNOSIS_PENDING"

    def test_finalize_and_payload(self):
        mgr = MagicMock()
        interview = _interview(collaborator=FakeCollaborator(), session_mgr=mgr)
        asyncio.run(interview.diagnose())

        result = interview.finalize("msk_rotator_cuff_tendinopathy", clinician_notes="Painful arc 60-120")
        assert result.ok
        record = result.record
        assert record.differential_diagnosis.selection_source == "differential"
        assert record.differential_diagnosis.confidence_score == 0.72
        mgr.set_record.assert_called_once()

        payload = interview.persistence_payload()
        assert payload["patient_id"] == "patient-7"
        assert payload["condition_id"] == "msk_rotator_cuff_tendinopathy"

    def test_manual_search_selection(self):
        interview = _interview()
        asyncio.run(interview.diagnose())
        hit = interview.search_conditions("frozen shoulder")[0]
        record = interview.finalize(hit).record
        assert record.differential_diagnosis.selected_primary == "msk_frozen_shoulder"
        assert record.differential_diagnosis.selection_source == "manual_search"

    def test_manual_search_in_hydrated_catalog(self):
        from core.conditions import CONDITION_CATALOG
        from core.models import ConditionCandidate

        clinic_only = ConditionCandidate(
            id="clinic_heel_pad_syndrome", name="Heel fat pad syndrome",
            body_region="foot", prevalence_rank=99,
        )
        interview = _interview(reference_data={"conditions": CONDITION_CATALOG + (clinic_only,)})
        asyncio.run(interview.diagnose())

        hit_id = interview.search_conditions("heel fat pad")[0].id
        assert hit_id == "clinic_heel_pad_syndrome"

        result = interview.finalize(hit_id)
        assert result.ok, result.error
        assert result.record.differential_diagnosis.selected_name == "Heel fat pad syndrome"
        assert result.record.differential_diagnosis.selection_source == "manual_search"

    def test_unknown_selection_is_typed(self):
        mgr = MagicMock()
        interview = _interview(session_mgr=mgr)
        asyncio.run(interview.diagnose())
        result = interview.finalize("msk_made_up")
        assert result.ok is False
        assert result.error["code"] == "UNKNOWN_CONDITION"
        assert interview.record is None
        mgr.set_record.assert_not_called()

    def test_payload_before_finalize(self):
        with pytest.raises(InvalidTransition):
            _interview().persistence_payload()


# ═══════════════════════════════════════════════════════════════════════════
# 4. Environment wiring
# ═══════════════════════════════════════════════════════════════════════════


class TestFromEnvironment:
    @patch("engine.interview._SESSION_MGR", None)
    @patch("engine.interview._REFERENCE_DATA", None)
    @patch("engine.interview.AZURE_ENDPOINT", "")
    @patch("engine.interview.REDIS_URL", "")
    @patch("engine.interview.MONGODB_URI", "")
    def test_nothing_configured(self):
        from core.conditions import CONDITION_CATALOG
        from engine.interview import AssessmentInterview

        interview = AssessmentInterview.from_environment("p-1")
        assert interview.session_mgr is None
        assert interview.diagnosis.collaborator is None
        assert interview.conditions == CONDITION_CATALOG

    @patch("engine.interview._SESSION_MGR", None)
    @patch("engine.interview._REFERENCE_DATA", None)
    @patch("engine.interview.load_all", return_value={"conditions": (), "assessments": None})
    @patch("engine.interview.get_db")
    @patch("engine.interview.SessionManager")
    @patch("engine.interview.AZURE_API_KEY", "key")
    @patch("engine.interview.AZURE_ENDPOINT", "https://example.invalid/openai/v1/")
    @patch("engine.interview.REDIS_URL", "redis://localhost:6379")
    @patch("engine.interview.MONGODB_URI", "mongodb://localhost")
    def test_everything_configured(self, mock_mgr_cls, mock_get_db, mock_load_all):
        from engine.collaborator import OpenAIDiagnosticCollaborator
        from engine.interview import AssessmentInterview

        first = AssessmentInterview.from_environment("p-1")
        second = AssessmentInterview.from_environment("p-2")

        mock_load_all.assert_called_once_with(mock_get_db.return_value)
        mock_mgr_cls.assert_called_once_with("redis://localhost:6379")
        assert first.session_mgr is second.session_mgr
        assert isinstance(first.diagnosis.collaborator, OpenAIDiagnosticCollaborator)
        first.session_mgr.create_session.assert_called()
