"""
tests/test_record_builder.py — Unit tests for the clinical record builder,
condition search and reference-data hydration.
"""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from unittest.mock import MagicMock

import pytest

from core.errors import ValidationError


EVENTS = [
    ("chief_complaint", "Right shoulder pain when reaching overhead"),
    ("symptom_onset", "2024-09-01"),
    ("onset_nature", "gradual"),
    ("symptom_progression", "unchanged"),
    ("previous_episodes", "no"),
    ("body_region", ["shoulder"]),
    ("pain_screening", "yes"),
    ("vas_score", 7),
    ("weakness_screening", "yes"),
    ("weakness_location", ["upper_limb"]),
    ("weakness_screening", "no"),   # revision closes the motor pathway
    ("swelling_assessment", "absent"),
    ("mmt_shoulder", {"deltoid": 4, "supraspinatus": 3}),
    ("adl_scoring", {"self_care": 6, "work": 4}),
]

STARTED = datetime(2024, 9, 20, 10, 0, tzinfo=timezone.utc)
FINISHED = datetime(2024, 9, 20, 10, 25, tzinfo=timezone.utc)


def _session():
    from engine.pathways import replay

    session, _ = replay(EVENTS, patient_id="patient-42")
    return session


def _fallback(session):
    from engine.diagnosis import build_fallback, build_request

    return build_fallback(build_request(session), reason="TIMEOUT")


def _build(selected="msk_rotator_cuff_tendinopathy", session=None, **kwargs):
    import tools.record_builder as record_builder_tool

    session = session or _session()
    return record_builder_tool.build(
        session, _fallback(session), selected, STARTED, finished_at=FINISHED, **kwargs,
    )


# ═══════════════════════════════════════════════════════════════════════════
# 1. Record assembly
# ═══════════════════════════════════════════════════════════════════════════


class TestBuild:
    def test_header_fields(self):
        record = _build()
        assert record.patient_id == "patient-42"
        assert record.assessment_method == "CHATBOT"
        assert record.assessment_date == "2024-09-20"
        assert record.duration_minutes == 25
        assert record.chief_complaint.startswith("Right shoulder")
        assert record.condition_type == "ACUTE"
        assert record.onset_date == "2024-09-01"

    def test_parameters_are_categorised(self):
        record = _build()
        params = record.clinical_parameters
        assert params["vas_score"].category == "subjective"
        assert params["vas_score"].method == "PATIENT_REPORTED"
        assert params["mmt_shoulder"].category == "objective"
        assert params["mmt_shoulder"].method == "CLINICIAN_ASSESSED"
        assert params["adl_scoring"].category == "functional"

    def test_deactivated_answers_are_kept(self):
        record = _build()
        assert "weakness_location" not in record.clinical_parameters
        kept = record.additional_findings["weakness_location"]
        assert kept["value"] == ["upper_limb"]
        assert "motor" in kept["pathways"]
        assert [r["question_id"] for r in record.raw_responses].count("weakness_location") == 1

    def test_selection_from_differential(self):
        diagnosis = _build().differential_diagnosis
        assert diagnosis.selected_primary == "msk_rotator_cuff_tendinopathy"
        assert diagnosis.selection_source == "differential"
        assert diagnosis.confidence_score == 0.5
        assert diagnosis.ai_generated.source == "fallback"

    def test_selection_from_manual_search(self):
        from core.conditions import CONDITION_INDEX

        diagnosis = _build(CONDITION_INDEX["msk_frozen_shoulder"]).differential_diagnosis
        assert diagnosis.selected_primary == "msk_frozen_shoulder"
        assert diagnosis.selected_name == "Adhesive capsulitis"
        assert diagnosis.selection_source == "manual_search"
        assert diagnosis.confidence_score is None

    def test_selection_from_supplied_catalog(self):
        from core.conditions import CONDITION_CATALOG
        from core.models import ConditionCandidate

        extra = ConditionCandidate(id="clinic_pec_minor", name="Pectoralis minor tightness", body_region="shoulder")
        diagnosis = _build("clinic_pec_minor", catalog=CONDITION_CATALOG + (extra,)).differential_diagnosis
        assert diagnosis.selected_name == "Pectoralis minor tightness"
        assert diagnosis.selection_source == "manual_search"

        with pytest.raises(ValidationError):
            _build("clinic_pec_minor")

    def test_unknown_selection_raises(self):
        with pytest.raises(ValidationError) as exc:
            _build("msk_made_up")
        assert exc.value.code == "UNKNOWN_CONDITION"

    def test_red_flag_summary(self):
        record = _build()
        assert record.red_flags.flags_present == []
        assert record.red_flags.urgency_level == "MODERATE"
        assert record.red_flags.assessment_notes == "No red flags identified"

    def test_urgent_flag_sets_urgency(self):
        from engine.pathways import process_response

        session = _session()
        process_response(session, "systemic_screening", ["bladder_bowel_change"])
        record = _build(session=session)
        assert record.red_flags.urgency_level == "URGENT"

    def test_functional_baseline(self):
        baseline = _build().functional_baseline
        assert baseline.adl_scores == {"self_care": 6, "work": 4}
        assert baseline.adl_average == 5.0

    def test_referral_and_assessments(self):
        from core.models import QueuedAssessment

        tests = [QueuedAssessment(assessment_id="neer_test", name="Neer", status="completed",
                                  form_data={"result": "positive"})]
        record = _build(completed_assessments=tests)
        assert [f.region for f in record.referral_findings] == ["shoulder"]
        assert record.completed_assessments[0].form_data == {"result": "positive"}
        assert record.completed_assessments[0] is not tests[0]

    def test_session_not_mutated(self):
        session = _session()
        before = session.snapshot()
        _build(session=session)
        assert session.snapshot() == before


class TestConditionType:
    def test_onset_windows(self):
        from tools.record_builder import derive_condition_type

        ref = date(2024, 12, 1)
        assert derive_condition_type("2024-11-01", ref) == "ACUTE"
        assert derive_condition_type("2024-09-25", ref) == "SUBACUTE"
        assert derive_condition_type("2024-01-01", ref) == "CHRONIC"

    def test_without_onset_uses_classification(self):
        from tools.record_builder import derive_condition_type

        ref = date(2024, 12, 1)
        assert derive_condition_type(None, ref, "RECURRING") == "CHRONIC"
        assert derive_condition_type(None, ref) == "ACUTE"


class TestPersistencePayload:
    def test_payload_shape(self):
        import tools.record_builder as record_builder_tool

        record = _build()
        payload = record_builder_tool.to_persistence_payload("patient-42", record)
        assert payload["condition_id"] == "msk_rotator_cuff_tendinopathy"
        assert payload["description"].startswith("Rotator cuff tendinopathy - Right shoulder")
        assert payload["assessment_method"] == "CHATBOT"
        assert payload["condition_type"] == "ACUTE"
        assert payload["initial_assessment_data"]["session_id"] == record.session_id
        json.dumps(payload)


# ═══════════════════════════════════════════════════════════════════════════
# 2. Condition search
# ═══════════════════════════════════════════════════════════════════════════


class TestConditionSearch:
    def test_index_is_read_only(self):
        from core.conditions import CONDITION_CATALOG, CONDITION_INDEX

        assert list(CONDITION_INDEX) == [c.id for c in CONDITION_CATALOG]
        with pytest.raises(TypeError):
            CONDITION_INDEX["msk_made_up"] = CONDITION_CATALOG[0]

    def test_closest_name_first(self):
        from core.conditions import search_conditions

        hits = search_conditions("adhesive capsulitis")
        assert hits[0].id == "msk_frozen_shoulder"

    def test_typo_tolerant(self):
        from core.conditions import search_conditions

        hits = search_conditions("carpel tunnel")
        assert hits[0].id == "neuro_carpal_tunnel"

    def test_empty_query(self):
        from core.conditions import search_conditions

        assert search_conditions("   ") == []

    def test_limit(self):
        from core.conditions import search_conditions

        assert len(search_conditions("pain", limit=2, score_cutoff=0)) == 2


# ═══════════════════════════════════════════════════════════════════════════
# 3. Reference data hydration
# ═══════════════════════════════════════════════════════════════════════════


def _mock_db(conditions, assessments):
    collections = {"conditions": MagicMock(), "assessments": MagicMock()}
    collections["conditions"].find.return_value = conditions
    collections["assessments"].find.return_value.sort.return_value = assessments
    db = MagicMock()
    db.__getitem__.side_effect = collections.__getitem__
    return db


class TestDataLoader:
    def test_hydrates_from_collections(self):
        from core.data_loader import load_all

        db = _mock_db(
            [
                {"_id": "b", "name": "Second", "body_region": "knee", "prevalence_rank": 2},
                {"_id": "a", "name": "First", "body_region": "hip", "prevalence_rank": 1},
            ],
            [{"_id": "t1", "name": "Test one", "regions": ["knee"], "pathways": ["pain"]}],
        )
        data = load_all(db)
        assert [c.id for c in data["conditions"]] == ["a", "b"]
        assert data["condition_index"]["b"].name == "Second"
        assert data["assessments"][0].regions == ("knee",)
        assert data["assessment_index"]["t1"].base_relevance == 40

    def test_malformed_documents_skipped(self):
        from core.data_loader import load_all

        db = _mock_db(
            [{"_id": "no_name"}, {"_id": "ok", "name": "Fine", "body_region": "neck"}],
            [],
        )
        data = load_all(db)
        assert [c.id for c in data["conditions"]] == ["ok"]

    def test_empty_collections_fall_back(self):
        from core.assessments import ASSESSMENT_CATALOG
        from core.conditions import CONDITION_CATALOG
        from core.data_loader import load_all

        data = load_all(_mock_db([], []))
        assert data["conditions"] == CONDITION_CATALOG
        assert data["assessments"] == ASSESSMENT_CATALOG
