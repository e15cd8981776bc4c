"""
tests/test_red_flag_referral.py — Unit tests for the red-flag evaluator, the
referral-pattern evaluator and the assessment recommender.
"""

from __future__ import annotations

from core.models import RedFlag, ReferralFinding


SHOULDER_SCREEN = [
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
    ("systemic_screening", ["none"]),
]


def _raw_session(**responses):
    """Session with responses set directly (bypasses validation)."""
    from engine.state import AssessmentSession

    return AssessmentSession(responses=dict(responses))


# ═══════════════════════════════════════════════════════════════════════════
# 1. Scenario A: shoulder, pain, VAS 7
# ═══════════════════════════════════════════════════════════════════════════


class TestShoulderScenario:
    def _session(self):
        from engine.pathways import replay

        session, _ = replay(SHOULDER_SCREEN + [
            ("shoulder_cardiac_screen", "no"),
            ("shoulder_neck_movement", "no"),
            ("vas_score", 7),
        ])
        return session

    def test_no_urgent_flags(self):
        import tools.red_flag as red_flag_tool

        flags = red_flag_tool.run(self._session())
        assert red_flag_tool.urgent(flags) == []

    def test_referral_is_local(self):
        import tools.referral as referral_tool
        from core.referral_patterns import REFERRAL_SCREENING

        findings = referral_tool.evaluate_session(self._session())
        assert len(findings) == 1
        finding = findings[0]
        assert isinstance(finding, ReferralFinding)
        assert finding.region == "shoulder"
        assert finding.classification == "local"
        assert finding.supporting_question_ids == ["shoulder_cardiac_screen", "shoulder_neck_movement"]
        assert finding.clinical_note == REFERRAL_SCREENING["shoulder"].clinical_note
        assert finding.red_flag is False


# ═══════════════════════════════════════════════════════════════════════════
# 2. Red-flag rule tests
# ═══════════════════════════════════════════════════════════════════════════


class TestRedFlags:
    def test_empty_session_has_no_flags(self):
        import tools.red_flag as red_flag_tool

        assert red_flag_tool.run(_raw_session()) == []

    def test_bladder_change_is_urgent(self):
        import tools.red_flag as red_flag_tool

        flags = red_flag_tool.run(_raw_session(systemic_screening=["bladder_bowel_change"]))
        assert len(flags) == 1
        assert isinstance(flags[0], RedFlag)
        assert flags[0].severity == "urgent"
        assert flags[0].source_question_id == "systemic_screening"

    def test_duplicate_text_reported_once(self):
        import tools.red_flag as red_flag_tool

        flags = red_flag_tool.run(_raw_session(
            chief_complaint="Back pain and bladder problems",
            systemic_screening=["bladder_bowel_change"],
        ))
        texts = [f.text for f in flags]
        assert texts.count("Bowel/bladder dysfunction - urgent referral required") == 1

    def test_severe_constant_pain(self):
        import tools.red_flag as red_flag_tool

        flags = red_flag_tool.run(_raw_session(vas_score=9, pain_timing="constant"))
        assert [f.text for f in flags] == ["Severe constant pain - requires immediate evaluation"]

        assert red_flag_tool.run(_raw_session(vas_score=9, pain_timing="intermittent")) == []
        assert red_flag_tool.run(_raw_session(vas_score=8, pain_timing="constant")) == []

    def test_complete_sensory_loss(self):
        import tools.red_flag as red_flag_tool

        flags = red_flag_tool.run(_raw_session(sensation_type=["numbness", "complete_loss"]))
        assert flags[0].text == "Complete sensory loss - neurological evaluation required"

    def test_advisory_flags(self):
        import tools.red_flag as red_flag_tool

        flags = red_flag_tool.run(_raw_session(systemic_screening=["night_pain", "fever"]))
        assert red_flag_tool.urgent(flags) == []
        assert len(red_flag_tool.advisory(flags)) == 2

    def test_referral_red_flag_question(self):
        import tools.red_flag as red_flag_tool

        flags = red_flag_tool.run(_raw_session(shoulder_cardiac_screen="yes"))
        assert len(flags) == 1
        assert flags[0].severity == "urgent"
        assert flags[0].text.startswith("CARDIAC REFERRAL")

    def test_flags_survive_region_revision(self):
        import tools.red_flag as red_flag_tool
        from engine.pathways import replay

        session, _ = replay(SHOULDER_SCREEN + [
            ("shoulder_cardiac_screen", "yes"),
            ("body_region", ["knee"]),
        ])
        assert "referral:shoulder" not in session.activated_pathways
        flags = red_flag_tool.run(session)
        assert [f.source_question_id for f in red_flag_tool.urgent(flags)] == ["shoulder_cardiac_screen"]

    def test_rule_order(self):
        import tools.red_flag as red_flag_tool

        flags = red_flag_tool.run(_raw_session(
            systemic_screening=["recent_trauma", "saddle_anaesthesia"],
        ))
        assert [f.severity for f in flags] == ["urgent", "advisory"]


# ═══════════════════════════════════════════════════════════════════════════
# 3. Referral evaluator tests
# ═══════════════════════════════════════════════════════════════════════════


class TestReferral:
    def test_positive_answers_refer(self):
        import tools.referral as referral_tool

        finding = referral_tool.evaluate("shoulder", {
            "shoulder_neck_movement": "yes",
            "shoulder_below_elbow": "yes",
            "shoulder_cardiac_screen": "no",
        })
        assert finding.classification == "referred"
        assert finding.implicated_sources == ["cervical"]
        assert finding.supporting_question_ids == ["shoulder_neck_movement", "shoulder_below_elbow"]
        assert finding.red_flag is False

    def test_red_flag_question_marks_finding(self):
        import tools.referral as referral_tool

        finding = referral_tool.evaluate("shoulder", {"shoulder_cardiac_screen": "YES"})
        assert finding.classification == "referred"
        assert finding.red_flag is True
        assert finding.implicated_sources == ["cardiac"]

    def test_aliases_resolve(self):
        import tools.referral as referral_tool

        finding = referral_tool.evaluate("Lumbar", {})
        assert finding.region == "lower-back"
        assert finding.region_known is True

    def test_unknown_region_falls_back(self):
        import tools.referral as referral_tool
        from core.referral_patterns import GENERIC_CLINICAL_NOTE

        finding = referral_tool.evaluate("left little toe nail", {})
        assert finding.classification == "local"
        assert finding.region_known is False
        assert finding.clinical_note == GENERIC_CLINICAL_NOTE

    def test_unknown_region_helpers(self):
        import tools.referral as referral_tool
        from core.referral_patterns import GENERIC_CLINICAL_NOTE

        assert referral_tool.questions_for("elsewhere") == []
        assert referral_tool.clinical_note("elsewhere") == GENERIC_CLINICAL_NOTE

    def test_red_flag_question_ids(self):
        import tools.referral as referral_tool

        assert referral_tool.red_flag_question_ids("knee") == ["knee_dvt_bakers"]


# ═══════════════════════════════════════════════════════════════════════════
# 4. Assessment recommender tests
# ═══════════════════════════════════════════════════════════════════════════


class TestRecommender:
    def test_shoulder_pain_ranking(self):
        import tools.assessment_recommender as recommender_tool
        from engine.pathways import replay

        session, _ = replay(SHOULDER_SCREEN)
        candidates = recommender_tool.run(session)
        ids = [c.assessment_id for c in candidates]
        assert ids[:2] == ["neer_test", "hawkins_kennedy"]
        assert candidates[0].relevance_score == 80
        assert "lachman_test" not in ids
        scores = [c.relevance_score for c in candidates]
        assert scores == sorted(scores, reverse=True)

    def test_no_match_recommends_basic_screen(self):
        import tools.assessment_recommender as recommender_tool
        from engine.pathways import replay

        session, _ = replay([
            ("chief_complaint", "Headaches behind the eyes"),
            ("symptom_onset", "2024-09-01"),
            ("onset_nature", "gradual"),
            ("symptom_progression", "unchanged"),
            ("previous_episodes", "no"),
            ("body_region", ["head"]),
        ])
        candidates = recommender_tool.run(session)
        assert len(candidates) == 1
        assert candidates[0].assessment_id == "basic_movement_screen"
        assert candidates[0].relevance_score == 85
        assert candidates[0].reason == "Basic movement assessment recommended"

    def test_hydrated_catalog(self):
        import tools.assessment_recommender as recommender_tool
        from core.assessments import AssessmentDefinition
        from engine.pathways import replay

        session, _ = replay(SHOULDER_SCREEN)
        catalog = (AssessmentDefinition("apprehension_test", "Apprehension test", "Special Test",
                                        ("shoulder",)),)
        candidates = recommender_tool.run(session, catalog)
        assert [c.assessment_id for c in candidates] == ["apprehension_test"]
        assert candidates[0].relevance_score == 70
