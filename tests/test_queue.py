"""
tests/test_queue.py — Unit tests for the assessment queue lifecycle.
"""

from __future__ import annotations

import pytest

from core.errors import InvalidTransition
from core.models import AssessmentCandidate


def _candidates():
    return [
        AssessmentCandidate(assessment_id="hawkins_kennedy", name="Hawkins-Kennedy test", relevance_score=80),
        AssessmentCandidate(assessment_id="neer_test", name="Neer impingement test", relevance_score=80),
        AssessmentCandidate(assessment_id="empty_can", name="Empty can (Jobe) test", relevance_score=70),
    ]


def _queue():
    from engine.assessment_queue import initialize

    return initialize(_candidates())


# ═══════════════════════════════════════════════════════════════════════════
# 1. Initialisation tests
# ═══════════════════════════════════════════════════════════════════════════


class TestInitialize:
    def test_all_pending(self):
        queue = _queue()
        assert [item.status for item in queue.items] == ["pending"] * 3
        assert queue.current_index is None
        assert queue.started is False

    def test_relevance_then_catalog_order(self):
        queue = _queue()
        # neer_test precedes hawkins_kennedy in the catalog
        assert [item.assessment_id for item in queue.items] == ["neer_test", "hawkins_kennedy", "empty_can"]

    def test_custom_tests_after_catalog_ties(self):
        from engine.assessment_queue import initialize

        queue = initialize([
            {"assessment_id": "custom_hop", "name": "Single hop", "relevance_score": 60},
            {"assessment_id": "slr_test", "name": "Straight leg raise", "relevance_score": 60},
        ])
        assert [item.assessment_id for item in queue.items] == ["slr_test", "custom_hop"]

    def test_duplicates_dropped(self):
        from engine.assessment_queue import initialize

        queue = initialize(_candidates() + _candidates())
        assert len(queue.items) == 3


# ═══════════════════════════════════════════════════════════════════════════
# 2. Transition tests
# ═══════════════════════════════════════════════════════════════════════════


class TestAdvance:
    def test_submit_in_order(self):
        from engine.assessment_queue import advance, is_finished, start

        queue = _queue()
        assert start(queue) == 0
        assert advance(queue, 0, "submitted", {"result": "positive"}) == 1
        assert advance(queue, 1, "submitted") == 2
        assert advance(queue, 2, "submitted") is None
        assert [item.status for item in queue.items] == ["completed"] * 3
        assert queue.current_index is None
        assert is_finished(queue)
        assert queue.items[0].form_data == {"result": "positive"}

    def test_implicit_start(self):
        from engine.assessment_queue import advance

        queue = _queue()
        assert advance(queue, 0, "skipped") == 1
        assert queue.items[0].status == "skipped"
        assert queue.items[1].status == "in_progress"

    def test_at_most_one_in_progress(self):
        from engine.assessment_queue import advance, in_progress_count, start

        queue = _queue()
        start(queue)
        for idx in range(3):
            assert in_progress_count(queue) <= 1
            advance(queue, idx, "submitted")
        assert in_progress_count(queue) == 0

    def test_already_terminal(self):
        from engine.assessment_queue import advance, start

        queue = _queue()
        start(queue)
        advance(queue, 0, "submitted")
        with pytest.raises(InvalidTransition) as exc:
            advance(queue, 0, "skipped")
        assert exc.value.code == "ALREADY_TERMINAL"
        assert queue.items[0].status == "completed"

    def test_not_current(self):
        from engine.assessment_queue import advance, start

        queue = _queue()
        start(queue)
        with pytest.raises(InvalidTransition) as exc:
            advance(queue, 2, "submitted")
        assert exc.value.code == "NOT_CURRENT"
        assert queue.current_index == 0

    def test_out_of_range_and_bad_outcome(self):
        from engine.assessment_queue import advance

        queue = _queue()
        with pytest.raises(InvalidTransition) as exc:
            advance(queue, 7, "submitted")
        assert exc.value.code == "INDEX_OUT_OF_RANGE"
        with pytest.raises(InvalidTransition) as exc:
            advance(queue, 0, "abandoned")
        assert exc.value.code == "UNKNOWN_OUTCOME"

    def test_progress_never_decreases(self):
        from engine.assessment_queue import advance, progress, start

        queue = _queue()
        start(queue)
        done = []
        for idx, outcome in enumerate(["submitted", "skipped", "submitted"]):
            advance(queue, idx, outcome)
            counts = progress(queue)
            done.append(counts["completed"] + counts["skipped"])
        assert done == [1, 2, 3]

    def test_skip_all(self):
        from engine.assessment_queue import advance, completed_assessments, skip_all, start

        queue = _queue()
        start(queue)
        advance(queue, 0, "submitted")
        assert skip_all(queue) == 2
        assert [item.status for item in queue.items] == ["completed", "skipped", "skipped"]
        assert queue.current_index is None
        assert [item.assessment_id for item in completed_assessments(queue)] == ["neer_test"]


# ═══════════════════════════════════════════════════════════════════════════
# 3. Editing tests
# ═══════════════════════════════════════════════════════════════════════════


class TestEditing:
    def test_add_before_start(self):
        from engine.assessment_queue import add_custom

        queue = _queue()
        item = add_custom(queue, {"assessment_id": "apprehension_test", "name": "Apprehension test"})
        assert queue.items[-1] is item
        assert item.catalog_index is None

    def test_add_after_start_fails(self):
        from engine.assessment_queue import add_custom, start

        queue = _queue()
        start(queue)
        with pytest.raises(InvalidTransition) as exc:
            add_custom(queue, {"assessment_id": "apprehension_test", "name": "Apprehension test"})
        assert exc.value.code == "QUEUE_STARTED"
        assert len(queue.items) == 3

    def test_add_duplicate_fails(self):
        from engine.assessment_queue import add_custom

        queue = _queue()
        with pytest.raises(InvalidTransition) as exc:
            add_custom(queue, {"assessment_id": "neer_test", "name": "Neer"})
        assert exc.value.code == "DUPLICATE_ASSESSMENT"

    def test_remove_pending(self):
        from engine.assessment_queue import remove

        queue = _queue()
        removed = remove(queue, "empty_can")
        assert removed.assessment_id == "empty_can"
        assert len(queue.items) == 2

    def test_remove_in_progress_fails(self):
        from engine.assessment_queue import remove, start

        queue = _queue()
        start(queue)
        with pytest.raises(InvalidTransition) as exc:
            remove(queue, "neer_test")
        assert exc.value.code == "NOT_REMOVABLE"

    def test_remove_unknown_fails(self):
        from engine.assessment_queue import remove

        with pytest.raises(InvalidTransition) as exc:
            remove(_queue(), "nope")
        assert exc.value.code == "NOT_QUEUED"
