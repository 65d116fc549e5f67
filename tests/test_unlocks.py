import pytest

from timeline import estimate_timeline
from unlocks import build_reverse_prereq_map, get_blocking_warnings, get_direct_unlocks
from roadmap_utils import CURRICULUM_ID, se_graph


@pytest.fixture
def graph():
    return se_graph()


@pytest.fixture
def reverse(graph):
    return build_reverse_prereq_map(graph, CURRICULUM_ID)


class TestBuildReversePrereqMap:
    def test_cs101_unlocks_many(self, reverse):
        assert reverse["CS101"] == ["CS102", "EL201", "SE101"]

    def test_single_dependents(self, reverse):
        assert reverse["SE101"] == ["SE201"]
        assert reverse["CS201"] == ["SE302"]

    def test_leaf_not_in_map(self, reverse):
        assert "SE302" not in reverse
        assert "EL202" not in reverse


class TestGetDirectUnlocks:
    def test_limit_applied(self, reverse):
        assert get_direct_unlocks("CS101", reverse, limit=2) == ["CS102", "EL201"]

    def test_subject_not_in_map(self, reverse):
        assert get_direct_unlocks("MA101", reverse) == []


class TestBlockingWarnings:
    def test_warns_above_threshold(self, reverse):
        warnings = get_blocking_warnings(["CS101", "SE101"], reverse, set(), lambda s: s)
        assert warnings == ["Completing CS101 would unlock 3 subjects you can't yet take."]

    def test_completed_dependents_not_counted(self, reverse):
        warnings = get_blocking_warnings(["CS101"], reverse, {"CS102", "SE101"}, lambda s: s)
        assert warnings == []


class TestTimeline:
    def test_credit_load_bound(self):
        credits = {f"S{i}": 5 for i in range(9)}
        result = estimate_timeline(list(credits), {}, credits, credits_per_semester=20)
        assert result["outstanding_credits"] == 45
        assert result["estimated_min_semesters"] == 3

    def test_chain_bound(self):
        result = estimate_timeline(["A"], {"A": 3}, {"A": 3})
        assert result["estimated_min_semesters"] == 4

    def test_nothing_outstanding(self):
        result = estimate_timeline([], {}, {})
        assert result["estimated_min_semesters"] == 0
        assert "Rough estimate" in result["disclaimer"]
