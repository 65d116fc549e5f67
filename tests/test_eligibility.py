import pytest

from eligibility import check_eligibility, display_status, get_open_subjects
from roadmap_store import RoadmapStatus
from roadmap_utils import TODAY, se_calendar, se_graph, seeded_store, set_status


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def graph():
    return se_graph()


@pytest.fixture
def calendar():
    return se_calendar()


@pytest.fixture
def store(graph, calendar):
    return seeded_store(graph, calendar)


def _check(store, graph, subject_id, semester_id="SP25", class_id=None, student_id="STU-1"):
    return check_eligibility(store.snapshot(student_id), graph, subject_id, semester_id, class_id)


class TestPrerequisiteScenarios:
    def test_completed_prerequisite_admits(self, store, graph):
        set_status(store, "STU-1", "CS101", "Completed", 8.0)
        result = _check(store, graph, "SE101")
        assert result["eligible"] is True
        assert result["reasons"] == []
        assert result["prerequisite_subject_id"] == "CS101"
        assert result["prerequisites_met"] is True

    def test_planned_prerequisite_blocks(self, store, graph):
        result = _check(store, graph, "SE101")
        assert result["eligible"] is False
        assert result["reasons"] == ["missing prerequisite: CS101"]

    def test_completed_without_passing_score_blocks(self, store, graph):
        set_status(store, "STU-1", "CS101", "Completed", 4.5)
        assert _check(store, graph, "SE101")["reasons"] == ["missing prerequisite: CS101"]

    def test_completed_without_score_blocks(self, store, graph):
        set_status(store, "STU-1", "CS101", "Completed", None)
        assert _check(store, graph, "SE101")["eligible"] is False

    def test_failed_prerequisite_blocks(self, store, graph):
        set_status(store, "STU-1", "CS101", "Failed", 3.0)
        assert _check(store, graph, "SE101")["eligible"] is False

    def test_in_progress_prerequisite_blocks(self, store, graph):
        set_status(store, "STU-1", "CS101", "InProgress")
        assert _check(store, graph, "SE101")["eligible"] is False

    def test_transitive_chain(self, store, graph):
        # SE201 <- SE101 <- CS101: each level needs its own completion.
        set_status(store, "STU-1", "CS101", "Completed", 7.0)
        assert _check(store, graph, "SE201", "FA25")["reasons"] == ["missing prerequisite: SE101"]
        set_status(store, "STU-1", "SE101", "Completed", 6.0)
        assert _check(store, graph, "SE201", "FA25")["eligible"] is True

    def test_no_prerequisite_subject(self, store, graph):
        result = _check(store, graph, "MA101", "FA24")
        assert result["eligible"] is True
        assert result["prerequisite_subject_id"] is None


class TestBlockingRules:
    def test_no_curriculum_stops_evaluation(self, graph, calendar):
        store = seeded_store(graph, calendar, curriculum_id=None)
        result = _check(store, graph, "SE101")
        assert result["reasons"] == ["no curriculum assigned"]
        assert result["eligible"] is False

    def test_graduated(self, store, graph):
        store.mark_graduated("STU-1")
        assert "already graduated" in _check(store, graph, "MA101")["reasons"]

    def test_subject_not_in_curriculum(self, store, graph):
        result = _check(store, graph, "XX100")
        assert result["reasons"] == ["subject not in curriculum"]
        assert result["subject_in_curriculum"] is False

    def test_already_completed(self, store, graph):
        set_status(store, "STU-1", "MA101", "Completed", 9.0)
        result = _check(store, graph, "MA101")
        assert result["reasons"] == ["already completed"]
        assert result["current_status"] == "Completed"

    def test_duplicate_registration_other_section(self, store, graph):
        store.register_enrollment("STU-1", "MA101", "FA24", "MA101-01", is_approved=False)
        result = _check(store, graph, "MA101", "FA24", class_id="MA101-02")
        assert result["reasons"] == ["duplicate enrollment for this subject/semester"]

    def test_same_section_is_not_duplicate(self, store, graph):
        store.register_enrollment("STU-1", "MA101", "FA24", "MA101-01")
        assert _check(store, graph, "MA101", "FA24", class_id="MA101-01")["eligible"] is True

    def test_registration_in_other_semester_is_not_duplicate(self, store, graph):
        store.register_enrollment("STU-1", "MA101", "FA24", "MA101-01")
        assert _check(store, graph, "MA101", "SP25", class_id="MA101-07")["eligible"] is True

    def test_in_progress_same_semester_is_duplicate(self, store, graph):
        set_status(store, "STU-1", "MA101", "InProgress", semester_id="FA24")
        assert "duplicate enrollment for this subject/semester" in _check(store, graph, "MA101", "FA24")["reasons"]

    def test_reasons_accumulate(self, store, graph):
        store.mark_graduated("STU-1")
        store.register_enrollment("STU-1", "SE101", "SP25", "SE101-01")
        result = _check(store, graph, "SE101", "SP25", class_id="SE101-02")
        assert result["reasons"] == [
            "already graduated",
            "duplicate enrollment for this subject/semester",
            "missing prerequisite: CS101",
        ]

    def test_evaluation_does_not_mutate(self, store, graph):
        before = store.get_entry("STU-1", "SE101").status
        _check(store, graph, "SE101")
        assert store.get_entry("STU-1", "SE101").status == before


class TestDisplayStatus:
    def test_open_when_prerequisite_met(self, store, graph):
        set_status(store, "STU-1", "CS101", "Completed", 8.0)
        snapshot = store.snapshot("STU-1")
        assert display_status(snapshot, graph, "SE101") == "Open"
        assert store.get_entry("STU-1", "SE101").status == RoadmapStatus.PLANNED

    def test_planned_when_prerequisite_missing(self, store, graph):
        assert display_status(store.snapshot("STU-1"), graph, "SE101") == "Planned"

    def test_stored_status_passes_through(self, store, graph):
        set_status(store, "STU-1", "CS101", "Failed", 2.0)
        assert display_status(store.snapshot("STU-1"), graph, "CS101") == "Failed"

    def test_open_subjects_in_curriculum_order(self, store, graph):
        set_status(store, "STU-1", "CS101", "Completed", 8.0)
        opened = get_open_subjects(store.snapshot("STU-1"), graph)
        assert opened == ["MA101", "CS102", "SE101", "EL201", "EL202"]

    def test_open_subjects_without_curriculum(self, graph, calendar):
        store = seeded_store(graph, calendar, curriculum_id=None)
        assert get_open_subjects(store.snapshot("STU-1"), graph) == []


def test_today_constant_is_inside_a_semester():
    assert se_calendar().current(TODAY)["semester_id"] == "FA25"
