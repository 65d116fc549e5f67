import threading

import pytest

from errors import InvalidTransition, NotFoundError, NotInRoadmap
from roadmap_advancer import (
    ALLOWED_TRANSITIONS,
    can_transition,
    on_enrollment_committed,
    on_grade_posted,
    seed_roadmap,
)
from roadmap_store import RoadmapStatus
from roadmap_utils import CURRICULUM_ID, TODAY, se_calendar, se_graph, seeded_store, set_status


@pytest.fixture
def graph():
    return se_graph()


@pytest.fixture
def calendar():
    return se_calendar()


@pytest.fixture
def store(graph, calendar):
    return seeded_store(graph, calendar)


class TestSeeding:
    def test_one_planned_entry_per_subject(self, store):
        entries = store.entries_for("STU-1")
        assert len(entries) == 10
        assert {e.status for e in entries} == {RoadmapStatus.PLANNED}

    def test_semester_number_maps_onto_calendar(self, store):
        assert store.get_entry("STU-1", "CS101").semester_id == "FA24"
        assert store.get_entry("STU-1", "SE101").semester_id == "SP25"
        assert store.get_entry("STU-1", "CS201").semester_id == "FA25"
        assert store.get_entry("STU-1", "SE302").semester_id == "SP26"

    def test_sequence_order(self, store):
        assert store.get_entry("STU-1", "CS101").sequence_order == 11
        assert store.get_entry("STU-1", "MA101").sequence_order == 12

    def test_default_anchor_is_current_semester(self, graph, calendar):
        from roadmap_store import RoadmapStore
        store = RoadmapStore()
        store.add_student("STU-9")
        seed_roadmap(store, graph, calendar, "STU-9", CURRICULUM_ID, today=TODAY)
        assert store.get_entry("STU-9", "CS101").semester_id == "FA25"
        # Runs off the end of the calendar: clamped to the last semester.
        assert store.get_entry("STU-9", "SE301").semester_id == "FA26"

    def test_seeding_twice_creates_nothing(self, store, graph, calendar):
        created = seed_roadmap(store, graph, calendar, "STU-1", CURRICULUM_ID, "FA24")
        assert created == []
        assert len(store.entries_for("STU-1")) == 10

    def test_unknown_curriculum(self, store, graph, calendar):
        with pytest.raises(NotFoundError):
            seed_roadmap(store, graph, calendar, "STU-1", "NOPE")


class TestEnrollmentCommitted:
    def test_moves_to_in_progress_in_enrolled_semester(self, store):
        entry = on_enrollment_committed(store, "STU-1", "MA101", "SP25", "MA101-01")
        assert entry.status == RoadmapStatus.IN_PROGRESS
        assert entry.semester_id == "SP25"
        assert entry.started_at is not None
        assert store.registrations_for("STU-1")[0]["is_approved"] is True

    def test_idempotent(self, store):
        first = on_enrollment_committed(store, "STU-1", "MA101", "FA24")
        started = first.started_at
        updated = first.updated_at
        second = on_enrollment_committed(store, "STU-1", "MA101", "FA24")
        assert second.status == RoadmapStatus.IN_PROGRESS
        assert second.started_at == started
        assert second.updated_at == updated

    def test_not_in_roadmap(self, store):
        with pytest.raises(NotInRoadmap):
            on_enrollment_committed(store, "STU-1", "XX100", "FA24")

    def test_completed_cannot_reenroll(self, store):
        set_status(store, "STU-1", "MA101", "Completed", 8.0)
        with pytest.raises(InvalidTransition):
            on_enrollment_committed(store, "STU-1", "MA101", "SP25")
        assert store.get_entry("STU-1", "MA101").status == RoadmapStatus.COMPLETED

    def test_rejected_enrollment_records_no_registration(self, store):
        set_status(store, "STU-1", "MA101", "Completed", 8.0)
        with pytest.raises(InvalidTransition):
            on_enrollment_committed(store, "STU-1", "MA101", "SP25", "MA101-02")
        assert store.registrations_for("STU-1") == []

    def test_redelivered_enrollment_keeps_registration(self, store):
        on_enrollment_committed(store, "STU-1", "MA101", "FA24")
        on_enrollment_committed(store, "STU-1", "MA101", "FA24", "MA101-01")
        assert [r["class_id"] for r in store.registrations_for("STU-1")] == ["MA101-01"]

    def test_retake_after_failure_clears_grade(self, store):
        on_enrollment_committed(store, "STU-1", "MA101", "FA24")
        on_grade_posted(store, "STU-1", "MA101", 3.0, "F")
        entry = on_enrollment_committed(store, "STU-1", "MA101", "SP25")
        assert entry.status == RoadmapStatus.IN_PROGRESS
        assert entry.final_score is None
        assert entry.letter_grade is None
        assert entry.semester_id == "SP25"


class TestGradePosted:
    def test_passing_grade_completes(self, store):
        on_enrollment_committed(store, "STU-1", "CS101", "FA24")
        entry = on_grade_posted(store, "STU-1", "CS101", 8.0, "B+")
        assert entry.status == RoadmapStatus.COMPLETED
        assert entry.final_score == 8.0
        assert entry.completed_at is not None

    def test_threshold_is_inclusive(self, store):
        on_enrollment_committed(store, "STU-1", "CS101", "FA24")
        assert on_grade_posted(store, "STU-1", "CS101", 5.0).status == RoadmapStatus.COMPLETED

    def test_failing_grade(self, store):
        on_enrollment_committed(store, "STU-1", "CS101", "FA24")
        entry = on_grade_posted(store, "STU-1", "CS101", 4.99, "F")
        assert entry.status == RoadmapStatus.FAILED
        assert entry.completed_at is None

    def test_untracked_subject_is_noop(self, store, capsys):
        assert on_grade_posted(store, "STU-1", "XX100", 9.0) is None
        assert "untracked subject" in capsys.readouterr().err

    def test_no_backward_transition(self, store):
        on_enrollment_committed(store, "STU-1", "CS101", "FA24")
        on_grade_posted(store, "STU-1", "CS101", 9.0)
        with pytest.raises(InvalidTransition):
            on_grade_posted(store, "STU-1", "CS101", 2.0)
        entry = store.get_entry("STU-1", "CS101")
        assert entry.status == RoadmapStatus.COMPLETED
        assert entry.final_score == 9.0

    def test_custom_passing_score(self, store):
        on_enrollment_committed(store, "STU-1", "CS101", "FA24")
        entry = on_grade_posted(store, "STU-1", "CS101", 5.5, passing_score=6.0)
        assert entry.status == RoadmapStatus.FAILED


class TestTransitionTable:
    def test_completed_is_terminal(self):
        assert ALLOWED_TRANSITIONS[RoadmapStatus.COMPLETED] == set()

    @pytest.mark.parametrize("target", list(RoadmapStatus))
    def test_nothing_leaves_completed(self, target):
        assert can_transition(RoadmapStatus.COMPLETED, target) is False

    def test_in_progress_cannot_return_to_planned(self):
        assert can_transition(RoadmapStatus.IN_PROGRESS, RoadmapStatus.PLANNED) is False


class TestConcurrency:
    def test_parallel_events_for_one_student(self, store):
        subjects = ["CS101", "MA101", "EL202"]
        errors = []

        def worker(subject_id):
            try:
                on_enrollment_committed(store, "STU-1", subject_id, "FA24", f"{subject_id}-01")
                on_grade_posted(store, "STU-1", subject_id, 7.0)
            except Exception as exc:  # surfaced through the assertion below
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(s,)) for s in subjects]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert store.statistics("STU-1")["completed"] == 3
        assert len(store.registrations_for("STU-1")) == 3
