"""
Roadmap state transitions driven by enrollment and grading events.

  Planned/Open --enroll--> InProgress --grade>=pass--> Completed
                                      --grade<pass---> Failed --enroll--> InProgress (retake)

Completed is terminal for events. Every write happens under the owning
student's lock, so two events for the same student never interleave.
"""

import sys

from curriculum_graph import CurriculumGraph
from errors import InvalidTransition, NotInRoadmap
from requirements import PASSING_SCORE, is_passing
from roadmap_store import RoadmapEntry, RoadmapStatus, RoadmapStore
from semesters import SemesterCalendar, utc_now


# Allowed status moves. Same-status moves not listed here are no-ops, not errors.
ALLOWED_TRANSITIONS: dict[RoadmapStatus, set[RoadmapStatus]] = {
    RoadmapStatus.PLANNED: {
        RoadmapStatus.OPEN,
        RoadmapStatus.IN_PROGRESS,
        RoadmapStatus.COMPLETED,
        RoadmapStatus.FAILED,
    },
    RoadmapStatus.OPEN: {
        RoadmapStatus.PLANNED,
        RoadmapStatus.IN_PROGRESS,
        RoadmapStatus.COMPLETED,
        RoadmapStatus.FAILED,
    },
    RoadmapStatus.IN_PROGRESS: {
        RoadmapStatus.COMPLETED,
        RoadmapStatus.FAILED,
    },
    RoadmapStatus.FAILED: {
        RoadmapStatus.PLANNED,
        RoadmapStatus.IN_PROGRESS,
        RoadmapStatus.COMPLETED,
    },
    RoadmapStatus.COMPLETED: set(),
}


def can_transition(current: RoadmapStatus, target: RoadmapStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(entry: RoadmapEntry, target: RoadmapStatus) -> None:
    """Raise InvalidTransition unless entry may move to target (or already is target and not Completed)."""
    if entry.status == target and entry.status != RoadmapStatus.COMPLETED:
        return
    if not can_transition(entry.status, target):
        raise InvalidTransition(entry.student_id, entry.subject_id, entry.status, target)


def seed_roadmap(
    store: RoadmapStore,
    graph: CurriculumGraph,
    calendar: SemesterCalendar,
    student_id: str,
    curriculum_id: str,
    anchor_semester_id: str | None = None,
    today=None,
) -> list[RoadmapEntry]:
    """
    Assign a curriculum and create one Planned entry per linked subject.

    Semester-number n is placed n-1 semesters after the anchor (default:
    the current or next upcoming semester). Subjects that already have an
    entry are left untouched, so seeding twice creates nothing new.
    """
    graph.curriculum(curriculum_id)  # NotFoundError for unknown curricula
    created: list[RoadmapEntry] = []
    with store.student_lock(student_id):
        store.set_curriculum(student_id, curriculum_id)
        position_in_semester: dict[int, int] = {}
        for subject_id in graph.ordered_subjects(curriculum_id):
            number = graph.semester_number_of(curriculum_id, subject_id)
            position = position_in_semester.get(number, 0) + 1
            position_in_semester[number] = position
            if store.get_entry(student_id, subject_id) is not None:
                continue
            semester = calendar.plan_semester(number, anchor_semester_id, today)
            entry = RoadmapEntry(
                student_id,
                subject_id,
                semester["semester_id"] if semester else "",
                RoadmapStatus.PLANNED,
                sequence_order=number * 10 + position,
            )
            store.add_entry(entry)
            created.append(entry)
    print(f"[INFO] Seeded {len(created)} roadmap entries for student {student_id} ({curriculum_id})")
    return created


def on_enrollment_committed(
    store: RoadmapStore,
    student_id: str,
    subject_id: str,
    semester_id: str,
    class_id: str | None = None,
) -> RoadmapEntry:
    """
    Move the entry to InProgress in the semester actually enrolled in.

    Raises NotInRoadmap when the student has no entry for the subject and
    InvalidTransition when the entry is already Completed. Re-delivering the
    same event is a no-op.
    """
    with store.student_lock(student_id):
        entry = store.get_entry(student_id, subject_id)
        if entry is None:
            raise NotInRoadmap(student_id, subject_id)

        redelivered = entry.status == RoadmapStatus.IN_PROGRESS and entry.semester_id == semester_id
        if not redelivered:
            ensure_transition(entry, RoadmapStatus.IN_PROGRESS)

        if class_id:
            store.register_enrollment(student_id, subject_id, semester_id, class_id, is_approved=True)
        if redelivered:
            return entry

        if entry.status == RoadmapStatus.FAILED:
            # Retake: the previous attempt's grade no longer describes this entry.
            entry.final_score = None
            entry.letter_grade = None
            entry.completed_at = None
        entry.semester_id = semester_id
        entry.status = RoadmapStatus.IN_PROGRESS
        if entry.started_at is None:
            entry.started_at = utc_now()
        entry.touch()

    print(
        f"[INFO] Roadmap InProgress: student={student_id} subject={subject_id} semester={semester_id}"
    )
    return entry


def on_grade_posted(
    store: RoadmapStore,
    student_id: str,
    subject_id: str,
    final_score: float,
    letter_grade: str | None = None,
    passing_score: float = PASSING_SCORE,
) -> RoadmapEntry | None:
    """
    Record the final grade: Completed when score >= passing_score, else Failed.

    Returns None (and logs) when the subject is not tracked for the student.
    Raises InvalidTransition for an entry that is already Completed.
    """
    with store.student_lock(student_id):
        entry = store.get_entry(student_id, subject_id)
        if entry is None:
            print(
                f"[WARN] Grade posted for untracked subject: student={student_id} subject={subject_id}",
                file=sys.stderr,
            )
            return None

        score = float(final_score)
        target = RoadmapStatus.COMPLETED if is_passing(score, passing_score) else RoadmapStatus.FAILED
        ensure_transition(entry, target)

        entry.status = target
        entry.final_score = score
        entry.letter_grade = letter_grade or None
        entry.completed_at = utc_now() if target == RoadmapStatus.COMPLETED else None
        entry.touch()

    print(
        f"[INFO] Roadmap {target.value}: student={student_id} subject={subject_id} score={score:.2f}"
    )
    return entry
