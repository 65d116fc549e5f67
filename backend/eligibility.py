from curriculum_graph import CurriculumGraph
from requirements import PASSING_SCORE, is_passing
from roadmap_store import RoadmapStatus, StudentSnapshot


REASON_NO_CURRICULUM = "no curriculum assigned"
REASON_GRADUATED = "already graduated"
REASON_NOT_IN_CURRICULUM = "subject not in curriculum"
REASON_COMPLETED = "already completed"
REASON_DUPLICATE = "duplicate enrollment for this subject/semester"
REASON_MISSING_PREREQ = "missing prerequisite: {code}"


def prerequisite_satisfied(
    snapshot: StudentSnapshot,
    graph: CurriculumGraph,
    subject_id: str,
    passing_score: float = PASSING_SCORE,
) -> tuple[bool, str | None]:
    """
    (met, prerequisite_subject_id) for the direct prerequisite of subject_id.

    Met means the prerequisite entry is Completed with a passing score.
    Only the direct edge is checked; the prerequisite's own prerequisite was
    enforced when it was taken.
    """
    curriculum_id = snapshot.curriculum_id
    if not curriculum_id or not graph.contains(curriculum_id, subject_id):
        return True, None
    prereq = graph.prerequisite_of(curriculum_id, subject_id)
    if prereq is None:
        return True, None
    entry = snapshot.entry(prereq)
    met = (
        entry is not None
        and entry.status == RoadmapStatus.COMPLETED
        and is_passing(entry.final_score, passing_score)
    )
    return met, prereq


def _has_duplicate_enrollment(
    snapshot: StudentSnapshot,
    subject_id: str,
    semester_id: str,
    class_id: str | None,
) -> bool:
    entry = snapshot.entry(subject_id)
    if (
        entry is not None
        and entry.status == RoadmapStatus.IN_PROGRESS
        and entry.semester_id == semester_id
    ):
        return True
    for reg in snapshot.registrations:
        if reg["subject_id"] != subject_id or reg["semester_id"] != semester_id:
            continue
        if class_id is not None and reg["class_id"] == class_id:
            # Same section: the caller is re-checking its own registration.
            continue
        return True
    return False


def check_eligibility(
    snapshot: StudentSnapshot,
    graph: CurriculumGraph,
    subject_id: str,
    semester_id: str,
    class_id: str | None = None,
    passing_score: float = PASSING_SCORE,
) -> dict:
    """
    Decide whether the student may enroll in subject_id for semester_id.

    Pure: reads the snapshot and graph, never mutates either. Every failing
    rule adds a reason, except a missing curriculum which stops evaluation.

    Returns:
    {
      "eligible": bool,
      "reasons": [str],                # empty iff eligible
      "subject_id": str,
      "semester_id": str,
      "subject_in_curriculum": bool,
      "current_status": str | None,
      "prerequisite_subject_id": str | None,
      "prerequisites_met": bool,
    }
    """
    result = {
        "eligible": False,
        "reasons": [],
        "subject_id": subject_id,
        "semester_id": semester_id,
        "subject_in_curriculum": False,
        "current_status": None,
        "prerequisite_subject_id": None,
        "prerequisites_met": False,
    }
    reasons: list[str] = result["reasons"]

    curriculum_id = snapshot.curriculum_id
    if not curriculum_id or not graph.has_curriculum(curriculum_id):
        reasons.append(REASON_NO_CURRICULUM)
        return result

    if snapshot.is_graduated:
        reasons.append(REASON_GRADUATED)

    in_curriculum = graph.contains(curriculum_id, subject_id)
    result["subject_in_curriculum"] = in_curriculum
    if not in_curriculum:
        reasons.append(REASON_NOT_IN_CURRICULUM)

    entry = snapshot.entry(subject_id)
    if entry is not None:
        result["current_status"] = entry.status.value
        if entry.status == RoadmapStatus.COMPLETED:
            reasons.append(REASON_COMPLETED)

    if _has_duplicate_enrollment(snapshot, subject_id, semester_id, class_id):
        reasons.append(REASON_DUPLICATE)

    met, prereq = prerequisite_satisfied(snapshot, graph, subject_id, passing_score)
    result["prerequisite_subject_id"] = prereq
    result["prerequisites_met"] = met
    if not met:
        reasons.append(REASON_MISSING_PREREQ.format(code=graph.subject_code(prereq)))

    result["eligible"] = not reasons
    return result


def display_status(
    snapshot: StudentSnapshot,
    graph: CurriculumGraph,
    subject_id: str,
    passing_score: float = PASSING_SCORE,
) -> str:
    """
    Status to show for a subject. Planned entries read as Open when the
    evaluator would admit them for their assigned semester. The stored
    status is never changed here.
    """
    entry = snapshot.entry(subject_id)
    if entry is None:
        return RoadmapStatus.PLANNED.value
    if entry.status not in (RoadmapStatus.PLANNED, RoadmapStatus.OPEN):
        return entry.status.value
    verdict = check_eligibility(snapshot, graph, subject_id, entry.semester_id, passing_score=passing_score)
    return RoadmapStatus.OPEN.value if verdict["eligible"] else RoadmapStatus.PLANNED.value


def get_open_subjects(
    snapshot: StudentSnapshot,
    graph: CurriculumGraph,
    passing_score: float = PASSING_SCORE,
) -> list[str]:
    """Curriculum subjects whose display status is Open, in curriculum order."""
    curriculum_id = snapshot.curriculum_id
    if not curriculum_id or not graph.has_curriculum(curriculum_id):
        return []
    return [
        sid for sid in graph.ordered_subjects(curriculum_id)
        if display_status(snapshot, graph, sid, passing_score) == RoadmapStatus.OPEN.value
    ]
