from curriculum_graph import CurriculumGraph
from eligibility import display_status
from requirements import PASSING_SCORE, classify
from roadmap_store import RoadmapStatus, StudentSnapshot
from timeline import estimate_timeline


def weighted_average(snapshot: StudentSnapshot, graph: CurriculumGraph) -> float | None:
    """Credit-weighted mean of final scores over Completed entries. None if nothing qualifies."""
    total = 0.0
    weight = 0
    for entry in snapshot.entries.values():
        if entry.status != RoadmapStatus.COMPLETED or entry.final_score is None:
            continue
        credits = int((graph.subject(entry.subject_id) or {}).get("credits", 0) or 0)
        if credits <= 0:
            continue
        total += entry.final_score * credits
        weight += credits
    if weight == 0:
        return None
    return round(total / weight, 2)


def _outstanding_row(snapshot, graph, curriculum_id, subject_id, passing_score) -> dict:
    subject = graph.subject(subject_id) or {}
    status = display_status(snapshot, graph, subject_id, passing_score)
    prereq = graph.prerequisite_of(curriculum_id, subject_id)
    notes = None
    if status == RoadmapStatus.FAILED.value:
        notes = "Needs retake"
    elif status == RoadmapStatus.PLANNED.value and prereq:
        notes = f"Requires {graph.subject_code(prereq)}"
    entry = snapshot.entry(subject_id)
    return {
        "subject_id": subject_id,
        "subject_code": graph.subject_code(subject_id),
        "subject_name": subject.get("name", ""),
        "credits": int(subject.get("credits", 0) or 0),
        "semester_number": graph.semester_number_of(curriculum_id, subject_id),
        "status": status,
        "final_score": entry.final_score if entry is not None else None,
        "notes": notes,
    }


def evaluate_graduation(
    snapshot: StudentSnapshot,
    graph: CurriculumGraph,
    tiers: list[tuple[float, str]] | None = None,
    passing_score: float = PASSING_SCORE,
) -> dict:
    """
    Graduation verdict for one student snapshot. Pure; persisting the
    graduated flag is the caller's job.

    Eligible iff every mandatory curriculum subject has a Completed entry.
    Electives never affect eligibility, only the weighted average.
    """
    verdict = {
        "student_id": snapshot.student_id,
        "eligible": False,
        "classification": None,
        "weighted_average": None,
        "missing_subjects": [],
        "outstanding_subjects": [],
        "required_credits": 0,
        "completed_credits": 0,
        "total_subjects": 0,
        "completed_subjects": 0,
        "failed_subjects": 0,
        "in_progress_subjects": 0,
        "open_subjects": 0,
        "planned_subjects": 0,
        "is_graduated": snapshot.is_graduated,
        "graduation_date": snapshot.student.get("graduation_date"),
        "timeline": None,
        "message": "",
    }

    curriculum_id = snapshot.curriculum_id
    if not curriculum_id or not graph.has_curriculum(curriculum_id):
        verdict["message"] = "Student does not have an assigned curriculum"
        return verdict

    counters = {status.value: 0 for status in RoadmapStatus}
    for subject_id in graph.ordered_subjects(curriculum_id):
        counters[display_status(snapshot, graph, subject_id, passing_score)] += 1
    verdict["total_subjects"] = sum(counters.values())
    verdict["completed_subjects"] = counters[RoadmapStatus.COMPLETED.value]
    verdict["failed_subjects"] = counters[RoadmapStatus.FAILED.value]
    verdict["in_progress_subjects"] = counters[RoadmapStatus.IN_PROGRESS.value]
    verdict["open_subjects"] = counters[RoadmapStatus.OPEN.value]
    verdict["planned_subjects"] = counters[RoadmapStatus.PLANNED.value]

    mandatory = graph.mandatory_subjects(curriculum_id)
    completed_ids = {
        sid for sid, entry in snapshot.entries.items()
        if entry.status == RoadmapStatus.COMPLETED
    }
    missing = [sid for sid in mandatory if sid not in completed_ids]

    verdict["required_credits"] = graph.mandatory_credits(curriculum_id)
    verdict["completed_credits"] = sum(
        int((graph.subject(sid) or {}).get("credits", 0) or 0)
        for sid in completed_ids
        if graph.contains(curriculum_id, sid)
    )
    verdict["missing_subjects"] = [graph.subject_code(sid) for sid in missing]
    verdict["outstanding_subjects"] = [
        _outstanding_row(snapshot, graph, curriculum_id, sid, passing_score) for sid in missing
    ]

    average = weighted_average(snapshot, graph)
    verdict["weighted_average"] = average
    verdict["eligible"] = not missing
    if verdict["eligible"]:
        verdict["classification"] = classify(average, tiers)
        verdict["message"] = "All mandatory curriculum subjects completed"
    else:
        verdict["message"] = f"{len(missing)} mandatory subject(s) outstanding"

    verdict["timeline"] = estimate_timeline(
        missing,
        graph.chain_depths(curriculum_id),
        {sid: int((graph.subject(sid) or {}).get("credits", 0) or 0) for sid in missing},
    )
    return verdict
