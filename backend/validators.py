"""
Roadmap consistency diagnostics and request-body validation helpers.
No Flask imports.
"""

from typing import Dict, List, Optional, Set

from curriculum_graph import CurriculumGraph
from errors import InvalidInput
from normalizer import normalize_id
from roadmap_store import RoadmapStatus, StudentSnapshot


def _get_all_required_prereqs(
    curriculum_id: str,
    subject_id: str,
    graph: CurriculumGraph,
    visited: Optional[Set[str]] = None,
) -> List[str]:
    """
    Return the full prerequisite chain for subject_id, nearest first.

    CS101 <- SE101 <- SE201: chain of SE201 is ["SE101", "CS101"].
    """
    if visited is None:
        visited = set()
    chain: List[str] = []
    node = graph.prerequisite_of(curriculum_id, subject_id)
    while node is not None and node not in visited:
        visited.add(node)
        chain.append(node)
        node = graph.prerequisite_of(curriculum_id, node)
    return chain


def find_inconsistent_entries(
    snapshot: StudentSnapshot,
    graph: CurriculumGraph,
) -> List[dict]:
    """
    Completed or InProgress entries whose prerequisite chain is not fully
    Completed, plus entries for subjects outside the curriculum. These come
    from administrative overrides or out-of-order imports.

    Each item:
      {"subject_id": str, "subject_code": str, "status": str, "issue": str,
       "prereqs_not_completed": List[str]}
    """
    curriculum_id = snapshot.curriculum_id
    if not curriculum_id or not graph.has_curriculum(curriculum_id):
        return []

    issues: List[dict] = []
    for subject_id in sorted(snapshot.entries, key=lambda s: (graph.subject_code(s), s)):
        entry = snapshot.entries[subject_id]
        if not graph.contains(curriculum_id, subject_id):
            issues.append({
                "subject_id": subject_id,
                "subject_code": graph.subject_code(subject_id),
                "status": entry.status.value,
                "issue": "not_in_curriculum",
                "prereqs_not_completed": [],
            })
            continue
        if entry.status not in (RoadmapStatus.COMPLETED, RoadmapStatus.IN_PROGRESS):
            continue
        chain = _get_all_required_prereqs(curriculum_id, subject_id, graph)
        pending = [
            graph.subject_code(p) for p in chain
            if snapshot.status_of(p) != RoadmapStatus.COMPLETED
        ]
        if pending:
            issues.append({
                "subject_id": subject_id,
                "subject_code": graph.subject_code(subject_id),
                "status": entry.status.value,
                "issue": "prerequisite_not_completed",
                "prereqs_not_completed": pending,
            })
    return issues


def require_fields(body: Optional[Dict], *fields: str) -> Dict[str, str]:
    """Return trimmed string values for fields, raising InvalidInput for absent ones."""
    if body is None or not isinstance(body, dict):
        raise InvalidInput("Request body must be valid JSON.")
    values: Dict[str, str] = {}
    missing = []
    for field in fields:
        value = normalize_id(body.get(field))
        if not value:
            missing.append(field)
        values[field] = value
    if missing:
        raise InvalidInput(f"Missing required field(s): {', '.join(missing)}.")
    return values


def parse_score(raw, field: str = "final_score") -> float:
    """Scores are on a 0..10 scale."""
    try:
        score = float(raw)
    except (TypeError, ValueError):
        raise InvalidInput(f"{field} must be a number between 0 and 10.")
    if score != score or not (0.0 <= score <= 10.0):
        raise InvalidInput(f"{field} must be a number between 0 and 10.")
    return round(score, 2)


def parse_bool(raw, default: bool = False) -> bool:
    if raw is None or raw == "":
        return default
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in {"true", "1", "yes", "y"}


def parse_page(raw, default: int, minimum: int = 1, maximum: int = 200) -> int:
    if raw in (None, ""):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise InvalidInput(f"Expected an integer between {minimum} and {maximum}, got '{raw}'.")
    if not (minimum <= value <= maximum):
        raise InvalidInput(f"Expected an integer between {minimum} and {maximum}, got {value}.")
    return value
