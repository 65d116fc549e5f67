from curriculum_graph import CurriculumGraph


def build_reverse_prereq_map(
    graph: CurriculumGraph,
    curriculum_id: str,
) -> dict[str, list[str]]:
    """
    Builds a reverse prerequisite map: for each subject, which subjects in the
    curriculum directly list it as a prerequisite.

    Returns: {"CS101": ["SE101", "CS201"], ...}

    Only direct prerequisites (one level deep). No transitive graph traversal.
    """
    reverse: dict[str, list[str]] = {}
    for subject_id in graph.ordered_subjects(curriculum_id):
        dependents = graph.dependents_of(curriculum_id, subject_id)
        if dependents:
            reverse[subject_id] = dependents
    return reverse


def get_direct_unlocks(
    subject_id: str,
    reverse_map: dict[str, list[str]],
    limit: int = 3,
) -> list[str]:
    """
    Returns up to `limit` subjects directly unlocked by completing `subject_id`.
    """
    return reverse_map.get(subject_id, [])[:limit]


def get_blocking_warnings(
    remaining: list[str],
    reverse_map: dict[str, list[str]],
    completed: set[str],
    code_of,
    threshold: int = 2,
) -> list[str]:
    """
    For each remaining subject, count how many not-yet-completed subjects it
    directly blocks. Returns warning strings for subjects blocking >= threshold.

    Example: "Completing CS101 would unlock 3 subjects you can't yet take."
    """
    warnings: list[str] = []
    for subject_id in remaining:
        blocked = [s for s in reverse_map.get(subject_id, []) if s not in completed]
        if len(blocked) >= threshold:
            warnings.append(
                f"Completing {code_of(subject_id)} would unlock "
                f"{len(blocked)} subjects you can't yet take."
            )
    return warnings
