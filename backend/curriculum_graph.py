"""
Immutable curriculum structure: (curriculum, subject) -> semester-number and
optional prerequisite subject.

Built once per curriculum version from CurriculumSubjectLink rows and then
only read. All lookups are dict lookups; nothing here mutates after
__init__, so any number of threads may share one instance.
"""

from errors import ConfigurationError, NotFoundError
from normalizer import normalize_id
from requirements import MAX_SEMESTER_NUMBER, get_mandatory_subjects, sum_credits


class CurriculumGraph:
    def __init__(self, links: list[dict], subjects: dict, curricula: dict | None = None):
        """
        links: dicts with curriculum_id, subject_id, semester_number,
               prerequisite_subject_id (blank/None for no prerequisite).
        subjects: subject_id -> subject row (code, credits, is_mandatory, ...).
        curricula: curriculum_id -> curriculum row (code, name, total_credits).

        Raises ConfigurationError listing every problem found.
        """
        self._subjects = dict(subjects)
        self._curricula = {k: dict(v) for k, v in (curricula or {}).items()}
        self._semester_number: dict[str, dict[str, int]] = {}
        self._prerequisite: dict[str, dict[str, str]] = {}
        self._dependents: dict[str, dict[str, list[str]]] = {}
        self._by_semester: dict[str, dict[int, frozenset]] = {}
        self._chain_depth: dict[str, dict[str, int]] = {}

        problems: list[str] = []
        pending_prereqs: list[tuple[str, str, str]] = []

        for row in links:
            cid = normalize_id(row.get("curriculum_id"))
            sid = normalize_id(row.get("subject_id"))
            if not cid or not sid:
                problems.append(f"Link row missing curriculum_id or subject_id: {row!r}")
                continue
            if sid not in self._subjects:
                problems.append(f"Curriculum {cid} links unknown subject {sid}.")
                continue
            try:
                number = int(row.get("semester_number"))
            except (TypeError, ValueError):
                problems.append(f"Curriculum {cid} subject {sid} has non-integer semester_number.")
                continue
            if not (1 <= number <= MAX_SEMESTER_NUMBER):
                problems.append(
                    f"Curriculum {cid} subject {sid} semester_number {number} "
                    f"outside 1..{MAX_SEMESTER_NUMBER}."
                )
                continue

            numbers = self._semester_number.setdefault(cid, {})
            if sid in numbers:
                problems.append(f"Curriculum {cid} links subject {sid} more than once.")
                continue
            numbers[sid] = number
            self._curricula.setdefault(cid, {"curriculum_id": cid, "code": cid, "name": cid})

            prereq = normalize_id(row.get("prerequisite_subject_id"))
            if prereq:
                pending_prereqs.append((cid, sid, prereq))

        for cid, sid, prereq in pending_prereqs:
            numbers = self._semester_number[cid]
            if prereq == sid:
                problems.append(f"Curriculum {cid} subject {sid} lists itself as prerequisite.")
                continue
            if prereq not in numbers:
                problems.append(
                    f"Curriculum {cid} subject {sid} requires {prereq}, "
                    "which is not part of the curriculum."
                )
                continue
            if numbers[prereq] >= numbers[sid]:
                problems.append(
                    f"Curriculum {cid} subject {sid} (semester {numbers[sid]}) requires "
                    f"{prereq} (semester {numbers[prereq]}); prerequisite must come earlier."
                )
            self._prerequisite.setdefault(cid, {})[sid] = prereq
            self._dependents.setdefault(cid, {}).setdefault(prereq, []).append(sid)

        for cid in self._prerequisite:
            cycle = _find_cycle(self._prerequisite[cid])
            if cycle:
                problems.append(f"Curriculum {cid} has a prerequisite cycle: {' -> '.join(cycle)}.")

        if problems:
            raise ConfigurationError(
                f"Curriculum configuration invalid ({len(problems)} problem(s)).",
                problems,
            )

        for cid, numbers in self._semester_number.items():
            grouped: dict[int, set] = {}
            for sid, number in numbers.items():
                grouped.setdefault(number, set()).add(sid)
            self._by_semester[cid] = {n: frozenset(s) for n, s in grouped.items()}
        for cid, deps in self._dependents.items():
            for prereq in deps:
                deps[prereq].sort(key=self._sort_key)

        # Dependents always sit in a later semester, so walking from the last
        # semester backwards sees every dependent's depth before its prerequisite.
        for cid, numbers in self._semester_number.items():
            deps = self._dependents.get(cid, {})
            depth: dict[str, int] = {}
            for sid in sorted(numbers, key=numbers.get, reverse=True):
                depth[sid] = max((depth[d] + 1 for d in deps.get(sid, [])), default=0)
            self._chain_depth[cid] = depth

    # ── Lookups ────────────────────────────────────────────────────────────

    def _sort_key(self, subject_id: str):
        return (str(self._subjects.get(subject_id, {}).get("code", subject_id)), subject_id)

    def _require(self, curriculum_id: str) -> dict[str, int]:
        numbers = self._semester_number.get(curriculum_id)
        if numbers is None:
            raise NotFoundError("Curriculum", curriculum_id)
        return numbers

    def has_curriculum(self, curriculum_id: str) -> bool:
        return curriculum_id in self._semester_number

    def curriculum_ids(self) -> list[str]:
        return sorted(self._semester_number)

    def curriculum(self, curriculum_id: str) -> dict:
        self._require(curriculum_id)
        return dict(self._curricula.get(curriculum_id, {}))

    def contains(self, curriculum_id: str, subject_id: str) -> bool:
        return subject_id in self._semester_number.get(curriculum_id, {})

    def subject(self, subject_id: str) -> dict | None:
        return self._subjects.get(subject_id)

    def subject_code(self, subject_id: str) -> str:
        return str(self._subjects.get(subject_id, {}).get("code") or subject_id)

    def subjects_in_semester(self, curriculum_id: str, semester_number: int) -> frozenset:
        self._require(curriculum_id)
        return self._by_semester.get(curriculum_id, {}).get(int(semester_number), frozenset())

    def semester_numbers(self, curriculum_id: str) -> list[int]:
        self._require(curriculum_id)
        return sorted(self._by_semester.get(curriculum_id, {}))

    def semester_number_of(self, curriculum_id: str, subject_id: str) -> int | None:
        return self._semester_number.get(curriculum_id, {}).get(subject_id)

    def prerequisite_of(self, curriculum_id: str, subject_id: str) -> str | None:
        self._require(curriculum_id)
        return self._prerequisite.get(curriculum_id, {}).get(subject_id)

    def dependents_of(self, curriculum_id: str, subject_id: str) -> list[str]:
        """Subjects that list subject_id as their direct prerequisite."""
        return list(self._dependents.get(curriculum_id, {}).get(subject_id, []))

    def chain_depths(self, curriculum_id: str) -> dict[str, int]:
        """
        Longest downstream prerequisite chain per subject; 0 for leaves.
        CS101 -> SE101 -> SE201 -> SE301 gives CS101 depth 3.
        """
        self._require(curriculum_id)
        return dict(self._chain_depth[curriculum_id])

    def all_subjects(self, curriculum_id: str) -> frozenset:
        return frozenset(self._require(curriculum_id))

    def ordered_subjects(self, curriculum_id: str) -> list[str]:
        """Subjects ordered by semester-number, then code."""
        numbers = self._require(curriculum_id)
        return sorted(numbers, key=lambda sid: (numbers[sid], self._sort_key(sid)))

    def mandatory_subjects(self, curriculum_id: str) -> list[str]:
        return get_mandatory_subjects(self.ordered_subjects(curriculum_id), self._subjects)

    def mandatory_credits(self, curriculum_id: str) -> int:
        return sum_credits(self.mandatory_subjects(curriculum_id), self._subjects)

    def total_credits(self, curriculum_id: str) -> int:
        return sum_credits(self.ordered_subjects(curriculum_id), self._subjects)


def _find_cycle(prerequisite: dict[str, str]) -> list[str]:
    """
    Each subject has at most one prerequisite, so every chain is a simple
    walk. Returns the first cycle found as a path, or [].
    """
    done: set[str] = set()
    for start in sorted(prerequisite):
        if start in done:
            continue
        path: list[str] = []
        on_path: set[str] = set()
        node = start
        while node in prerequisite and node not in done:
            if node in on_path:
                return path[path.index(node):] + [node]
            on_path.add(node)
            path.append(node)
            node = prerequisite[node]
        done.update(on_path)
    return []
