"""
Per-student roadmap ledger.

Entries are indexed by student and then subject, so (student, subject)
lookups never scan. Writers take the owning student's lock; readers work on
copies returned by snapshot().
"""

import copy
import threading
import uuid
from enum import Enum

from errors import InvalidInput, NotFoundError
from normalizer import normalize_id
from semesters import utc_now


class RoadmapStatus(str, Enum):
    PLANNED = "Planned"
    OPEN = "Open"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @classmethod
    def parse(cls, raw) -> "RoadmapStatus":
        if isinstance(raw, cls):
            return raw
        key = str(raw or "").strip().replace(" ", "").replace("_", "").lower()
        for status in cls:
            if status.value.lower() == key:
                return status
        raise InvalidInput(f"Unknown roadmap status '{raw}'.")


class RoadmapEntry:
    """Progress record for one (student, subject) pair."""

    def __init__(
        self,
        student_id: str,
        subject_id: str,
        semester_id: str,
        status: RoadmapStatus = RoadmapStatus.PLANNED,
        sequence_order: int = 0,
        final_score: float | None = None,
        letter_grade: str | None = None,
        started_at=None,
        completed_at=None,
        notes: str = "",
        entry_id: str | None = None,
    ):
        now = utc_now()
        self.entry_id = entry_id or str(uuid.uuid4())
        self.student_id = student_id
        self.subject_id = subject_id
        self.semester_id = semester_id
        self.status = RoadmapStatus.parse(status)
        self.sequence_order = int(sequence_order or 0)
        self.final_score = None if final_score is None else float(final_score)
        self.letter_grade = letter_grade or None
        self.started_at = started_at
        self.completed_at = completed_at
        self.notes = notes or ""
        self.created_at = now
        self.updated_at = now

    def touch(self) -> None:
        self.updated_at = utc_now()

    def to_dict(self) -> dict:
        return {
            "entry_id": self.entry_id,
            "student_id": self.student_id,
            "subject_id": self.subject_id,
            "semester_id": self.semester_id,
            "status": self.status.value,
            "sequence_order": self.sequence_order,
            "final_score": self.final_score,
            "letter_grade": self.letter_grade,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "notes": self.notes,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


def _iso(value):
    return value.isoformat() if value is not None else None


class StudentSnapshot:
    """Point-in-time copy of one student's record, entries and registrations."""

    def __init__(self, student: dict, entries: dict, registrations: list[dict]):
        self.student = student
        self.entries = entries
        self.registrations = registrations

    @property
    def student_id(self) -> str:
        return self.student["student_id"]

    @property
    def curriculum_id(self) -> str | None:
        return self.student.get("curriculum_id") or None

    @property
    def is_graduated(self) -> bool:
        return bool(self.student.get("is_graduated"))

    def entry(self, subject_id: str) -> RoadmapEntry | None:
        return self.entries.get(subject_id)

    def status_of(self, subject_id: str) -> RoadmapStatus | None:
        entry = self.entries.get(subject_id)
        return entry.status if entry is not None else None


class RoadmapStore:
    def __init__(self):
        self._students: dict[str, dict] = {}
        self._entries: dict[str, dict[str, RoadmapEntry]] = {}
        self._entry_index: dict[str, tuple[str, str]] = {}
        self._registrations: dict[str, list[dict]] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    # ── Locking ────────────────────────────────────────────────────────────

    def student_lock(self, student_id: str) -> threading.RLock:
        """Lock serializing writes for one student. Other students never contend."""
        with self._locks_guard:
            lock = self._locks.get(student_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[student_id] = lock
            return lock

    # ── Students ───────────────────────────────────────────────────────────

    def add_student(
        self,
        student_id: str,
        student_code: str = "",
        name: str = "",
        curriculum_id: str | None = None,
        is_graduated: bool = False,
        graduation_date=None,
    ) -> dict:
        sid = normalize_id(student_id)
        if not sid:
            raise InvalidInput("student_id is required.")
        with self.student_lock(sid):
            record = {
                "student_id": sid,
                "student_code": student_code or sid,
                "name": name or "",
                "curriculum_id": normalize_id(curriculum_id) or None,
                "is_graduated": bool(is_graduated),
                "graduation_date": graduation_date,
            }
            self._students[sid] = record
            self._entries.setdefault(sid, {})
            self._registrations.setdefault(sid, [])
            return dict(record)

    def has_student(self, student_id: str) -> bool:
        return student_id in self._students

    def student_ids(self) -> list[str]:
        return sorted(self._students)

    def get_student(self, student_id: str) -> dict:
        record = self._students.get(student_id)
        if record is None:
            raise NotFoundError("Student", student_id)
        return dict(record)

    def set_curriculum(self, student_id: str, curriculum_id: str | None) -> None:
        with self.student_lock(student_id):
            self._record(student_id)["curriculum_id"] = curriculum_id or None

    def mark_graduated(self, student_id: str, when=None) -> dict:
        """Set the graduated flag once; an existing graduation date is kept."""
        with self.student_lock(student_id):
            record = self._record(student_id)
            if not record["is_graduated"]:
                record["is_graduated"] = True
                record["graduation_date"] = when or utc_now()
            return dict(record)

    def _record(self, student_id: str) -> dict:
        record = self._students.get(student_id)
        if record is None:
            raise NotFoundError("Student", student_id)
        return record

    # ── Entries ────────────────────────────────────────────────────────────

    def get_entry(self, student_id: str, subject_id: str) -> RoadmapEntry | None:
        return self._entries.get(student_id, {}).get(subject_id)

    def get_entry_by_id(self, entry_id: str) -> RoadmapEntry:
        key = self._entry_index.get(entry_id)
        if key is None:
            raise NotFoundError("Roadmap entry", entry_id)
        return self._entries[key[0]][key[1]]

    def entries_for(self, student_id: str) -> list[RoadmapEntry]:
        self._record(student_id)
        return list(self._entries.get(student_id, {}).values())

    def add_entry(self, entry: RoadmapEntry) -> RoadmapEntry:
        with self.student_lock(entry.student_id):
            self._record(entry.student_id)
            entries = self._entries.setdefault(entry.student_id, {})
            if entry.subject_id in entries:
                raise InvalidInput(
                    f"Student {entry.student_id} already has subject {entry.subject_id} in their roadmap."
                )
            entries[entry.subject_id] = entry
            self._entry_index[entry.entry_id] = (entry.student_id, entry.subject_id)
            return entry

    def delete_entry(self, entry_id: str) -> RoadmapEntry:
        entry = self.get_entry_by_id(entry_id)
        with self.student_lock(entry.student_id):
            self._entries[entry.student_id].pop(entry.subject_id, None)
            self._entry_index.pop(entry_id, None)
            return entry

    def statistics(self, student_id: str) -> dict:
        counts = {status.value: 0 for status in RoadmapStatus}
        for entry in self.entries_for(student_id):
            counts[entry.status.value] += 1
        total = sum(counts.values())
        return {
            "total": total,
            "planned": counts[RoadmapStatus.PLANNED.value] + counts[RoadmapStatus.OPEN.value],
            "in_progress": counts[RoadmapStatus.IN_PROGRESS.value],
            "completed": counts[RoadmapStatus.COMPLETED.value],
            "failed": counts[RoadmapStatus.FAILED.value],
        }

    # ── Class-section registrations ────────────────────────────────────────

    def register_enrollment(
        self,
        student_id: str,
        subject_id: str,
        semester_id: str,
        class_id: str,
        is_approved: bool = False,
    ) -> dict:
        """Record a (pending or approved) class-section registration. Re-registering updates approval."""
        with self.student_lock(student_id):
            self._record(student_id)
            rows = self._registrations.setdefault(student_id, [])
            for row in rows:
                if (row["subject_id"], row["semester_id"], row["class_id"]) == (subject_id, semester_id, class_id):
                    row["is_approved"] = row["is_approved"] or bool(is_approved)
                    return dict(row)
            row = {
                "subject_id": subject_id,
                "semester_id": semester_id,
                "class_id": class_id,
                "is_approved": bool(is_approved),
                "registered_at": utc_now(),
            }
            rows.append(row)
            return dict(row)

    def registrations_for(self, student_id: str) -> list[dict]:
        return [dict(r) for r in self._registrations.get(student_id, [])]

    # ── Snapshots ──────────────────────────────────────────────────────────

    def snapshot(self, student_id: str) -> StudentSnapshot:
        with self.student_lock(student_id):
            record = self._record(student_id)
            return StudentSnapshot(
                dict(record),
                {sid: copy.copy(e) for sid, e in self._entries.get(student_id, {}).items()},
                [dict(r) for r in self._registrations.get(student_id, [])],
            )
