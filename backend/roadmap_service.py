"""
Service layer over the curriculum graph, semester calendar and roadmap store.

Resolves external references (ids or subject codes) to identifiers, takes
snapshots for the pure evaluators, and owns the few writes that are not
roadmap transitions (graduation flag, admin overrides). No Flask imports.
"""

import math
import sys
from concurrent.futures import ThreadPoolExecutor

from curriculum_graph import CurriculumGraph
from eligibility import check_eligibility, display_status, get_open_subjects
from errors import InvalidInput, InvalidTransition, NotFoundError, NotInRoadmap, RoadmapError
from graduation import evaluate_graduation, weighted_average
from normalizer import normalize_code, normalize_id
from requirements import DEFAULT_CLASSIFICATION_TIERS, MAX_RECOMMENDATIONS, PASSING_SCORE, is_passing
from roadmap_advancer import ensure_transition, on_enrollment_committed, on_grade_posted, seed_roadmap
from roadmap_store import RoadmapEntry, RoadmapStatus, RoadmapStore, StudentSnapshot
from semesters import SemesterCalendar, utc_now
from unlocks import (
    build_reverse_prereq_map,
    get_blocking_warnings,
    get_direct_unlocks,
)
from validators import find_inconsistent_entries


SORT_FIELDS = ("semester", "subject", "status", "score")

_STATUS_ORDER = {
    RoadmapStatus.IN_PROGRESS.value: 0,
    RoadmapStatus.OPEN.value: 1,
    RoadmapStatus.PLANNED.value: 2,
    RoadmapStatus.FAILED.value: 3,
    RoadmapStatus.COMPLETED.value: 4,
}


def _iso(value):
    return value.isoformat() if hasattr(value, "isoformat") else value


def _semester_view(semester: dict | None, calendar: SemesterCalendar, today=None) -> dict | None:
    if semester is None:
        return None
    return {
        "semester_id": semester["semester_id"],
        "name": semester["name"],
        "start_date": _iso(semester["start_date"]),
        "end_date": _iso(semester["end_date"]),
        "is_closed": semester["is_closed"],
        "is_current": calendar.is_current(semester["semester_id"], today),
    }


class RoadmapService:
    def __init__(
        self,
        data: dict,
        passing_score: float = PASSING_SCORE,
        tiers: list[tuple[float, str]] | None = None,
        sweep_workers: int = 8,
    ):
        self.passing_score = passing_score
        self.tiers = tiers or list(DEFAULT_CLASSIFICATION_TIERS)
        self.sweep_workers = max(1, int(sweep_workers))
        self.store = RoadmapStore()
        self._runtime: dict = {}
        self.swap_data(data)

    # ── Configuration ──────────────────────────────────────────────────────

    @property
    def graph(self) -> CurriculumGraph:
        return self._runtime["graph"]

    @property
    def calendar(self) -> SemesterCalendar:
        return self._runtime["calendar"]

    def swap_data(self, data: dict) -> int:
        """
        Install a freshly loaded curriculum configuration. Roadmap state is
        kept; students that appear for the first time are imported.
        Returns the number of imported students.
        """
        self._runtime = {
            "graph": data["graph"],
            "calendar": data["calendar"],
            "code_index": dict(data.get("code_index", {})),
        }
        return self._import_state(data)

    def _import_state(self, data: dict) -> int:
        students_df = data.get("students_df")
        if students_df is None or len(students_df) == 0:
            return 0
        roadmap_df = data.get("roadmap_df")
        if roadmap_df is not None:
            # Reject unknown statuses before any student is imported.
            for raw in roadmap_df["status"]:
                RoadmapStatus.parse(raw or RoadmapStatus.PLANNED.value)
        graph = self.graph
        imported: set[str] = set()
        for _, row in students_df.iterrows():
            sid = row["student_id"]
            if self.store.has_student(sid):
                continue
            curriculum_id = row.get("curriculum_id") or None
            self.store.add_student(
                sid,
                row.get("student_code", ""),
                row.get("name", ""),
                curriculum_id,
                bool(row.get("is_graduated", False)),
                normalize_id(row.get("graduation_date")) or None,
            )
            if curriculum_id and graph.has_curriculum(curriculum_id):
                anchor = row.get("start_semester_id") or None
                if anchor and anchor not in self.calendar:
                    print(f"[WARN] Student {sid} start semester {anchor} unknown; using current.", file=sys.stderr)
                    anchor = None
                seed_roadmap(self.store, graph, self.calendar, sid, curriculum_id, anchor)
            imported.add(sid)

        if roadmap_df is not None:
            for _, row in roadmap_df.iterrows():
                if row["student_id"] not in imported:
                    continue
                self._import_entry(row)

        enrollments_df = data.get("enrollments_df")
        if enrollments_df is not None:
            for _, row in enrollments_df.iterrows():
                if row["student_id"] not in imported or not row["subject_id"]:
                    continue
                self.store.register_enrollment(
                    row["student_id"],
                    row["subject_id"],
                    row["semester_id"],
                    row["class_id"],
                    bool(row.get("is_approved", False)),
                )

        if imported:
            print(f"[INFO] Imported {len(imported)} student roadmap(s)")
        return len(imported)

    def _import_entry(self, row) -> None:
        sid, subject_id = row["student_id"], row["subject_id"]
        if not subject_id or self.graph.subject(subject_id) is None:
            print(f"[WARN] Skipping roadmap row for unknown subject {subject_id!r} (student {sid})", file=sys.stderr)
            return
        score = row.get("final_score")
        score = None if score is None or score != score else float(score)
        status = RoadmapStatus.parse(row["status"] or RoadmapStatus.PLANNED.value)
        entry = self.store.get_entry(sid, subject_id)
        with self.store.student_lock(sid):
            if entry is None:
                entry = RoadmapEntry(sid, subject_id, row["semester_id"], status)
                self.store.add_entry(entry)
            entry.status = status
            if row["semester_id"]:
                entry.semester_id = row["semester_id"]
            entry.final_score = score
            entry.letter_grade = row.get("letter_grade") or None
            entry.notes = row.get("notes") or ""
            now = utc_now()
            if status in (RoadmapStatus.IN_PROGRESS, RoadmapStatus.COMPLETED, RoadmapStatus.FAILED):
                entry.started_at = entry.started_at or now
            entry.completed_at = now if status == RoadmapStatus.COMPLETED else None
            entry.touch()

    # ── Reference resolution ───────────────────────────────────────────────

    def resolve_student(self, student_id) -> dict:
        return self.store.get_student(normalize_id(student_id))

    def resolve_subject(self, subject_ref) -> str:
        """Accept a subject id or a subject code ('cs 101' -> CS101)."""
        ref = normalize_id(subject_ref)
        if ref and self.graph.subject(ref) is not None:
            return ref
        code = normalize_code(ref)
        subject_id = self._runtime["code_index"].get(code) if code else None
        if subject_id is None:
            raise NotFoundError("Subject", ref)
        return subject_id

    def resolve_semester(self, semester_id) -> dict:
        sem = self.calendar.get(normalize_id(semester_id))
        if sem is None:
            raise NotFoundError("Semester", semester_id)
        return sem

    def register_student(self, student_id, student_code="", name="", curriculum_id=None, anchor_semester_id=None) -> dict:
        sid = normalize_id(student_id)
        if self.store.has_student(sid):
            raise InvalidInput(f"Student {sid} already exists.")
        if curriculum_id:
            self.graph.curriculum(normalize_id(curriculum_id))
        if anchor_semester_id:
            self.resolve_semester(anchor_semester_id)
        record = self.store.add_student(sid, student_code, name)
        if curriculum_id:
            self.assign_curriculum(sid, curriculum_id, anchor_semester_id)
            record = self.store.get_student(sid)
        return self._student_view(record)

    def _student_view(self, record: dict) -> dict:
        out = dict(record)
        out["graduation_date"] = _iso(out.get("graduation_date"))
        return out

    # ── Eligibility ────────────────────────────────────────────────────────

    def check_eligibility(self, student_id, subject_ref, semester_id, class_id=None) -> dict:
        student = self.resolve_student(student_id)
        subject_id = self.resolve_subject(subject_ref)
        semester = self.resolve_semester(semester_id)
        snapshot = self.store.snapshot(student["student_id"])
        result = check_eligibility(
            snapshot,
            self.graph,
            subject_id,
            semester["semester_id"],
            normalize_id(class_id) or None,
            self.passing_score,
        )
        result["student_id"] = student["student_id"]
        result["subject_code"] = self.graph.subject_code(subject_id)
        prereq = result["prerequisite_subject_id"]
        result["prerequisite_code"] = self.graph.subject_code(prereq) if prereq else None
        return result

    # ── Events ─────────────────────────────────────────────────────────────

    def handle_enrollment_committed(self, student_id, subject_ref, semester_id, class_id=None) -> dict | None:
        """
        Enrollment-committed event. A subject missing from the roadmap is
        logged and ignored so the enrollment itself is never rolled back.
        """
        student = self.resolve_student(student_id)
        subject_id = self.resolve_subject(subject_ref)
        semester = self.resolve_semester(semester_id)
        try:
            entry = on_enrollment_committed(
                self.store,
                student["student_id"],
                subject_id,
                semester["semester_id"],
                normalize_id(class_id) or None,
            )
        except NotInRoadmap as exc:
            print(f"[WARN] {exc.message} Enrollment kept; roadmap unchanged.", file=sys.stderr)
            return None
        except InvalidTransition as exc:
            print(f"[WARN] {exc.message}", file=sys.stderr)
            raise
        return self._entry_row(self.store.snapshot(student["student_id"]), entry)

    def handle_grade_posted(self, student_id, subject_ref, final_score: float, letter_grade=None) -> dict:
        """Grade-posted event, followed by a persisting graduation check."""
        student = self.resolve_student(student_id)
        subject_id = self.resolve_subject(subject_ref)
        sid = student["student_id"]
        try:
            entry = on_grade_posted(self.store, sid, subject_id, final_score, letter_grade, self.passing_score)
        except InvalidTransition as exc:
            print(f"[WARN] {exc.message}", file=sys.stderr)
            raise
        if entry is None:
            return {"entry": None, "graduation": None}
        return {
            "entry": self._entry_row(self.store.snapshot(sid), entry),
            "graduation": self.evaluate_graduation(sid, persist_if_eligible=True),
        }

    # ── Graduation ─────────────────────────────────────────────────────────

    def evaluate_graduation(self, student_id, persist_if_eligible: bool = False) -> dict:
        sid = self.resolve_student(student_id)["student_id"]
        with self.store.student_lock(sid):
            snapshot = self.store.snapshot(sid)
            verdict = evaluate_graduation(snapshot, self.graph, self.tiers, self.passing_score)
            if verdict["eligible"] and persist_if_eligible and not snapshot.is_graduated:
                record = self.store.mark_graduated(sid)
                verdict["is_graduated"] = True
                verdict["graduation_date"] = record["graduation_date"]
                print(
                    f"[INFO] Student {sid} graduated: average={verdict['weighted_average']} "
                    f"classification={verdict['classification']}"
                )
        verdict["graduation_date"] = _iso(verdict["graduation_date"])
        return verdict

    def sweep_graduation(self, student_ids=None, persist_if_eligible: bool = True, max_workers: int | None = None) -> dict:
        """Evaluate many students concurrently. Per-student failures are reported, not raised."""
        ids = [normalize_id(s) for s in student_ids] if student_ids else self.store.student_ids()
        workers = max(1, int(max_workers or self.sweep_workers))
        results: dict[str, dict] = {}
        errors: list[dict] = []
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                pool.submit(self.evaluate_graduation, sid, persist_if_eligible): sid
                for sid in ids
            }
            for future, sid in futures.items():
                try:
                    results[sid] = future.result()
                except RoadmapError as exc:
                    errors.append({"student_id": sid, "error_code": exc.error_code, "message": exc.message})

        ordered = [results[sid] for sid in sorted(results)]
        eligible = [v["student_id"] for v in ordered if v["eligible"]]
        print(f"[INFO] Graduation sweep: {len(ordered)} evaluated, {len(eligible)} eligible, {len(errors)} error(s)")
        return {
            "evaluated": len(ordered),
            "eligible_students": eligible,
            "results": ordered,
            "errors": errors,
        }

    # ── Roadmap views ──────────────────────────────────────────────────────

    def _entry_row(self, snapshot: StudentSnapshot, entry: RoadmapEntry) -> dict:
        graph = self.graph
        subject = graph.subject(entry.subject_id) or {}
        curriculum_id = snapshot.curriculum_id
        semester = self.calendar.get(entry.semester_id)
        row = entry.to_dict()
        row.update({
            "subject_code": graph.subject_code(entry.subject_id),
            "subject_name": subject.get("name", ""),
            "credits": int(subject.get("credits", 0) or 0),
            "is_mandatory": bool(subject.get("is_mandatory", True)),
            "semester_name": semester["name"] if semester else None,
            "semester_number": graph.semester_number_of(curriculum_id, entry.subject_id) if curriculum_id else None,
            "stored_status": entry.status.value,
            "status": display_status(snapshot, graph, entry.subject_id, self.passing_score),
        })
        return row

    def _rows(self, snapshot: StudentSnapshot) -> list[dict]:
        return [self._entry_row(snapshot, e) for e in snapshot.entries.values()]

    def _semester_sort_key(self, row: dict):
        pos = self.calendar.position(row["semester_id"])
        return (pos if pos is not None else sys.maxsize, row["sequence_order"], row["subject_code"])

    def roadmap_overview(self, student_id, today=None) -> dict:
        sid = self.resolve_student(student_id)["student_id"]
        snapshot = self.store.snapshot(sid)
        rows = sorted(self._rows(snapshot), key=self._semester_sort_key)

        counters = {status.value: 0 for status in RoadmapStatus}
        groups: dict[str, dict] = {}
        for row in rows:
            counters[row["status"]] += 1
            group = groups.get(row["semester_id"])
            if group is None:
                sem = self.calendar.get(row["semester_id"])
                group = _semester_view(sem, self.calendar, today) or {
                    "semester_id": row["semester_id"],
                    "name": row["semester_id"] or "Unscheduled",
                    "start_date": None,
                    "end_date": None,
                    "is_closed": False,
                    "is_current": False,
                }
                group["entries"] = []
                groups[row["semester_id"]] = group
            group["entries"].append(row)

        total = len(rows)
        completed = counters[RoadmapStatus.COMPLETED.value]
        curriculum_id = snapshot.curriculum_id
        return {
            "student": self._student_view(snapshot.student),
            "curriculum": self.graph.curriculum(curriculum_id) if curriculum_id and self.graph.has_curriculum(curriculum_id) else None,
            "total": total,
            "planned": counters[RoadmapStatus.PLANNED.value],
            "open": counters[RoadmapStatus.OPEN.value],
            "in_progress": counters[RoadmapStatus.IN_PROGRESS.value],
            "completed": completed,
            "failed": counters[RoadmapStatus.FAILED.value],
            "completion_percentage": round(completed * 100.0 / total, 1) if total else 0.0,
            "semesters": list(groups.values()),
        }

    def semester_slice(self, student_id, semester_id, today=None) -> dict:
        sid = self.resolve_student(student_id)["student_id"]
        semester = self.resolve_semester(semester_id)
        snapshot = self.store.snapshot(sid)
        rows = [
            self._entry_row(snapshot, e) for e in snapshot.entries.values()
            if e.semester_id == semester["semester_id"]
        ]
        rows.sort(key=lambda r: (r["sequence_order"], r["subject_code"]))
        return {
            "student_id": sid,
            "semester": _semester_view(semester, self.calendar, today),
            "credits": sum(r["credits"] for r in rows),
            "entries": rows,
        }

    def current_semester(self, student_id, today=None) -> dict:
        sid = self.resolve_student(student_id)["student_id"]
        semester = self.calendar.current(today)
        if semester is None:
            return {"student_id": sid, "semester": None, "credits": 0, "entries": []}
        return self.semester_slice(sid, semester["semester_id"], today)

    def open_subjects(self, student_id) -> list[dict]:
        sid = self.resolve_student(student_id)["student_id"]
        snapshot = self.store.snapshot(sid)
        return [
            self._entry_row(snapshot, snapshot.entry(subject_id))
            for subject_id in get_open_subjects(snapshot, self.graph, self.passing_score)
        ]

    def recommended_subjects(self, student_id, limit: int = MAX_RECOMMENDATIONS) -> dict:
        """Open subjects, earliest semester-number first, then those unlocking the longest chains."""
        sid = self.resolve_student(student_id)["student_id"]
        snapshot = self.store.snapshot(sid)
        graph = self.graph
        curriculum_id = snapshot.curriculum_id
        if not curriculum_id or not graph.has_curriculum(curriculum_id):
            return {"student_id": sid, "recommendations": [], "blocking_warnings": []}

        reverse_map = build_reverse_prereq_map(graph, curriculum_id)
        depths = graph.chain_depths(curriculum_id)
        open_ids = get_open_subjects(snapshot, graph, self.passing_score)
        open_ids.sort(key=lambda s: (
            graph.semester_number_of(curriculum_id, s),
            -depths.get(s, 0),
            graph.subject_code(s),
        ))

        recs = []
        for subject_id in open_ids[:max(0, min(int(limit), MAX_RECOMMENDATIONS))]:
            row = self._entry_row(snapshot, snapshot.entry(subject_id))
            unlocks = [graph.subject_code(u) for u in get_direct_unlocks(subject_id, reverse_map)]
            why = [f"Semester {row['semester_number']} of your curriculum"]
            why.append("mandatory" if row["is_mandatory"] else "elective")
            if unlocks:
                why.append(f"unlocks {', '.join(unlocks)}")
            row["unlocks"] = unlocks
            row["chain_depth"] = depths.get(subject_id, 0)
            row["why"] = "; ".join(why)
            recs.append(row)

        completed = {s for s, e in snapshot.entries.items() if e.status == RoadmapStatus.COMPLETED}
        remaining = [s for s in graph.ordered_subjects(curriculum_id) if s not in completed]
        return {
            "student_id": sid,
            "recommendations": recs,
            "blocking_warnings": get_blocking_warnings(remaining, reverse_map, completed, graph.subject_code),
        }

    def paged_roadmap(
        self,
        student_id,
        status=None,
        semester_id=None,
        sort_by: str = "semester",
        page: int = 1,
        page_size: int = 20,
    ) -> dict:
        sid = self.resolve_student(student_id)["student_id"]
        if sort_by not in SORT_FIELDS:
            raise InvalidInput(f"sort_by must be one of: {', '.join(SORT_FIELDS)}.")
        rows = self._rows(self.store.snapshot(sid))
        if status:
            wanted = RoadmapStatus.parse(status).value
            rows = [r for r in rows if r["status"] == wanted]
        if semester_id:
            sem_id = self.resolve_semester(semester_id)["semester_id"]
            rows = [r for r in rows if r["semester_id"] == sem_id]

        if sort_by == "semester":
            rows.sort(key=self._semester_sort_key)
        elif sort_by == "subject":
            rows.sort(key=lambda r: r["subject_code"])
        elif sort_by == "status":
            rows.sort(key=lambda r: (_STATUS_ORDER[r["status"]], r["subject_code"]))
        else:
            rows.sort(key=lambda r: (r["final_score"] is None, -(r["final_score"] or 0.0), r["subject_code"]))

        total = len(rows)
        start = (page - 1) * page_size
        return {
            "student_id": sid,
            "items": rows[start:start + page_size],
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": math.ceil(total / page_size) if total else 0,
        }

    def _curriculum_snapshot(self, student_id) -> tuple[StudentSnapshot, str]:
        sid = self.resolve_student(student_id)["student_id"]
        snapshot = self.store.snapshot(sid)
        curriculum_id = snapshot.curriculum_id
        if not curriculum_id or not self.graph.has_curriculum(curriculum_id):
            raise InvalidInput(f"Student {sid} does not have an assigned curriculum.")
        return snapshot, curriculum_id

    def _curriculum_subject(self, snapshot: StudentSnapshot, curriculum_id: str, subject_id: str) -> dict:
        graph = self.graph
        subject = graph.subject(subject_id) or {}
        entry = snapshot.entry(subject_id)
        status = display_status(snapshot, graph, subject_id, self.passing_score)
        prereq = graph.prerequisite_of(curriculum_id, subject_id)
        notes = None
        if status == RoadmapStatus.FAILED.value:
            notes = "Needs retake"
        elif status == RoadmapStatus.PLANNED.value and prereq:
            notes = f"Requires {graph.subject_code(prereq)}"
        return {
            "subject_id": subject_id,
            "subject_code": graph.subject_code(subject_id),
            "subject_name": subject.get("name", ""),
            "credits": int(subject.get("credits", 0) or 0),
            "is_mandatory": bool(subject.get("is_mandatory", True)),
            "prerequisite_code": graph.subject_code(prereq) if prereq else None,
            "status": status,
            "semester_id": entry.semester_id if entry else None,
            "final_score": entry.final_score if entry else None,
            "letter_grade": entry.letter_grade if entry else None,
            "notes": notes,
        }

    def _curriculum_semester(self, snapshot: StudentSnapshot, curriculum_id: str, number: int) -> dict:
        subjects = [
            self._curriculum_subject(snapshot, curriculum_id, subject_id)
            for subject_id in self.graph.ordered_subjects(curriculum_id)
            if self.graph.semester_number_of(curriculum_id, subject_id) == number
        ]
        return {
            "semester_number": number,
            "semester_name": f"Semester {number}",
            "credits": sum(s["credits"] for s in subjects),
            "subjects": subjects,
        }

    def curriculum_roadmap(self, student_id) -> dict:
        """Every curriculum subject grouped by semester-number with the student's derived status."""
        snapshot, curriculum_id = self._curriculum_snapshot(student_id)
        return {
            "student_id": snapshot.student_id,
            "curriculum": self.graph.curriculum(curriculum_id),
            "semesters": [
                self._curriculum_semester(snapshot, curriculum_id, number)
                for number in self.graph.semester_numbers(curriculum_id)
            ],
        }

    def curriculum_semester(self, student_id, semester_number) -> dict:
        """One semester-number of the curriculum roadmap."""
        snapshot, curriculum_id = self._curriculum_snapshot(student_id)
        try:
            number = int(semester_number)
        except (TypeError, ValueError):
            raise InvalidInput("semester_number must be an integer.") from None
        if number not in self.graph.semester_numbers(curriculum_id):
            raise NotFoundError("Curriculum semester", number)
        out = self._curriculum_semester(snapshot, curriculum_id, number)
        out["student_id"] = snapshot.student_id
        out["curriculum_id"] = curriculum_id
        return out

    def curriculum_summary(self, student_id) -> dict:
        """
        Per-semester-number status counts plus the credit-weighted average
        of Completed subjects. Subjects without an entry count as Planned.
        """
        snapshot, curriculum_id = self._curriculum_snapshot(student_id)
        graph = self.graph
        totals = {status.value: 0 for status in RoadmapStatus}
        semesters = []
        for number in graph.semester_numbers(curriculum_id):
            counts = {status.value: 0 for status in RoadmapStatus}
            subject_ids = [
                s for s in graph.ordered_subjects(curriculum_id)
                if graph.semester_number_of(curriculum_id, s) == number
            ]
            for subject_id in subject_ids:
                status = display_status(snapshot, graph, subject_id, self.passing_score)
                counts[status] += 1
                totals[status] += 1
            semesters.append({
                "semester_number": number,
                "semester_name": f"Semester {number}",
                "subject_count": len(subject_ids),
                "completed": counts[RoadmapStatus.COMPLETED.value],
                "in_progress": counts[RoadmapStatus.IN_PROGRESS.value],
                "open": counts[RoadmapStatus.OPEN.value],
                "planned": counts[RoadmapStatus.PLANNED.value],
                "failed": counts[RoadmapStatus.FAILED.value],
            })
        return {
            "student": self._student_view(snapshot.student),
            "curriculum": graph.curriculum(curriculum_id),
            "current_average": weighted_average(snapshot, graph),
            "total_subjects": sum(totals.values()),
            "completed_subjects": totals[RoadmapStatus.COMPLETED.value],
            "failed_subjects": totals[RoadmapStatus.FAILED.value],
            "in_progress_subjects": totals[RoadmapStatus.IN_PROGRESS.value],
            "open_subjects": totals[RoadmapStatus.OPEN.value],
            "planned_subjects": totals[RoadmapStatus.PLANNED.value],
            "semester_summaries": semesters,
            "generated_at": utc_now().isoformat(),
        }

    def get_entry(self, entry_id) -> dict:
        entry = self.store.get_entry_by_id(normalize_id(entry_id))
        return self._entry_row(self.store.snapshot(entry.student_id), entry)

    def diagnostics(self, student_id) -> dict:
        sid = self.resolve_student(student_id)["student_id"]
        issues = find_inconsistent_entries(self.store.snapshot(sid), self.graph)
        return {"student_id": sid, "consistent": not issues, "issues": issues}

    # ── Administrative overrides ───────────────────────────────────────────

    def assign_curriculum(self, student_id, curriculum_id, anchor_semester_id=None) -> dict:
        sid = self.resolve_student(student_id)["student_id"]
        cid = normalize_id(curriculum_id)
        anchor = self.resolve_semester(anchor_semester_id)["semester_id"] if anchor_semester_id else None
        created = seed_roadmap(self.store, self.graph, self.calendar, sid, cid, anchor)
        snapshot = self.store.snapshot(sid)
        return {
            "student_id": sid,
            "curriculum_id": cid,
            "created": len(created),
            "entries": [self._entry_row(snapshot, e) for e in created],
        }

    def create_entry(self, student_id, subject_ref, semester_id, status=RoadmapStatus.PLANNED,
                     final_score=None, letter_grade=None, notes="") -> dict:
        sid = self.resolve_student(student_id)["student_id"]
        subject_id = self.resolve_subject(subject_ref)
        semester = self.resolve_semester(semester_id)
        target = RoadmapStatus.parse(status)
        curriculum_id = self.store.get_student(sid)["curriculum_id"]
        number = self.graph.semester_number_of(curriculum_id, subject_id) if curriculum_id else None
        entry = RoadmapEntry(
            sid,
            subject_id,
            semester["semester_id"],
            target,
            sequence_order=(number or 0) * 10,
            final_score=None if final_score is None else float(final_score),
            letter_grade=letter_grade,
            notes=notes,
        )
        if target == RoadmapStatus.COMPLETED and not is_passing(entry.final_score, self.passing_score):
            raise InvalidInput(
                f"Completed requires a final_score of at least {self.passing_score:g} ({sid}/{subject_id})."
            )
        now = utc_now()
        if target in (RoadmapStatus.IN_PROGRESS, RoadmapStatus.COMPLETED, RoadmapStatus.FAILED):
            entry.started_at = now
        if target == RoadmapStatus.COMPLETED:
            entry.completed_at = now
        self.store.add_entry(entry)
        print(f"[INFO] Admin created roadmap entry {entry.entry_id} ({sid}/{subject_id} {target.value})")
        return self._entry_row(self.store.snapshot(sid), entry)

    def update_entry(self, entry_id, changes: dict) -> dict:
        """
        Apply an admin edit. Completed entries never move back and keep a
        passing score. Every change is checked before any field is written,
        so a rejected edit leaves the entry as it was.
        """
        entry = self.store.get_entry_by_id(normalize_id(entry_id))
        with self.store.student_lock(entry.student_id):
            target = entry.status
            if changes.get("status") not in (None, ""):
                target = RoadmapStatus.parse(changes["status"])
                if target != entry.status:
                    ensure_transition(entry, target)
            score = entry.final_score
            if "final_score" in changes:
                score = None if changes["final_score"] is None else float(changes["final_score"])
            if target == RoadmapStatus.COMPLETED and not is_passing(score, self.passing_score):
                # The passing score is part of reaching Completed; lowering it on a
                # Completed entry is a move back to Failed.
                regress = entry.status == RoadmapStatus.COMPLETED
                raise InvalidTransition(
                    entry.student_id,
                    entry.subject_id,
                    entry.status,
                    RoadmapStatus.FAILED if regress else RoadmapStatus.COMPLETED,
                )
            semester_id = entry.semester_id
            if changes.get("semester_id"):
                semester_id = self.resolve_semester(changes["semester_id"])["semester_id"]

            if target != entry.status:
                now = utc_now()
                if target in (RoadmapStatus.IN_PROGRESS, RoadmapStatus.COMPLETED, RoadmapStatus.FAILED):
                    entry.started_at = entry.started_at or now
                entry.completed_at = now if target == RoadmapStatus.COMPLETED else None
                entry.status = target
            entry.final_score = score
            entry.semester_id = semester_id
            if "letter_grade" in changes:
                entry.letter_grade = changes["letter_grade"] or None
            if "notes" in changes:
                entry.notes = changes["notes"] or ""
            entry.touch()
        print(f"[INFO] Admin updated roadmap entry {entry.entry_id} -> {entry.status.value}")
        return self._entry_row(self.store.snapshot(entry.student_id), entry)

    def delete_entry(self, entry_id) -> dict:
        entry = self.store.delete_entry(normalize_id(entry_id))
        print(f"[INFO] Admin deleted roadmap entry {entry.entry_id} ({entry.student_id}/{entry.subject_id})")
        return entry.to_dict()

    def bulk_create_entries(self, student_id, items: list[dict]) -> dict:
        """Create several entries; each failing item is reported with its index."""
        sid = self.resolve_student(student_id)["student_id"]
        created, errors = [], []
        for index, item in enumerate(items):
            try:
                created.append(self.create_entry(
                    sid,
                    item.get("subject_id") or item.get("subject_code"),
                    item.get("semester_id"),
                    item.get("status") or RoadmapStatus.PLANNED,
                    item.get("final_score"),
                    item.get("letter_grade"),
                    item.get("notes") or "",
                ))
            except RoadmapError as exc:
                errors.append({"index": index, "error_code": exc.error_code, "message": exc.message})
        return {"student_id": sid, "created": created, "errors": errors}
