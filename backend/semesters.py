import re
from datetime import date, datetime, timezone

import pandas as pd

from normalizer import normalize_id


SEM_RE = re.compile(r"^(Spring|Summer|Fall)\s+(\d{4})$", re.IGNORECASE)


def normalize_semester_label(label: str) -> str:
    m = SEM_RE.match((label or "").strip())
    if not m:
        return label
    term = m.group(1).capitalize()
    year = int(m.group(2))
    return f"{term} {year}"


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_date(value) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    ts = pd.to_datetime(value, errors="coerce")
    if pd.isna(ts):
        return None
    return ts.date()


class SemesterCalendar:
    """
    Concrete semesters ordered by start date.

    Semester rows are dicts with semester_id, name, start_date, end_date,
    is_closed. The calendar is immutable after construction.
    """

    def __init__(self, semesters: list[dict]):
        rows = []
        for raw in semesters:
            sid = normalize_id(raw.get("semester_id"))
            if not sid:
                continue
            start = _coerce_date(raw.get("start_date"))
            end = _coerce_date(raw.get("end_date"))
            rows.append({
                "semester_id": sid,
                "name": normalize_semester_label(str(raw.get("name") or sid).strip()),
                "start_date": start,
                "end_date": end,
                "is_closed": bool(raw.get("is_closed", False)),
            })
        rows.sort(key=lambda s: (s["start_date"] or date.max, s["semester_id"]))
        self._ordered = rows
        self._by_id = {s["semester_id"]: s for s in rows}
        self._position = {s["semester_id"]: i for i, s in enumerate(rows)}

    def __len__(self) -> int:
        return len(self._ordered)

    def __contains__(self, semester_id) -> bool:
        return semester_id in self._by_id

    def get(self, semester_id: str) -> dict | None:
        return self._by_id.get(semester_id)

    def all(self) -> list[dict]:
        return list(self._ordered)

    def position(self, semester_id: str) -> int | None:
        return self._position.get(semester_id)

    def is_current(self, semester_id: str, today: date | None = None) -> bool:
        sem = self._by_id.get(semester_id)
        if sem is None or sem["start_date"] is None or sem["end_date"] is None:
            return False
        today = today or utc_today()
        return sem["start_date"] <= today <= sem["end_date"]

    def current(self, today: date | None = None) -> dict | None:
        """Semester whose date range contains today, or None."""
        today = today or utc_today()
        for sem in self._ordered:
            if sem["start_date"] and sem["end_date"] and sem["start_date"] <= today <= sem["end_date"]:
                return sem
        return None

    def current_or_next(self, today: date | None = None) -> dict | None:
        """Current semester, else the nearest upcoming one, else the last known one."""
        today = today or utc_today()
        current = self.current(today)
        if current is not None:
            return current
        for sem in self._ordered:
            if sem["start_date"] and sem["start_date"] > today:
                return sem
        return self._ordered[-1] if self._ordered else None

    def offset(self, anchor_id: str, steps: int) -> dict | None:
        """Semester `steps` positions after anchor, clamped to the last known semester."""
        pos = self._position.get(anchor_id)
        if pos is None:
            return None
        target = min(max(pos + steps, 0), len(self._ordered) - 1)
        return self._ordered[target]

    def plan_semester(self, semester_number: int, anchor_id: str | None = None, today: date | None = None) -> dict | None:
        """
        Map an abstract curriculum semester-number onto a concrete semester.

        Semester-number 1 lands on the anchor (default: current-or-next
        semester); each later number moves one semester forward.
        """
        if not self._ordered:
            return None
        anchor = self.get(anchor_id) if anchor_id else self.current_or_next(today)
        if anchor is None:
            return None
        return self.offset(anchor["semester_id"], max(int(semester_number), 1) - 1)
