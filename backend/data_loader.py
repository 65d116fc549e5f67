import os
import sys

import pandas as pd

from curriculum_graph import CurriculumGraph
from errors import ConfigurationError, InvalidInput
from normalizer import normalize_code, normalize_id
from requirements import ELECTIVE_CATEGORIES, PASSING_SCORE, is_passing
from roadmap_store import RoadmapStatus
from semesters import SemesterCalendar


_BOOL_TRUTHY = {"true", "1", "yes", "y"}

REQUIRED_TABLES = ("subjects", "curriculum_subjects", "semesters")
OPTIONAL_TABLES = ("curricula", "students", "roadmap", "enrollments")

# Legacy/alternate column names accepted in configuration files.
_COLUMN_ALIASES = {
    "subjects": {"subject_code": "code", "subject_name": "name", "credit": "credits"},
    "curricula": {"curriculum_code": "code", "curriculum_name": "name"},
    "curriculum_subjects": {
        "prerequisite_id": "prerequisite_subject_id",
        "prerequisite": "prerequisite_subject_id",
        "prerequisite_code": "prerequisite_subject_id",
        "semester": "semester_number",
    },
    "semesters": {"semester_name": "name", "start": "start_date", "end": "end_date"},
    "students": {"curriculum": "curriculum_id", "start_semester": "start_semester_id"},
    "roadmap": {"score": "final_score", "letter": "letter_grade", "semester": "semester_id"},
    "enrollments": {"class": "class_id", "approved": "is_approved", "semester": "semester_id"},
}


def _safe_bool_col(df: pd.DataFrame, col: str) -> pd.DataFrame:
    """Normalize a boolean column to Python bool regardless of Excel/CSV format.

    Handles: Python bool, Excel int/float (1/0), and string variants
    (TRUE/FALSE, true/false, 1/0, yes/no, y/n). NaN → False.
    """
    def _coerce(x):
        if pd.isna(x):
            return False
        if isinstance(x, bool):
            return x
        if isinstance(x, (int, float)):
            return bool(x)
        return str(x).strip().lower() in _BOOL_TRUTHY

    if col in df.columns:
        df[col] = df[col].apply(_coerce)
    return df


def _id_col(df: pd.DataFrame, col: str) -> pd.DataFrame:
    if col not in df.columns:
        df[col] = ""
    df[col] = df[col].apply(normalize_id)
    return df


def _read_tables(data_path: str) -> dict[str, pd.DataFrame]:
    """Read every known table from a CSV directory or an .xlsx workbook."""
    tables: dict[str, pd.DataFrame] = {}
    names = REQUIRED_TABLES + OPTIONAL_TABLES
    if os.path.isdir(data_path):
        for name in names:
            csv_path = os.path.join(data_path, f"{name}.csv")
            if os.path.isfile(csv_path):
                tables[name] = pd.read_csv(csv_path, dtype=str)
    else:
        xl = pd.ExcelFile(data_path, engine="openpyxl")
        for name in names:
            if name in xl.sheet_names:
                tables[name] = xl.parse(name, dtype=str)

    missing = [name for name in REQUIRED_TABLES if name not in tables]
    if missing:
        raise ConfigurationError(
            f"Curriculum data at {data_path} is missing table(s): {', '.join(missing)}",
            [f"missing table {name}" for name in missing],
        )

    for name, df in tables.items():
        df.columns = [str(c).strip().lower() for c in df.columns]
        aliases = {
            old: new for old, new in _COLUMN_ALIASES.get(name, {}).items()
            if old in df.columns and new not in df.columns
        }
        if aliases:
            tables[name] = df.rename(columns=aliases)
    return tables


def _normalize_subjects_df(subjects_df: pd.DataFrame) -> pd.DataFrame:
    subjects_df = subjects_df.copy()
    subjects_df = _id_col(subjects_df, "subject_id")
    if "code" not in subjects_df.columns:
        subjects_df["code"] = subjects_df["subject_id"]
    subjects_df["code"] = subjects_df["code"].apply(
        lambda c: normalize_code(c) or normalize_id(c).upper()
    )
    # Rows without an id fall back to their code.
    blank = subjects_df["subject_id"] == ""
    subjects_df.loc[blank, "subject_id"] = subjects_df.loc[blank, "code"]
    if "name" not in subjects_df.columns:
        subjects_df["name"] = subjects_df["code"]
    subjects_df["name"] = subjects_df["name"].fillna("").astype(str).str.strip()
    if "credits" not in subjects_df.columns:
        subjects_df["credits"] = 0
    subjects_df["credits"] = pd.to_numeric(subjects_df["credits"], errors="coerce").fillna(0).astype(int)
    if "category" not in subjects_df.columns:
        subjects_df["category"] = ""
    subjects_df["category"] = subjects_df["category"].fillna("").astype(str).str.strip()
    if "is_mandatory" in subjects_df.columns:
        subjects_df = _safe_bool_col(subjects_df, "is_mandatory")
    else:
        subjects_df["is_mandatory"] = ~subjects_df["category"].str.lower().isin(ELECTIVE_CATEGORIES)
    return subjects_df[subjects_df["subject_id"] != ""]


def _resolve_subject_ref(raw: str, subject_ids: set, code_index: dict) -> str:
    """Links may reference subjects by id or by code."""
    ref = normalize_id(raw)
    if not ref or ref in subject_ids:
        return ref
    code = normalize_code(ref)
    return code_index.get(code, ref) if code else ref


def _validate_roadmap_rows(roadmap_df: pd.DataFrame, passing_score: float) -> pd.DataFrame:
    """Canonicalize statuses; collect unknown ones and Completed rows without a passing score."""
    problems: list[str] = []
    statuses = []
    for idx, row in roadmap_df.iterrows():
        label = f"roadmap row {idx + 2} ({row['student_id']}/{row['subject_id']})"
        try:
            status = RoadmapStatus.parse(row["status"] or RoadmapStatus.PLANNED.value)
        except InvalidInput:
            problems.append(f"{label} has unknown status '{row['status']}'.")
            statuses.append(row["status"])
            continue
        score = row["final_score"]
        if status == RoadmapStatus.COMPLETED and (pd.isna(score) or not is_passing(score, passing_score)):
            problems.append(f"{label} is Completed without a final_score of at least {passing_score:g}.")
        statuses.append(status.value)

    if problems:
        raise ConfigurationError(
            f"Roadmap data invalid ({len(problems)} problem(s)).",
            problems,
        )
    roadmap_df = roadmap_df.copy()
    roadmap_df["status"] = statuses
    return roadmap_df


def load_data(data_path: str, passing_score: float = PASSING_SCORE) -> dict:
    """
    Load and validate curriculum configuration.

    Raises FileNotFoundError for a missing path and ConfigurationError for
    missing tables, a malformed curriculum graph, or roadmap rows with an
    unknown status or a Completed status without a passing score.
    """
    if not os.path.exists(data_path):
        raise FileNotFoundError(data_path)

    tables = _read_tables(data_path)

    subjects_df = _normalize_subjects_df(tables["subjects"])
    dup_codes = subjects_df[subjects_df["code"].duplicated()]["code"].tolist()
    if dup_codes:
        print(f"[WARN] {len(dup_codes)} duplicate subject code(s): {sorted(set(dup_codes))}", file=sys.stderr)
    subjects = {
        row["subject_id"]: {
            "subject_id": row["subject_id"],
            "code": row["code"],
            "name": row["name"],
            "credits": int(row["credits"]),
            "category": row["category"],
            "is_mandatory": bool(row["is_mandatory"]),
        }
        for _, row in subjects_df.iterrows()
    }
    code_index = {s["code"]: sid for sid, s in subjects.items()}
    subject_ids = set(subjects)

    zero_credit = sorted(s["code"] for s in subjects.values() if s["credits"] <= 0)
    if zero_credit:
        print(f"[WARN] {len(zero_credit)} subject(s) have no credit weight: {zero_credit}", file=sys.stderr)

    # ── Curricula ──────────────────────────────────────────────────────────
    curricula: dict[str, dict] = {}
    if "curricula" in tables:
        curricula_df = _id_col(tables["curricula"].copy(), "curriculum_id")
        for _, row in curricula_df.iterrows():
            cid = row["curriculum_id"]
            if not cid:
                continue
            raw_total = normalize_id(row.get("total_credits"))
            total = pd.to_numeric(raw_total, errors="coerce") if raw_total else None
            curricula[cid] = {
                "curriculum_id": cid,
                "code": normalize_id(row.get("code")) or cid,
                "name": normalize_id(row.get("name")) or cid,
                "description": normalize_id(row.get("description")),
                "total_credits": int(total) if total is not None and pd.notna(total) else None,
            }

    # ── Links → graph ──────────────────────────────────────────────────────
    links_df = tables["curriculum_subjects"].copy()
    links_df = _id_col(links_df, "curriculum_id")
    links_df = _id_col(links_df, "prerequisite_subject_id")
    if "subject_id" not in links_df.columns and "code" in links_df.columns:
        links_df = links_df.rename(columns={"code": "subject_id"})
    links_df = _id_col(links_df, "subject_id")
    links_df["subject_id"] = links_df["subject_id"].apply(
        lambda r: _resolve_subject_ref(r, subject_ids, code_index)
    )
    links_df["prerequisite_subject_id"] = links_df["prerequisite_subject_id"].apply(
        lambda r: _resolve_subject_ref(r, subject_ids, code_index)
    )
    links = links_df.to_dict(orient="records")
    graph = CurriculumGraph(links, subjects, curricula)

    unused = [cid for cid in curricula if not graph.has_curriculum(cid)]
    if unused:
        print(f"[WARN] {len(unused)} curriculum(s) have no linked subjects: {sorted(unused)}", file=sys.stderr)
    for cid in graph.curriculum_ids():
        declared = graph.curriculum(cid).get("total_credits")
        actual = graph.total_credits(cid)
        if declared is not None and declared != actual:
            print(
                f"[WARN] Curriculum {cid} declares {declared} credits but links {actual}.",
                file=sys.stderr,
            )

    # ── Semesters ──────────────────────────────────────────────────────────
    semesters_df = tables["semesters"].copy()
    semesters_df = _id_col(semesters_df, "semester_id")
    semesters_df = _safe_bool_col(semesters_df, "is_closed")
    calendar = SemesterCalendar(semesters_df.to_dict(orient="records"))
    if len(calendar) == 0:
        raise ConfigurationError("No semesters configured.", ["semesters table is empty"])

    # ── Optional student state ─────────────────────────────────────────────
    students_df = tables.get("students", pd.DataFrame(columns=["student_id"])).copy()
    for col in ("student_id", "student_code", "name", "curriculum_id", "start_semester_id"):
        students_df = _id_col(students_df, col)
    students_df = _safe_bool_col(students_df, "is_graduated")
    students_df = students_df[students_df["student_id"] != ""]

    roadmap_df = tables.get("roadmap", pd.DataFrame(columns=["student_id", "subject_id"])).copy()
    for col in ("student_id", "semester_id", "status", "letter_grade", "notes"):
        roadmap_df = _id_col(roadmap_df, col)
    roadmap_df = _id_col(roadmap_df, "subject_id")
    roadmap_df["subject_id"] = roadmap_df["subject_id"].apply(
        lambda r: _resolve_subject_ref(r, subject_ids, code_index)
    )
    if "final_score" not in roadmap_df.columns:
        roadmap_df["final_score"] = None
    roadmap_df["final_score"] = pd.to_numeric(roadmap_df["final_score"], errors="coerce")
    roadmap_df = _validate_roadmap_rows(roadmap_df, passing_score)

    enrollments_df = tables.get(
        "enrollments", pd.DataFrame(columns=["student_id", "subject_id", "semester_id", "class_id"])
    ).copy()
    for col in ("student_id", "semester_id", "class_id"):
        enrollments_df = _id_col(enrollments_df, col)
    enrollments_df = _id_col(enrollments_df, "subject_id")
    enrollments_df["subject_id"] = enrollments_df["subject_id"].apply(
        lambda r: _resolve_subject_ref(r, subject_ids, code_index)
    )
    enrollments_df = _safe_bool_col(enrollments_df, "is_approved")

    # ── Startup data integrity checks ──────────────────────────────────────
    unknown_curricula = sorted(
        set(c for c in students_df["curriculum_id"].tolist() if c) - set(graph.curriculum_ids())
    )
    if unknown_curricula:
        print(f"[WARN] Students reference unknown curriculum(s): {unknown_curricula}", file=sys.stderr)

    orphaned = sorted(set(roadmap_df["subject_id"].tolist()) - subject_ids - {""})
    if orphaned:
        print(f"[WARN] {len(orphaned)} roadmap subject(s) not in subjects table: {orphaned}", file=sys.stderr)

    print(
        f"[INFO] Curriculum data: {len(subjects)} subjects, "
        f"{len(graph.curriculum_ids())} curricula, {len(calendar)} semesters"
    )

    return {
        "subjects": subjects,
        "curricula": curricula,
        "code_index": code_index,
        "catalog_codes": set(code_index),
        "links_df": links_df,
        "graph": graph,
        "calendar": calendar,
        "students_df": students_df,
        "roadmap_df": roadmap_df,
        "enrollments_df": enrollments_df,
    }
