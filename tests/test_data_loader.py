import os

import pandas as pd
import pytest

from data_loader import _safe_bool_col, load_data
from errors import ConfigurationError

REPO_DATA = os.path.join(os.path.dirname(__file__), "..", "data")


def _write_tables(path, **tables):
    os.makedirs(path, exist_ok=True)
    for name, rows in tables.items():
        pd.DataFrame(rows).to_csv(os.path.join(path, f"{name}.csv"), index=False)


def _minimal_tables():
    return {
        "subjects": [
            {"subject_code": "cs 101", "subject_name": "Programming", "credits": 3, "category": "Core"},
            {"subject_code": "SE-101", "subject_name": "SE Basics", "credits": 3, "category": "Core"},
            {"subject_code": "EL201", "subject_name": "Elective", "credits": 2, "category": "Elective"},
        ],
        "curriculum_subjects": [
            {"curriculum_id": "C1", "subject_id": "CS101", "semester_number": 1, "prerequisite_code": ""},
            {"curriculum_id": "C1", "subject_id": "SE101", "semester_number": 2, "prerequisite_code": "cs101"},
            {"curriculum_id": "C1", "subject_id": "EL201", "semester_number": 2, "prerequisite_code": ""},
        ],
        "semesters": [
            {"semester_id": "S1", "semester_name": "fall 2025", "start": "2025-09-01", "end": "2025-12-31"},
            {"semester_id": "S2", "semester_name": "Spring 2026", "start": "2026-01-15", "end": "2026-05-31"},
        ],
    }


class TestSafeBoolCol:
    def test_variants(self):
        df = pd.DataFrame({"flag": [True, 1, 0.0, "TRUE", "no", "y", None]})
        assert _safe_bool_col(df, "flag")["flag"].tolist() == [True, True, False, True, False, True, False]

    def test_missing_column_untouched(self):
        df = pd.DataFrame({"x": [1]})
        assert list(_safe_bool_col(df, "flag").columns) == ["x"]


class TestLoadCsvDirectory:
    def test_aliases_and_code_normalization(self, tmp_path):
        _write_tables(str(tmp_path), **_minimal_tables())
        data = load_data(str(tmp_path))
        assert data["catalog_codes"] == {"CS101", "SE101", "EL201"}
        graph = data["graph"]
        assert graph.prerequisite_of("C1", "SE101") == "CS101"
        assert graph.mandatory_subjects("C1") == ["CS101", "SE101"]

    def test_calendar_labels_normalized(self, tmp_path):
        _write_tables(str(tmp_path), **_minimal_tables())
        calendar = load_data(str(tmp_path))["calendar"]
        assert [s["name"] for s in calendar.all()] == ["Fall 2025", "Spring 2026"]

    def test_missing_required_table(self, tmp_path):
        tables = _minimal_tables()
        del tables["semesters"]
        _write_tables(str(tmp_path), **tables)
        with pytest.raises(ConfigurationError) as exc:
            load_data(str(tmp_path))
        assert "missing table semesters" in exc.value.problems

    def test_bad_graph_raises(self, tmp_path):
        tables = _minimal_tables()
        tables["curriculum_subjects"][1]["semester_number"] = 1
        _write_tables(str(tmp_path), **tables)
        with pytest.raises(ConfigurationError):
            load_data(str(tmp_path))

    def test_missing_path(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_data(str(tmp_path / "nope"))

    def test_unknown_curriculum_warning(self, tmp_path, capsys):
        tables = _minimal_tables()
        tables["students"] = [{"student_id": "STU-1", "curriculum_id": "GHOST"}]
        _write_tables(str(tmp_path), **tables)
        data = load_data(str(tmp_path))
        assert "unknown curriculum" in capsys.readouterr().err
        assert data["students_df"]["student_id"].tolist() == ["STU-1"]

    def test_roadmap_statuses_canonicalized(self, tmp_path):
        tables = _minimal_tables()
        tables["roadmap"] = [
            {"student_id": "STU-1", "subject_id": "CS101", "semester_id": "S1", "status": "completed", "final_score": 7.0},
            {"student_id": "STU-1", "subject_id": "SE101", "semester_id": "S2", "status": "in progress", "final_score": ""},
            {"student_id": "STU-1", "subject_id": "EL201", "semester_id": "S2", "status": "", "final_score": ""},
        ]
        _write_tables(str(tmp_path), **tables)
        roadmap = load_data(str(tmp_path))["roadmap_df"]
        assert roadmap["status"].tolist() == ["Completed", "InProgress", "Planned"]

    def test_unknown_roadmap_status_rejected(self, tmp_path):
        tables = _minimal_tables()
        tables["roadmap"] = [
            {"student_id": "STU-1", "subject_id": "CS101", "semester_id": "S1", "status": "Done", "final_score": 8.0},
            {"student_id": "STU-1", "subject_id": "SE101", "semester_id": "S2", "status": "Planned", "final_score": ""},
        ]
        _write_tables(str(tmp_path), **tables)
        with pytest.raises(ConfigurationError) as exc:
            load_data(str(tmp_path))
        assert exc.value.problems == ["roadmap row 2 (STU-1/CS101) has unknown status 'Done'."]

    @pytest.mark.parametrize("score", ["", 3.0])
    def test_completed_without_passing_score_rejected(self, tmp_path, score):
        tables = _minimal_tables()
        tables["roadmap"] = [
            {"student_id": "STU-1", "subject_id": "CS101", "semester_id": "S1", "status": "Completed", "final_score": score},
        ]
        _write_tables(str(tmp_path), **tables)
        with pytest.raises(ConfigurationError) as exc:
            load_data(str(tmp_path))
        assert "Completed without a final_score of at least 5" in exc.value.problems[0]

    def test_passing_score_is_configurable(self, tmp_path):
        tables = _minimal_tables()
        tables["roadmap"] = [
            {"student_id": "STU-1", "subject_id": "CS101", "semester_id": "S1", "status": "Completed", "final_score": 5.5},
        ]
        _write_tables(str(tmp_path), **tables)
        assert len(load_data(str(tmp_path))["roadmap_df"]) == 1
        with pytest.raises(ConfigurationError):
            load_data(str(tmp_path), passing_score=6.0)


class TestLoadWorkbook:
    def test_xlsx_sheets(self, tmp_path):
        path = str(tmp_path / "curriculum.xlsx")
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            for name, rows in _minimal_tables().items():
                pd.DataFrame(rows).to_excel(writer, sheet_name=name, index=False)
        data = load_data(path)
        assert data["graph"].curriculum_ids() == ["C1"]
        assert len(data["calendar"]) == 2


class TestRepoData:
    def test_sample_data_loads(self):
        data = load_data(REPO_DATA)
        graph = data["graph"]
        assert graph.curriculum_ids() == ["SE-2024"]
        assert graph.prerequisite_of("SE-2024", "SUB-SE101") == "SUB-CS101"
        assert graph.mandatory_credits("SE-2024") == 28
        assert graph.curriculum("SE-2024")["total_credits"] == 34

    def test_roadmap_rows_resolve_codes(self):
        data = load_data(REPO_DATA)
        roadmap = data["roadmap_df"]
        assert set(roadmap["subject_id"]) == {"SUB-CS101", "SUB-MA101", "SUB-CS102", "SUB-SE101"}
