"""
Publish gate validator for curriculum configuration.

Structural problems (cycles, prerequisites that are not earlier, links to
unknown subjects) are fatal at load time and reported as errors here.
The remaining checks look for data-quality issues in a structurally valid
curriculum. Importable for tests and runnable as a standalone CLI.

Usage:
    python scripts/validate_curriculum.py --curriculum SE-2024
    python scripts/validate_curriculum.py --curriculum SE-2024 --path path/to/workbook.xlsx
    python scripts/validate_curriculum.py --all
"""

import argparse
import os
import sys

BACKEND_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "backend")
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

from curriculum_graph import CurriculumGraph
from errors import ConfigurationError


# ── Validation result ─────────────────────────────────────────────────────────

class ValidationResult:
    """Collects errors and warnings for a single curriculum validation run."""

    def __init__(self, curriculum_id: str):
        self.curriculum_id = curriculum_id
        self.errors: list[str] = []
        self.warnings: list[str] = []

    def error(self, msg: str) -> None:
        self.errors.append(msg)

    def warn(self, msg: str) -> None:
        self.warnings.append(msg)

    @property
    def passed(self) -> bool:
        return len(self.errors) == 0

    def summary(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        lines = [f"[{status}] Curriculum '{self.curriculum_id}'"]
        for e in self.errors:
            lines.append(f"  [ERROR] {e}")
        for w in self.warnings:
            lines.append(f"  [WARN]  {w}")
        if self.passed and not self.warnings:
            lines.append("  All checks passed.")
        return "\n".join(lines)


# ── Individual checks ─────────────────────────────────────────────────────────

def check_curriculum_exists(curriculum_id: str, graph: CurriculumGraph, result: ValidationResult) -> bool:
    if not graph.has_curriculum(curriculum_id):
        result.error(f"Curriculum '{curriculum_id}' has no linked subjects.")
        return False
    return True


def check_mandatory_subjects(curriculum_id: str, graph: CurriculumGraph, result: ValidationResult) -> None:
    """A curriculum without mandatory subjects would graduate every student immediately."""
    if not graph.mandatory_subjects(curriculum_id):
        result.error(f"Curriculum '{curriculum_id}' has no mandatory subjects.")


def check_subject_credits(curriculum_id: str, graph: CurriculumGraph, result: ValidationResult) -> None:
    zero = [
        graph.subject_code(sid) for sid in graph.ordered_subjects(curriculum_id)
        if int((graph.subject(sid) or {}).get("credits", 0) or 0) <= 0
    ]
    if zero:
        result.error(f"Subject(s) without credit weight: {zero}")


def check_semester_numbers_contiguous(curriculum_id: str, graph: CurriculumGraph, result: ValidationResult) -> None:
    numbers = graph.semester_numbers(curriculum_id)
    if not numbers:
        return
    gaps = [n for n in range(1, numbers[-1] + 1) if n not in numbers]
    if gaps:
        result.warn(f"No subjects planned for semester number(s) {gaps}.")


def check_declared_credits(curriculum_id: str, graph: CurriculumGraph, result: ValidationResult) -> None:
    declared = graph.curriculum(curriculum_id).get("total_credits")
    actual = graph.total_credits(curriculum_id)
    if declared is None:
        result.warn(f"Curriculum '{curriculum_id}' does not declare total_credits (linked: {actual}).")
    elif declared != actual:
        result.error(f"Declared total_credits {declared} differs from linked subject credits {actual}.")


def check_elective_prerequisites(curriculum_id: str, graph: CurriculumGraph, result: ValidationResult) -> None:
    """A mandatory subject that requires an elective makes that elective mandatory in practice."""
    mandatory = set(graph.mandatory_subjects(curriculum_id))
    for sid in sorted(mandatory, key=graph.subject_code):
        prereq = graph.prerequisite_of(curriculum_id, sid)
        if prereq and prereq not in mandatory:
            result.warn(
                f"Mandatory subject {graph.subject_code(sid)} requires elective "
                f"{graph.subject_code(prereq)}."
            )


# ── Main validate function ────────────────────────────────────────────────────

def validate_curriculum(curriculum_id: str, graph: CurriculumGraph) -> ValidationResult:
    """Run all publish gate checks for a curriculum. Returns a ValidationResult."""
    result = ValidationResult(curriculum_id)
    if not check_curriculum_exists(curriculum_id, graph, result):
        return result
    check_mandatory_subjects(curriculum_id, graph, result)
    check_subject_credits(curriculum_id, graph, result)
    check_semester_numbers_contiguous(curriculum_id, graph, result)
    check_declared_credits(curriculum_id, graph, result)
    check_elective_prerequisites(curriculum_id, graph, result)
    return result


# ── CLI entry point ───────────────────────────────────────────────────────────

def main(args=None):
    parser = argparse.ArgumentParser(
        description="Validate curriculum data before publishing.",
    )
    parser.add_argument("--curriculum", type=str, help="Curriculum ID to validate.")
    parser.add_argument("--all", action="store_true", help="Validate every curriculum in the data source.")
    parser.add_argument(
        "--path", type=str,
        default=os.path.join(os.path.dirname(__file__), "..", "data"),
        help="Path to the CSV directory or workbook file.",
    )
    opts = parser.parse_args(args)

    if not opts.curriculum and not opts.all:
        parser.error("Provide --curriculum CURRICULUM_ID or --all.")

    from data_loader import load_data

    try:
        data = load_data(opts.path)
    except FileNotFoundError:
        print(f"[FAIL] Data path not found: {opts.path}")
        return 1
    except ConfigurationError as exc:
        print(f"[FAIL] {exc.message}")
        for problem in exc.problems:
            print(f"  [ERROR] {problem}")
        return 1

    graph = data["graph"]
    if opts.all:
        curriculum_ids = graph.curriculum_ids()
        if not curriculum_ids:
            print("[INFO] No curricula found in data source.")
            return 0
    else:
        curriculum_ids = [opts.curriculum.strip()]

    all_passed = True
    for cid in curriculum_ids:
        result = validate_curriculum(cid, graph)
        print(result.summary())
        if not result.passed:
            all_passed = False

    return 0 if all_passed else 1


if __name__ == "__main__":
    sys.exit(main())
