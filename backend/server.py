import os
import sys
import time
import threading

# Ensure backend/ is on sys.path so sibling imports work
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException
from dotenv import load_dotenv

from data_loader import load_data
from errors import InvalidInput, RoadmapError
from normalizer import normalize_input
from requirements import (
    DEFAULT_CLASSIFICATION_TIERS_RAW,
    MAX_RECOMMENDATIONS,
    PASSING_SCORE,
    parse_classification_tiers,
)
from roadmap_service import RoadmapService
from validators import parse_bool, parse_page, parse_score, require_fields

load_dotenv()

app = Flask(__name__)

# ── Paths ─────────────────────────────────────────────────────────────────────
BACKEND_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(BACKEND_DIR)
_DEFAULT_DATA_PATH = os.path.join(PROJECT_ROOT, "data")
_env_data_path = os.environ.get("DATA_PATH")
if not _env_data_path:
    DATA_PATH = _DEFAULT_DATA_PATH
elif not os.path.isabs(_env_data_path):
    DATA_PATH = os.path.join(PROJECT_ROOT, _env_data_path)
else:
    DATA_PATH = _env_data_path
_data_lock = threading.Lock()
_data_mtime = None


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, float(raw))
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, int(raw))
    except (TypeError, ValueError):
        return default


_SLOW_REQUEST_LOG_MS = _env_float("SLOW_REQUEST_LOG_MS", 750.0, minimum=0.0)
_PASSING_SCORE = _env_float("PASSING_SCORE", PASSING_SCORE, minimum=0.0)
_SWEEP_WORKERS = _env_int("GRADUATION_SWEEP_WORKERS", 8, minimum=1)


def _data_file_mtime(path: str):
    try:
        if os.path.isdir(path):
            mtimes = [
                os.path.getmtime(os.path.join(path, f))
                for f in os.listdir(path)
                if f.endswith(".csv")
            ]
            return max(mtimes) if mtimes else None
        return os.path.getmtime(path)
    except OSError:
        return None


# ── Startup data load ──────────────────────────────────────────────────────────
try:
    _tiers = parse_classification_tiers(
        os.environ.get("CLASSIFICATION_TIERS", DEFAULT_CLASSIFICATION_TIERS_RAW)
    )
except RoadmapError as exc:
    print(f"[FATAL] Invalid CLASSIFICATION_TIERS: {exc.message}", file=sys.stderr)
    sys.exit(1)


def _load_startup_data() -> dict:
    """Load DATA_PATH; a stale DATA_PATH falls back to the repo's sample data."""
    global DATA_PATH
    try:
        return load_data(DATA_PATH, _PASSING_SCORE)
    except FileNotFoundError:
        if DATA_PATH == _DEFAULT_DATA_PATH or not os.path.exists(_DEFAULT_DATA_PATH):
            raise
        print(
            f"[WARN] DATA_PATH not found ({DATA_PATH}); "
            f"falling back to default data ({_DEFAULT_DATA_PATH}).",
            file=sys.stderr,
        )
        DATA_PATH = _DEFAULT_DATA_PATH
        return load_data(DATA_PATH, _PASSING_SCORE)


try:
    _data = _load_startup_data()
    _data_mtime = _data_file_mtime(DATA_PATH)
    _service = RoadmapService(
        _data,
        passing_score=_PASSING_SCORE,
        tiers=_tiers,
        sweep_workers=_SWEEP_WORKERS,
    )
    print(f"[OK] Loaded {len(_data['catalog_codes'])} subjects from {DATA_PATH}")
except FileNotFoundError:
    print(f"[FATAL] Data path not found: {DATA_PATH}", file=sys.stderr)
    sys.exit(1)
except RoadmapError as exc:
    print(f"[FATAL] Failed to load curriculum data: {exc.message}", file=sys.stderr)
    for problem in getattr(exc, "problems", []):
        print(f"[FATAL]   - {problem}", file=sys.stderr)
    sys.exit(1)
except Exception as exc:
    print(f"[FATAL] Failed to load data: {exc}", file=sys.stderr)
    sys.exit(1)


def _reload_data_if_changed(force: bool = False) -> bool:
    """
    Hot-reload curriculum configuration when DATA_PATH changes on disk.
    Roadmap state survives; only the graph and calendar are swapped.

    Returns True when a reload occurred, else False.
    """
    global _data, _data_mtime

    candidate_mtime = _data_file_mtime(DATA_PATH)
    if not force:
        if candidate_mtime is None:
            return False
        if _data_mtime is not None and candidate_mtime <= _data_mtime:
            return False

    with _data_lock:
        latest_mtime = _data_file_mtime(DATA_PATH)
        if not force:
            if latest_mtime is None:
                return False
            if _data_mtime is not None and latest_mtime <= _data_mtime:
                return False

        try:
            new_data = load_data(DATA_PATH, _PASSING_SCORE)
        except Exception as exc:
            print(f"[WARN] Data reload failed; keeping previous curriculum graph: {exc}", file=sys.stderr)
            return False

        _service.swap_data(new_data)
        _data = new_data
        _data_mtime = latest_mtime if latest_mtime is not None else candidate_mtime
        print(f"[OK] Reloaded {len(new_data['catalog_codes'])} subjects from {DATA_PATH}")
        return True


def _refresh_data_if_needed() -> None:
    try:
        _reload_data_if_changed()
    except Exception as exc:
        print(f"[WARN] Data reload check failed: {exc}", file=sys.stderr)


def _svc() -> RoadmapService:
    _refresh_data_if_needed()
    return _service


# -- Security headers ------------------------------------------------------
@app.before_request
def _start_request_timer():
    g._request_start_time = time.perf_counter()


@app.after_request
def _add_security_headers(response):
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "same-origin"

    started = getattr(g, "_request_start_time", None)
    if started is not None:
        duration_ms = (time.perf_counter() - started) * 1000.0
        if duration_ms >= _SLOW_REQUEST_LOG_MS:
            endpoint = request.endpoint or "unknown"
            print(
                f"[SLOW] {request.method} {request.path} "
                f"endpoint={endpoint} status={response.status_code} duration_ms={duration_ms:.1f}"
            )
    return response


# -- Health endpoint --------------------------------------------------------
@app.route("/health", methods=["GET"])
def health_endpoint():
    return jsonify({
        "status": "ok",
        "version": "1.0.0",
        "subjects": len(_data["catalog_codes"]),
        "curricula": len(_service.graph.curriculum_ids()),
        "students": len(_service.store.student_ids()),
    })


# ── Error handlers ─────────────────────────────────────────────────────────────
@app.errorhandler(RoadmapError)
def handle_roadmap_error(e):
    if e.status_code >= 500:
        print(f"[WARN] {e.error_code}: {e.message}", file=sys.stderr)
    return jsonify(e.to_payload()), e.status_code


@app.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return jsonify({
            "mode": "error",
            "error": {"error_code": e.name.upper().replace(" ", "_"), "message": e.description},
        }), e.code
    print(f"[WARN] Unhandled error on {request.method} {request.path}: {e!r}", file=sys.stderr)
    return jsonify({
        "mode": "error",
        "error": {
            "error_code": "SERVER_ERROR",
            "message": "An unexpected server error occurred.",
        },
    }), 500


def _json_body() -> dict:
    body = request.get_json(force=True, silent=True)
    if body is None or not isinstance(body, dict):
        raise InvalidInput("Request body must be valid JSON.")
    return body


def _subject_ref(body: dict) -> str:
    ref = str(body.get("subject_id") or body.get("subject_code") or "").strip()
    if not ref:
        raise InvalidInput("Missing required field(s): subject_id or subject_code.")
    return ref


# ── Curricula & students ───────────────────────────────────────────────────────
@app.route("/curricula", methods=["GET"])
def get_curricula():
    svc = _svc()
    graph = svc.graph
    curricula = []
    for cid in graph.curriculum_ids():
        row = graph.curriculum(cid)
        row["subject_count"] = len(graph.all_subjects(cid))
        row["mandatory_credits"] = graph.mandatory_credits(cid)
        row["semester_numbers"] = graph.semester_numbers(cid)
        curricula.append(row)
    return jsonify({"mode": "curricula", "curricula": curricula})


@app.route("/students", methods=["POST"])
def create_student():
    body = _json_body()
    fields = require_fields(body, "student_id")
    student = _svc().register_student(
        fields["student_id"],
        str(body.get("student_code") or "").strip(),
        str(body.get("name") or "").strip(),
        str(body.get("curriculum_id") or "").strip() or None,
        str(body.get("anchor_semester_id") or "").strip() or None,
    )
    return jsonify({"mode": "student", "student": student}), 201


@app.route("/students/<student_id>", methods=["GET"])
def get_student(student_id):
    svc = _svc()
    record = svc.resolve_student(student_id)
    return jsonify({
        "mode": "student",
        "student": svc._student_view(record),
        "statistics": svc.store.statistics(record["student_id"]),
    })


@app.route("/students/<student_id>/curriculum", methods=["PUT"])
def assign_curriculum(student_id):
    body = _json_body()
    fields = require_fields(body, "curriculum_id")
    result = _svc().assign_curriculum(
        student_id,
        fields["curriculum_id"],
        str(body.get("anchor_semester_id") or "").strip() or None,
    )
    return jsonify({"mode": "curriculum_assigned", **result})


# ── Eligibility & events ───────────────────────────────────────────────────────
@app.route("/eligibility", methods=["POST"])
def eligibility_endpoint():
    """Single enrollment check. Ineligibility is a 200 with reasons, not an error."""
    body = _json_body()
    fields = require_fields(body, "student_id", "semester_id")
    result = _svc().check_eligibility(
        fields["student_id"],
        _subject_ref(body),
        fields["semester_id"],
        str(body.get("class_id") or "").strip() or None,
    )
    return jsonify({"mode": "eligibility", **result})


@app.route("/eligibility/batch", methods=["POST"])
def eligibility_batch_endpoint():
    """Check several subject codes for one semester. Unparseable codes are reported, not fatal."""
    body = _json_body()
    fields = require_fields(body, "student_id", "semester_id")
    svc = _svc()
    parsed = normalize_input(body.get("subject_codes"), _data["catalog_codes"])
    results = [
        svc.check_eligibility(fields["student_id"], code, fields["semester_id"])
        for code in parsed["valid"]
    ]
    return jsonify({
        "mode": "eligibility_batch",
        "student_id": fields["student_id"],
        "semester_id": fields["semester_id"],
        "results": results,
        "invalid": parsed["invalid"],
        "not_in_catalog": parsed["not_in_catalog"],
    })


@app.route("/events/enrollment-committed", methods=["POST"])
def enrollment_committed_endpoint():
    body = _json_body()
    fields = require_fields(body, "student_id", "semester_id")
    entry = _svc().handle_enrollment_committed(
        fields["student_id"],
        _subject_ref(body),
        fields["semester_id"],
        str(body.get("class_id") or "").strip() or None,
    )
    return jsonify({
        "mode": "enrollment_committed",
        "roadmap_updated": entry is not None,
        "entry": entry,
    })


@app.route("/events/grade-posted", methods=["POST"])
def grade_posted_endpoint():
    body = _json_body()
    fields = require_fields(body, "student_id")
    if body.get("final_score") in (None, ""):
        raise InvalidInput("Missing required field(s): final_score.")
    result = _svc().handle_grade_posted(
        fields["student_id"],
        _subject_ref(body),
        parse_score(body.get("final_score")),
        str(body.get("letter_grade") or "").strip() or None,
    )
    return jsonify({
        "mode": "grade_posted",
        "roadmap_updated": result["entry"] is not None,
        **result,
    })


# ── Roadmap views ──────────────────────────────────────────────────────────────
@app.route("/students/<student_id>/roadmap", methods=["GET"])
def roadmap_overview_endpoint(student_id):
    return jsonify({"mode": "roadmap", **_svc().roadmap_overview(student_id)})


@app.route("/students/<student_id>/roadmap/semesters/<semester_id>", methods=["GET"])
def roadmap_semester_endpoint(student_id, semester_id):
    return jsonify({"mode": "roadmap_semester", **_svc().semester_slice(student_id, semester_id)})


@app.route("/students/<student_id>/roadmap/current", methods=["GET"])
def roadmap_current_endpoint(student_id):
    return jsonify({"mode": "roadmap_semester", **_svc().current_semester(student_id)})


@app.route("/students/<student_id>/roadmap/open", methods=["GET"])
def roadmap_open_endpoint(student_id):
    subjects = _svc().open_subjects(student_id)
    return jsonify({"mode": "open_subjects", "student_id": student_id, "subjects": subjects})


@app.route("/students/<student_id>/roadmap/recommended", methods=["GET"])
def roadmap_recommended_endpoint(student_id):
    limit = parse_page(request.args.get("limit"), MAX_RECOMMENDATIONS, maximum=MAX_RECOMMENDATIONS)
    return jsonify({"mode": "recommendations", **_svc().recommended_subjects(student_id, limit)})


@app.route("/students/<student_id>/roadmap/entries", methods=["GET"])
def roadmap_entries_endpoint(student_id):
    args = request.args
    result = _svc().paged_roadmap(
        student_id,
        status=args.get("status") or None,
        semester_id=args.get("semester_id") or None,
        sort_by=(args.get("sort_by") or "semester").strip().lower(),
        page=parse_page(args.get("page"), 1, maximum=10000),
        page_size=parse_page(args.get("page_size"), 20, maximum=200),
    )
    return jsonify({"mode": "roadmap_entries", **result})


@app.route("/students/<student_id>/curriculum-roadmap", methods=["GET"])
def curriculum_roadmap_endpoint(student_id):
    return jsonify({"mode": "curriculum_roadmap", **_svc().curriculum_roadmap(student_id)})


@app.route("/students/<student_id>/curriculum-roadmap/summary", methods=["GET"])
def curriculum_summary_endpoint(student_id):
    return jsonify({"mode": "curriculum_summary", **_svc().curriculum_summary(student_id)})


@app.route("/students/<student_id>/curriculum-roadmap/semesters/<semester_number>", methods=["GET"])
def curriculum_semester_endpoint(student_id, semester_number):
    return jsonify({"mode": "curriculum_semester", **_svc().curriculum_semester(student_id, semester_number)})


@app.route("/students/<student_id>/roadmap/diagnostics", methods=["GET"])
def roadmap_diagnostics_endpoint(student_id):
    return jsonify({"mode": "diagnostics", **_svc().diagnostics(student_id)})


# ── Graduation ─────────────────────────────────────────────────────────────────
@app.route("/students/<student_id>/graduation", methods=["GET"])
def graduation_endpoint(student_id):
    return jsonify({"mode": "graduation", **_svc().evaluate_graduation(student_id)})


@app.route("/students/<student_id>/graduation/evaluate", methods=["POST"])
def graduation_evaluate_endpoint(student_id):
    body = request.get_json(force=True, silent=True) or {}
    persist = parse_bool(body.get("persist_if_eligible"), default=True)
    return jsonify({"mode": "graduation", **_svc().evaluate_graduation(student_id, persist)})


@app.route("/graduation/sweep", methods=["POST"])
def graduation_sweep_endpoint():
    body = request.get_json(force=True, silent=True) or {}
    student_ids = body.get("student_ids")
    if student_ids is not None and not isinstance(student_ids, list):
        raise InvalidInput("student_ids must be a list.")
    result = _svc().sweep_graduation(
        student_ids or None,
        persist_if_eligible=parse_bool(body.get("persist_if_eligible"), default=True),
    )
    return jsonify({"mode": "graduation_sweep", **result})


# ── Administrative overrides ───────────────────────────────────────────────────
def _entry_fields(body: dict) -> dict:
    fields = {}
    for key in ("status", "semester_id", "letter_grade", "notes"):
        if key in body:
            fields[key] = body.get(key)
    if "final_score" in body:
        raw = body.get("final_score")
        fields["final_score"] = None if raw in (None, "") else parse_score(raw)
    return fields


@app.route("/students/<student_id>/roadmap/entries", methods=["POST"])
def create_entry_endpoint(student_id):
    body = _json_body()
    fields = require_fields(body, "semester_id")
    extra = _entry_fields(body)
    entry = _svc().create_entry(
        student_id,
        _subject_ref(body),
        fields["semester_id"],
        extra.get("status") or "Planned",
        extra.get("final_score"),
        extra.get("letter_grade"),
        extra.get("notes") or "",
    )
    return jsonify({"mode": "roadmap_entry", "entry": entry}), 201


@app.route("/students/<student_id>/roadmap/entries/bulk", methods=["POST"])
def bulk_create_entries_endpoint(student_id):
    body = _json_body()
    items = body.get("entries")
    if not isinstance(items, list) or not items:
        raise InvalidInput("entries must be a non-empty list.")
    normalized = []
    for item in items:
        if not isinstance(item, dict):
            raise InvalidInput("Each entry must be an object.")
        row = dict(item)
        if "final_score" in row and row["final_score"] not in (None, ""):
            row["final_score"] = parse_score(row["final_score"])
        normalized.append(row)
    result = _svc().bulk_create_entries(student_id, normalized)
    status = 201 if result["created"] else 400
    return jsonify({"mode": "roadmap_bulk", **result}), status


@app.route("/roadmap/entries/<entry_id>", methods=["GET"])
def get_entry_endpoint(entry_id):
    return jsonify({"mode": "roadmap_entry", "entry": _svc().get_entry(entry_id)})


@app.route("/roadmap/entries/<entry_id>", methods=["PATCH"])
def update_entry_endpoint(entry_id):
    body = _json_body()
    entry = _svc().update_entry(entry_id, _entry_fields(body))
    return jsonify({"mode": "roadmap_entry", "entry": entry})


@app.route("/roadmap/entries/<entry_id>", methods=["DELETE"])
def delete_entry_endpoint(entry_id):
    entry = _svc().delete_entry(entry_id)
    return jsonify({"mode": "roadmap_entry_deleted", "entry": entry})


# -- Canonical API routes ----------------------------------------------
app.add_url_rule("/api/health", endpoint="api_health", view_func=health_endpoint, methods=["GET"])
app.add_url_rule("/api/curricula", endpoint="api_curricula", view_func=get_curricula, methods=["GET"])
app.add_url_rule("/api/students", endpoint="api_create_student", view_func=create_student, methods=["POST"])
app.add_url_rule("/api/students/<student_id>", endpoint="api_student", view_func=get_student, methods=["GET"])
app.add_url_rule("/api/students/<student_id>/curriculum", endpoint="api_assign_curriculum", view_func=assign_curriculum, methods=["PUT"])
app.add_url_rule("/api/eligibility", endpoint="api_eligibility", view_func=eligibility_endpoint, methods=["POST"])
app.add_url_rule("/api/eligibility/batch", endpoint="api_eligibility_batch", view_func=eligibility_batch_endpoint, methods=["POST"])
app.add_url_rule("/api/events/enrollment-committed", endpoint="api_enrollment_committed", view_func=enrollment_committed_endpoint, methods=["POST"])
app.add_url_rule("/api/events/grade-posted", endpoint="api_grade_posted", view_func=grade_posted_endpoint, methods=["POST"])
app.add_url_rule("/api/students/<student_id>/roadmap", endpoint="api_roadmap", view_func=roadmap_overview_endpoint, methods=["GET"])
app.add_url_rule("/api/students/<student_id>/roadmap/semesters/<semester_id>", endpoint="api_roadmap_semester", view_func=roadmap_semester_endpoint, methods=["GET"])
app.add_url_rule("/api/students/<student_id>/roadmap/current", endpoint="api_roadmap_current", view_func=roadmap_current_endpoint, methods=["GET"])
app.add_url_rule("/api/students/<student_id>/roadmap/open", endpoint="api_roadmap_open", view_func=roadmap_open_endpoint, methods=["GET"])
app.add_url_rule("/api/students/<student_id>/roadmap/recommended", endpoint="api_roadmap_recommended", view_func=roadmap_recommended_endpoint, methods=["GET"])
app.add_url_rule("/api/students/<student_id>/roadmap/entries", endpoint="api_roadmap_entries", view_func=roadmap_entries_endpoint, methods=["GET"])
app.add_url_rule("/api/students/<student_id>/roadmap/entries", endpoint="api_create_entry", view_func=create_entry_endpoint, methods=["POST"])
app.add_url_rule("/api/students/<student_id>/roadmap/entries/bulk", endpoint="api_bulk_entries", view_func=bulk_create_entries_endpoint, methods=["POST"])
app.add_url_rule("/api/students/<student_id>/roadmap/diagnostics", endpoint="api_roadmap_diagnostics", view_func=roadmap_diagnostics_endpoint, methods=["GET"])
app.add_url_rule("/api/students/<student_id>/curriculum-roadmap", endpoint="api_curriculum_roadmap", view_func=curriculum_roadmap_endpoint, methods=["GET"])
app.add_url_rule("/api/students/<student_id>/curriculum-roadmap/summary", endpoint="api_curriculum_summary", view_func=curriculum_summary_endpoint, methods=["GET"])
app.add_url_rule("/api/students/<student_id>/curriculum-roadmap/semesters/<semester_number>", endpoint="api_curriculum_semester", view_func=curriculum_semester_endpoint, methods=["GET"])
app.add_url_rule("/api/students/<student_id>/graduation", endpoint="api_graduation", view_func=graduation_endpoint, methods=["GET"])
app.add_url_rule("/api/students/<student_id>/graduation/evaluate", endpoint="api_graduation_evaluate", view_func=graduation_evaluate_endpoint, methods=["POST"])
app.add_url_rule("/api/graduation/sweep", endpoint="api_graduation_sweep", view_func=graduation_sweep_endpoint, methods=["POST"])
app.add_url_rule("/api/roadmap/entries/<entry_id>", endpoint="api_get_entry", view_func=get_entry_endpoint, methods=["GET"])
app.add_url_rule("/api/roadmap/entries/<entry_id>", endpoint="api_update_entry", view_func=update_entry_endpoint, methods=["PATCH"])
app.add_url_rule("/api/roadmap/entries/<entry_id>", endpoint="api_delete_entry", view_func=delete_entry_endpoint, methods=["DELETE"])


# -- API catch-all (404 for unknown /api/* routes) -------------------
@app.route("/api/<path:rest>", methods=["GET", "POST", "PUT", "DELETE", "PATCH"])
def api_catch_all(rest):
    return jsonify({
        "mode": "error",
        "error": {"error_code": "NOT_FOUND", "message": f"/api/{rest} not found"},
    }), 404


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    debug = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(host="0.0.0.0", port=port, debug=debug)
