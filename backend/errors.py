"""
Exception taxonomy for the roadmap engine.

Each error carries the machine-readable `error_code` and the HTTP status the
server maps it to. Ineligibility is never an exception: it is returned as
data in the eligibility result's `reasons` list.
"""


class RoadmapError(Exception):
    error_code = "ROADMAP_ERROR"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {
            "mode": "error",
            "error": {
                "error_code": self.error_code,
                "message": self.message,
            },
        }


class ConfigurationError(RoadmapError):
    """Malformed curriculum configuration. Fatal at startup."""

    error_code = "CONFIGURATION_ERROR"
    status_code = 500

    def __init__(self, message: str, problems: list[str] | None = None):
        super().__init__(message)
        self.problems = list(problems or [])


class NotFoundError(RoadmapError):
    error_code = "NOT_FOUND"
    status_code = 404

    def __init__(self, kind: str, ref):
        super().__init__(f"{kind} '{ref}' not found.")
        self.kind = kind
        self.ref = ref


class InvalidInput(RoadmapError):
    error_code = "INVALID_INPUT"
    status_code = 400


class InvalidTransition(RoadmapError):
    """Attempted status regression, e.g. moving a Completed entry backward."""

    error_code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, student_id: str, subject_id: str, current, target):
        current_label = getattr(current, "value", current)
        target_label = getattr(target, "value", target)
        super().__init__(
            f"Roadmap entry for student {student_id}, subject {subject_id} "
            f"cannot move from {current_label} to {target_label}."
        )
        self.student_id = student_id
        self.subject_id = subject_id
        self.current = current
        self.target = target


class NotInRoadmap(RoadmapError):
    """Enrollment committed for a subject the student has no roadmap entry for."""

    error_code = "NOT_IN_ROADMAP"
    status_code = 409

    def __init__(self, student_id: str, subject_id: str):
        super().__init__(
            f"Student {student_id} has no roadmap entry for subject {subject_id}."
        )
        self.student_id = student_id
        self.subject_id = subject_id
