from errors import ConfigurationError

# Minimum final score (10-point scale) for a subject to count as passed.
PASSING_SCORE = 5.0

# Highest semester-number a curriculum link may carry.
MAX_SEMESTER_NUMBER = 20

# Cap on the recommended-subjects list.
MAX_RECOMMENDATIONS = 10

# Default honours tiers: (minimum weighted average, label), checked high to low.
DEFAULT_CLASSIFICATION_TIERS = [
    (8.5, "Excellent"),
    (7.0, "Good"),
    (5.5, "Average"),
    (0.0, "Pass"),
]

# Raw env format for CLASSIFICATION_TIERS.
DEFAULT_CLASSIFICATION_TIERS_RAW = "8.5:Excellent,7.0:Good,5.5:Average,0:Pass"

# Subject categories that mark a subject as elective when no explicit flag is given.
ELECTIVE_CATEGORIES = {"elective", "optional", "free elective"}


def parse_classification_tiers(raw: str | None) -> list[tuple[float, str]]:
    """
    Parse 'MIN:Label,MIN:Label,...' into tiers sorted by minimum descending.

    Blank input yields the default tiers. Raises ConfigurationError on a
    malformed or duplicate cutoff.
    """
    if raw is None or not str(raw).strip():
        return list(DEFAULT_CLASSIFICATION_TIERS)

    tiers: list[tuple[float, str]] = []
    seen_cutoffs: set[float] = set()
    for part in str(raw).split(","):
        part = part.strip()
        if not part:
            continue
        if ":" not in part:
            raise ConfigurationError(f"Classification tier '{part}' must look like '7.0:Good'.")
        cutoff_raw, label = part.split(":", 1)
        label = label.strip()
        try:
            cutoff = float(cutoff_raw.strip())
        except ValueError:
            raise ConfigurationError(f"Classification cutoff '{cutoff_raw.strip()}' is not a number.")
        if not label:
            raise ConfigurationError(f"Classification tier '{part}' has no label.")
        if cutoff in seen_cutoffs:
            raise ConfigurationError(f"Classification cutoff {cutoff} is listed twice.")
        seen_cutoffs.add(cutoff)
        tiers.append((cutoff, label))

    if not tiers:
        return list(DEFAULT_CLASSIFICATION_TIERS)
    tiers.sort(key=lambda t: t[0], reverse=True)
    return tiers


def classify(weighted_average: float | None, tiers: list[tuple[float, str]] | None = None) -> str | None:
    """Map a weighted average to its tier label. None average -> None."""
    if weighted_average is None:
        return None
    for cutoff, label in (tiers or DEFAULT_CLASSIFICATION_TIERS):
        if weighted_average >= cutoff:
            return label
    # Below every cutoff: fall back to the lowest tier.
    ordered = tiers or DEFAULT_CLASSIFICATION_TIERS
    return ordered[-1][1] if ordered else None


def is_passing(score, passing_score: float = PASSING_SCORE) -> bool:
    if score is None:
        return False
    return float(score) >= passing_score


def get_mandatory_subjects(subject_ids, subjects: dict) -> list[str]:
    """Subset of subject_ids whose catalog row is mandatory. Unknown ids count as mandatory."""
    out = []
    for sid in subject_ids:
        subject = subjects.get(sid)
        if subject is None or subject.get("is_mandatory", True):
            out.append(sid)
    return out


def sum_credits(subject_ids, subjects: dict) -> int:
    return sum(int(subjects.get(sid, {}).get("credits", 0) or 0) for sid in subject_ids)
