import re

# Matches: CS101, cs 101, CS-101, MATH1010, PRN211, SWE201c
CANONICAL = re.compile(r'^([A-Za-z]{2,6})\s*[-]?\s*(\d{3,4}[A-Za-z]?)$')


def normalize_code(raw: str) -> str | None:
    """
    Normalizes a subject code to canonical 'DEPTNNN' format.
    Handles: 'cs101', 'CS-101', 'CS 101', 'MATH 1010', 'swe201c'
    Returns None if the string cannot be parsed as a subject code.
    """
    if not raw or not str(raw).strip():
        return None
    m = CANONICAL.match(str(raw).strip())
    if m:
        dept = m.group(1).upper()
        num = m.group(2).upper()
        return f"{dept}{num}"
    return None


def normalize_id(raw) -> str:
    """Opaque identifiers are compared as trimmed strings; blanks and NaN become ''."""
    if raw is None:
        return ""
    if isinstance(raw, float) and raw != raw:
        return ""
    s = str(raw).strip()
    if s.lower() in ("nan", "none"):
        return ""
    return s


_SEPARATORS = re.compile(r'[,\n;]+')


def _tokens(raw) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        parts = [str(p) for p in raw if p is not None]
    else:
        parts = _SEPARATORS.split(str(raw))
    return [p.strip() for p in parts if p.strip()]


def normalize_input(raw, catalog_codes: set) -> dict:
    """
    Sort requested subject codes into buckets, keeping first-seen order and
    dropping repeats. `raw` is a comma/semicolon/newline separated string or
    a JSON list.

      valid           parseable and in the catalog
      invalid         not a subject code at all (kept verbatim)
      not_in_catalog  well-formed but unknown
    """
    buckets = {"valid": [], "invalid": [], "not_in_catalog": []}
    seen: set[str] = set()
    for token in _tokens(raw):
        code = normalize_code(token)
        key = code or token
        if key in seen:
            continue
        seen.add(key)
        if code is None:
            buckets["invalid"].append(token)
        elif code in catalog_codes:
            buckets["valid"].append(code)
        else:
            buckets["not_in_catalog"].append(code)
    return buckets
