import math


def estimate_timeline(
    outstanding: list[str],
    chain_depths: dict[str, int],
    credits_by_subject: dict[str, int],
    credits_per_semester: int = 20,
) -> dict:
    """
    Rough remaining-semester estimate for a student's outstanding subjects.

    Two lower bounds, the larger wins:
      - prerequisite chain: an outstanding subject with a downstream chain of
        depth d needs at least d + 1 semesters before the chain is finished
      - credit load: outstanding credits / credits_per_semester

    Returns:
        {
          "outstanding_subjects": 5,
          "outstanding_credits": 15,
          "estimated_min_semesters": 2,
          "disclaimer": "..."
        }
    """
    outstanding_credits = sum(int(credits_by_subject.get(s, 0) or 0) for s in outstanding)
    chain_bound = max((chain_depths.get(s, 0) + 1 for s in outstanding), default=0)
    load_bound = math.ceil(outstanding_credits / credits_per_semester) if outstanding_credits > 0 else 0

    return {
        "outstanding_subjects": len(outstanding),
        "outstanding_credits": outstanding_credits,
        "estimated_min_semesters": max(chain_bound, load_bound),
        "disclaimer": (
            f"Rough estimate. Assumes up to {credits_per_semester} credits per semester "
            "and every subject offered each semester. Failed retakes and class "
            "capacity are ignored."
        ),
    }
