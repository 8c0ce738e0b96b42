from typing import Optional


def effective_score(
    base_points: float,
    run_count: int,
    deduction_pct: Optional[float],
    max_runs: Optional[int],
    restriction_enabled: bool,
) -> float:
    """
    Score for one item after check-code run deductions.

    The first run is free. Every extra run, counted up to ``max_runs``, takes
    ``deduction_pct`` percent of ``base_points`` off. The result never drops
    below zero and is rounded to two decimals.

    Args:
        base_points: Points earned on the item before deductions
        run_count: How many times the student ran "check code" on the item
        deduction_pct: Percentage deducted per extra run (e.g. 10 for 10%)
        max_runs: Cap on the runs that count toward the deduction; None for no cap
        restriction_enabled: Whether the activity penalizes check-code runs at all

    Returns:
        The effective score for the item
    """
    if not restriction_enabled or run_count <= 1 or not deduction_pct or deduction_pct <= 0:
        return base_points

    counted_runs = min(run_count, max_runs) if max_runs else run_count
    extra_runs = max(counted_runs - 1, 0)
    deduction = base_points * (deduction_pct / 100) * extra_runs
    return round(max(base_points - deduction, 0), 2)
