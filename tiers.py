"""Progress and tier summaries derived from per-incentive totals."""

from typing import Any, Dict, Iterable, Optional

from models import Incentive, Progress, TierConfig, TierSummary


def compute_progress(achieved: float, target: float) -> Progress:
    """
    Clamp achieved/target into a displayable progress record.

    percent is min(achieved / target, 1) when target > 0, else 0.
    """
    achieved = achieved or 0.0
    target = target or 0.0
    if target > 0:
        percent = min(achieved / target, 1.0)
    else:
        percent = 0.0
    return Progress(
        achieved=achieved,
        target=target,
        percent=percent,
        remaining=max(target - achieved, 0.0),
        exceeded=achieved > target,
    )


def incentive_progress(incentive: Incentive, totals: Dict[Any, float]) -> Progress:
    return compute_progress(totals.get(incentive.id, 0.0), incentive.target)


def _find_by_name(incentives: Iterable[Incentive], name: str) -> Optional[Incentive]:
    for incentive in incentives:
        if incentive.name == name:
            return incentive
    return None


def summarize_tiers(
    incentives: Iterable[Incentive],
    totals: Dict[Any, float],
    config: Optional[TierConfig] = None,
) -> TierSummary:
    """
    Compute the activity, sales tier-2 and sales tier-3 summaries.

    Args:
        incentives: All known incentives
        totals: incentive_id -> running total
        config: Tier mapping; defaults to TierConfig()

    Returns:
        TierSummary. Absent incentives degrade to zero values.
    """
    config = config or TierConfig()
    incentives = list(incentives or [])
    totals = totals or {}

    activity_names = set(config.activity_names)
    activity_target = 0.0
    activity_achieved = 0.0
    for incentive in incentives:
        if incentive.name in activity_names:
            activity_target += incentive.target
            activity_achieved += totals.get(incentive.id, 0.0)

    tier2 = _find_by_name(incentives, config.sales_tier2_name)
    if tier2 is not None:
        tier2_target = tier2.target
        tier2_achieved = totals.get(tier2.id, 0.0)
    else:
        tier2_target = config.sales_tier2_default_target
        tier2_achieved = 0.0

    return TierSummary(
        activity=compute_progress(activity_achieved, activity_target),
        sales_tier2=compute_progress(tier2_achieved, tier2_target),
        # Tier 3 is tier 2's achieved value against a larger target
        sales_tier3=compute_progress(tier2_achieved, config.sales_tier3_target),
    )
