"""
Tabular views and CSV export for the Incentive Dashboard.
"""

import logging
from typing import Any, Dict, List, Optional

import pandas as pd

from aggregation import recent_activity
from models import Contribution, Incentive, TierSummary
from tiers import incentive_progress
from utils import format_number, format_percent

logger = logging.getLogger(__name__)

ACTIVITY_COLUMNS = ["created_at", "incentive", "amount", "note", "pending"]
SUMMARY_COLUMNS = [
    "incentive_id", "name", "target", "total", "percent", "remaining", "exceeded",
    "progress_label", "percent_label",
]
TIER_COLUMNS = ["tier", "achieved", "target", "percent", "remaining", "progress_label", "percent_label"]


def _progress_labels(progress) -> Dict[str, str]:
    # "1,250 / 5,000" and "25%" as shown on the cards
    return {
        "progress_label": f"{format_number(progress.achieved)} / {format_number(progress.target)}",
        "percent_label": format_percent(progress.percent),
    }


def incentive_summary_frame(incentives: List[Incentive], totals: Dict[Any, float]) -> pd.DataFrame:
    """One row per incentive card, in display order."""
    rows = []
    for incentive in incentives:
        progress = incentive_progress(incentive, totals)
        rows.append({
            "incentive_id": incentive.id,
            "name": incentive.name,
            "target": incentive.target,
            "total": progress.achieved,
            "percent": progress.percent,
            "remaining": progress.remaining,
            "exceeded": progress.exceeded,
            **_progress_labels(progress),
        })
    return pd.DataFrame(rows, columns=SUMMARY_COLUMNS)


def tier_summary_frame(summary: TierSummary) -> pd.DataFrame:
    """Activity, sales tier-2 and sales tier-3 as rows."""
    tiers = [
        ("Activity", summary.activity),
        ("Sales Tier 2", summary.sales_tier2),
        ("Sales Tier 3", summary.sales_tier3),
    ]
    return pd.DataFrame(
        [
            {
                "tier": label,
                "achieved": p.achieved,
                "target": p.target,
                "percent": p.percent,
                "remaining": p.remaining,
                **_progress_labels(p),
            }
            for label, p in tiers
        ],
        columns=TIER_COLUMNS,
    )


def activity_log_frame(
    logs: Dict[Any, List[Contribution]],
    incentives: List[Incentive],
    limit: Optional[int] = 20,
) -> pd.DataFrame:
    """
    Recent activity across all incentives, newest first.

    Args:
        logs: incentive_id -> contributions (newest first)
        incentives: Used to resolve incentive names
        limit: Max rows; None for the full history

    Returns:
        DataFrame with ACTIVITY_COLUMNS
    """
    names = {incentive.id: incentive.name for incentive in incentives}
    rows = [
        {
            "created_at": entry.created_at,
            "incentive": names.get(entry.incentive_id, str(entry.incentive_id)),
            "amount": entry.amount,
            "note": entry.note or "",
            "pending": entry.is_pending,
        }
        for entry in recent_activity(logs, limit)
    ]
    return pd.DataFrame(rows, columns=ACTIVITY_COLUMNS)


def export_to_csv(df: pd.DataFrame, filename: str = "export.csv") -> bytes:
    """
    Export DataFrame to CSV bytes.

    Args:
        df: DataFrame to export
        filename: Filename for the export (logged only)

    Returns:
        CSV content as bytes
    """
    if df.empty:
        logger.warning(f"Empty DataFrame for export: {filename}")
    else:
        logger.info(f"Exported {len(df)} rows to {filename}")
    return df.to_csv(index=False).encode('utf-8')
