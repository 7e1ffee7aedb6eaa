"""
Contribution Aggregation
========================

Turns contribution records into per-incentive running totals and
newest-first activity logs. The full recompute and the incremental
apply/remove helpers keep the same invariants:

- totals[incentive_id] == sum of amounts in logs[incentive_id]
- logs[incentive_id] is sorted by created_at descending
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from models import Contribution

logger = logging.getLogger(__name__)

Totals = Dict[Any, float]
Logs = Dict[Any, List[Contribution]]


def _to_contribution(record: Union[Contribution, Dict[str, Any]]) -> Optional[Contribution]:
    if isinstance(record, Contribution):
        return record
    if isinstance(record, dict):
        return Contribution.from_row(record)
    return None


def aggregate_contributions(
    records: Iterable[Union[Contribution, Dict[str, Any]]]
) -> Tuple[Totals, Logs]:
    """
    Recompute totals and logs from the full contribution list.

    Missing or malformed amounts count as zero. Records without an
    incentive_id are skipped.

    Returns:
        (totals, logs) tuple
    """
    totals: Totals = {}
    logs: Logs = {}
    skipped = 0

    for record in records or []:
        contribution = _to_contribution(record)
        if contribution is None or contribution.incentive_id is None:
            skipped += 1
            continue
        key = contribution.incentive_id
        totals[key] = totals.get(key, 0.0) + contribution.amount
        logs.setdefault(key, []).append(contribution)

    for entries in logs.values():
        entries.sort(key=lambda c: c.sort_key, reverse=True)

    if skipped:
        logger.debug(f"Skipped {skipped} contribution records without an incentive")

    return totals, logs


def apply_contribution(totals: Totals, logs: Logs, contribution: Contribution) -> None:
    """Add a contribution's amount to its total and insert it into the log."""
    key = contribution.incentive_id
    totals[key] = totals.get(key, 0.0) + contribution.amount

    entries = logs.setdefault(key, [])
    # Newest first; a new record usually lands at index 0
    position = 0
    while position < len(entries) and entries[position].sort_key > contribution.sort_key:
        position += 1
    entries.insert(position, contribution)


def remove_contribution(totals: Totals, logs: Logs, contribution_id: Any) -> Optional[Contribution]:
    """
    Remove a contribution by id and reverse its amount.

    Returns the removed contribution, or None if it was not present.
    """
    for key, entries in logs.items():
        for index, entry in enumerate(entries):
            if entry.id == contribution_id:
                del entries[index]
                totals[key] = totals.get(key, 0.0) - entry.amount
                return entry
    return None


def replace_contribution(logs: Logs, old_id: Any, replacement: Contribution) -> bool:
    """
    Swap a log entry for its confirmed version.

    The amount is assumed unchanged, so totals are left alone. Returns
    False if old_id was not found.
    """
    entries = logs.get(replacement.incentive_id, [])
    for index, entry in enumerate(entries):
        if entry.id == old_id:
            del entries[index]
            position = 0
            while position < len(entries) and entries[position].sort_key > replacement.sort_key:
                position += 1
            entries.insert(position, replacement)
            return True
    return False


def contains_contribution(logs: Logs, contribution_id: Any) -> bool:
    return any(entry.id == contribution_id for entries in logs.values() for entry in entries)


def recent_activity(logs: Logs, limit: Optional[int] = 20) -> List[Contribution]:
    """Flatten all logs into one newest-first feed."""
    feed = [entry for entries in logs.values() for entry in entries]
    feed.sort(key=lambda c: c.sort_key, reverse=True)
    if limit is not None:
        feed = feed[:limit]
    return feed
