"""
Demo Data Generator
===================

Sample incentives and contributions for demo mode (no backend keys).

Creates:
- the standard sample incentives (Q4 Sales, New Logos, Customer Upsells)
- an activity incentive and the sales tier-2 incentive so every tier
  summary has data behind it
- a few contributions spread over the last two weeks, including a
  deduction
"""

from datetime import timedelta
from typing import List, Tuple

from models import SALES_TIER2_DEFAULT_TARGET, SALES_TIER2_NAME, utc_now

DEMO_INCENTIVES: List[Tuple[str, float]] = [
    ("Q4 Sales", 40),
    ("New Logos", 25),
    ("Customer Upsells", 15),
    ("New Jobs", 30),
    (SALES_TIER2_NAME, SALES_TIER2_DEFAULT_TARGET),
]

# (incentive name, amount, note, days ago)
DEMO_CONTRIBUTIONS: List[Tuple[str, float, str, int]] = [
    ("Q4 Sales", 12, "Enterprise renewal", 13),
    ("Q4 Sales", 6, "Two mid-market deals", 6),
    ("New Logos", 4, "Referral wins", 9),
    ("New Logos", 3, None, 2),
    ("Customer Upsells", 5, "Seat expansion", 4),
    ("New Jobs", 9, "Spring installs", 8),
    ("New Jobs", -1, "Cancelled job", 1),
    (SALES_TIER2_NAME, 28500, "March invoices", 10),
    (SALES_TIER2_NAME, 17250, "April invoices", 3),
]


def seed_demo_store(repo) -> None:
    """Insert demo incentives and contributions without notifying subscribers."""
    now = utc_now()
    ids = {}
    for offset, (name, target) in enumerate(DEMO_INCENTIVES):
        # Keep creation order stable for the ascending sort
        created_at = (now - timedelta(days=30) + timedelta(seconds=offset)).isoformat()
        incentive = repo.insert_incentive(name, target, created_at=created_at, notify=False)
        ids[name] = incentive.id

    for name, amount, note, days_ago in DEMO_CONTRIBUTIONS:
        created_at = (now - timedelta(days=days_ago)).isoformat()
        repo.insert_contribution(ids[name], amount, note, created_at=created_at, notify=False)
