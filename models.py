"""Data models and type definitions for the Incentive Tracker."""

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

# Constants
INCENTIVES_TABLE = "incentives"
CONTRIBUTIONS_TABLE = "contributions"
INCENTIVE_COLUMNS = "id, name, target, created_at"
CONTRIBUTION_COLUMNS = "id, incentive_id, amount, note, created_at"

# Local optimistic records carry this id prefix until the store confirms them
PENDING_ID_PREFIX = "tmp-"
NOTE_MAX_LENGTH = 1000

SALES_TIER2_NAME = "Sales Incentive – Tier 2"
SALES_TIER2_DEFAULT_TARGET = 100000.0
SALES_TIER3_TARGET = 250000.0
ACTIVITY_TIER_NAMES = ("New Jobs", "New Logos", "Customer Upsells")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp from the store into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def coerce_amount(value: Any) -> float:
    """Numeric amount, or 0.0 for missing and malformed values."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return number


def new_pending_id() -> str:
    return f"{PENDING_ID_PREFIX}{uuid.uuid4().hex}"


def is_pending_id(record_id: Any) -> bool:
    return isinstance(record_id, str) and record_id.startswith(PENDING_ID_PREFIX)


@dataclass
class Incentive:
    """A named target metric with a numeric goal."""
    id: Any
    name: str
    target: float
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Incentive":
        return cls(
            id=row.get("id"),
            name=row.get("name") or "",
            target=coerce_amount(row.get("target")),
            created_at=parse_timestamp(row.get("created_at")),
        )


@dataclass
class Contribution:
    """A single signed delta recorded against one incentive."""
    id: Any
    incentive_id: Any
    amount: float
    note: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        """True for a local placeholder that the store has not confirmed."""
        return is_pending_id(self.id)

    @property
    def sort_key(self) -> datetime:
        return self.created_at or _EPOCH

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Contribution":
        return cls(
            id=row.get("id"),
            incentive_id=row.get("incentive_id"),
            amount=coerce_amount(row.get("amount")),
            note=row.get("note"),
            created_at=parse_timestamp(row.get("created_at")),
        )

    def to_insert_payload(self) -> Dict[str, Any]:
        """Fields written to the store; id and created_at are server-assigned."""
        return {"incentive_id": self.incentive_id, "amount": self.amount, "note": self.note}


class ChangeType(str, Enum):
    """Row-level events delivered by the change feed"""
    INSERT = "INSERT"
    DELETE = "DELETE"


@dataclass
class ChangeEvent:
    """A normalized realtime notification."""
    event_type: ChangeType
    table: str
    record: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> Optional["ChangeEvent"]:
        """
        Build an event from a postgres_changes payload.

        Accepts the realtime-py shape ({"data": {"type", "table", "record",
        "old_record"}}) and the flat shape ({"eventType", "table", "new",
        "old"}). Returns None for event types this layer does not handle.
        """
        data = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        raw_type = data.get("type") or data.get("eventType") or ""
        try:
            event_type = ChangeType(str(raw_type).upper())
        except ValueError:
            return None

        if event_type == ChangeType.INSERT:
            record = data.get("record") or data.get("new") or {}
        else:
            record = data.get("old_record") or data.get("old") or {}

        return cls(event_type=event_type, table=data.get("table", ""), record=dict(record))


@dataclass
class Progress:
    """Achieved vs. target for one card or tier."""
    achieved: float
    target: float
    percent: float
    remaining: float
    exceeded: bool


@dataclass
class TierConfig:
    """Which incentives count toward which tier."""
    activity_names: tuple = ACTIVITY_TIER_NAMES
    sales_tier2_name: str = SALES_TIER2_NAME
    sales_tier2_default_target: float = SALES_TIER2_DEFAULT_TARGET
    sales_tier3_target: float = SALES_TIER3_TARGET


@dataclass
class TierSummary:
    """Cross-cutting progress summaries."""
    activity: Progress
    sales_tier2: Progress
    sales_tier3: Progress


@dataclass
class SubmitResult:
    """Result from a user-initiated write."""
    status: str  # confirmed, rolled_back, invalid, failed (add_incentive store error)
    message: Optional[str] = None
    contribution: Optional[Contribution] = None
    incentive: Optional[Incentive] = None

    @property
    def ok(self) -> bool:
        return self.status == "confirmed"


@dataclass
class DashboardState:
    """In-memory state read by the presentation layer."""
    incentives: List[Incentive] = field(default_factory=list)
    totals: Dict[Any, float] = field(default_factory=dict)
    logs: Dict[Any, List[Contribution]] = field(default_factory=dict)
    loading: bool = True
    error: Optional[str] = None
    demo_mode: bool = False

    def get_incentive(self, incentive_id: Any) -> Optional[Incentive]:
        for incentive in self.incentives:
            if incentive.id == incentive_id:
                return incentive
        return None

    def total_for(self, incentive_id: Any) -> float:
        return self.totals.get(incentive_id, 0.0)
