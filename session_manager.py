"""
Session Manager for the Incentive Dashboard
===========================================

Bridges the in-memory dashboard state with the backing store.
Loads data on startup, applies contributions optimistically, confirms or
rolls them back once the write settles, and merges realtime change events.
"""

import logging
import threading
from typing import Any, Dict, List, Optional

from aggregation import (
    aggregate_contributions,
    apply_contribution,
    contains_contribution,
    recent_activity,
    remove_contribution,
    replace_contribution,
)
from exceptions import StoreError, ValidationError
from models import (
    CONTRIBUTIONS_TABLE,
    INCENTIVES_TABLE,
    NOTE_MAX_LENGTH,
    ChangeEvent,
    ChangeType,
    Contribution,
    DashboardState,
    Incentive,
    Progress,
    SubmitResult,
    TierConfig,
    TierSummary,
    new_pending_id,
    utc_now,
)
from repository import IncentiveRepository
from tiers import incentive_progress, summarize_tiers
from utils import parse_amount, sanitize_input

logger = logging.getLogger(__name__)

INVALID_AMOUNT_MESSAGE = "Please enter a non-zero number."
MISSING_NAME_MESSAGE = "Please enter a name for the incentive."
INVALID_TARGET_MESSAGE = "Target must be a positive number."
LOAD_FAILED_MESSAGE = "Failed to load data"
NOTE_TOO_LONG_MESSAGE = f"Notes are limited to {NOTE_MAX_LENGTH} characters."


def _validate_amount(raw_amount: Any) -> float:
    value = parse_amount(raw_amount)
    if value is None or value == 0:
        raise ValidationError(INVALID_AMOUNT_MESSAGE, field="amount", value=raw_amount)
    return value


def _validate_note(note: Optional[str]) -> Optional[str]:
    note = str(note).strip() if note else ""
    if len(note) > NOTE_MAX_LENGTH:
        raise ValidationError(NOTE_TOO_LONG_MESSAGE, field="note", value=len(note))
    return note or None


def _validate_incentive(name: Optional[str], raw_target: Any):
    name = sanitize_input(name, max_length=200)
    if not name:
        raise ValidationError(MISSING_NAME_MESSAGE, field="name")
    target = parse_amount(raw_target)
    if target is None or target <= 0:
        raise ValidationError(INVALID_TARGET_MESSAGE, field="target", value=raw_target)
    return name, target


class SessionManager:
    """
    Owns dashboard state and keeps it in sync with the repository.

    Live change events arrive on the realtime listener's thread, so every
    state mutation runs under one reentrant lock.
    """

    def __init__(
        self,
        repo: IncentiveRepository,
        tier_config: Optional[TierConfig] = None,
        state: Optional[DashboardState] = None,
    ):
        self.repo = repo
        self.tier_config = tier_config or TierConfig()
        self.state = state or DashboardState(demo_mode=repo.demo_mode)
        # Optimistic placeholders whose write has not settled, by temporary id
        self._pending: Dict[str, Contribution] = {}
        self._subscription = None
        self._lock = threading.RLock()
        # Message of the last failed read, cleared by the next good one
        self._load_error: Optional[str] = None

    # ========================================================================
    # Loading
    # ========================================================================

    def load(self, clear_error: bool = True) -> bool:
        """
        Fetch incentives and contributions and recompute all derived state.

        On failure the previous state is kept, the error is logged and
        exposed on state.error. Returns True on success.

        Args:
            clear_error: Drop any error currently shown. Refetches caused
                by change events pass False so a failed write's message
                stays visible; a stale read error is still cleared.
        """
        with self._lock:
            self.state.loading = True
            if clear_error or (self._load_error is not None and self.state.error == self._load_error):
                self.state.error = None
            try:
                incentives = self.repo.get_all_incentives()
                contributions = self.repo.get_all_contributions()
            except StoreError as e:
                logger.error(f"Failed to load dashboard data: {e.message}")
                self._load_error = e.message or LOAD_FAILED_MESSAGE
                self.state.error = self._load_error
                return False
            finally:
                self.state.loading = False

            self._load_error = None
            totals, logs = aggregate_contributions(contributions)
            # Writes still in flight stay visible across a refetch
            for placeholder in self._pending.values():
                apply_contribution(totals, logs, placeholder)

            self.state.incentives = incentives
            self.state.totals = totals
            self.state.logs = logs
        logger.info(f"Loaded {len(incentives)} incentives and {len(contributions)} contributions")
        return True

    def reload(self) -> bool:
        """Discard derived state and rebuild it from the store."""
        return self.load()

    # ========================================================================
    # Realtime
    # ========================================================================

    def start_realtime(self) -> bool:
        """
        Subscribe handle_change to the repository's change feed.

        Returns False, with state.error set, if the feed could not be opened.
        """
        if self._subscription is not None:
            return True
        try:
            self._subscription = self.repo.subscribe(self.handle_change)
        except StoreError as e:
            logger.error(f"Realtime subscription failed: {e.message}")
            self.state.error = e.message
            return False
        return True

    def stop(self) -> None:
        """Unsubscribe from the change feed."""
        if self._subscription is not None:
            subscription, self._subscription = self._subscription, None
            self.repo.unsubscribe(subscription)

    def handle_change(self, event: ChangeEvent) -> None:
        """Merge a pushed insert, or refetch on delete."""
        with self._lock:
            if event.table == CONTRIBUTIONS_TABLE:
                if event.event_type == ChangeType.INSERT:
                    self._ingest_contribution(Contribution.from_row(event.record))
                elif event.event_type == ChangeType.DELETE:
                    logger.info(f"Contribution {event.record.get('id')} deleted, reloading")
                    self.load(clear_error=False)
            elif event.table == INCENTIVES_TABLE and event.event_type == ChangeType.INSERT:
                self._ingest_incentive(Incentive.from_row(event.record))

    def _ingest_contribution(self, contribution: Contribution) -> None:
        if contribution.id is None or contribution.incentive_id is None:
            logger.warning("Ignoring contribution event without id or incentive_id")
            return
        if contains_contribution(self.state.logs, contribution.id):
            # Echo of a write this session already confirmed
            logger.debug(f"Contribution {contribution.id} already applied")
            return
        apply_contribution(self.state.totals, self.state.logs, contribution)

    def _ingest_incentive(self, incentive: Incentive) -> None:
        if incentive.id is None or self.state.get_incentive(incentive.id) is not None:
            return
        self.state.incentives.append(incentive)

    # ========================================================================
    # Writes
    # ========================================================================

    def submit_contribution(
        self,
        incentive,
        raw_amount: Any,
        note: Optional[str] = None,
        is_deduction: bool = False,
    ) -> SubmitResult:
        """
        Record an addition or deduction against an incentive.

        The signed amount is applied to totals and logs immediately, then
        written to the store. On success the placeholder is swapped for the
        stored row; on failure it is removed and the error is surfaced.

        Args:
            incentive: Incentive (or its id)
            raw_amount: User input; must parse to a finite non-zero number
            note: Optional free text, at most NOTE_MAX_LENGTH characters
            is_deduction: Record the amount as negative

        Returns:
            SubmitResult with status confirmed, rolled_back or invalid
        """
        incentive_id = getattr(incentive, "id", incentive)
        with self._lock:
            try:
                value = _validate_amount(raw_amount)
                note = _validate_note(note)
            except ValidationError as e:
                self.state.error = e.message
                return SubmitResult(status="invalid", message=e.message)

            delta = -abs(value) if is_deduction else abs(value)
            placeholder = Contribution(
                id=new_pending_id(),
                incentive_id=incentive_id,
                amount=delta,
                note=note,
                created_at=utc_now(),
            )
            apply_contribution(self.state.totals, self.state.logs, placeholder)
            self._pending[placeholder.id] = placeholder
            self.state.error = None

            try:
                confirmed = self.repo.insert_contribution(incentive_id, delta, note)
            except StoreError as e:
                self._pending.pop(placeholder.id, None)
                remove_contribution(self.state.totals, self.state.logs, placeholder.id)
                self.state.error = e.message
                logger.error(f"Contribution to {incentive_id} rolled back: {e.message}")
                return SubmitResult(status="rolled_back", message=e.message, contribution=placeholder)

            self._pending.pop(placeholder.id, None)
            self._confirm(placeholder, confirmed)
        logger.info(f"Contribution {confirmed.id} of {delta} recorded for incentive {incentive_id}")
        return SubmitResult(status="confirmed", contribution=confirmed)

    def _confirm(self, placeholder: Contribution, confirmed: Contribution) -> None:
        totals, logs = self.state.totals, self.state.logs
        if contains_contribution(logs, confirmed.id):
            # The realtime echo arrived first and is already counted
            remove_contribution(totals, logs, placeholder.id)
            return
        if confirmed.amount == placeholder.amount and replace_contribution(logs, placeholder.id, confirmed):
            return
        remove_contribution(totals, logs, placeholder.id)
        apply_contribution(totals, logs, confirmed)

    def add_incentive(self, name: str, raw_target: Any) -> SubmitResult:
        """
        Validate and create a new incentive.

        Returns:
            SubmitResult with status confirmed, invalid, or failed when the
            store rejects the insert
        """
        with self._lock:
            self.state.error = None
            try:
                name, target = _validate_incentive(name, raw_target)
            except ValidationError as e:
                self.state.error = e.message
                return SubmitResult(status="invalid", message=e.message)

            try:
                incentive = self.repo.insert_incentive(name, target)
            except StoreError as e:
                self.state.error = e.message
                logger.error(f"Failed to create incentive {name!r}: {e.message}")
                return SubmitResult(status="failed", message=e.message)

            self._ingest_incentive(incentive)
        logger.info(f"Created incentive {incentive.id} ({name}) with target {target}")
        return SubmitResult(status="confirmed", incentive=incentive)

    def clear_error(self) -> None:
        self.state.error = None

    # ========================================================================
    # Derived views
    # ========================================================================

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def progress_for(self, incentive: Incentive) -> Progress:
        return incentive_progress(incentive, self.state.totals)

    def tier_summary(self) -> TierSummary:
        return summarize_tiers(self.state.incentives, self.state.totals, self.tier_config)

    def recent_activity(self, limit: Optional[int] = 20) -> List[Contribution]:
        return recent_activity(self.state.logs, limit)
