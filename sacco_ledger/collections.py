"""
Collections Module

Time-based loan status changes. Repayments never demote a loan, so an
explicit sweep compares each loan's due date with the clock:

    active            -> overdue    once the due date has passed
    active | overdue  -> defaulted  once more than default_after_days past due

The sweep changes status only. Balances are untouched and no ledger
transaction is written; each change is audited.
"""

import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .errors import InvalidTransition
from .loans import LoanManager, LoanStatus
from .logging_config import get_logger, log_action


class OverdueSweep:
    """Flags overdue and defaulted loans"""

    def __init__(self, loan_manager: LoanManager, default_after_days: int = 90):
        self.loan_manager = loan_manager
        self.default_after_days = default_after_days
        self.logger = get_logger("sacco.collections")

    def run(self, as_of: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Sweep all active and overdue loans

        Args:
            as_of: Reference time (default now). Naive datetimes are taken as UTC.

        Returns:
            Counts of loans checked, newly overdue, newly defaulted, skipped
            because their status changed mid-sweep, and failures
        """
        as_of = as_of or datetime.now(timezone.utc)
        if as_of.tzinfo is None:
            as_of = as_of.replace(tzinfo=timezone.utc)

        results = {"loans_checked": 0, "marked_overdue": 0, "marked_defaulted": 0,
                   "skipped": 0, "errors": []}

        loans = (self.loan_manager.list_loans(status=LoanStatus.ACTIVE) +
                 self.loan_manager.list_loans(status=LoanStatus.OVERDUE))

        for loan in loans:
            results["loans_checked"] += 1
            if loan.due_date is None or loan.due_date >= as_of:
                continue

            days_past_due = (as_of - loan.due_date).days
            try:
                if days_past_due > self.default_after_days:
                    self.loan_manager.mark_past_due(loan.id, LoanStatus.DEFAULTED, days_past_due)
                    results["marked_defaulted"] += 1
                elif loan.status == LoanStatus.ACTIVE:
                    self.loan_manager.mark_past_due(loan.id, LoanStatus.OVERDUE, days_past_due)
                    results["marked_overdue"] += 1
            except InvalidTransition as e:
                # Repaid or otherwise moved on since the listing
                self.logger.info(f"Overdue sweep skipped loan {loan.loan_number}: {e}")
                results["skipped"] += 1
            except Exception as e:
                # One bad loan must not stop the sweep; it is retried next run
                self.logger.error(f"Overdue sweep failed for loan {loan.loan_number}: {e}")
                results["errors"].append({"loan_id": loan.id, "error": str(e)})

        log_action(
            self.logger, "info", "Overdue sweep completed",
            user_id="system", action="overdue_sweep",
            extra={
                "as_of": as_of.isoformat(),
                "loans_checked": results["loans_checked"],
                "marked_overdue": results["marked_overdue"],
                "marked_defaulted": results["marked_defaulted"],
                "skipped": results["skipped"],
                "errors": len(results["errors"])
            }
        )
        return results


class SweepScheduler:
    """Runs an OverdueSweep on a background timer thread"""

    def __init__(self, sweep: OverdueSweep, interval_seconds: int = 3600):
        self.sweep = sweep
        self.interval_seconds = interval_seconds
        self.running = False
        self.last_result: Optional[Dict[str, Any]] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.logger = get_logger("sacco.collections")

    def run_once(self) -> Dict[str, Any]:
        self.last_result = self.sweep.run()
        return self.last_result

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception as e:
                self.logger.error(f"Overdue sweep run failed: {e}")
            self._stop_event.wait(self.interval_seconds)

    def start(self) -> None:
        """Start sweeping; the first run happens immediately"""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="overdue-sweep")
        self._thread.daemon = True
        self.running = True
        self._thread.start()
        self.logger.info(f"Overdue sweep scheduler started (every {self.interval_seconds}s)")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the scheduler and wait for the current run to finish"""
        if not self.running:
            return
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
        self._thread = None
        self.running = False
        self.logger.info("Overdue sweep scheduler stopped")
