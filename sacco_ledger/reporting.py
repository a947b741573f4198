"""
Dashboard Reporting Module

Read-only aggregates recomputed from the full collections on every call.
"""

from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

from .deposits import DepositManager, DepositStatus
from .loans import LoanManager, LoanStatus
from .members import MemberManager
from .money import ZERO
from .savings import SavingsManager
from .transactions import TransactionLog, TransactionType

RATE_QUANTUM = Decimal('0.0001')


@dataclass
class DashboardStats:
    """Snapshot of the headline numbers"""
    total_members: int
    active_members: int
    total_savings: Decimal
    active_loan_balance: Decimal
    active_loan_count: int
    pending_loan_count: int
    pending_deposit_count: int
    default_rate: Decimal               # defaulted loans / all loans, 0..1
    monthly_revenue: Decimal            # loan payments received this calendar month
    currency: str
    generated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Decimal):
                data[key] = str(value)
            elif isinstance(value, datetime):
                data[key] = value.isoformat()
        return data


class ReportingEngine:
    """Computes dashboard aggregates"""

    def __init__(
        self,
        member_manager: MemberManager,
        savings_manager: SavingsManager,
        loan_manager: LoanManager,
        deposit_manager: DepositManager,
        transaction_log: TransactionLog,
        currency_label: str = "UGX"
    ):
        self.member_manager = member_manager
        self.savings_manager = savings_manager
        self.loan_manager = loan_manager
        self.deposit_manager = deposit_manager
        self.transaction_log = transaction_log
        self.currency_label = currency_label

    def dashboard_stats(self, as_of: Optional[datetime] = None) -> DashboardStats:
        """
        Fold over members, savings, loans and transactions

        Args:
            as_of: Reference time for the monthly revenue window (default now)
        """
        as_of = as_of or datetime.now(timezone.utc)
        if as_of.tzinfo is None:
            as_of = as_of.replace(tzinfo=timezone.utc)

        members = self.member_manager.list_members()
        loans = self.loan_manager.list_loans()

        active_loans = [l for l in loans if l.status == LoanStatus.ACTIVE]
        defaulted = sum(1 for l in loans if l.status == LoanStatus.DEFAULTED)
        default_rate = Decimal('0')
        if loans:
            default_rate = (Decimal(defaulted) / Decimal(len(loans))).quantize(
                RATE_QUANTUM, rounding=ROUND_HALF_UP
            )

        monthly_revenue = ZERO
        for transaction in self.transaction_log.list_transactions(
                transaction_type=TransactionType.LOAN_PAYMENT):
            when = transaction.transaction_date
            if when.year == as_of.year and when.month == as_of.month:
                monthly_revenue += transaction.amount

        return DashboardStats(
            total_members=len(members),
            active_members=sum(1 for m in members if m.is_active),
            total_savings=self.savings_manager.total_balance(),
            active_loan_balance=sum((l.balance for l in active_loans), ZERO),
            active_loan_count=len(active_loans),
            pending_loan_count=sum(1 for l in loans if l.status == LoanStatus.PENDING),
            pending_deposit_count=len(self.deposit_manager.list_deposits(status=DepositStatus.PENDING)),
            default_rate=default_rate,
            monthly_revenue=monthly_revenue,
            currency=self.currency_label,
            generated_at=datetime.now(timezone.utc)
        )
