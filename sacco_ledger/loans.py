"""
Loan Management Module

Handles loan origination, approval and rejection, plus display-only payment
estimates and repayment schedules.

Loan lifecycle:
    pending -> active | rejected
    active  -> paid               (repayments bring the balance to zero)
    active  -> overdue -> defaulted (overdue sweep, see collections.py)

The reducing-balance annuity is the authoritative monthly payment; the flat
interest-spread figure is only for coarse previews.
"""

import calendar
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Optional, Union

from .audit import AuditTrail, AuditEventType
from .errors import DuplicateLoanNumber, InvalidTransition, LoanNotFound, ValidationError
from .logging_config import get_logger, log_action
from .members import MemberManager
from .money import ZERO, AmountLike, positive_amount, quantize, to_amount
from .storage import StorageInterface, StorageRecord
from .transactions import Transaction, TransactionLog, TransactionType
from .validation import coerce_enum, optional_text, require_text

DEFAULT_TERM_OPTIONS = (6, 12, 18, 24, 36)
MAX_TERM_MONTHS = 600


class LoanStatus(Enum):
    """Loan lifecycle states"""
    PENDING = "pending"          # Application awaiting a decision
    ACTIVE = "active"            # Approved and disbursed
    REJECTED = "rejected"        # Terminal
    PAID = "paid"                # Terminal, balance is zero
    OVERDUE = "overdue"          # Past due date with a balance
    DEFAULTED = "defaulted"      # Past due beyond the default threshold


# Loans that can still take repayments
REPAYABLE_STATUSES = (LoanStatus.ACTIVE, LoanStatus.OVERDUE, LoanStatus.DEFAULTED)


def add_months(start, months: int):
    """Add months to a date or datetime, handling month-end edge cases"""
    month = start.month - 1 + months
    year = start.year + month // 12
    month = month % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def annuity_monthly_payment(principal: AmountLike, annual_rate: AmountLike, term_months: int) -> Decimal:
    """
    Reducing-balance monthly payment: P * r * (1+r)^n / ((1+r)^n - 1)

    Args:
        principal: Loan principal
        annual_rate: Annual interest rate as a percentage (15 means 15%)
        term_months: Number of monthly payments

    Returns:
        Monthly payment rounded to two places
    """
    principal = to_amount(principal, "principal")
    annual_rate = to_amount(annual_rate, "interest_rate")
    if term_months <= 0:
        raise ValidationError("term_months", "must be greater than zero")

    if annual_rate == ZERO:
        return quantize(principal / term_months)

    monthly_rate = annual_rate / Decimal('1200')
    factor = (Decimal('1') + monthly_rate) ** term_months
    return quantize(principal * monthly_rate * factor / (factor - Decimal('1')))


def flat_monthly_payment(principal: AmountLike, annual_rate: AmountLike, term_months: int) -> Decimal:
    """Coarse preview: principal * (1 + rate/100) / term"""
    principal = to_amount(principal, "principal")
    annual_rate = to_amount(annual_rate, "interest_rate")
    if term_months <= 0:
        raise ValidationError("term_months", "must be greater than zero")
    return quantize(principal * (Decimal('1') + annual_rate / Decimal('100')) / term_months)


@dataclass
class ScheduleEntry:
    """Single entry in a repayment schedule"""
    payment_number: int
    payment_date: Optional[date]
    payment_amount: Decimal
    principal_amount: Decimal
    interest_amount: Decimal
    remaining_balance: Decimal


def repayment_schedule(
    principal: AmountLike,
    annual_rate: AmountLike,
    term_months: int,
    start_date: Optional[date] = None
) -> List[ScheduleEntry]:
    """
    Build the annuity schedule for a loan.

    The final payment absorbs rounding so the remaining balance ends at
    exactly zero. Payment dates are only filled in when a start date is
    given (first payment one month after it).
    """
    principal = to_amount(principal, "principal")
    annual_rate = to_amount(annual_rate, "interest_rate")
    payment = annuity_monthly_payment(principal, annual_rate, term_months)
    monthly_rate = annual_rate / Decimal('1200')

    schedule = []
    remaining = principal
    for number in range(1, term_months + 1):
        interest = quantize(remaining * monthly_rate)
        if number == term_months:
            principal_part = remaining
        else:
            principal_part = min(payment - interest, remaining)
        remaining = remaining - principal_part

        schedule.append(ScheduleEntry(
            payment_number=number,
            payment_date=add_months(start_date, number) if start_date else None,
            payment_amount=principal_part + interest,
            principal_amount=principal_part,
            interest_amount=interest,
            remaining_balance=remaining
        ))

        if remaining == ZERO:
            break

    return schedule


@dataclass
class Loan(StorageRecord):
    """Credit extended to one member"""
    loan_number: str
    member_id: str
    principal: Decimal
    interest_rate: Decimal              # Annual percentage
    term_months: int
    purpose: str
    status: LoanStatus
    balance: Decimal
    disbursement_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    days_past_due: int = 0

    decimal_fields = ('principal', 'interest_rate', 'balance')
    datetime_fields = ('disbursement_date', 'due_date', 'approved_at')
    enum_fields = {'status': LoanStatus}

    def __post_init__(self):
        if self.balance < ZERO or self.balance > self.principal:
            raise ValidationError("balance", "must be between zero and the principal")

    @property
    def monthly_payment(self) -> Decimal:
        return annuity_monthly_payment(self.principal, self.interest_rate, self.term_months)

    @property
    def is_repayable(self) -> bool:
        return self.status in REPAYABLE_STATUSES


class LoanManager:
    """
    Manages loan applications and their approval
    """

    def __init__(
        self,
        storage: StorageInterface,
        member_manager: MemberManager,
        transaction_log: TransactionLog,
        audit_trail: AuditTrail,
        term_options: Iterable[int] = DEFAULT_TERM_OPTIONS,
        enforce_term_options: bool = False
    ):
        self.storage = storage
        self.member_manager = member_manager
        self.transaction_log = transaction_log
        self.audit_trail = audit_trail
        self.term_options = tuple(term_options)
        self.enforce_term_options = enforce_term_options
        self.table_name = "loans"
        self.logger = get_logger("sacco.loans")

    def create_loan(
        self,
        member_id: str,
        principal: AmountLike,
        interest_rate: AmountLike,
        term_months: int,
        purpose: str,
        loan_number: Optional[str] = None,
        balance: Optional[AmountLike] = None,
        created_by: Optional[str] = None
    ) -> Loan:
        """
        Create a loan application in pending status

        Args:
            member_id: Borrowing member
            principal: Amount requested, must be positive
            interest_rate: Annual interest rate percentage, not negative
            term_months: Repayment term
            purpose: What the loan is for
            loan_number: Business key; generated (LN001, LN002, ...) when omitted
            balance: Ignored. A new loan's balance always equals its principal.
            created_by: ID of whoever submitted the application

        Returns:
            Created Loan

        Raises:
            MemberNotFound: If the member does not exist
            DuplicateLoanNumber: If the loan number is taken
            ValidationError: On bad amounts or term, or a frozen/deactivated member
        """
        principal = positive_amount(principal, "principal")
        interest_rate = to_amount(interest_rate, "interest_rate")
        if interest_rate < ZERO:
            raise ValidationError("interest_rate", "must not be negative")
        term_months = self._validate_term(term_months)
        purpose = require_text(purpose, "purpose")

        with self.storage.atomic():
            member = self.member_manager.require_member(member_id)
            self.member_manager.check_can_transact(member)

            loan_number = optional_text(loan_number)
            if loan_number is None:
                loan_number = self._next_loan_number()
            elif self.get_loan_by_number(loan_number):
                raise DuplicateLoanNumber(loan_number)

            now = datetime.now(timezone.utc)
            loan = Loan(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                loan_number=loan_number,
                member_id=member_id,
                principal=principal,
                interest_rate=interest_rate,
                term_months=term_months,
                purpose=purpose,
                status=LoanStatus.PENDING,
                balance=principal
            )
            self.save_loan(loan)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_CREATED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "loan_number": loan_number,
                    "member_id": member_id,
                    "principal": principal,
                    "interest_rate": interest_rate,
                    "term_months": term_months
                },
                user_id=created_by
            )

        log_action(
            self.logger, "info", f"Loan application created: {loan.loan_number}",
            user_id=created_by, action="create_loan", resource=f"loan:{loan.id}",
            extra={"principal": str(principal), "member_id": member_id}
        )
        return loan

    def approve_loan(self, loan_id: str, approver_id: str) -> Loan:
        """
        Approve a pending loan and disburse the principal.

        Stamps the approver, sets the disbursement date to now and the due
        date term_months later, and records one loan_disbursement
        transaction processed by the approver.

        Raises:
            LoanNotFound: If the loan does not exist
            InvalidTransition: If the loan is not pending
        """
        approver_id = require_text(approver_id, "approver_id")

        with self.storage.atomic():
            loan = self._require_pending(loan_id, "approve")

            now = datetime.now(timezone.utc)
            loan.status = LoanStatus.ACTIVE
            loan.approved_by = approver_id
            loan.approved_at = now
            loan.disbursement_date = now
            loan.due_date = add_months(now, loan.term_months)
            loan.updated_at = now
            self.save_loan(loan)

            transaction = self.transaction_log.record(
                TransactionType.LOAN_DISBURSEMENT, loan.principal,
                f"Loan disbursement - {loan.loan_number}", approver_id,
                member_id=loan.member_id, loan_id=loan.id
            )

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_APPROVED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "principal": loan.principal,
                    "due_date": loan.due_date,
                    "transaction_id": transaction.id
                },
                user_id=approver_id
            )

        log_action(
            self.logger, "info", f"Loan approved and disbursed: {loan.loan_number}",
            user_id=approver_id, action="approve_loan", resource=f"loan:{loan.id}"
        )
        return loan

    def reject_loan(self, loan_id: str, approver_id: str) -> Loan:
        """Reject a pending loan. No transaction is recorded."""
        approver_id = require_text(approver_id, "approver_id")

        with self.storage.atomic():
            loan = self._require_pending(loan_id, "reject")

            now = datetime.now(timezone.utc)
            loan.status = LoanStatus.REJECTED
            loan.approved_by = approver_id
            loan.approved_at = now
            loan.updated_at = now
            self.save_loan(loan)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_REJECTED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={"loan_number": loan.loan_number},
                user_id=approver_id
            )

        log_action(
            self.logger, "info", f"Loan rejected: {loan.loan_number}",
            user_id=approver_id, action="reject_loan", resource=f"loan:{loan.id}"
        )
        return loan

    def mark_past_due(
        self,
        loan_id: str,
        new_status: LoanStatus,
        days_past_due: int,
        processed_by: str = "system"
    ) -> Loan:
        """
        Move an active loan to overdue, or an active/overdue loan to defaulted.

        Only the overdue sweep calls this. The balance is not touched and no
        transaction is recorded.
        """
        allowed_from = {
            LoanStatus.OVERDUE: (LoanStatus.ACTIVE,),
            LoanStatus.DEFAULTED: (LoanStatus.ACTIVE, LoanStatus.OVERDUE),
        }
        if new_status not in allowed_from:
            raise ValidationError("status", f"'{new_status.value}' is not a past-due status")

        with self.storage.atomic():
            loan = self.require_loan(loan_id)
            if loan.status not in allowed_from[new_status]:
                raise InvalidTransition("loan", loan_id, loan.status.value, f"mark {new_status.value}")

            old_status = loan.status
            loan.status = new_status
            loan.days_past_due = days_past_due
            loan.updated_at = datetime.now(timezone.utc)
            self.save_loan(loan)

            self.audit_trail.log_event(
                event_type=(AuditEventType.LOAN_OVERDUE if new_status == LoanStatus.OVERDUE
                            else AuditEventType.LOAN_DEFAULTED),
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "old_status": old_status.value,
                    "days_past_due": days_past_due,
                    "balance": loan.balance
                },
                user_id=processed_by
            )

        log_action(
            self.logger, "warning",
            f"Loan {loan.loan_number} {old_status.value} -> {new_status.value}",
            user_id=processed_by, action="mark_past_due", resource=f"loan:{loan.id}",
            extra={"days_past_due": days_past_due}
        )
        return loan

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        data = self.storage.load(self.table_name, loan_id)
        if data:
            return Loan.from_dict(data)
        return None

    def require_loan(self, loan_id: str) -> Loan:
        loan = self.get_loan(loan_id)
        if not loan:
            raise LoanNotFound(loan_id)
        return loan

    def get_loan_by_number(self, loan_number: str) -> Optional[Loan]:
        found = self.storage.find(self.table_name, {'loan_number': loan_number})
        if found:
            return Loan.from_dict(found[0])
        return None

    def list_loans(
        self,
        status: Optional[Union[LoanStatus, str]] = None,
        member_id: Optional[str] = None
    ) -> List[Loan]:
        """List loans, newest application first"""
        filters = {}
        if status:
            filters['status'] = coerce_enum(LoanStatus, status, "status").value
        if member_id:
            filters['member_id'] = member_id

        loans = [Loan.from_dict(d) for d in self.storage.find(self.table_name, filters)]
        loans.sort(key=lambda l: l.created_at, reverse=True)
        return loans

    def get_schedule(self, loan_id: str) -> List[ScheduleEntry]:
        """Annuity schedule for a loan, dated from disbursement once approved"""
        loan = self.require_loan(loan_id)
        start = loan.disbursement_date.date() if loan.disbursement_date else None
        return repayment_schedule(loan.principal, loan.interest_rate, loan.term_months, start)

    def get_disbursement(self, loan_id: str) -> Optional[Transaction]:
        found = self.transaction_log.list_transactions(
            loan_id=loan_id, transaction_type=TransactionType.LOAN_DISBURSEMENT
        )
        return found[0] if found else None

    def save_loan(self, loan: Loan) -> None:
        self.storage.save(self.table_name, loan.id, loan.to_dict())

    def _require_pending(self, loan_id: str, action: str) -> Loan:
        loan = self.require_loan(loan_id)
        if loan.status != LoanStatus.PENDING:
            raise InvalidTransition("loan", loan_id, loan.status.value, action)
        return loan

    def _validate_term(self, term_months) -> int:
        if isinstance(term_months, bool):
            raise ValidationError("term_months", "must be a whole number of months")
        try:
            term_months = int(term_months)
        except (TypeError, ValueError):
            raise ValidationError("term_months", "must be a whole number of months")
        if term_months <= 0:
            raise ValidationError("term_months", "must be greater than zero")
        if term_months > MAX_TERM_MONTHS:
            raise ValidationError("term_months", f"must not exceed {MAX_TERM_MONTHS} months")
        if self.enforce_term_options and term_months not in self.term_options:
            allowed = ", ".join(str(t) for t in self.term_options)
            raise ValidationError("term_months", f"must be one of: {allowed}")
        return term_months

    def _next_loan_number(self) -> str:
        highest = 0
        for data in self.storage.load_all(self.table_name):
            suffix = data['loan_number'][2:]
            if data['loan_number'].startswith("LN") and suffix.isdigit():
                highest = max(highest, int(suffix))
        return f"LN{highest + 1:03d}"
