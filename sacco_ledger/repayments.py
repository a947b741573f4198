"""
Loan Repayment Module

Applies payments to loans. One repayment is one immutable record, one
balance reduction and one loan_payment transaction, written together.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from .audit import AuditTrail, AuditEventType
from .errors import InvalidTransition, RepaymentNotFound
from .logging_config import get_logger, log_action
from .loans import LoanManager, LoanStatus
from .money import ZERO, AmountLike, positive_amount
from .storage import StorageInterface, StorageRecord
from .transactions import PaymentMethod, TransactionLog, TransactionType
from .validation import coerce_enum, optional_text, require_text


@dataclass
class Repayment(StorageRecord):
    """A payment applied to a loan"""
    loan_id: str
    amount: Decimal
    payment_method: PaymentMethod
    processed_by: str
    payment_date: datetime
    balance_after: Decimal
    notes: Optional[str] = None
    transaction_id: Optional[str] = None

    decimal_fields = ('amount', 'balance_after')
    datetime_fields = ('payment_date',)
    enum_fields = {'payment_method': PaymentMethod}


class RepaymentManager:
    """
    Records repayments against active, overdue or defaulted loans
    """

    def __init__(
        self,
        storage: StorageInterface,
        loan_manager: LoanManager,
        transaction_log: TransactionLog,
        audit_trail: AuditTrail
    ):
        self.storage = storage
        self.loan_manager = loan_manager
        self.transaction_log = transaction_log
        self.audit_trail = audit_trail
        self.table_name = "repayments"
        self.logger = get_logger("sacco.repayments")

    def record_repayment(
        self,
        loan_id: str,
        amount: AmountLike,
        method: Union[PaymentMethod, str],
        processor_id: str,
        notes: Optional[str] = None
    ) -> Repayment:
        """
        Apply a payment to a loan

        The new balance is max(0, balance - amount); an overpayment is
        accepted and the excess is not tracked. A balance of exactly zero
        marks the loan paid.

        Args:
            loan_id: Loan being repaid
            amount: Payment amount, must be positive
            method: cash, bank_transfer or mobile_money
            processor_id: Staff member taking the payment
            notes: Optional free text

        Returns:
            Created Repayment

        Raises:
            LoanNotFound: If the loan does not exist
            InvalidTransition: If the loan is not active, overdue or defaulted
            ValidationError: On a bad amount or method
        """
        amount = positive_amount(amount)
        method = coerce_enum(PaymentMethod, method, "method")
        processor_id = require_text(processor_id, "processor_id")

        with self.storage.atomic():
            loan = self.loan_manager.require_loan(loan_id)
            if not loan.is_repayable:
                raise InvalidTransition("loan", loan_id, loan.status.value, "record repayment on")

            previous_balance = loan.balance
            new_balance = max(ZERO, previous_balance - amount)

            now = datetime.now(timezone.utc)
            loan.balance = new_balance
            if new_balance == ZERO:
                loan.status = LoanStatus.PAID
            loan.updated_at = now
            self.loan_manager.save_loan(loan)

            transaction = self.transaction_log.record(
                TransactionType.LOAN_PAYMENT, amount,
                f"Loan repayment - {loan.loan_number} ({method.value})", processor_id,
                member_id=loan.member_id, loan_id=loan.id
            )

            repayment = Repayment(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                loan_id=loan.id,
                amount=amount,
                payment_method=method,
                processed_by=processor_id,
                payment_date=now,
                balance_after=new_balance,
                notes=optional_text(notes),
                transaction_id=transaction.id
            )
            self.storage.save(self.table_name, repayment.id, repayment.to_dict())

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_REPAYMENT_RECORDED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "repayment_id": repayment.id,
                    "amount": amount,
                    "previous_balance": previous_balance,
                    "new_balance": new_balance,
                    "transaction_id": transaction.id
                },
                user_id=processor_id
            )
            if loan.status == LoanStatus.PAID:
                self.audit_trail.log_event(
                    event_type=AuditEventType.LOAN_PAID_OFF,
                    entity_type="loan",
                    entity_id=loan.id,
                    metadata={"final_payment": amount},
                    user_id=processor_id
                )

        log_action(
            self.logger, "info", f"Repayment recorded on {loan.loan_number}",
            user_id=processor_id, action="record_repayment", resource=f"loan:{loan.id}",
            extra={"amount": str(amount), "balance": str(new_balance), "status": loan.status.value}
        )
        return repayment

    def get_repayment(self, repayment_id: str) -> Optional[Repayment]:
        data = self.storage.load(self.table_name, repayment_id)
        if data:
            return Repayment.from_dict(data)
        return None

    def require_repayment(self, repayment_id: str) -> Repayment:
        repayment = self.get_repayment(repayment_id)
        if not repayment:
            raise RepaymentNotFound(repayment_id)
        return repayment

    def list_repayments(self, loan_id: Optional[str] = None) -> List[Repayment]:
        """List repayments, oldest first"""
        filters = {'loan_id': loan_id} if loan_id else {}
        repayments = [Repayment.from_dict(d) for d in self.storage.find(self.table_name, filters)]
        repayments.sort(key=lambda r: r.payment_date)
        return repayments

    def total_repaid(self, loan_id: str) -> Decimal:
        return sum((r.amount for r in self.list_repayments(loan_id)), ZERO)

    def reconcile_loan(self, loan_id: str) -> Dict[str, Any]:
        """
        Check that a loan's balance matches its repayment history:
        max(0, principal - sum of repayments) == balance
        """
        loan = self.loan_manager.require_loan(loan_id)
        total_repaid = self.total_repaid(loan_id)
        expected = max(ZERO, loan.principal - total_repaid)

        return {
            'loan_id': loan.id,
            'principal': loan.principal,
            'total_repaid': total_repaid,
            'expected_balance': expected,
            'actual_balance': loan.balance,
            'reconciled': expected == loan.balance
        }
