"""
Deposit Approval Module

A deposit is a member's funds-in request. It is recorded as pending and only
reaches the member's savings balance when an approver accepts it.

    pending -> approved   (credits savings, one deposit transaction)
    pending -> rejected   (no balance effect)
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Union

from .audit import AuditTrail, AuditEventType
from .errors import DepositNotFound, InvalidTransition
from .logging_config import get_logger, log_action
from .members import MemberManager
from .money import format_amount, positive_amount
from .savings import SavingsManager
from .storage import StorageInterface, StorageRecord
from .transactions import PaymentMethod
from .validation import coerce_enum, optional_text, require_text


class DepositStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class Deposit(StorageRecord):
    """Funds-in request awaiting approval"""
    deposit_number: str
    member_id: str
    amount: Decimal
    method: PaymentMethod
    status: DepositStatus
    recorded_by: str
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    notes: Optional[str] = None
    transaction_id: Optional[str] = None  # Set on approval

    decimal_fields = ('amount',)
    datetime_fields = ('approved_at',)
    enum_fields = {'method': PaymentMethod, 'status': DepositStatus}

    @property
    def is_pending(self) -> bool:
        return self.status == DepositStatus.PENDING


class DepositManager:
    """
    Records deposits and runs the approval workflow
    """

    def __init__(
        self,
        storage: StorageInterface,
        member_manager: MemberManager,
        savings_manager: SavingsManager,
        audit_trail: AuditTrail
    ):
        self.storage = storage
        self.member_manager = member_manager
        self.savings_manager = savings_manager
        self.audit_trail = audit_trail
        self.table_name = "deposits"
        self.logger = get_logger("sacco.deposits")

    def create_deposit(
        self,
        member_id: str,
        amount: Decimal,
        method: Union[PaymentMethod, str],
        recorder_id: str,
        notes: Optional[str] = None
    ) -> Deposit:
        """
        Record a pending deposit for a member

        Args:
            member_id: Depositing member
            amount: Amount, must be positive
            method: cash, bank_transfer or mobile_money
            recorder_id: Staff member (or the member) recording the deposit
            notes: Optional free text

        Returns:
            Deposit in pending status

        Raises:
            MemberNotFound: If the member does not exist
            ValidationError: On a bad amount or method, or a frozen/deactivated member
        """
        amount = positive_amount(amount)
        method = coerce_enum(PaymentMethod, method, "method")
        recorder_id = require_text(recorder_id, "recorder_id")

        with self.storage.atomic():
            member = self.member_manager.require_member(member_id)
            self.member_manager.check_can_transact(member)

            now = datetime.now(timezone.utc)
            deposit = Deposit(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                deposit_number=self._next_deposit_number(),
                member_id=member_id,
                amount=amount,
                method=method,
                status=DepositStatus.PENDING,
                recorded_by=recorder_id,
                notes=optional_text(notes)
            )
            self._save_deposit(deposit)

            self.audit_trail.log_event(
                event_type=AuditEventType.DEPOSIT_CREATED,
                entity_type="deposit",
                entity_id=deposit.id,
                metadata={
                    "deposit_number": deposit.deposit_number,
                    "member_id": member_id,
                    "amount": amount,
                    "method": method.value
                },
                user_id=recorder_id
            )

        log_action(
            self.logger, "info", f"Deposit recorded: {deposit.deposit_number} ({format_amount(amount)})",
            user_id=recorder_id, action="create_deposit", resource=f"deposit:{deposit.id}",
            extra={"amount": str(amount), "member_id": member_id}
        )
        return deposit

    def approve_deposit(self, deposit_id: str, approver_id: str) -> Deposit:
        """
        Approve a pending deposit and credit the member's savings.

        The pending check runs on the record loaded inside the storage
        transaction, so a concurrent second approval fails.

        Raises:
            DepositNotFound: If the deposit does not exist
            InvalidTransition: If the deposit is not pending
        """
        approver_id = require_text(approver_id, "approver_id")

        with self.storage.atomic():
            deposit = self._require_pending(deposit_id, "approve")

            _, transaction = self.savings_manager.credit(
                deposit.member_id, deposit.amount, approver_id,
                f"Deposit {deposit.deposit_number} ({deposit.method.value})"
            )

            now = datetime.now(timezone.utc)
            deposit.status = DepositStatus.APPROVED
            deposit.approved_by = approver_id
            deposit.approved_at = now
            deposit.updated_at = now
            deposit.transaction_id = transaction.id
            self._save_deposit(deposit)

            self.audit_trail.log_event(
                event_type=AuditEventType.DEPOSIT_APPROVED,
                entity_type="deposit",
                entity_id=deposit.id,
                metadata={
                    "amount": deposit.amount,
                    "member_id": deposit.member_id,
                    "transaction_id": transaction.id
                },
                user_id=approver_id
            )

        log_action(
            self.logger, "info", f"Deposit approved: {deposit.deposit_number}",
            user_id=approver_id, action="approve_deposit", resource=f"deposit:{deposit.id}"
        )
        return deposit

    def reject_deposit(self, deposit_id: str, approver_id: str) -> Deposit:
        """Reject a pending deposit. Savings are not touched."""
        approver_id = require_text(approver_id, "approver_id")

        with self.storage.atomic():
            deposit = self._require_pending(deposit_id, "reject")

            now = datetime.now(timezone.utc)
            deposit.status = DepositStatus.REJECTED
            deposit.approved_by = approver_id
            deposit.approved_at = now
            deposit.updated_at = now
            self._save_deposit(deposit)

            self.audit_trail.log_event(
                event_type=AuditEventType.DEPOSIT_REJECTED,
                entity_type="deposit",
                entity_id=deposit.id,
                metadata={"amount": deposit.amount, "member_id": deposit.member_id},
                user_id=approver_id
            )

        log_action(
            self.logger, "info", f"Deposit rejected: {deposit.deposit_number}",
            user_id=approver_id, action="reject_deposit", resource=f"deposit:{deposit.id}"
        )
        return deposit

    def get_deposit(self, deposit_id: str) -> Optional[Deposit]:
        data = self.storage.load(self.table_name, deposit_id)
        if data:
            return Deposit.from_dict(data)
        return None

    def list_deposits(
        self,
        status: Optional[Union[DepositStatus, str]] = None,
        member_id: Optional[str] = None
    ) -> List[Deposit]:
        """List deposits, newest first"""
        filters = {}
        if status:
            filters['status'] = coerce_enum(DepositStatus, status, "status").value
        if member_id:
            filters['member_id'] = member_id

        deposits = [Deposit.from_dict(d) for d in self.storage.find(self.table_name, filters)]
        deposits.sort(key=lambda d: d.deposit_number, reverse=True)
        return deposits

    def _require_pending(self, deposit_id: str, action: str) -> Deposit:
        deposit = self.get_deposit(deposit_id)
        if not deposit:
            raise DepositNotFound(deposit_id)
        if not deposit.is_pending:
            raise InvalidTransition("deposit", deposit_id, deposit.status.value, action)
        return deposit

    def _next_deposit_number(self) -> str:
        return f"D{self.storage.count(self.table_name) + 1:06d}"

    def _save_deposit(self, deposit: Deposit) -> None:
        self.storage.save(self.table_name, deposit.id, deposit.to_dict())
