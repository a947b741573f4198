"""
Savings Module

One savings record per member. The balance only moves through credit() and
debit(), and each movement writes exactly one Transaction in the same
storage transaction.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Tuple

from .audit import AuditTrail, AuditEventType
from .errors import DuplicateKeyError, InsufficientFunds, MemberNotFound
from .money import ZERO, positive_amount
from .storage import StorageInterface, StorageRecord
from .transactions import Transaction, TransactionLog, TransactionType


@dataclass
class Savings(StorageRecord):
    """Running savings balance of one member"""
    member_id: str
    balance: Decimal
    last_updated: datetime

    decimal_fields = ('balance',)
    datetime_fields = ('last_updated',)


class SavingsManager:
    """
    Owns savings balances
    """

    def __init__(self, storage: StorageInterface, transaction_log: TransactionLog,
                 audit_trail: AuditTrail):
        self.storage = storage
        self.transaction_log = transaction_log
        self.audit_trail = audit_trail
        self.table_name = "savings"

    def open_account(self, member_id: str) -> Savings:
        """Create the zero-balance savings record for a new member"""
        with self.storage.atomic():
            if self.get_savings(member_id):
                raise DuplicateKeyError("Savings account for member", member_id)

            now = datetime.now(timezone.utc)
            savings = Savings(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                member_id=member_id,
                balance=ZERO,
                last_updated=now
            )
            self._save(savings)
            return savings

    def get_savings(self, member_id: str) -> Optional[Savings]:
        found = self.storage.find(self.table_name, {'member_id': member_id})
        if found:
            return Savings.from_dict(found[0])
        return None

    def list_savings(self) -> List[Savings]:
        return [Savings.from_dict(d) for d in self.storage.load_all(self.table_name)]

    def total_balance(self) -> Decimal:
        return sum((s.balance for s in self.list_savings()), ZERO)

    def remove_account(self, member_id: str) -> bool:
        """Delete a member's savings record (permanent member deletion only)"""
        savings = self.get_savings(member_id)
        if not savings:
            return False
        return self.storage.delete(self.table_name, savings.id)

    def credit(
        self,
        member_id: str,
        amount: Decimal,
        processed_by: str,
        description: str
    ) -> Tuple[Savings, Transaction]:
        """Increase a balance and record the matching deposit transaction"""
        amount = positive_amount(amount)

        with self.storage.atomic():
            savings = self._require_savings(member_id)
            previous = savings.balance
            savings.balance = previous + amount
            self._touch(savings)

            transaction = self.transaction_log.record(
                TransactionType.DEPOSIT, amount, description, processed_by,
                member_id=member_id
            )
            self.audit_trail.log_event(
                event_type=AuditEventType.SAVINGS_CREDITED,
                entity_type="savings",
                entity_id=savings.id,
                metadata={
                    "member_id": member_id,
                    "amount": amount,
                    "previous_balance": previous,
                    "new_balance": savings.balance,
                    "transaction_id": transaction.id
                },
                user_id=processed_by
            )
            return savings, transaction

    def debit(
        self,
        member_id: str,
        amount: Decimal,
        processed_by: str,
        description: str
    ) -> Tuple[Savings, Transaction]:
        """Decrease a balance and record the matching withdrawal transaction"""
        amount = positive_amount(amount)

        with self.storage.atomic():
            savings = self._require_savings(member_id)
            previous = savings.balance
            if amount > previous:
                raise InsufficientFunds(previous, amount)
            savings.balance = previous - amount
            self._touch(savings)

            transaction = self.transaction_log.record(
                TransactionType.WITHDRAWAL, amount, description, processed_by,
                member_id=member_id
            )
            self.audit_trail.log_event(
                event_type=AuditEventType.SAVINGS_DEBITED,
                entity_type="savings",
                entity_id=savings.id,
                metadata={
                    "member_id": member_id,
                    "amount": amount,
                    "previous_balance": previous,
                    "new_balance": savings.balance,
                    "transaction_id": transaction.id
                },
                user_id=processed_by
            )
            return savings, transaction

    def _require_savings(self, member_id: str) -> Savings:
        savings = self.get_savings(member_id)
        if not savings:
            raise MemberNotFound(member_id, f"No savings account for member {member_id}")
        return savings

    def _touch(self, savings: Savings) -> None:
        now = datetime.now(timezone.utc)
        savings.last_updated = now
        savings.updated_at = now
        self._save(savings)

    def _save(self, savings: Savings) -> None:
        self.storage.save(self.table_name, savings.id, savings.to_dict())
