"""
Transaction Log Module

Append-only record of every balance change: deposits and withdrawals on
savings, disbursements and payments on loans. Transactions are never
updated or deleted; callers write them in the same storage transaction as
the balance change they describe.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Union

from .errors import ValidationError
from .logging_config import get_logger, log_action
from .money import ZERO
from .storage import StorageInterface, StorageRecord
from .validation import coerce_enum


class TransactionType(Enum):
    """Kinds of ledger movement"""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    LOAN_DISBURSEMENT = "loan_disbursement"
    LOAN_PAYMENT = "loan_payment"


class PaymentMethod(Enum):
    """How money reached the SACCO (deposits and repayments)"""
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    MOBILE_MONEY = "mobile_money"


@dataclass
class Transaction(StorageRecord):
    """Immutable ledger entry"""
    transaction_type: TransactionType
    amount: Decimal
    description: str
    processed_by: str
    transaction_date: datetime
    sequence: int                       # Tiebreaker for same-instant entries
    member_id: Optional[str] = None
    loan_id: Optional[str] = None

    decimal_fields = ('amount',)
    datetime_fields = ('transaction_date',)
    enum_fields = {'transaction_type': TransactionType}

    def __post_init__(self):
        if self.amount <= ZERO:
            raise ValidationError("amount", "transaction amount must be positive")


class TransactionLog:
    """
    Writes and queries ledger transactions
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "transactions"
        self.logger = get_logger("sacco.transactions")

    def record(
        self,
        transaction_type: Union[TransactionType, str],
        amount: Decimal,
        description: str,
        processed_by: str,
        member_id: Optional[str] = None,
        loan_id: Optional[str] = None
    ) -> Transaction:
        """
        Append a transaction.

        Only the ledger managers call this, always from inside the storage
        transaction that changes the matching balance.
        """
        transaction_type = coerce_enum(TransactionType, transaction_type, "transaction_type")

        with self.storage.atomic():
            now = datetime.now(timezone.utc)
            transaction = Transaction(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                transaction_type=transaction_type,
                amount=amount,
                description=description,
                processed_by=processed_by,
                transaction_date=now,
                sequence=self.storage.count(self.table_name) + 1,
                member_id=member_id,
                loan_id=loan_id
            )
            self.storage.save(self.table_name, transaction.id, transaction.to_dict())

        log_action(
            self.logger, "info", f"Transaction recorded: {transaction_type.value}",
            user_id=processed_by, action="record_transaction",
            resource=f"transaction:{transaction.id}",
            extra={
                "amount": str(amount),
                "member_id": member_id,
                "loan_id": loan_id
            }
        )
        return transaction

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        data = self.storage.load(self.table_name, transaction_id)
        if data:
            return Transaction.from_dict(data)
        return None

    def list_transactions(
        self,
        limit: Optional[int] = None,
        member_id: Optional[str] = None,
        loan_id: Optional[str] = None,
        transaction_type: Optional[Union[TransactionType, str]] = None
    ) -> List[Transaction]:
        """
        List transactions, newest first.

        Args:
            limit: Return at most this many
            member_id: Only this member's transactions
            loan_id: Only this loan's transactions
            transaction_type: Only this kind of movement
        """
        if limit is not None and limit < 0:
            raise ValidationError("limit", "must not be negative")

        filters = {}
        if member_id:
            filters['member_id'] = member_id
        if loan_id:
            filters['loan_id'] = loan_id
        if transaction_type:
            filters['transaction_type'] = coerce_enum(
                TransactionType, transaction_type, "transaction_type"
            ).value

        transactions = [Transaction.from_dict(d) for d in self.storage.find(self.table_name, filters)]
        transactions.sort(key=lambda t: (t.transaction_date, t.sequence), reverse=True)

        if limit is not None:
            transactions = transactions[:limit]
        return transactions

    def total(self, transaction_type: Union[TransactionType, str], **filters) -> Decimal:
        """Sum of amounts for one transaction type, optionally filtered"""
        return sum(
            (t.amount for t in self.list_transactions(transaction_type=transaction_type, **filters)),
            ZERO
        )
