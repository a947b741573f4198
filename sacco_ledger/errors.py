"""
Ledger Error Kinds

Every failure the ledger core surfaces to its callers. The API layer maps
NotFoundError to 404 and every other LedgerError to 400.
"""

from typing import Optional


class LedgerError(Exception):
    """Base class for all ledger errors"""


class NotFoundError(LedgerError):
    """A referenced entity does not exist"""

    entity_type = "entity"

    def __init__(self, entity_id: str, message: Optional[str] = None):
        self.entity_id = entity_id
        super().__init__(message or f"{self.entity_type.capitalize()} {entity_id} not found")


class MemberNotFound(NotFoundError):
    entity_type = "member"


class LoanNotFound(NotFoundError):
    entity_type = "loan"


class DepositNotFound(NotFoundError):
    entity_type = "deposit"


class RepaymentNotFound(NotFoundError):
    entity_type = "repayment"


class TransactionNotFound(NotFoundError):
    entity_type = "transaction"


class UnfreezeRequestNotFound(NotFoundError):
    entity_type = "unfreeze request"


class InvalidTransition(LedgerError):
    """An entity is not in a state that allows the requested action"""

    def __init__(self, entity_type: str, entity_id: str, current_status: str, action: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id}: status is {current_status}"
        )


class DuplicateKeyError(LedgerError):
    """A business key is already in use"""

    def __init__(self, key_name: str, value: str):
        self.key_name = key_name
        self.value = value
        super().__init__(f"{key_name} {value} already exists")


class DuplicateMemberNumber(DuplicateKeyError):
    def __init__(self, value: str):
        super().__init__("Member number", value)


class DuplicateLoanNumber(DuplicateKeyError):
    def __init__(self, value: str):
        super().__init__("Loan number", value)


class ValidationError(LedgerError, ValueError):
    """Field-scoped input validation failure"""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class InsufficientFunds(ValidationError):
    """Withdrawal larger than the savings balance"""

    def __init__(self, balance, requested):
        self.balance = balance
        self.requested = requested
        super().__init__("amount", f"insufficient savings balance ({balance} available, {requested} requested)")
