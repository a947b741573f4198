"""
Transaction history endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from .dependencies import get_ledger, ledger_http_error
from .schemas import transaction_response
from ..errors import LedgerError, TransactionNotFound
from ..ledger import SaccoLedger


router = APIRouter()


@router.get("")
async def list_transactions(
    limit: Optional[int] = None,
    member_id: Optional[str] = None,
    loan_id: Optional[str] = None,
    transaction_type: Optional[str] = Query(None, alias="type"),
    ledger: SaccoLedger = Depends(get_ledger)
):
    """List transactions, newest first"""
    try:
        transactions = ledger.transaction_log.list_transactions(
            limit=limit,
            member_id=member_id,
            loan_id=loan_id,
            transaction_type=transaction_type
        )
    except LedgerError as e:
        raise ledger_http_error(e)

    return {"transactions": [transaction_response(t) for t in transactions]}


@router.get("/{transaction_id}")
async def get_transaction(transaction_id: str, ledger: SaccoLedger = Depends(get_ledger)):
    transaction = ledger.transaction_log.get_transaction(transaction_id)
    if not transaction:
        raise ledger_http_error(TransactionNotFound(transaction_id))
    return transaction_response(transaction)
