"""
Deposit approval endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from .dependencies import get_ledger, ledger_http_error
from .schemas import ApprovalRequest, CreateDepositRequest, deposit_response
from ..errors import DepositNotFound, LedgerError
from ..ledger import SaccoLedger


router = APIRouter()


@router.get("")
async def list_deposits(
    status: Optional[str] = None,
    member_id: Optional[str] = None,
    ledger: SaccoLedger = Depends(get_ledger)
):
    """List deposits, newest first"""
    try:
        deposits = ledger.deposit_manager.list_deposits(status=status, member_id=member_id)
    except LedgerError as e:
        raise ledger_http_error(e)

    return {"deposits": [deposit_response(d) for d in deposits]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_deposit(
    request: CreateDepositRequest,
    ledger: SaccoLedger = Depends(get_ledger)
):
    """Record a pending deposit"""
    try:
        deposit = ledger.deposit_manager.create_deposit(
            member_id=request.member_id,
            amount=request.amount,
            method=request.method,
            recorder_id=request.recorder_id,
            notes=request.notes
        )
    except LedgerError as e:
        raise ledger_http_error(e)

    return deposit_response(deposit)


@router.get("/{deposit_id}")
async def get_deposit(deposit_id: str, ledger: SaccoLedger = Depends(get_ledger)):
    deposit = ledger.deposit_manager.get_deposit(deposit_id)
    if not deposit:
        raise ledger_http_error(DepositNotFound(deposit_id))
    return deposit_response(deposit)


@router.post("/{deposit_id}/approve")
async def approve_deposit(
    deposit_id: str,
    request: ApprovalRequest,
    ledger: SaccoLedger = Depends(get_ledger)
):
    """Approve a pending deposit and credit savings"""
    try:
        deposit = ledger.deposit_manager.approve_deposit(deposit_id, request.approver_id)
    except LedgerError as e:
        raise ledger_http_error(e)

    return {
        "deposit": deposit_response(deposit),
        "savings_balance": str(ledger.member_manager.get_savings_balance(deposit.member_id))
    }


@router.post("/{deposit_id}/reject")
async def reject_deposit(
    deposit_id: str,
    request: ApprovalRequest,
    ledger: SaccoLedger = Depends(get_ledger)
):
    """Reject a pending deposit"""
    try:
        deposit = ledger.deposit_manager.reject_deposit(deposit_id, request.approver_id)
    except LedgerError as e:
        raise ledger_http_error(e)

    return {"deposit": deposit_response(deposit)}
