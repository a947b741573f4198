"""
Member management endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from .dependencies import get_ledger, ledger_http_error
from .schemas import (
    RegisterMemberRequest,
    UpdateMemberRequest,
    UpdateMemberStatusRequest,
    WithdrawalRequest,
    loan_response,
    member_response,
    transaction_response
)
from ..errors import LedgerError, MemberNotFound
from ..ledger import SaccoLedger


router = APIRouter()


@router.get("")
async def list_members(
    status: Optional[str] = None,
    active_only: bool = False,
    ledger: SaccoLedger = Depends(get_ledger)
):
    """List members with their savings balances"""
    try:
        members = ledger.member_manager.list_members(status=status, active_only=active_only)
    except LedgerError as e:
        raise ledger_http_error(e)

    return {
        "members": [
            member_response(m, ledger.member_manager.get_savings_balance(m.id))
            for m in members
        ]
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def register_member(
    request: RegisterMemberRequest,
    ledger: SaccoLedger = Depends(get_ledger)
):
    """Register a member and open their savings account"""
    try:
        member = ledger.member_manager.register_member(**request.model_dump())
    except LedgerError as e:
        raise ledger_http_error(e)

    return member_response(member, ledger.member_manager.get_savings_balance(member.id))


@router.get("/next-number")
async def suggest_member_number(ledger: SaccoLedger = Depends(get_ledger)):
    """Next free member number"""
    return {"member_number": ledger.member_manager.suggest_member_number()}


@router.get("/{member_id}")
async def get_member(member_id: str, ledger: SaccoLedger = Depends(get_ledger)):
    """Get member by ID"""
    member = ledger.member_manager.get_member(member_id)
    if not member:
        raise ledger_http_error(MemberNotFound(member_id))

    return member_response(member, ledger.member_manager.get_savings_balance(member.id))


@router.put("/{member_id}")
async def update_member(
    member_id: str,
    request: UpdateMemberRequest,
    ledger: SaccoLedger = Depends(get_ledger)
):
    """Update member contact details or role"""
    changes = request.model_dump(exclude_unset=True)
    updated_by = changes.pop("updated_by", None)
    if not changes:
        raise HTTPException(status_code=400, detail={"error": "ValidationError",
                                                     "message": "No fields to update"})
    try:
        member = ledger.member_manager.update_member_details(member_id, updated_by=updated_by, **changes)
    except LedgerError as e:
        raise ledger_http_error(e)

    return member_response(member)


@router.delete("/{member_id}")
async def delete_member(
    member_id: str,
    deleted_by: Optional[str] = None,
    ledger: SaccoLedger = Depends(get_ledger)
):
    """Delete a member, or deactivate one that other records refer to"""
    try:
        permanent = ledger.member_manager.delete_member(member_id, deleted_by=deleted_by)
    except LedgerError as e:
        raise ledger_http_error(e)

    return {
        "member_id": member_id,
        "deleted": permanent,
        "deactivated": not permanent,
        "message": "Member deleted" if permanent else "Member has ledger history and was deactivated"
    }


@router.patch("/{member_id}/status")
async def update_member_status(
    member_id: str,
    request: UpdateMemberStatusRequest,
    ledger: SaccoLedger = Depends(get_ledger)
):
    """Change member account status"""
    try:
        member = ledger.member_manager.update_member_status(
            member_id, request.status, updated_by=request.updated_by
        )
    except LedgerError as e:
        raise ledger_http_error(e)

    return member_response(member)


@router.get("/{member_id}/savings")
async def get_member_savings(member_id: str, ledger: SaccoLedger = Depends(get_ledger)):
    """Get a member's savings record"""
    savings = ledger.savings_manager.get_savings(member_id)
    if not savings:
        raise ledger_http_error(MemberNotFound(member_id))

    return savings.to_dict()


@router.post("/{member_id}/withdrawals", status_code=status.HTTP_201_CREATED)
async def withdraw_savings(
    member_id: str,
    request: WithdrawalRequest,
    ledger: SaccoLedger = Depends(get_ledger)
):
    """Pay out savings to a member"""
    try:
        transaction = ledger.member_manager.withdraw_savings(
            member_id, request.amount, request.processor_id, request.description
        )
    except LedgerError as e:
        raise ledger_http_error(e)

    return {
        "transaction": transaction_response(transaction),
        "savings_balance": str(ledger.member_manager.get_savings_balance(member_id))
    }


@router.get("/{member_id}/loans")
async def get_member_loans(member_id: str, ledger: SaccoLedger = Depends(get_ledger)):
    """List a member's loans"""
    try:
        ledger.member_manager.require_member(member_id)
    except LedgerError as e:
        raise ledger_http_error(e)

    return {"loans": [loan_response(l) for l in ledger.loan_manager.list_loans(member_id=member_id)]}


@router.get("/{member_id}/transactions")
async def get_member_transactions(
    member_id: str,
    limit: Optional[int] = None,
    ledger: SaccoLedger = Depends(get_ledger)
):
    """Transaction history for one member, newest first"""
    try:
        ledger.member_manager.require_member(member_id)
        transactions = ledger.transaction_log.list_transactions(limit=limit, member_id=member_id)
    except LedgerError as e:
        raise ledger_http_error(e)

    return {"transactions": [transaction_response(t) for t in transactions]}
