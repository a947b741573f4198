"""
Loan endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from .dependencies import get_ledger, ledger_http_error
from .schemas import (
    ApprovalRequest,
    CreateLoanRequest,
    RepaymentRequest,
    loan_response,
    repayment_response,
    schedule_entry_response
)
from ..errors import LedgerError, LoanNotFound
from ..ledger import SaccoLedger


router = APIRouter()


@router.get("")
async def list_loans(
    status: Optional[str] = None,
    member_id: Optional[str] = None,
    ledger: SaccoLedger = Depends(get_ledger)
):
    """List loans, newest first"""
    try:
        loans = ledger.loan_manager.list_loans(status=status, member_id=member_id)
    except LedgerError as e:
        raise ledger_http_error(e)

    return {"loans": [loan_response(l) for l in loans]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan(
    request: CreateLoanRequest,
    ledger: SaccoLedger = Depends(get_ledger)
):
    """Submit a loan application"""
    try:
        loan = ledger.loan_manager.create_loan(
            member_id=request.member_id,
            principal=request.principal,
            interest_rate=request.interest_rate,
            term_months=request.term_months,
            purpose=request.purpose,
            loan_number=request.loan_number,
            created_by=request.created_by
        )
    except LedgerError as e:
        raise ledger_http_error(e)

    return loan_response(loan)


@router.get("/{loan_id}")
async def get_loan(loan_id: str, ledger: SaccoLedger = Depends(get_ledger)):
    """Get loan details"""
    loan = ledger.loan_manager.get_loan(loan_id)
    if not loan:
        raise ledger_http_error(LoanNotFound(loan_id))
    return loan_response(loan)


@router.post("/{loan_id}/approve")
async def approve_loan(
    loan_id: str,
    request: ApprovalRequest,
    ledger: SaccoLedger = Depends(get_ledger)
):
    """Approve and disburse a pending loan"""
    try:
        loan = ledger.loan_manager.approve_loan(loan_id, request.approver_id)
    except LedgerError as e:
        raise ledger_http_error(e)

    return loan_response(loan)


@router.post("/{loan_id}/reject")
async def reject_loan(
    loan_id: str,
    request: ApprovalRequest,
    ledger: SaccoLedger = Depends(get_ledger)
):
    """Reject a pending loan"""
    try:
        loan = ledger.loan_manager.reject_loan(loan_id, request.approver_id)
    except LedgerError as e:
        raise ledger_http_error(e)

    return loan_response(loan)


@router.get("/{loan_id}/schedule")
async def get_loan_schedule(loan_id: str, ledger: SaccoLedger = Depends(get_ledger)):
    """Get the annuity repayment schedule"""
    try:
        schedule = ledger.loan_manager.get_schedule(loan_id)
    except LedgerError as e:
        raise ledger_http_error(e)

    return {"schedule": [schedule_entry_response(entry) for entry in schedule]}


@router.get("/{loan_id}/repayments")
async def list_loan_repayments(loan_id: str, ledger: SaccoLedger = Depends(get_ledger)):
    """Repayments on a loan with a reconciliation check"""
    try:
        reconciliation = ledger.repayment_manager.reconcile_loan(loan_id)
    except LedgerError as e:
        raise ledger_http_error(e)

    return {
        "repayments": [repayment_response(r) for r in ledger.repayment_manager.list_repayments(loan_id)],
        "total_repaid": str(reconciliation["total_repaid"]),
        "reconciled": reconciliation["reconciled"]
    }


@router.post("/{loan_id}/repayments", status_code=status.HTTP_201_CREATED)
async def record_repayment(
    loan_id: str,
    request: RepaymentRequest,
    ledger: SaccoLedger = Depends(get_ledger)
):
    """Record a loan repayment"""
    try:
        repayment = ledger.repayment_manager.record_repayment(
            loan_id=loan_id,
            amount=request.amount,
            method=request.method,
            processor_id=request.processor_id,
            notes=request.notes
        )
    except LedgerError as e:
        raise ledger_http_error(e)

    return {
        "repayment": repayment_response(repayment),
        "loan": loan_response(ledger.loan_manager.require_loan(loan_id))
    }
