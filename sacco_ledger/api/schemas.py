"""
Pydantic schemas for API requests, and response shaping helpers
"""

from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from ..deposits import Deposit
from ..loans import Loan, ScheduleEntry
from ..members import Member
from ..repayments import Repayment
from ..transactions import Transaction
from ..unfreeze import UnfreezeRequest


# Member schemas
class RegisterMemberRequest(BaseModel):
    member_number: str
    first_name: str
    last_name: str
    phone: str
    email: Optional[str] = None
    national_id: Optional[str] = None
    address: Optional[str] = None
    role: str = Field("member", description="member, manager or admin")
    registered_by: Optional[str] = None


class UpdateMemberRequest(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    national_id: Optional[str] = None
    address: Optional[str] = None
    role: Optional[str] = None
    updated_by: Optional[str] = None


class UpdateMemberStatusRequest(BaseModel):
    status: str = Field(..., description="active, part-time, deactivated or frozen")
    updated_by: Optional[str] = None


class WithdrawalRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    processor_id: str
    description: Optional[str] = None


# Deposit schemas
class CreateDepositRequest(BaseModel):
    member_id: str
    amount: str = Field(..., description="Decimal amount as string")
    method: str = Field(..., description="cash, bank_transfer or mobile_money")
    recorder_id: str
    notes: Optional[str] = None


class ApprovalRequest(BaseModel):
    approver_id: str


# Loan schemas
class CreateLoanRequest(BaseModel):
    member_id: str
    principal: str = Field(..., description="Decimal amount as string")
    interest_rate: str = Field(..., description="Annual percentage as string")
    term_months: int
    purpose: str
    loan_number: Optional[str] = None
    created_by: Optional[str] = None


class RepaymentRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    method: str = Field(..., description="cash, bank_transfer or mobile_money")
    processor_id: str
    notes: Optional[str] = None


# Unfreeze request schemas
class UnfreezeRequestCreate(BaseModel):
    member_id: str
    reason: Optional[str] = None


class ProcessUnfreezeRequest(BaseModel):
    status: str = Field(..., description="approved or rejected")
    processed_by: str
    admin_notes: Optional[str] = None


def member_response(member: Member, savings_balance: Optional[Decimal] = None) -> Dict[str, Any]:
    data = member.to_dict()
    data["full_name"] = member.full_name
    if savings_balance is not None:
        data["savings_balance"] = str(savings_balance)
    return data


def loan_response(loan: Loan) -> Dict[str, Any]:
    data = loan.to_dict()
    data["monthly_payment"] = str(loan.monthly_payment)
    return data


def deposit_response(deposit: Deposit) -> Dict[str, Any]:
    return deposit.to_dict()


def repayment_response(repayment: Repayment) -> Dict[str, Any]:
    return repayment.to_dict()


def transaction_response(transaction: Transaction) -> Dict[str, Any]:
    return transaction.to_dict()


def unfreeze_response(request: UnfreezeRequest) -> Dict[str, Any]:
    return request.to_dict()


def schedule_entry_response(entry: ScheduleEntry) -> Dict[str, Any]:
    return {
        "payment_number": entry.payment_number,
        "payment_date": entry.payment_date.isoformat() if entry.payment_date else None,
        "payment_amount": str(entry.payment_amount),
        "principal_amount": str(entry.principal_amount),
        "interest_amount": str(entry.interest_amount),
        "remaining_balance": str(entry.remaining_balance)
    }
