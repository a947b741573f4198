"""
Unfreeze request endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from .dependencies import get_ledger, ledger_http_error
from .schemas import ProcessUnfreezeRequest, UnfreezeRequestCreate, unfreeze_response
from ..errors import LedgerError
from ..ledger import SaccoLedger


router = APIRouter()


@router.get("")
async def list_unfreeze_requests(
    status: Optional[str] = None,
    member_id: Optional[str] = None,
    ledger: SaccoLedger = Depends(get_ledger)
):
    try:
        requests = ledger.unfreeze_manager.list_requests(status=status, member_id=member_id)
    except LedgerError as e:
        raise ledger_http_error(e)

    return {"requests": [unfreeze_response(r) for r in requests]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def submit_unfreeze_request(
    request: UnfreezeRequestCreate,
    ledger: SaccoLedger = Depends(get_ledger)
):
    """Frozen member asks to be unfrozen"""
    try:
        unfreeze_request = ledger.unfreeze_manager.submit_request(request.member_id, request.reason)
    except LedgerError as e:
        raise ledger_http_error(e)

    return unfreeze_response(unfreeze_request)


@router.patch("/{request_id}/process")
async def process_unfreeze_request(
    request_id: str,
    request: ProcessUnfreezeRequest,
    ledger: SaccoLedger = Depends(get_ledger)
):
    """Approve or reject an unfreeze request"""
    try:
        unfreeze_request = ledger.unfreeze_manager.process_request(
            request_id, request.status, request.processed_by, request.admin_notes
        )
    except LedgerError as e:
        raise ledger_http_error(e)

    return unfreeze_response(unfreeze_request)
