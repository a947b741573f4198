"""
Admin endpoints (overdue sweep, audit verification)
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from .dependencies import get_ledger
from ..ledger import SaccoLedger


router = APIRouter()


@router.post("/sweep")
async def run_overdue_sweep(ledger: SaccoLedger = Depends(get_ledger)) -> Dict[str, Any]:
    """Run the overdue/default sweep now"""
    return ledger.sweep_scheduler.run_once()


@router.get("/sweep/status")
async def get_sweep_status(ledger: SaccoLedger = Depends(get_ledger)) -> Dict[str, Any]:
    scheduler = ledger.sweep_scheduler
    return {
        "running": scheduler.running,
        "interval_seconds": scheduler.interval_seconds,
        "last_result": scheduler.last_result
    }


@router.post("/audit/verify")
async def verify_audit_trail(
    user_id: Optional[str] = None,
    ledger: SaccoLedger = Depends(get_ledger)
) -> Dict[str, Any]:
    """Verify the audit hash chain"""
    return ledger.verify_audit_integrity(user_id=user_id)
