"""
Dashboard endpoints
"""

from fastapi import APIRouter, Depends

from .dependencies import get_ledger
from ..ledger import SaccoLedger


router = APIRouter()


@router.get("/stats")
async def get_dashboard_stats(ledger: SaccoLedger = Depends(get_ledger)):
    """Headline aggregates, recomputed on every call"""
    return ledger.reporting_engine.dashboard_stats().to_dict()
