"""
Request dependencies and error mapping
"""

from fastapi import HTTPException, Request

from ..errors import LedgerError, NotFoundError, ValidationError
from ..ledger import SaccoLedger


def get_ledger(request: Request) -> SaccoLedger:
    """Dependency returning the ledger bound to this application"""
    return request.app.state.ledger


def ledger_http_error(error: LedgerError) -> HTTPException:
    """NotFoundError becomes 404; every other ledger error is a 400"""
    detail = {"error": error.__class__.__name__, "message": str(error)}
    if isinstance(error, ValidationError):
        detail["field"] = error.field
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=detail)
    return HTTPException(status_code=400, detail=detail)
