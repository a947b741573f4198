"""
SACCO Ledger API Application Factory
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import SaccoConfig, get_config
from ..ledger import SaccoLedger
from ..logging_config import get_logger
from ..seed import seed_demo_data
from .admin import router as admin_router
from .dashboard import router as dashboard_router
from .deposits import router as deposits_router
from .loans import router as loans_router
from .members import router as members_router
from .transactions import router as transactions_router
from .unfreeze import router as unfreeze_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Seed demo data and run the overdue sweep scheduler while the app is up"""
    logger = get_logger("sacco.api")
    ledger: SaccoLedger = app.state.ledger
    config = ledger.config

    if config.seed_demo_data:
        seed_demo_data(ledger)
    if config.sweep_enabled:
        ledger.sweep_scheduler.start()

    logger.info(f"SACCO ledger API started (storage: {ledger.storage.__class__.__name__})")
    yield

    ledger.sweep_scheduler.stop()
    if app.state.owns_ledger:
        ledger.close()
    logger.info("SACCO ledger API stopped")


def create_app(ledger: Optional[SaccoLedger] = None, config: Optional[SaccoConfig] = None) -> FastAPI:
    """
    Create and configure the FastAPI application

    Args:
        ledger: Ledger to serve; built from configuration when omitted
        config: Configuration used when building the ledger
    """
    app = FastAPI(
        title="SACCO Ledger API",
        description="Savings and credit cooperative back-office ledger",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.state.owns_ledger = ledger is None
    app.state.ledger = ledger or SaccoLedger.from_config(config or get_config())

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(members_router, prefix="/members", tags=["Members"])
    app.include_router(deposits_router, prefix="/deposits", tags=["Deposits"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(transactions_router, prefix="/transactions", tags=["Transactions"])
    app.include_router(dashboard_router, prefix="/dashboard", tags=["Dashboard"])
    app.include_router(unfreeze_router, prefix="/unfreeze-requests", tags=["Unfreeze Requests"])
    app.include_router(admin_router, prefix="/admin", tags=["Admin"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "sacco_ledger_api",
            "version": __version__
        }

    return app
