"""
SACCO Ledger Composition Root

Wires one storage backend to the audit trail and every manager. Storage is
always injected; nothing in the package holds a module-level store.
"""

from typing import Any, Dict, Optional

from .audit import AuditTrail, AuditEventType
from .collections import OverdueSweep, SweepScheduler
from .config import SaccoConfig, get_config
from .deposits import DepositManager
from .loans import LoanManager
from .logging_config import get_logger
from .members import MemberManager
from .reporting import ReportingEngine
from .repayments import RepaymentManager
from .savings import SavingsManager
from .storage import StorageInterface, create_storage
from .transactions import TransactionLog
from .unfreeze import UnfreezeRequestManager


class SaccoLedger:
    """SACCO back-office ledger with all components initialized"""

    def __init__(self, storage: StorageInterface, config: Optional[SaccoConfig] = None):
        self.config = config or get_config()
        self.storage = storage
        self.logger = get_logger("sacco.ledger")

        # Core components
        self.audit_trail = AuditTrail(self.storage)
        self.transaction_log = TransactionLog(self.storage)
        self.savings_manager = SavingsManager(self.storage, self.transaction_log, self.audit_trail)
        self.member_manager = MemberManager(
            self.storage, self.savings_manager, self.audit_trail,
            member_number_prefix=self.config.member_number_prefix
        )

        # Workflows
        self.deposit_manager = DepositManager(
            self.storage, self.member_manager, self.savings_manager, self.audit_trail
        )
        self.loan_manager = LoanManager(
            self.storage, self.member_manager, self.transaction_log, self.audit_trail,
            term_options=self.config.loan_term_options,
            enforce_term_options=self.config.enforce_term_options
        )
        self.repayment_manager = RepaymentManager(
            self.storage, self.loan_manager, self.transaction_log, self.audit_trail
        )
        self.unfreeze_manager = UnfreezeRequestManager(
            self.storage, self.member_manager, self.audit_trail
        )

        # Read side and background jobs
        self.reporting_engine = ReportingEngine(
            self.member_manager, self.savings_manager, self.loan_manager,
            self.deposit_manager, self.transaction_log,
            currency_label=self.config.currency_label
        )
        self.overdue_sweep = OverdueSweep(
            self.loan_manager, default_after_days=self.config.default_after_days
        )
        self.sweep_scheduler = SweepScheduler(
            self.overdue_sweep, interval_seconds=self.config.sweep_interval_seconds
        )

    @classmethod
    def from_config(cls, config: Optional[SaccoConfig] = None) -> 'SaccoLedger':
        """Build a ledger on the storage backend named in the configuration"""
        config = config or get_config()
        storage = create_storage(
            config.storage_backend,
            sqlite_path=config.sqlite_path,
            json_path=config.json_path
        )
        return cls(storage, config)

    def verify_audit_integrity(self, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Check the audit hash chain and record that the check ran"""
        result = self.audit_trail.verify_integrity()
        self.audit_trail.log_event(
            event_type=AuditEventType.AUDIT_INTEGRITY_CHECK,
            entity_type="system",
            entity_id="audit_trail",
            metadata={
                "valid": result['valid'],
                "total_events": result['total_events']
            },
            user_id=user_id
        )
        if not result['valid']:
            self.logger.error(
                f"Audit chain verification failed: {len(result['hash_errors'])} hash errors, "
                f"{len(result['chain_breaks'])} chain breaks"
            )
        return result

    def close(self) -> None:
        self.sweep_scheduler.stop()
        self.storage.close()
