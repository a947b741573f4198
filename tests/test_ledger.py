"""
Test suite for the composed ledger

End-to-end workflows across members, deposits, loans and repayments,
the ledger-wide invariants, and concurrent approvals.
CRITICAL: Validates that every balance change has exactly one matching
transaction and that a failed operation leaves no partial state.
"""

import threading
import pytest
from decimal import Decimal

from sacco_ledger.config import SaccoConfig
from sacco_ledger.errors import InvalidTransition
from sacco_ledger.ledger import SaccoLedger
from sacco_ledger.loans import LoanStatus
from sacco_ledger.seed import seed_demo_data
from sacco_ledger.storage import InMemoryStorage, JSONFileStorage, SQLiteStorage
from sacco_ledger.transactions import TransactionType


class TestLedgerWorkflows:
    """Deposit, loan and repayment flows end to end"""

    def setup_method(self):
        self.ledger = SaccoLedger(InMemoryStorage(), SaccoConfig())
        self.member = self.ledger.member_manager.register_member(
            "VFA010", "Mary", "Nakato", "+256701234567"
        )

    def test_approved_deposit_credits_savings(self):
        deposit = self.ledger.deposit_manager.create_deposit(
            self.member.id, Decimal('100000'), "cash", "clerk"
        )
        self.ledger.deposit_manager.approve_deposit(deposit.id, "manager")

        assert self.ledger.member_manager.get_savings_balance(self.member.id) == Decimal('100000.00')
        deposits = self.ledger.transaction_log.list_transactions(transaction_type=TransactionType.DEPOSIT)
        assert len(deposits) == 1
        assert deposits[0].amount == Decimal('100000.00')

    def test_loan_origination_and_disbursement(self):
        loan = self.ledger.loan_manager.create_loan(
            self.member.id, Decimal('1200000'), Decimal('15'), 12, "Equipment"
        )
        assert loan.balance == Decimal('1200000.00')
        assert loan.status == LoanStatus.PENDING

        loan = self.ledger.loan_manager.approve_loan(loan.id, "manager")
        assert loan.status == LoanStatus.ACTIVE

        disbursements = self.ledger.transaction_log.list_transactions(
            transaction_type=TransactionType.LOAN_DISBURSEMENT
        )
        assert len(disbursements) == 1
        assert disbursements[0].amount == Decimal('1200000.00')

    def test_repaying_in_three_installments(self):
        loan = self.ledger.loan_manager.create_loan(
            self.member.id, Decimal('1200000'), Decimal('15'), 12, "Equipment"
        )
        self.ledger.loan_manager.approve_loan(loan.id, "manager")

        for _ in range(3):
            self.ledger.repayment_manager.record_repayment(loan.id, Decimal('400000'), "cash", "teller")

        loan = self.ledger.loan_manager.get_loan(loan.id)
        assert loan.balance == Decimal('0.00')
        assert loan.status == LoanStatus.PAID

        payments = self.ledger.transaction_log.list_transactions(
            transaction_type=TransactionType.LOAN_PAYMENT
        )
        assert len(payments) == 3
        assert sum(p.amount for p in payments) == Decimal('1200000.00')

    def test_overpayment_is_floored(self):
        loan = self.ledger.loan_manager.create_loan(
            self.member.id, Decimal('500000'), Decimal('12'), 6, "Stock"
        )
        self.ledger.loan_manager.approve_loan(loan.id, "manager")

        self.ledger.repayment_manager.record_repayment(loan.id, Decimal('2000000'), "cash", "teller")

        loan = self.ledger.loan_manager.get_loan(loan.id)
        assert loan.balance == Decimal('0.00')
        assert loan.status == LoanStatus.PAID
        # No refund entry of any kind
        assert self.ledger.transaction_log.list_transactions(
            transaction_type=TransactionType.WITHDRAWAL
        ) == []

    def test_rejected_loan_cannot_be_approved(self):
        loan = self.ledger.loan_manager.create_loan(
            self.member.id, Decimal('100000'), Decimal('10'), 6, "Stock"
        )
        self.ledger.loan_manager.reject_loan(loan.id, "manager")

        with pytest.raises(InvalidTransition):
            self.ledger.loan_manager.approve_loan(loan.id, "manager")

        assert self.ledger.loan_manager.get_loan(loan.id).status == LoanStatus.REJECTED


class TestLedgerInvariants:

    def setup_method(self):
        self.ledger = SaccoLedger(InMemoryStorage(), SaccoConfig())
        self.member = self.ledger.member_manager.register_member(
            "VFA010", "Mary", "Nakato", "+256701234567"
        )

    def _assert_loan_invariants(self, loan_id):
        loan = self.ledger.loan_manager.get_loan(loan_id)
        assert Decimal('0') <= loan.balance <= loan.principal
        assert (loan.balance == Decimal('0')) == (loan.status == LoanStatus.PAID)
        assert self.ledger.repayment_manager.reconcile_loan(loan_id)['reconciled']

    def test_loan_invariants_hold_through_repayments(self):
        loan = self.ledger.loan_manager.create_loan(
            self.member.id, Decimal('750000'), Decimal('18'), 12, "Stock"
        )
        self.ledger.loan_manager.approve_loan(loan.id, "manager")
        self._assert_loan_invariants(loan.id)

        for amount in ['125000.25', '0.75', '300000', '999999']:
            self.ledger.repayment_manager.record_repayment(loan.id, amount, "mobile_money", "teller")
            self._assert_loan_invariants(loan.id)

    def test_balance_reads_back_as_principal(self):
        loan = self.ledger.loan_manager.create_loan(
            self.member.id, "1,234,567.89", Decimal('12'), 12, "Stock"
        )
        assert self.ledger.loan_manager.get_loan(loan.id).balance == Decimal('1234567.89')

    def test_deposit_adds_exactly_its_amount(self):
        self.ledger.savings_manager.credit(self.member.id, Decimal('1000.10'), "clerk", "Opening")
        before = self.ledger.member_manager.get_savings_balance(self.member.id)

        approved = self.ledger.deposit_manager.create_deposit(self.member.id, Decimal('250.45'), "cash", "clerk")
        rejected = self.ledger.deposit_manager.create_deposit(self.member.id, Decimal('999'), "cash", "clerk")
        self.ledger.deposit_manager.approve_deposit(approved.id, "manager")
        self.ledger.deposit_manager.reject_deposit(rejected.id, "manager")

        after = self.ledger.member_manager.get_savings_balance(self.member.id)
        assert after == before + Decimal('250.45')

    def test_savings_match_transaction_history(self):
        savings = self.ledger.savings_manager
        savings.credit(self.member.id, Decimal('5000'), "clerk", "Deposit")
        savings.credit(self.member.id, Decimal('2500.50'), "clerk", "Deposit")
        self.ledger.member_manager.withdraw_savings(self.member.id, Decimal('1200.25'), "clerk")

        log = self.ledger.transaction_log
        expected = (log.total(TransactionType.DEPOSIT, member_id=self.member.id) -
                    log.total(TransactionType.WITHDRAWAL, member_id=self.member.id))
        assert self.ledger.member_manager.get_savings_balance(self.member.id) == expected

    def test_audit_chain_stays_valid(self):
        deposit = self.ledger.deposit_manager.create_deposit(self.member.id, Decimal('100'), "cash", "clerk")
        self.ledger.deposit_manager.approve_deposit(deposit.id, "manager")

        result = self.ledger.verify_audit_integrity(user_id="auditor")
        assert result['valid']
        assert result['total_events'] > 0

        # The check itself is recorded and keeps the chain valid
        assert self.ledger.audit_trail.verify_integrity()['valid']


class TestConcurrentApprovals:
    """Two callers approving the same entity must not both succeed"""

    @pytest.fixture(params=["memory", "sqlite"])
    def ledger(self, request, tmp_path):
        if request.param == "memory":
            storage = InMemoryStorage()
        else:
            storage = SQLiteStorage(tmp_path / "sacco.db")
        ledger = SaccoLedger(storage, SaccoConfig())
        yield ledger
        ledger.close()

    def _race(self, action, attempts=2):
        barrier = threading.Barrier(attempts)
        outcomes = []
        lock = threading.Lock()

        def worker():
            barrier.wait()
            try:
                action()
                result = "ok"
            except InvalidTransition:
                result = "invalid"
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=worker) for _ in range(attempts)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)
        return outcomes

    def test_double_deposit_approval(self, ledger):
        member = ledger.member_manager.register_member("VFA010", "Mary", "Nakato", "+256701234567")
        deposit = ledger.deposit_manager.create_deposit(member.id, Decimal('100000'), "cash", "clerk")

        outcomes = self._race(lambda: ledger.deposit_manager.approve_deposit(deposit.id, "manager"))

        assert sorted(outcomes) == ["invalid", "ok"]
        assert ledger.member_manager.get_savings_balance(member.id) == Decimal('100000.00')
        assert len(ledger.transaction_log.list_transactions()) == 1

    def test_double_loan_approval(self, ledger):
        member = ledger.member_manager.register_member("VFA010", "Mary", "Nakato", "+256701234567")
        loan = ledger.loan_manager.create_loan(member.id, Decimal('500000'), Decimal('12'), 6, "Stock")

        outcomes = self._race(lambda: ledger.loan_manager.approve_loan(loan.id, "manager"))

        assert sorted(outcomes) == ["invalid", "ok"]
        disbursements = ledger.transaction_log.list_transactions(
            transaction_type=TransactionType.LOAN_DISBURSEMENT
        )
        assert len(disbursements) == 1


class TestPersistentBackends:

    def _run_workflow(self, ledger):
        member = ledger.member_manager.register_member("VFA010", "Mary", "Nakato", "+256701234567")
        deposit = ledger.deposit_manager.create_deposit(member.id, Decimal('100000'), "cash", "clerk")
        ledger.deposit_manager.approve_deposit(deposit.id, "manager")
        loan = ledger.loan_manager.create_loan(member.id, Decimal('300000'), Decimal('12'), 6, "Stock")
        ledger.loan_manager.approve_loan(loan.id, "manager")
        ledger.repayment_manager.record_repayment(loan.id, Decimal('100000'), "cash", "teller")
        return member.id, loan.id

    def test_sqlite_ledger_survives_reopen(self, tmp_path):
        path = tmp_path / "sacco.db"
        ledger = SaccoLedger(SQLiteStorage(path), SaccoConfig())
        member_id, loan_id = self._run_workflow(ledger)
        ledger.close()

        reopened = SaccoLedger(SQLiteStorage(path), SaccoConfig())
        assert reopened.member_manager.get_savings_balance(member_id) == Decimal('100000.00')
        assert reopened.loan_manager.get_loan(loan_id).balance == Decimal('200000.00')
        assert len(reopened.transaction_log.list_transactions()) == 3
        assert reopened.audit_trail.verify_integrity()['valid']
        reopened.close()

    def test_json_ledger_survives_reopen(self, tmp_path):
        path = tmp_path / "sacco.json"
        ledger = SaccoLedger(JSONFileStorage(path), SaccoConfig())
        member_id, loan_id = self._run_workflow(ledger)
        ledger.close()

        reopened = SaccoLedger(JSONFileStorage(path), SaccoConfig())
        assert reopened.member_manager.get_savings_balance(member_id) == Decimal('100000.00')
        assert reopened.repayment_manager.reconcile_loan(loan_id)['reconciled']
        reopened.close()

    def test_from_config(self, tmp_path):
        config = SaccoConfig(storage_backend="sqlite", sqlite_path=str(tmp_path / "cfg.db"))
        ledger = SaccoLedger.from_config(config)
        assert isinstance(ledger.storage, SQLiteStorage)
        ledger.close()


class TestDemoData:

    def setup_method(self):
        self.ledger = SaccoLedger(InMemoryStorage(), SaccoConfig())

    def test_seed(self):
        summary = seed_demo_data(self.ledger)

        assert summary == {"seeded": True, "members": 3, "loans": 2, "transactions": 5}

        peter = self.ledger.member_manager.get_member_by_number("VFA002")
        assert self.ledger.member_manager.get_savings_balance(peter.id) == Decimal('1800000.00')

        equipment = self.ledger.loan_manager.list_loans(member_id=peter.id)[0]
        assert equipment.loan_number == "LN001"
        assert equipment.status == LoanStatus.ACTIVE
        assert equipment.balance == Decimal('1200000.00')

        stats = self.ledger.reporting_engine.dashboard_stats()
        assert stats.total_savings == Decimal('4800000.00')
        assert stats.pending_loan_count == 1

    def test_seed_skips_populated_ledger(self):
        seed_demo_data(self.ledger)
        assert seed_demo_data(self.ledger) == {"seeded": False}
        assert len(self.ledger.member_manager.list_members()) == 3
