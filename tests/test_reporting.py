"""
Test suite for dashboard statistics
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sacco_ledger.config import SaccoConfig
from sacco_ledger.ledger import SaccoLedger
from sacco_ledger.loans import LoanStatus
from sacco_ledger.reporting import DashboardStats
from sacco_ledger.storage import InMemoryStorage


class TestDashboardStats:

    def setup_method(self):
        self.ledger = SaccoLedger(InMemoryStorage(), SaccoConfig())
        self.reporting = self.ledger.reporting_engine

    def test_empty_ledger(self):
        stats = self.reporting.dashboard_stats()

        assert stats.total_members == 0
        assert stats.active_members == 0
        assert stats.total_savings == Decimal('0.00')
        assert stats.active_loan_balance == Decimal('0.00')
        assert stats.default_rate == Decimal('0')
        assert stats.monthly_revenue == Decimal('0.00')
        assert stats.currency == "UGX"

    def test_aggregates(self):
        members = self.ledger.member_manager
        mary = members.register_member("VFA001", "Mary", "Nakato", "+256701234567")
        peter = members.register_member("VFA002", "Peter", "Okello", "+256702345678")
        sarah = members.register_member("VFA003", "Sarah", "Akello", "+256703456789")
        members.update_member_status(sarah.id, "deactivated")

        self.ledger.savings_manager.credit(mary.id, Decimal('2500000'), "clerk", "Deposit")
        self.ledger.savings_manager.credit(peter.id, Decimal('1800000'), "clerk", "Deposit")
        self.ledger.deposit_manager.create_deposit(peter.id, Decimal('5000'), "cash", "clerk")

        loans = self.ledger.loan_manager
        active = loans.approve_loan(
            loans.create_loan(peter.id, Decimal('1500000'), Decimal('15'), 12, "Equipment").id, mary.id
        )
        self.ledger.repayment_manager.record_repayment(active.id, Decimal('300000'), "cash", mary.id)
        loans.create_loan(mary.id, Decimal('800000'), Decimal('14'), 6, "Education")
        defaulted = loans.approve_loan(
            loans.create_loan(mary.id, Decimal('100000'), Decimal('10'), 6, "Stock").id, peter.id
        )
        loans.mark_past_due(defaulted.id, LoanStatus.DEFAULTED, 120)

        stats = self.reporting.dashboard_stats()

        assert stats.total_members == 3
        assert stats.active_members == 2
        assert stats.total_savings == Decimal('4300000.00')
        assert stats.active_loan_count == 1
        assert stats.active_loan_balance == Decimal('1200000.00')
        assert stats.pending_loan_count == 1
        assert stats.pending_deposit_count == 1
        assert stats.default_rate == Decimal('0.3333')
        assert stats.monthly_revenue == Decimal('300000.00')

    def test_monthly_revenue_window(self):
        member = self.ledger.member_manager.register_member("VFA001", "Mary", "Nakato", "+256701234567")
        loan = self.ledger.loan_manager.create_loan(member.id, Decimal('1000'), Decimal('10'), 6, "Stock")
        self.ledger.loan_manager.approve_loan(loan.id, "manager")
        self.ledger.repayment_manager.record_repayment(loan.id, Decimal('250'), "cash", "teller")

        now = datetime.now(timezone.utc)
        assert self.reporting.dashboard_stats(as_of=now).monthly_revenue == Decimal('250.00')
        assert self.reporting.dashboard_stats(as_of=now + timedelta(days=62)).monthly_revenue == Decimal('0.00')

    def test_to_dict(self):
        stats = self.reporting.dashboard_stats()
        data = stats.to_dict()

        assert isinstance(stats, DashboardStats)
        assert data["total_savings"] == "0.00"
        assert data["default_rate"] == "0"
        assert isinstance(data["generated_at"], str)
        assert data["total_members"] == 0
