"""
Test suite for loans module

Tests loan origination, approval and rejection, payment estimates and
schedule generation. All financial math must be precise.
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from sacco_ledger.audit import AuditEventType
from sacco_ledger.config import SaccoConfig
from sacco_ledger.errors import (
    DuplicateLoanNumber, InvalidTransition, LoanNotFound, MemberNotFound, ValidationError
)
from sacco_ledger.ledger import SaccoLedger
from sacco_ledger.loans import (
    Loan, LoanStatus, add_months, annuity_monthly_payment,
    flat_monthly_payment, repayment_schedule
)
from sacco_ledger.storage import InMemoryStorage
from sacco_ledger.transactions import TransactionType


class TestPaymentEstimates:
    """Test monthly payment formulas"""

    def test_annuity_payment(self):
        # 10,000 at 12% a year over 12 months is 888.49 a month
        assert annuity_monthly_payment(Decimal('10000'), Decimal('12'), 12) == Decimal('888.49')

    def test_annuity_payment_zero_rate(self):
        assert annuity_monthly_payment(Decimal('1200000'), Decimal('0'), 12) == Decimal('100000.00')

    def test_annuity_exceeds_interest_free_share(self):
        payment = annuity_monthly_payment(Decimal('1200000'), Decimal('15'), 12)
        assert Decimal('100000') < payment < Decimal('115000')

    def test_flat_payment(self):
        assert flat_monthly_payment(Decimal('1200000'), Decimal('15'), 12) == Decimal('115000.00')

    def test_term_must_be_positive(self):
        with pytest.raises(ValidationError):
            annuity_monthly_payment(Decimal('1000'), Decimal('10'), 0)
        with pytest.raises(ValidationError):
            flat_monthly_payment(Decimal('1000'), Decimal('10'), 0)


class TestRepaymentSchedule:

    def test_schedule_pays_off_principal(self):
        schedule = repayment_schedule(Decimal('10000'), Decimal('12'), 12)

        assert len(schedule) == 12
        assert schedule[0].interest_amount == Decimal('100.00')
        assert schedule[0].payment_amount == Decimal('888.49')
        assert sum(e.principal_amount for e in schedule) == Decimal('10000.00')
        assert schedule[-1].remaining_balance == Decimal('0.00')

    def test_entries_add_up(self):
        for entry in repayment_schedule(Decimal('1200000'), Decimal('15'), 12):
            assert entry.payment_amount == entry.principal_amount + entry.interest_amount

    def test_balance_decreases(self):
        schedule = repayment_schedule(Decimal('500000'), Decimal('18'), 6)
        balances = [e.remaining_balance for e in schedule]
        assert balances == sorted(balances, reverse=True)

    def test_dated_schedule(self):
        schedule = repayment_schedule(Decimal('6000'), Decimal('0'), 3, start_date=date(2024, 1, 31))
        assert [e.payment_date for e in schedule] == [
            date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)
        ]
        assert all(e.payment_amount == Decimal('2000.00') for e in schedule)

    def test_undated_schedule(self):
        schedule = repayment_schedule(Decimal('6000'), Decimal('10'), 3)
        assert all(e.payment_date is None for e in schedule)


class TestAddMonths:

    def test_month_end_clamping(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)

    def test_year_rollover(self):
        assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)

    def test_datetime_keeps_time_and_zone(self):
        start = datetime(2024, 3, 31, 10, 30, tzinfo=timezone.utc)
        assert add_months(start, 12) == datetime(2025, 3, 31, 10, 30, tzinfo=timezone.utc)


class TestLoanRecord:

    def test_balance_cannot_exceed_principal(self):
        now = datetime.now(timezone.utc)
        with pytest.raises(ValidationError):
            Loan(id="L1", created_at=now, updated_at=now, loan_number="LN001", member_id="M1",
                 principal=Decimal('100.00'), interest_rate=Decimal('10.00'), term_months=6,
                 purpose="Test", status=LoanStatus.PENDING, balance=Decimal('100.01'))


class TestLoanOrigination:

    def setup_method(self):
        self.ledger = SaccoLedger(InMemoryStorage(), SaccoConfig())
        self.loans = self.ledger.loan_manager
        self.member = self.ledger.member_manager.register_member(
            "VFA010", "Peter", "Okello", "+256702345678"
        )

    def test_create_loan(self):
        loan = self.loans.create_loan(
            self.member.id, Decimal('1200000'), Decimal('15'), 12, "Equipment purchase"
        )

        assert loan.status == LoanStatus.PENDING
        assert loan.principal == Decimal('1200000.00')
        assert loan.balance == Decimal('1200000.00')
        assert loan.interest_rate == Decimal('15.00')
        assert loan.term_months == 12
        assert loan.disbursement_date is None
        assert loan.due_date is None
        assert loan.loan_number == "LN001"

        loaded = self.loans.get_loan(loan.id)
        assert loaded.balance == Decimal('1200000.00')
        assert loaded == loan

    def test_balance_argument_is_ignored(self):
        loan = self.loans.create_loan(
            self.member.id, Decimal('500000'), Decimal('10'), 6, "School fees",
            balance=Decimal('1')
        )
        assert loan.balance == Decimal('500000.00')

    def test_no_transaction_until_approved(self):
        self.loans.create_loan(self.member.id, Decimal('500000'), Decimal('10'), 6, "School fees")
        assert self.ledger.transaction_log.list_transactions() == []

    def test_generated_loan_numbers(self):
        first = self.loans.create_loan(self.member.id, Decimal('1000'), Decimal('10'), 6, "A")
        self.loans.create_loan(self.member.id, Decimal('1000'), Decimal('10'), 6, "B",
                               loan_number="LN010")
        third = self.loans.create_loan(self.member.id, Decimal('1000'), Decimal('10'), 6, "C")

        assert first.loan_number == "LN001"
        assert third.loan_number == "LN011"
        assert self.loans.get_loan_by_number("LN010").purpose == "B"

    def test_duplicate_loan_number(self):
        self.loans.create_loan(self.member.id, Decimal('1000'), Decimal('10'), 6, "A",
                               loan_number="LN777")
        with pytest.raises(DuplicateLoanNumber):
            self.loans.create_loan(self.member.id, Decimal('1000'), Decimal('10'), 6, "B",
                                   loan_number="LN777")

    def test_invalid_inputs(self):
        cases = [
            ({"principal": Decimal('0')}, "principal"),
            ({"principal": Decimal('-10')}, "principal"),
            ({"interest_rate": Decimal('-1')}, "interest_rate"),
            ({"term_months": 0}, "term_months"),
            ({"term_months": 601}, "term_months"),
            ({"term_months": 10 ** 8}, "term_months"),
            ({"term_months": "twelve"}, "term_months"),
            ({"purpose": ""}, "purpose"),
        ]
        for override, field in cases:
            kwargs = dict(member_id=self.member.id, principal=Decimal('1000'),
                          interest_rate=Decimal('10'), term_months=12, purpose="Stock")
            kwargs.update(override)
            with pytest.raises(ValidationError) as exc_info:
                self.loans.create_loan(**kwargs)
            assert exc_info.value.field == field

    def test_term_options_not_enforced_by_default(self):
        loan = self.loans.create_loan(self.member.id, Decimal('1000'), Decimal('10'), 7, "Stock")
        assert loan.term_months == 7

    def test_longest_allowed_term(self):
        loan = self.loans.create_loan(self.member.id, Decimal('1000'), Decimal('10'), 600, "Land")
        assert loan.term_months == 600

    def test_term_options_enforced_when_configured(self):
        ledger = SaccoLedger(InMemoryStorage(), SaccoConfig(enforce_term_options=True))
        member = ledger.member_manager.register_member("VFA001", "Mary", "Nakato", "+256701234567")

        with pytest.raises(ValidationError):
            ledger.loan_manager.create_loan(member.id, Decimal('1000'), Decimal('10'), 7, "Stock")
        assert ledger.loan_manager.create_loan(member.id, Decimal('1000'), Decimal('10'), 18, "Stock")

    def test_unknown_member(self):
        with pytest.raises(MemberNotFound):
            self.loans.create_loan("missing", Decimal('1000'), Decimal('10'), 6, "Stock")

    def test_deactivated_member_cannot_borrow(self):
        self.ledger.member_manager.update_member_status(self.member.id, "deactivated")
        with pytest.raises(ValidationError):
            self.loans.create_loan(self.member.id, Decimal('1000'), Decimal('10'), 6, "Stock")

    def test_monthly_payment_property(self):
        loan = self.loans.create_loan(self.member.id, Decimal('10000'), Decimal('12'), 12, "Stock")
        assert loan.monthly_payment == Decimal('888.49')


class TestLoanApproval:

    def setup_method(self):
        self.ledger = SaccoLedger(InMemoryStorage(), SaccoConfig())
        self.loans = self.ledger.loan_manager
        self.member = self.ledger.member_manager.register_member(
            "VFA010", "Peter", "Okello", "+256702345678"
        )
        self.loan = self.loans.create_loan(
            self.member.id, Decimal('1200000'), Decimal('15'), 12, "Equipment purchase"
        )

    def test_approve_disburses(self):
        approved = self.loans.approve_loan(self.loan.id, "manager")

        assert approved.status == LoanStatus.ACTIVE
        assert approved.approved_by == "manager"
        assert approved.approved_at is not None
        assert approved.disbursement_date is not None
        assert approved.due_date == add_months(approved.disbursement_date, 12)
        assert approved.balance == Decimal('1200000.00')

        transactions = self.ledger.transaction_log.list_transactions(loan_id=self.loan.id)
        assert len(transactions) == 1
        assert transactions[0].transaction_type == TransactionType.LOAN_DISBURSEMENT
        assert transactions[0].amount == Decimal('1200000.00')
        assert transactions[0].processed_by == "manager"
        assert transactions[0].member_id == self.member.id
        assert self.loans.get_disbursement(self.loan.id).id == transactions[0].id

    def test_second_approval_fails(self):
        self.loans.approve_loan(self.loan.id, "manager")
        with pytest.raises(InvalidTransition):
            self.loans.approve_loan(self.loan.id, "manager")
        assert len(self.ledger.transaction_log.list_transactions()) == 1

    def test_reject(self):
        rejected = self.loans.reject_loan(self.loan.id, "manager")

        assert rejected.status == LoanStatus.REJECTED
        assert rejected.approved_by == "manager"
        assert rejected.approved_at is not None
        assert rejected.disbursement_date is None
        assert self.ledger.transaction_log.list_transactions() == []

    def test_rejected_loan_cannot_be_approved(self):
        self.loans.reject_loan(self.loan.id, "manager")

        with pytest.raises(InvalidTransition):
            self.loans.approve_loan(self.loan.id, "manager")
        assert self.loans.get_loan(self.loan.id).status == LoanStatus.REJECTED

    def test_active_loan_cannot_be_rejected(self):
        self.loans.approve_loan(self.loan.id, "manager")
        with pytest.raises(InvalidTransition):
            self.loans.reject_loan(self.loan.id, "manager")

    def test_unknown_loan(self):
        with pytest.raises(LoanNotFound):
            self.loans.approve_loan("missing", "manager")

    def test_schedule_dated_from_disbursement(self):
        approved = self.loans.approve_loan(self.loan.id, "manager")
        schedule = self.loans.get_schedule(self.loan.id)

        assert len(schedule) == 12
        assert schedule[0].payment_date == add_months(approved.disbursement_date.date(), 1)
        assert schedule[-1].remaining_balance == Decimal('0.00')

    def test_list_loans(self):
        other = self.loans.create_loan(self.member.id, Decimal('1000'), Decimal('10'), 6, "Stock")
        self.loans.approve_loan(self.loan.id, "manager")

        assert {l.id for l in self.loans.list_loans()} == {self.loan.id, other.id}
        assert [l.id for l in self.loans.list_loans(status="pending")] == [other.id]
        assert [l.id for l in self.loans.list_loans(status=LoanStatus.ACTIVE)] == [self.loan.id]
        with pytest.raises(ValidationError):
            self.loans.list_loans(status="closed")

    def test_lifecycle_is_audited(self):
        self.loans.approve_loan(self.loan.id, "manager")
        events = self.ledger.audit_trail.get_events_for_entity("loan", self.loan.id)
        assert [e.event_type for e in events] == [AuditEventType.LOAN_CREATED,
                                                  AuditEventType.LOAN_APPROVED]
