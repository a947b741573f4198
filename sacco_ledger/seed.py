"""
Demo Data

Loads a small sample SACCO through the public ledger operations, so every
balance has its matching transactions and audit events.
"""

from decimal import Decimal
from typing import Any, Dict

from .ledger import SaccoLedger
from .logging_config import get_logger

DEMO_MEMBERS = [
    {
        "member_number": "VFA001", "first_name": "Mary", "last_name": "Nakato",
        "phone": "+256701234567", "email": "mary.nakato@email.com",
        "national_id": "CM123456789", "address": "Kampala, Uganda", "role": "admin",
        "savings": Decimal('2500000'),
    },
    {
        "member_number": "VFA002", "first_name": "Peter", "last_name": "Okello",
        "phone": "+256702345678", "email": "peter.okello@email.com",
        "national_id": "CM987654321", "address": "Gulu, Uganda", "role": "manager",
        "savings": Decimal('1800000'),
    },
    {
        "member_number": "VFA003", "first_name": "Sarah", "last_name": "Akello",
        "phone": "+256703456789", "email": "sarah.akello@email.com",
        "national_id": "CM456789123", "address": "Jinja, Uganda", "role": "member",
        "savings": Decimal('500000'),
    },
]


def seed_demo_data(ledger: SaccoLedger) -> Dict[str, Any]:
    """
    Populate an empty ledger with demo members, savings and loans.

    Does nothing when members already exist.

    Returns:
        Summary of what was created
    """
    logger = get_logger("sacco.seed")
    if ledger.member_manager.list_members():
        logger.info("Ledger already has members; skipping demo data")
        return {"seeded": False}

    with ledger.storage.atomic():
        members = {}
        for details in DEMO_MEMBERS:
            details = dict(details)
            savings = details.pop("savings")
            member = ledger.member_manager.register_member(registered_by="seed", **details)
            members[member.member_number] = member

            deposit = ledger.deposit_manager.create_deposit(
                member.id, savings, "cash", "seed", notes="Opening savings"
            )
            ledger.deposit_manager.approve_deposit(deposit.id, members["VFA001"].id)

        admin_id = members["VFA001"].id

        equipment = ledger.loan_manager.create_loan(
            members["VFA002"].id, Decimal('1500000'), Decimal('15.00'), 12,
            "Equipment purchase", created_by=members["VFA002"].id
        )
        ledger.loan_manager.approve_loan(equipment.id, admin_id)
        ledger.repayment_manager.record_repayment(
            equipment.id, Decimal('300000'), "mobile_money", admin_id, notes="First installment"
        )

        ledger.loan_manager.create_loan(
            members["VFA003"].id, Decimal('800000'), Decimal('14.00'), 6,
            "Education fees", created_by=members["VFA003"].id
        )

    summary = {
        "seeded": True,
        "members": len(members),
        "loans": len(ledger.loan_manager.list_loans()),
        "transactions": len(ledger.transaction_log.list_transactions()),
    }
    logger.info(f"Demo data loaded: {summary}")
    return summary
