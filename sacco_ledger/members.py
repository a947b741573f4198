"""
Member Management Module

Manages member registration, contact details, roles and account status.
Every member owns exactly one savings record, opened in the same storage
transaction as the member itself.
"""

import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Optional, Union

from .audit import AuditTrail, AuditEventType
from .errors import (
    DuplicateKeyError, DuplicateMemberNumber, MemberNotFound, ValidationError
)
from .logging_config import get_logger, log_action
from .money import ZERO
from .savings import SavingsManager
from .storage import StorageInterface, StorageRecord
from .transactions import Transaction
from .validation import coerce_enum, optional_text, require_text

MEMBER_NUMBER_PATTERN = re.compile(r'^[A-Za-z0-9-]+$')
EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


class MemberRole(Enum):
    """Back-office role of a member"""
    MEMBER = "member"
    MANAGER = "manager"
    ADMIN = "admin"


class MemberStatus(Enum):
    """Account status. Any status may move to any other."""
    ACTIVE = "active"
    PART_TIME = "part-time"
    DEACTIVATED = "deactivated"
    FROZEN = "frozen"

    @classmethod
    def _missing_(cls, value):
        # Older screens submit "inactive" for part-time members
        if value == "inactive":
            return cls.PART_TIME
        return None


@dataclass
class Member(StorageRecord):
    """
    SACCO member profile
    """
    member_number: str
    first_name: str
    last_name: str
    phone: str
    email: Optional[str] = None
    national_id: Optional[str] = None
    address: Optional[str] = None
    role: MemberRole = MemberRole.MEMBER
    status: MemberStatus = MemberStatus.ACTIVE
    date_joined: Optional[datetime] = None
    is_active: bool = True

    datetime_fields = ('date_joined',)
    enum_fields = {'role': MemberRole, 'status': MemberStatus}

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def can_transact(self) -> bool:
        """Frozen and deactivated members cannot open deposits, loans or withdrawals"""
        return self.is_active and self.status in (MemberStatus.ACTIVE, MemberStatus.PART_TIME)


class MemberManager:
    """
    Manages member lifecycle and the member side of savings movements
    """

    UPDATABLE_FIELDS = ('first_name', 'last_name', 'phone', 'email', 'national_id', 'address', 'role')

    def __init__(
        self,
        storage: StorageInterface,
        savings_manager: SavingsManager,
        audit_trail: AuditTrail,
        member_number_prefix: str = "VFA",
        reference_tables: Iterable[str] = ("loans", "deposits", "transactions", "unfreeze_requests")
    ):
        self.storage = storage
        self.savings_manager = savings_manager
        self.audit_trail = audit_trail
        self.member_number_prefix = member_number_prefix
        self.reference_tables = tuple(reference_tables)
        self.table_name = "members"
        self.logger = get_logger("sacco.members")

    def register_member(
        self,
        member_number: str,
        first_name: str,
        last_name: str,
        phone: str,
        email: Optional[str] = None,
        national_id: Optional[str] = None,
        address: Optional[str] = None,
        role: Union[MemberRole, str] = MemberRole.MEMBER,
        registered_by: Optional[str] = None
    ) -> Member:
        """
        Register a new member and open their savings account

        Args:
            member_number: Human-assigned business key, e.g. "VFA010"
            first_name: Member's first name
            last_name: Member's last name
            phone: Contact phone number
            email: Optional email, unique when given
            national_id: Optional national ID, unique when given
            address: Optional postal or physical address
            role: member, manager or admin
            registered_by: ID of the staff member registering

        Returns:
            Created Member

        Raises:
            DuplicateMemberNumber: If the member number is taken
            DuplicateKeyError: If the email or national ID is taken
            ValidationError: If a field is missing or malformed
        """
        member_number = require_text(member_number, "member_number")
        if not MEMBER_NUMBER_PATTERN.match(member_number):
            raise ValidationError("member_number", "may only contain letters, digits and dashes")

        now = datetime.now(timezone.utc)
        member = Member(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            member_number=member_number,
            first_name=require_text(first_name, "first_name"),
            last_name=require_text(last_name, "last_name"),
            phone=require_text(phone, "phone"),
            email=self._clean_email(email),
            national_id=optional_text(national_id),
            address=optional_text(address),
            role=coerce_enum(MemberRole, role, "role"),
            status=MemberStatus.ACTIVE,
            date_joined=now,
            is_active=True
        )

        with self.storage.atomic():
            if self.get_member_by_number(member_number):
                raise DuplicateMemberNumber(member_number)
            self._check_unique_contacts(member)

            self._save_member(member)
            self.savings_manager.open_account(member.id)

            self.audit_trail.log_event(
                event_type=AuditEventType.MEMBER_REGISTERED,
                entity_type="member",
                entity_id=member.id,
                metadata={
                    "member_number": member.member_number,
                    "role": member.role.value
                },
                user_id=registered_by
            )

        log_action(
            self.logger, "info", f"Member registered: {member.member_number}",
            user_id=registered_by, action="register_member", resource=f"member:{member.id}"
        )
        return member

    def get_member(self, member_id: str) -> Optional[Member]:
        data = self.storage.load(self.table_name, member_id)
        if data:
            return Member.from_dict(data)
        return None

    def require_member(self, member_id: str) -> Member:
        member = self.get_member(member_id)
        if not member:
            raise MemberNotFound(member_id)
        return member

    def get_member_by_number(self, member_number: str) -> Optional[Member]:
        found = self.storage.find(self.table_name, {'member_number': member_number})
        if found:
            return Member.from_dict(found[0])
        return None

    def list_members(
        self,
        status: Optional[Union[MemberStatus, str]] = None,
        active_only: bool = False
    ) -> List[Member]:
        """List members ordered by member number"""
        filters = {}
        if status:
            filters['status'] = coerce_enum(MemberStatus, status, "status").value
        if active_only:
            filters['is_active'] = True

        members = [Member.from_dict(d) for d in self.storage.find(self.table_name, filters)]
        members.sort(key=lambda m: m.member_number)
        return members

    def get_savings_balance(self, member_id: str) -> Decimal:
        savings = self.savings_manager.get_savings(member_id)
        return savings.balance if savings else ZERO

    def update_member_details(self, member_id: str, updated_by: Optional[str] = None, **changes) -> Member:
        """
        Edit contact details or role. The member number is immutable.

        Raises:
            MemberNotFound: If the member does not exist
            ValidationError: On an unknown field or an attempt to change the member number
        """
        if 'member_number' in changes:
            raise ValidationError("member_number", "cannot be changed after registration")
        unknown = set(changes) - set(self.UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(sorted(unknown)[0], "is not an updatable member field")

        with self.storage.atomic():
            member = self.require_member(member_id)

            for name, value in changes.items():
                if name in ('first_name', 'last_name', 'phone'):
                    value = require_text(value, name)
                elif name == 'email':
                    value = self._clean_email(value)
                elif name == 'role':
                    value = coerce_enum(MemberRole, value, "role")
                else:
                    value = optional_text(value)
                setattr(member, name, value)

            self._check_unique_contacts(member)
            member.updated_at = datetime.now(timezone.utc)
            self._save_member(member)

            self.audit_trail.log_event(
                event_type=AuditEventType.MEMBER_UPDATED,
                entity_type="member",
                entity_id=member.id,
                metadata={"fields": sorted(changes)},
                user_id=updated_by
            )

        return member

    def update_member_status(
        self,
        member_id: str,
        new_status: Union[MemberStatus, str],
        updated_by: Optional[str] = None
    ) -> Member:
        """
        Move a member to any status. Deactivation clears the active flag;
        every other status sets it.
        """
        new_status = coerce_enum(MemberStatus, new_status, "status")

        with self.storage.atomic():
            member = self.require_member(member_id)
            old_status = member.status

            member.status = new_status
            member.is_active = new_status != MemberStatus.DEACTIVATED
            member.updated_at = datetime.now(timezone.utc)
            self._save_member(member)

            self.audit_trail.log_event(
                event_type=AuditEventType.MEMBER_STATUS_CHANGED,
                entity_type="member",
                entity_id=member.id,
                metadata={"old_status": old_status.value, "new_status": new_status.value},
                user_id=updated_by
            )

        log_action(
            self.logger, "info",
            f"Member {member.member_number} status {old_status.value} -> {new_status.value}",
            user_id=updated_by, action="update_member_status", resource=f"member:{member.id}"
        )
        return member

    def delete_member(self, member_id: str, deleted_by: Optional[str] = None) -> bool:
        """
        Remove a member.

        A member nothing refers to is deleted together with their savings
        record. A member with loans, deposits, transactions or unfreeze
        requests is deactivated instead, so those records keep a valid
        member reference.

        Returns:
            True if the member was removed permanently, False if deactivated
        """
        with self.storage.atomic():
            member = self.require_member(member_id)

            if self._has_references(member_id):
                member.is_active = False
                member.status = MemberStatus.DEACTIVATED
                member.updated_at = datetime.now(timezone.utc)
                self._save_member(member)
                event_type = AuditEventType.MEMBER_DEACTIVATED
                permanent = False
            else:
                self.savings_manager.remove_account(member_id)
                self.storage.delete(self.table_name, member_id)
                event_type = AuditEventType.MEMBER_DELETED
                permanent = True

            self.audit_trail.log_event(
                event_type=event_type,
                entity_type="member",
                entity_id=member_id,
                metadata={"member_number": member.member_number},
                user_id=deleted_by
            )

        log_action(
            self.logger, "warning",
            f"Member {member.member_number} {'deleted' if permanent else 'deactivated'}",
            user_id=deleted_by, action="delete_member", resource=f"member:{member_id}"
        )
        return permanent

    def withdraw_savings(
        self,
        member_id: str,
        amount: Decimal,
        processor_id: str,
        description: Optional[str] = None
    ) -> Transaction:
        """
        Pay out savings to a member.

        Raises:
            MemberNotFound: If the member does not exist
            ValidationError: If the member is frozen/deactivated or the amount is not positive
            InsufficientFunds: If the balance would go negative
        """
        with self.storage.atomic():
            member = self.require_member(member_id)
            self.check_can_transact(member)
            _, transaction = self.savings_manager.debit(
                member_id, amount, processor_id,
                description or f"Savings withdrawal - {member.full_name}"
            )
            return transaction

    def check_can_transact(self, member: Member) -> None:
        if not member.can_transact:
            raise ValidationError(
                "member_id", f"member {member.member_number} is {member.status.value}"
            )

    def suggest_member_number(self) -> str:
        """Next free member number for the configured prefix, e.g. VFA004"""
        prefix = self.member_number_prefix
        highest = 0
        for data in self.storage.load_all(self.table_name):
            number = data['member_number']
            suffix = number[len(prefix):]
            if number.startswith(prefix) and suffix.isdigit():
                highest = max(highest, int(suffix))
        return f"{prefix}{highest + 1:03d}"

    def _has_references(self, member_id: str) -> bool:
        return any(
            self.storage.find(table, {'member_id': member_id})
            for table in self.reference_tables
        )

    def _check_unique_contacts(self, member: Member) -> None:
        for key in ('email', 'national_id'):
            value = getattr(member, key)
            if value is None:
                continue
            for data in self.storage.find(self.table_name, {key: value}):
                if data['id'] != member.id:
                    raise DuplicateKeyError(key.replace('_', ' ').capitalize(), value)

    @staticmethod
    def _clean_email(email: Optional[str]) -> Optional[str]:
        email = optional_text(email)
        if email is not None and not EMAIL_PATTERN.match(email):
            raise ValidationError("email", "invalid email format")
        return email

    def _save_member(self, member: Member) -> None:
        self.storage.save(self.table_name, member.id, member.to_dict())
