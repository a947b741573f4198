"""
Unfreeze Request Module

A frozen member asks for their account to be unfrozen; an administrator
approves (member becomes active) or rejects the request.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Union

from .audit import AuditTrail, AuditEventType
from .errors import InvalidTransition, UnfreezeRequestNotFound, ValidationError
from .logging_config import get_logger, log_action
from .members import MemberManager, MemberStatus
from .storage import StorageInterface, StorageRecord
from .validation import coerce_enum, optional_text, require_text


class UnfreezeRequestStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class UnfreezeRequest(StorageRecord):
    member_id: str
    status: UnfreezeRequestStatus
    reason: Optional[str] = None
    processed_by: Optional[str] = None
    processed_at: Optional[datetime] = None
    admin_notes: Optional[str] = None

    datetime_fields = ('processed_at',)
    enum_fields = {'status': UnfreezeRequestStatus}


class UnfreezeRequestManager:
    """Submission and processing of unfreeze requests"""

    def __init__(self, storage: StorageInterface, member_manager: MemberManager,
                 audit_trail: AuditTrail):
        self.storage = storage
        self.member_manager = member_manager
        self.audit_trail = audit_trail
        self.table_name = "unfreeze_requests"
        self.logger = get_logger("sacco.unfreeze")

    def submit_request(self, member_id: str, reason: Optional[str] = None) -> UnfreezeRequest:
        """
        Raises:
            MemberNotFound: If the member does not exist
            InvalidTransition: If the member is not frozen or already has a pending request
        """
        with self.storage.atomic():
            member = self.member_manager.require_member(member_id)
            if member.status != MemberStatus.FROZEN:
                raise InvalidTransition("member", member_id, member.status.value, "request unfreeze for")
            if self.storage.find(self.table_name, {
                'member_id': member_id, 'status': UnfreezeRequestStatus.PENDING.value
            }):
                raise InvalidTransition("member", member_id, "unfreeze pending", "request unfreeze for")

            now = datetime.now(timezone.utc)
            request = UnfreezeRequest(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                member_id=member_id,
                status=UnfreezeRequestStatus.PENDING,
                reason=optional_text(reason)
            )
            self._save_request(request)

            self.audit_trail.log_event(
                event_type=AuditEventType.UNFREEZE_REQUESTED,
                entity_type="unfreeze_request",
                entity_id=request.id,
                metadata={"member_id": member_id},
                user_id=member_id
            )

        log_action(
            self.logger, "info", f"Unfreeze requested by member {member.member_number}",
            user_id=member_id, action="submit_unfreeze_request",
            resource=f"unfreeze_request:{request.id}"
        )
        return request

    def process_request(
        self,
        request_id: str,
        decision: Union[UnfreezeRequestStatus, str],
        processed_by: str,
        admin_notes: Optional[str] = None
    ) -> UnfreezeRequest:
        """
        Approve or reject a pending request. Approval sets the member active.

        Raises:
            UnfreezeRequestNotFound: If the request does not exist
            InvalidTransition: If the request was already processed
            ValidationError: If the decision is not approved or rejected
        """
        decision = coerce_enum(UnfreezeRequestStatus, decision, "status")
        if decision == UnfreezeRequestStatus.PENDING:
            raise ValidationError("status", "decision must be approved or rejected")
        processed_by = require_text(processed_by, "processed_by")

        with self.storage.atomic():
            request = self.get_request(request_id)
            if not request:
                raise UnfreezeRequestNotFound(request_id)
            if request.status != UnfreezeRequestStatus.PENDING:
                raise InvalidTransition("unfreeze request", request_id, request.status.value, "process")

            now = datetime.now(timezone.utc)
            request.status = decision
            request.processed_by = processed_by
            request.processed_at = now
            request.admin_notes = optional_text(admin_notes)
            request.updated_at = now
            self._save_request(request)

            if decision == UnfreezeRequestStatus.APPROVED:
                self.member_manager.update_member_status(
                    request.member_id, MemberStatus.ACTIVE, updated_by=processed_by
                )

            self.audit_trail.log_event(
                event_type=AuditEventType.UNFREEZE_PROCESSED,
                entity_type="unfreeze_request",
                entity_id=request.id,
                metadata={"member_id": request.member_id, "decision": decision.value},
                user_id=processed_by
            )

        log_action(
            self.logger, "info", f"Unfreeze request {decision.value}",
            user_id=processed_by, action="process_unfreeze_request",
            resource=f"unfreeze_request:{request.id}"
        )
        return request

    def get_request(self, request_id: str) -> Optional[UnfreezeRequest]:
        data = self.storage.load(self.table_name, request_id)
        if data:
            return UnfreezeRequest.from_dict(data)
        return None

    def list_requests(
        self,
        status: Optional[Union[UnfreezeRequestStatus, str]] = None,
        member_id: Optional[str] = None
    ) -> List[UnfreezeRequest]:
        filters = {}
        if status:
            filters['status'] = coerce_enum(UnfreezeRequestStatus, status, "status").value
        if member_id:
            filters['member_id'] = member_id
        requests = [UnfreezeRequest.from_dict(d) for d in self.storage.find(self.table_name, filters)]
        requests.sort(key=lambda r: r.created_at, reverse=True)
        return requests

    def _save_request(self, request: UnfreezeRequest) -> None:
        self.storage.save(self.table_name, request.id, request.to_dict())
