"""Team schemas: members, role changes, ownership transfer and invitations."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, field_validator

from .common import InvitationRole, MemberStatus, Role


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

class MemberRecord(BaseModel):
    """One membership joined with its user's profile."""
    model_config = {"from_attributes": True}

    id: uuid.UUID  # membership id
    user_id: uuid.UUID
    organization_id: uuid.UUID
    role: Role
    status: MemberStatus
    invited_by: Optional[uuid.UUID] = None
    name: Optional[str] = None
    email: str
    avatar_url: Optional[str] = None
    joined_at: datetime


class MemberListResponse(BaseModel):
    data: list[MemberRecord]


class RoleUpdateRequest(BaseModel):
    role: Role


class TransferOwnershipRequest(BaseModel):
    new_owner_member_id: uuid.UUID


class TransferOwnershipResponse(BaseModel):
    previous_owner: MemberRecord
    new_owner: MemberRecord


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

class InvitationCreateRequest(BaseModel):
    email: EmailStr
    role: InvitationRole = InvitationRole.MEMBER

    @field_validator("email")
    @classmethod
    def _lower(cls, v: str) -> str:
        return v.strip().lower()


class InvitationRecord(BaseModel):
    model_config = {"from_attributes": True}

    id: uuid.UUID
    organization_id: uuid.UUID
    email: str
    role: InvitationRole
    invited_by: Optional[uuid.UUID] = None
    inviter_name: Optional[str] = None
    expires_at: datetime
    created_at: datetime


class InvitationListResponse(BaseModel):
    data: list[InvitationRecord]


class InvitationDispatchResponse(BaseModel):
    """Result of create/resend. E-mail delivery is best-effort."""
    invitation: InvitationRecord
    email_sent: bool
    warning: Optional[str] = None


class InvitationAcceptRequest(BaseModel):
    token: str


class InvitationAcceptResponse(BaseModel):
    organization_id: uuid.UUID
    organization_slug: str
    membership: MemberRecord
