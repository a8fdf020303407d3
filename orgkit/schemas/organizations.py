"""
Organization schemas.

Covers: org create/rename/delete requests, the settings bag
(auto-accept of same-domain members) and org responses.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .common import Role


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class AutoAcceptDomainMembers(BaseModel):
    enabled: bool = False
    domain: Optional[str] = None


class OrgSettings(BaseModel):
    model_config = {"populate_by_name": True}

    auto_accept_domain_members: AutoAcceptDomainMembers = Field(
        default_factory=AutoAcceptDomainMembers,
        alias="autoAcceptDomainMembers",
    )


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class OrgCreateRequest(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    slug: str = Field(min_length=3, max_length=50)


class OrgUpdateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)


class OrgSettingsUpdateRequest(BaseModel):
    auto_accept_domain_members: bool


class OrgDeleteRequest(BaseModel):
    confirm_text: str


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class OrgResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: uuid.UUID
    name: str
    slug: str
    plan: str
    logo_url: Optional[str] = None
    settings: OrgSettings
    created_at: datetime
    updated_at: datetime


class OrgSummary(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    plan: str
    role: Role


class OrgListResponse(BaseModel):
    data: list[OrgSummary]
