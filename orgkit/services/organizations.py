"""
Organization service: org CRUD, settings and domain-based auto-join.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from orgkit.core.auth import OrgContext
from orgkit.core.email_domain import get_email_domain, is_personal_email_domain
from orgkit.core.errors import Conflict, ValidationError
from orgkit.core.features import FeatureFlags
from orgkit.core.permissions import can_manage_members, has_permission, require
from orgkit.core.tenancy import is_valid_tenant_slug
from orgkit.models.base import utcnow
from orgkit.models.invitation import Invitation
from orgkit.models.membership import Membership
from orgkit.models.organization import Organization
from orgkit.models.user import User
from orgkit.schemas.organizations import AutoAcceptDomainMembers, OrgSettings
from orgkit.services import memberships as store
from orgkit.services.audit import RequestMeta, record_event

log = structlog.get_logger()

SETTINGS_KEY = "autoAcceptDomainMembers"


def org_settings(org: Organization) -> OrgSettings:
    return OrgSettings.model_validate(org.settings or {})


async def list_user_orgs(session: AsyncSession, user_id: uuid.UUID) -> list[dict]:
    """All orgs the user is an active member of, with their role."""
    rows = await store.list_user_organizations(session, user_id)
    return [
        {"id": org.id, "name": org.name, "slug": org.slug, "plan": org.plan, "role": role}
        for org, role in rows
    ]


async def create_org(
    session: AsyncSession,
    user: User,
    name: str,
    slug: str,
    *,
    meta: Optional[RequestMeta] = None,
    flags: Optional[FeatureFlags] = None,
) -> Organization:
    """Create an org and make the creator its owner."""
    name = name.strip()
    slug = slug.strip()
    if not is_valid_tenant_slug(slug):
        raise ValidationError("Invalid organization slug format", field="slug")

    if await store.get_organization_by_slug(session, slug):
        raise Conflict("Organization slug is already taken", code="slug_taken")

    org = Organization(name=name, slug=slug, plan="free", settings=OrgSettings().model_dump(by_alias=True))
    session.add(org)
    await session.flush()

    session.add(
        Membership(user_id=user.id, organization_id=org.id, role="owner", status="active")
    )
    await session.flush()

    log.info("org.created", org_id=str(org.id), slug=slug, creator=str(user.id))
    await record_event(
        session,
        organization_id=org.id,
        actor_id=user.id,
        action="organization.create",
        target_type="organization",
        target_id=org.id,
        metadata={"name": name, "slug": slug},
        meta=meta,
        flags=flags,
    )
    return org


async def rename_org(
    session: AsyncSession,
    ctx: OrgContext,
    name: str,
    *,
    flags: Optional[FeatureFlags] = None,
) -> Organization:
    require(has_permission(ctx.role, "organization", "update"), "You cannot update this organization")

    name = name.strip()
    if not 2 <= len(name) <= 100:
        raise ValidationError("Organization name must be between 2 and 100 characters", field="name")

    org = ctx.org
    previous_name = org.name
    org.name = name
    org.updated_at = utcnow()
    session.add(org)
    await session.flush()

    log.info("org.updated", org_id=str(org.id), slug=org.slug)
    await record_event(
        session,
        organization_id=org.id,
        actor_id=ctx.user_id,
        action="organization.update",
        target_type="organization",
        target_id=org.id,
        metadata={"previous_name": previous_name, "name": name},
        meta=ctx.meta,
        flags=flags,
    )
    return org


async def update_auto_accept(
    session: AsyncSession,
    ctx: OrgContext,
    enabled: bool,
    *,
    flags: Optional[FeatureFlags] = None,
) -> Organization:
    """Toggle automatic membership for users sharing the actor's e-mail domain."""
    require(can_manage_members(ctx.role), "You do not have permission to update organization settings")

    org = ctx.org
    current = org_settings(org).auto_accept_domain_members

    if enabled:
        domain = get_email_domain(ctx.user.email)
        if not domain:
            raise ValidationError("A valid e-mail domain is required to enable this feature", field="email")
        if is_personal_email_domain(domain):
            raise ValidationError(
                "Personal e-mail domains cannot enable automatic membership approval",
                field="email",
            )
        updated = AutoAcceptDomainMembers(enabled=True, domain=domain)
    else:
        updated = AutoAcceptDomainMembers(enabled=False, domain=current.domain)

    # Reassign so the JSON column is flagged dirty
    org.settings = {**(org.settings or {}), SETTINGS_KEY: updated.model_dump()}
    org.updated_at = utcnow()
    session.add(org)
    await session.flush()

    log.info("org.settings_updated", org_id=str(org.id), auto_accept=enabled, domain=updated.domain)
    await record_event(
        session,
        organization_id=org.id,
        actor_id=ctx.user_id,
        action="organization.settings.update",
        target_type="organization",
        target_id=org.id,
        metadata={SETTINGS_KEY: updated.model_dump()},
        meta=ctx.meta,
        flags=flags,
    )
    return org


async def ensure_auto_accepted_domain_membership(session: AsyncSession, user: User) -> list[uuid.UUID]:
    """Join the user to every org auto-accepting their e-mail domain. Returns the org ids joined."""
    domain = get_email_domain(user.email)
    if not domain or is_personal_email_domain(domain):
        return []

    result = await session.execute(
        select(Organization).where(
            Organization.settings[(SETTINGS_KEY, "domain")].as_string() == domain
        )
    )
    joined: list[uuid.UUID] = []
    for org in result.scalars().all():
        if not org_settings(org).auto_accept_domain_members.enabled:
            continue
        if await store.get_membership(session, org.id, user.id):
            continue
        session.add(
            Membership(user_id=user.id, organization_id=org.id, role="member", status="active")
        )
        joined.append(org.id)
        log.info("org.auto_joined", org_id=str(org.id), user_id=str(user.id), domain=domain)

    if joined:
        await session.flush()
    return joined


async def delete_org(
    session: AsyncSession,
    ctx: OrgContext,
    confirm_text: str,
    *,
    flags: Optional[FeatureFlags] = None,
) -> None:
    """Permanently delete the org. Audit entries are kept."""
    require(has_permission(ctx.role, "organization", "delete"), "Only the owner can delete the organization")

    org = ctx.org
    if confirm_text != org.name:
        raise ValidationError("Confirmation text does not match the organization name", field="confirm_text")

    await session.execute(delete(Invitation).where(Invitation.organization_id == org.id))
    await session.execute(delete(Membership).where(Membership.organization_id == org.id))
    await session.delete(org)
    await session.flush()

    log.info("org.deleted", org_id=str(org.id), slug=org.slug)
    await record_event(
        session,
        organization_id=org.id,
        actor_id=ctx.user_id,
        action="organization.delete",
        target_type="organization",
        target_id=org.id,
        metadata={"name": org.name, "slug": org.slug},
        meta=ctx.meta,
        flags=flags,
    )
