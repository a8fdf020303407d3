"""
Tests for the audit trail: request metadata, gated writes and paging.
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlmodel import select

from orgkit.models.audit_log import AuditLog
from orgkit.models.base import utcnow
from orgkit.services.audit import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    RequestMeta,
    clamp_page,
    fetch_audit_logs,
    is_audit_enabled,
    record_event,
)


class TestRequestMeta:
    def test_forwarded_for_first_hop(self):
        meta = RequestMeta.from_headers(
            {"x-forwarded-for": "203.0.113.7, 10.0.0.1", "user-agent": "curl/8"}, "10.0.0.2"
        )
        assert meta.ip_address == "203.0.113.7"
        assert meta.user_agent == "curl/8"

    def test_falls_back_to_peer(self):
        assert RequestMeta.from_headers({}, "10.0.0.2").ip_address == "10.0.0.2"

    def test_real_ip_header_when_no_peer(self):
        assert RequestMeta.from_headers({"x-real-ip": "198.51.100.4"}).ip_address == "198.51.100.4"

    def test_empty(self):
        assert RequestMeta.from_headers({}) == RequestMeta()


class TestRecordEvent:
    async def test_disabled_flag_writes_nothing(self, session, org, owner, flags_off, fetch):
        assert not is_audit_enabled(flags_off)
        await record_event(
            session, organization_id=org.id, actor_id=owner.id, action="member.remove", flags=flags_off
        )
        assert await fetch(select(AuditLog)) == []

    async def test_writes_row(self, session, org, owner, flags_on, fetch):
        meta = RequestMeta(ip_address="203.0.113.7", user_agent="pytest")
        await record_event(
            session,
            organization_id=org.id,
            actor_id=owner.id,
            action="invitation.create",
            target_type="invitation",
            target_id=uuid.UUID(int=7),
            metadata={"email": "new@acme.io"},
            meta=meta,
            flags=flags_on,
        )
        [entry] = await fetch(select(AuditLog))
        assert entry.organization_id == org.id
        assert entry.target_id == str(uuid.UUID(int=7))
        assert entry.event_metadata == {"email": "new@acme.io"}
        assert entry.ip_address == "203.0.113.7"
        assert entry.user_agent == "pytest"

    async def test_failures_are_swallowed(self, flags_on):
        session = MagicMock()
        session.begin_nested.side_effect = RuntimeError("database is locked")
        # Must not raise
        await record_event(
            session, organization_id=uuid.uuid4(), action="member.remove", flags=flags_on
        )
        session.begin_nested.assert_called_once()


class TestClampPage:
    @pytest.mark.parametrize(
        "page,size,expected",
        [
            (None, None, (1, DEFAULT_PAGE_SIZE)),
            (0, 10, (1, 10)),
            (-3, 0, (1, DEFAULT_PAGE_SIZE)),
            (4, 500, (4, MAX_PAGE_SIZE)),
        ],
    )
    def test_clamp(self, page, size, expected):
        assert clamp_page(page, size) == expected


class TestFetchAuditLogs:
    async def _seed(self, session, org, actor, count):
        now = utcnow()
        for i in range(count):
            session.add(
                AuditLog(
                    organization_id=org.id,
                    actor_id=actor.id if actor else None,
                    action=f"event.{i}",
                    created_at=now - timedelta(minutes=count - i),
                )
            )
        await session.commit()

    async def test_newest_first_with_actor(self, session, org, owner):
        await self._seed(session, org, owner, 3)
        page = await fetch_audit_logs(session, org.id)
        assert [e.action for e in page.logs] == ["event.2", "event.1", "event.0"]
        assert page.logs[0].actor.email == "owner@acme.io"
        assert page.logs[0].actor.name == "Olivia Owner"
        assert (page.total, page.page, page.page_count) == (3, 1, 1)

    async def test_pagination(self, session, org, owner):
        await self._seed(session, org, owner, 5)
        page = await fetch_audit_logs(session, org.id, page=2, page_size=2)
        assert [e.action for e in page.logs] == ["event.2", "event.1"]
        assert page.page_count == 3
        assert page.total == 5

    async def test_page_past_end_is_empty(self, session, org, owner):
        await self._seed(session, org, owner, 2)
        page = await fetch_audit_logs(session, org.id, page=9, page_size=2)
        assert page.logs == []
        assert page.total == 2

    async def test_system_events_have_no_actor(self, session, org):
        await self._seed(session, org, None, 1)
        [entry] = (await fetch_audit_logs(session, org.id)).logs
        assert entry.actor is None
        assert entry.actor_id is None

    async def test_scoped_to_organization(self, session, factory, org, owner):
        other = await factory.user("boss@globex.io", "Boss")
        globex = await factory.org(other, "Globex", "globex")
        await self._seed(session, globex, other, 2)
        page = await fetch_audit_logs(session, org.id)
        assert page.logs == []
        assert page.page_count == 1

    async def test_camel_case_serialization(self, session, org, owner):
        await self._seed(session, org, owner, 1)
        body = (await fetch_audit_logs(session, org.id)).model_dump(by_alias=True, mode="json")
        assert set(body) == {"logs", "page", "pageSize", "total", "pageCount"}
        assert {"organizationId", "actorId", "targetType", "createdAt", "metadata"} <= set(body["logs"][0])
