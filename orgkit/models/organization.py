"""Organization model."""

from typing import Optional

from sqlmodel import Field, SQLModel

from .base import JSONType, TimestampMixin, UUIDMixin


class Organization(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organizations"

    name: str = Field(nullable=False, index=True)
    slug: str = Field(unique=True, nullable=False, index=True, max_length=50)
    plan: str = Field(default="free", nullable=False)
    logo_url: Optional[str] = None
    # {"autoAcceptDomainMembers": {"enabled": bool, "domain": str | None}}
    settings: dict = Field(default_factory=dict, sa_type=JSONType, nullable=False)
