"""
Feature flags: static defaults with environment variable overrides.

``FEATURES__AUDIT_LOG=true`` (server) or ``PUBLIC_FEATURES__AUDIT_LOG=true``
(client-visible) toggles the ``auditLog`` flag. Server overrides win.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from functools import lru_cache
from typing import Literal, Optional

PRIVATE_PREFIX = "FEATURES__"
PUBLIC_PREFIX = "PUBLIC_FEATURES__"

TRUTHY = {"1", "true", "yes", "on", "enabled"}
FALSY = {"0", "false", "no", "off", "disabled"}


@dataclass(frozen=True)
class FeatureConfig:
    name: str
    description: str
    enabled: bool = False
    dependencies: tuple[str, ...] = ()


@dataclass(frozen=True)
class FeatureFlag(FeatureConfig):
    key: str = ""
    source: Literal["config", "env"] = "config"


FEATURES: dict[str, FeatureConfig] = {
    # Core features
    "auth": FeatureConfig("Authentication", "User authentication and session management", True),
    "multiTenant": FeatureConfig("Multi-tenant", "Multi-tenant organization support", True),
    "userManagement": FeatureConfig("User Management", "User roles and permissions", True),
    # Optional features
    "auditLog": FeatureConfig(
        "Audit Log",
        "Append-only log of privileged actions",
        dependencies=("auth", "multiTenant"),
    ),
    "billing": FeatureConfig(
        "Billing", "Subscription management", dependencies=("auth", "multiTenant")
    ),
    "stripeSupport": FeatureConfig(
        "Stripe Support", "Stripe payment collaborator", dependencies=("billing",)
    ),
    "analytics": FeatureConfig(
        "Analytics", "Usage tracking and analytics", dependencies=("multiTenant",)
    ),
    "notifications": FeatureConfig(
        "Notifications", "Email and push notifications", dependencies=("auth",)
    ),
    "apiKeys": FeatureConfig(
        "API Keys", "API key management for integrations", dependencies=("auth", "multiTenant")
    ),
    "webhooks": FeatureConfig(
        "Webhooks", "Webhook system for integrations", dependencies=("auth", "multiTenant")
    ),
}


def _camel_case(segments: list[str]) -> str:
    head, *tail = segments
    return head.lower() + "".join(s[:1].upper() + s[1:].lower() for s in tail)


def normalize_env_key(raw_key: str, prefix: str) -> Optional[str]:
    """``FEATURES__AUDIT_LOG`` -> ``auditLog``; ``None`` when the prefix doesn't match."""
    if not raw_key.startswith(prefix):
        return None
    segments = [s for s in raw_key[len(prefix):].split("_") if s]
    if not segments:
        return None
    return _camel_case(segments)


def parse_bool(value: str) -> Optional[bool]:
    normalized = value.strip().lower()
    if normalized in TRUTHY:
        return True
    if normalized in FALSY:
        return False
    return None


def read_env_overrides(environ: Mapping[str, str]) -> dict[str, bool]:
    public: dict[str, bool] = {}
    private: dict[str, bool] = {}
    for raw_key, value in environ.items():
        if not isinstance(value, str) or not value.strip():
            continue
        for prefix, bucket in ((PRIVATE_PREFIX, private), (PUBLIC_PREFIX, public)):
            key = normalize_env_key(raw_key, prefix)
            if key is None:
                continue
            parsed = parse_bool(value)
            if parsed is not None:
                bucket[key] = parsed
            break
    return {**public, **private}


@dataclass(frozen=True)
class FeatureFlags:
    flags: dict[str, FeatureFlag] = field(default_factory=dict)

    def is_enabled(self, key: str) -> bool:
        flag = self.flags.get(key)
        return bool(flag and flag.enabled)

    def get(self, key: str) -> Optional[FeatureFlag]:
        return self.flags.get(key)

    def enabled_keys(self) -> list[str]:
        return [key for key, flag in self.flags.items() if flag.enabled]

    def with_overrides(self, **overrides: bool) -> "FeatureFlags":
        """Copy with some flags forced on/off (used by tests and scripts)."""
        flags = dict(self.flags)
        for key, enabled in overrides.items():
            base = flags.get(key) or FeatureFlag(name=key, description="", key=key)
            flags[key] = replace(base, enabled=enabled, source="env")
        return FeatureFlags(flags)


def resolve_feature_flags(environ: Optional[Mapping[str, str]] = None) -> FeatureFlags:
    overrides = read_env_overrides(os.environ if environ is None else environ)
    resolved: dict[str, FeatureFlag] = {}
    for key, config in FEATURES.items():
        override = overrides.get(key)
        resolved[key] = FeatureFlag(
            name=config.name,
            description=config.description,
            enabled=config.enabled if override is None else override,
            dependencies=config.dependencies,
            key=key,
            source="config" if override is None else "env",
        )
    return FeatureFlags(resolved)


@lru_cache
def get_feature_flags() -> FeatureFlags:
    return resolve_feature_flags()
