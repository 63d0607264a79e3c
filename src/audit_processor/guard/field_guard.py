"""Write shield: field-level allow/deny enforcement for record store writes.

Every write to the record store passes through ``FieldGuard.filter`` first.
Field names offered by the generator (or any other caller) are untrusted; a
field is written only when it is allowlisted for its entity kind and not on
the read-only denylist. Rejected fields are dropped and logged, never raised.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

import structlog

logger = structlog.get_logger(__name__)


class EntityKind(str, Enum):
    AUDIT = "audit"
    FINDING = "finding"


class ViolationReason(str, Enum):
    READ_ONLY = "read-only"
    NOT_ALLOWLISTED = "not-allowlisted"


# Computed, identifier and lookup-derived columns. Never writable.
READ_ONLY_DENYLIST = frozenset({
    "edge_score",
    "record_id",
    "client_id",
    "client_record_id_lookup",
    "client_record_id",
    "client_email (from client)",
    "Id",
})

AUDITS_WRITE_ALLOWLIST = frozenset({
    "bot_b_status",
    "overall_status",
    "scan_completed_at",
    "last_error",
    "exec_summary",
    "risk_analysis",
    "remediation_overview",
    "findings_raw",
    "artifacts_raw",
    "analysis_metadata",
})

FINDINGS_WRITE_ALLOWLIST = frozenset({
    "audit",
    "client",
    "title",
    "finding_title",
    "severity",
    "status",
    "description",
    "recommendation",
    "remediation_plan",
    "surface_area",
    "category",
    "edge_score_component",
    "ai_fix_code",
})


@dataclass(frozen=True)
class FieldPolicy:
    """Writable and always-denied field names for one entity kind."""
    name: str
    writable: frozenset[str]
    denied: frozenset[str] = READ_ONLY_DENYLIST

    def __post_init__(self) -> None:
        object.__setattr__(self, "writable", frozenset(self.writable))
        object.__setattr__(self, "denied", frozenset(self.denied))

    def check(self, field_name: str) -> Optional[ViolationReason]:
        """Return why ``field_name`` is rejected, or None if it may be written."""
        if field_name in self.denied:
            return ViolationReason.READ_ONLY
        if field_name not in self.writable:
            return ViolationReason.NOT_ALLOWLISTED
        return None


DEFAULT_POLICIES: dict[EntityKind, FieldPolicy] = {
    EntityKind.AUDIT: FieldPolicy("audits", AUDITS_WRITE_ALLOWLIST),
    EntityKind.FINDING: FieldPolicy("findings", FINDINGS_WRITE_ALLOWLIST),
}


@dataclass(frozen=True)
class FieldViolation:
    field_name: str
    reason: ViolationReason

    def __str__(self) -> str:
        return f"DENIED({self.reason.value}): {self.field_name}"


@dataclass(frozen=True)
class ShieldResult:
    accepted: dict[str, Any]
    violations: tuple[FieldViolation, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.accepted


class FieldGuard:
    """Applies per-entity-kind field policies to proposed writes."""

    def __init__(self, policies: Optional[Mapping[EntityKind, FieldPolicy]] = None):
        self._policies: dict[EntityKind, FieldPolicy] = dict(policies or DEFAULT_POLICIES)

    def policy_for(self, kind: EntityKind | str) -> FieldPolicy:
        """Policy for ``kind``. Unknown kinds raise ``KeyError``."""
        try:
            return self._policies[EntityKind(kind)]
        except ValueError as e:
            raise KeyError(f"No field policy for entity kind: {kind!r}") from e

    def inspect(self, kind: EntityKind | str, fields: Optional[Mapping[str, Any]]) -> ShieldResult:
        """Split ``fields`` into the accepted subset and the rejected names."""
        policy = self.policy_for(kind)
        accepted: dict[str, Any] = {}
        violations: list[FieldViolation] = []

        for name, value in (fields or {}).items():
            reason = policy.check(name)
            if reason is not None:
                violations.append(FieldViolation(name, reason))
                continue
            accepted[name] = value

        if violations:
            logger.warning(
                "write_shield_blocked_fields",
                policy=policy.name,
                violations=[str(v) for v in violations],
            )

        return ShieldResult(accepted=accepted, violations=tuple(violations))

    def filter(self, kind: EntityKind | str, fields: Optional[Mapping[str, Any]]) -> dict[str, Any]:
        """Return only the fields the policy for ``kind`` allows to be written."""
        return self.inspect(kind, fields).accepted

    def describe(self) -> dict[str, dict[str, list[str]]]:
        """Policies as sorted name lists, for display."""
        return {
            kind.value: {
                "writable": sorted(policy.writable),
                "denied": sorted(policy.denied),
            }
            for kind, policy in self._policies.items()
        }
