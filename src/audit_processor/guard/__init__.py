"""Field-level write policy enforcement."""
from audit_processor.guard.field_guard import (
    DEFAULT_POLICIES,
    EntityKind,
    FieldGuard,
    FieldPolicy,
    FieldViolation,
    ShieldResult,
    ViolationReason,
)

__all__ = [
    "DEFAULT_POLICIES",
    "EntityKind",
    "FieldGuard",
    "FieldPolicy",
    "FieldViolation",
    "ShieldResult",
    "ViolationReason",
]
