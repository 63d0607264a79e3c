"""Audit processing pipeline.

Turns captured compliance snapshots into categorized findings and narrative
reports, persisted back into the record store.
"""
from audit_processor.cache.remediation_cache import RemediationCache
from audit_processor.dispatch import AuditDispatcher, DispatchAck
from audit_processor.guard.field_guard import EntityKind, FieldGuard
from audit_processor.models import ProcessResult, ProcessStatus
from audit_processor.nodes.analyzer import GenerativeAnalyzer
from audit_processor.processor import AuditProcessor, create_processor
from audit_processor.store.record_store import RecordStoreClient

__all__ = [
    "AuditDispatcher",
    "AuditProcessor",
    "DispatchAck",
    "EntityKind",
    "FieldGuard",
    "GenerativeAnalyzer",
    "ProcessResult",
    "ProcessStatus",
    "RecordStoreClient",
    "RemediationCache",
    "create_processor",
]
