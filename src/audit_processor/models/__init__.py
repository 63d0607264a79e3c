"""Data models shared across the audit pipeline."""
from audit_processor.models.analysis import (
    AnalysisResult,
    GeneratedFinding,
    PageInputs,
    Severity,
)
from audit_processor.models.audit import (
    STATUS_FIELD,
    AuditRecord,
    BatchWriteResult,
    FindingRecord,
    ProcessResult,
    ProcessStatus,
)

__all__ = [
    "AnalysisResult",
    "GeneratedFinding",
    "PageInputs",
    "Severity",
    "STATUS_FIELD",
    "AuditRecord",
    "BatchWriteResult",
    "FindingRecord",
    "ProcessResult",
    "ProcessStatus",
]
