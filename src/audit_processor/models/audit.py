"""Record store models: audit records, finding records and run outcomes."""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

# Column on the Audits table that carries this pipeline's lifecycle status.
STATUS_FIELD = "bot_b_status"


class ProcessStatus(str, Enum):
    """Lifecycle status of one processing run."""
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"
    PENDING = "PENDING"


class AuditRecord(BaseModel):
    """One compliance snapshot under analysis.

    Captured inputs are read-only for the pipeline. The narrative fields,
    ``bot_b_status``, ``last_error`` and ``scan_completed_at`` are written
    by the processor only.
    """
    model_config = ConfigDict(extra="ignore")

    id: str
    client: Optional[list[str]] = None
    client_email: Optional[str] = None
    purchase_tier: Optional[str] = None

    html_home: Optional[str] = None
    html_contact: Optional[str] = None
    html_privacy: Optional[str] = None
    policy_text: Optional[str] = None
    tech_stack_json: Optional[str] = None
    forms_detected_json: Optional[str] = None

    bot_a_status: Optional[str] = None
    bot_b_status: Optional[str] = None

    exec_summary: Optional[str] = None
    risk_analysis: Optional[str] = None
    remediation_overview: Optional[str] = None
    last_error: Optional[str] = None
    scan_completed_at: Optional[str] = None

    @classmethod
    def from_store_payload(cls, payload: dict[str, Any]) -> AuditRecord:
        """Build from an Airtable record payload: ``{"id": ..., "fields": {...}}``."""
        fields = payload.get("fields") or {}
        return cls.model_validate({**fields, "id": payload["id"]})


class FindingRecord(BaseModel):
    """Store-bound shape of one finding, linked to exactly one audit."""
    audit: list[str] = Field(description="Single-element link to the owning audit record.")
    severity: str
    status: str = "OPEN"
    category: str
    finding_title: str
    remediation_plan: str = ""
    ai_fix_code: Optional[str] = None
    edge_score_component: Optional[float] = None

    def to_fields(self) -> dict[str, Any]:
        """Serialize for a store write, omitting unset optional values."""
        return self.model_dump(exclude_none=True)


class BatchWriteResult(BaseModel):
    """Aggregate outcome of a chunked findings write."""
    created: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.created + self.failed


class ProcessResult(BaseModel):
    """Outcome of one ``AuditProcessor.run`` call. Returned, never persisted."""
    ok: bool
    audit_record_id: str
    status: ProcessStatus
    findings_created: Optional[int] = None
    findings_failed: Optional[int] = None
    error: Optional[str] = None

    def to_output_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
