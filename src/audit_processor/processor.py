"""Audit processor: drives one audit from RUNNING to a terminal status.

Steps run strictly in order: fetch the record, analyze its pages, reuse
cached remediation text, batch-write findings, then finalize the record.
Any failure is caught once at the top of ``run`` and stored as a FAILED or
PENDING status with its message; ``run`` always returns a ``ProcessResult``.

Findings written before a later failure are not rolled back, and two runs
for the same audit are not mutually excluded (see ``AuditDispatcher`` for an
opt-in per-audit lock).
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import structlog

from audit_processor.cache.remediation_cache import RemediationCache
from audit_processor.models.analysis import AnalysisResult, GeneratedFinding, PageInputs
from audit_processor.models.audit import (
    STATUS_FIELD,
    AuditRecord,
    FindingRecord,
    ProcessResult,
    ProcessStatus,
)
from audit_processor.nodes.analyzer import GenerativeAnalyzer
from audit_processor.store.record_store import RecordStoreClient
from audit_processor.utils.error_handler import InputValidationError, NotFoundError, is_rate_limit_error

logger = structlog.get_logger(__name__)

REQUIRED_FIELD = "html_home"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class AuditProcessor:
    """Orchestrates record store, analyzer and remediation cache for one audit."""

    def __init__(
        self,
        store: RecordStoreClient,
        analyzer: GenerativeAnalyzer,
        cache: Optional[RemediationCache] = None,
    ):
        self.store = store
        self.analyzer = analyzer
        self.cache = cache if cache is not None else RemediationCache.from_config()

    def run(self, audit_record_id: str) -> ProcessResult:
        log = logger.bind(audit_record_id=audit_record_id)
        log.info("audit_processing_started")

        if not self._safe_update(audit_record_id, {STATUS_FIELD: ProcessStatus.RUNNING.value}):
            log.warning("audit_mark_running_failed")

        try:
            record = self._fetch(audit_record_id)
            result = self.analyzer.analyze(self._page_inputs(record))
            findings = self.apply_cached_remediation(result.findings)

            batch = self.store.create_findings_batch(self.build_finding_records(audit_record_id, findings))
            log.info("audit_findings_written", created=batch.created, failed=batch.failed)

            self._finalize(audit_record_id, result)
        except Exception as e:
            return self._fail(audit_record_id, e)

        log.info("audit_processing_complete", findings_created=batch.created)
        return ProcessResult(
            ok=True,
            audit_record_id=audit_record_id,
            status=ProcessStatus.COMPLETE,
            findings_created=batch.created,
            findings_failed=batch.failed,
        )

    def _safe_update(self, audit_record_id: str, fields: dict) -> bool:
        """Best-effort status write used outside the main step sequence."""
        try:
            return self.store.update_audit_record(audit_record_id, fields)
        except Exception as e:
            logger.error("audit_status_write_failed", audit_record_id=audit_record_id, error=str(e))
            return False

    def _fetch(self, audit_record_id: str) -> AuditRecord:
        record = self.store.get_audit_record(audit_record_id)
        if record is None:
            raise NotFoundError(audit_record_id)
        if not getattr(record, REQUIRED_FIELD):
            raise InputValidationError(REQUIRED_FIELD)
        return record

    @staticmethod
    def _page_inputs(record: AuditRecord) -> PageInputs:
        return PageInputs(
            html_home=record.html_home,
            html_contact=record.html_contact,
            html_privacy=record.html_privacy,
            policy_text=record.policy_text,
            tech_stack_json=record.tech_stack_json,
            forms_detected_json=record.forms_detected_json,
        )

    def apply_cached_remediation(self, findings: list[GeneratedFinding]) -> list[GeneratedFinding]:
        """Reuse cached remediation text; seed the cache with new text otherwise."""
        hits = 0
        for finding in findings:
            key = self.cache.fingerprint(
                finding.finding_title,
                finding.category,
                finding.severity.value,
                finding.evidence_snippet,
            )
            cached = self.cache.get(key)
            if cached is not None:
                finding.remediation_plan = cached
                hits += 1
            elif finding.remediation_plan:
                self.cache.put(key, finding.remediation_plan)

        logger.debug("remediation_cache_applied", findings=len(findings), hits=hits)
        return findings

    @staticmethod
    def build_finding_records(audit_record_id: str, findings: list[GeneratedFinding]) -> list[FindingRecord]:
        """Link findings to the audit, most severe first."""
        ordered = sorted(findings, key=lambda f: f.severity.rank, reverse=True)
        return [
            FindingRecord(
                audit=[audit_record_id],
                severity=f.severity.value,
                status=f.status or "OPEN",
                category=f.category,
                finding_title=f.finding_title,
                remediation_plan=f.remediation_plan,
                ai_fix_code=f.ai_fix_code,
                edge_score_component=f.edge_score_component,
            )
            for f in ordered
        ]

    def _finalize(self, audit_record_id: str, result: AnalysisResult) -> None:
        updated = self.store.update_audit_record(
            audit_record_id,
            {
                STATUS_FIELD: ProcessStatus.COMPLETE.value,
                "exec_summary": result.exec_summary,
                "risk_analysis": result.risk_analysis,
                "remediation_overview": result.remediation_overview,
                "scan_completed_at": utc_now_iso(),
                "last_error": "",
            },
        )
        if not updated:
            logger.warning("audit_finalize_write_failed", audit_record_id=audit_record_id)

    def _fail(self, audit_record_id: str, error: Exception) -> ProcessResult:
        message = str(error) or type(error).__name__
        if isinstance(error, (NotFoundError, InputValidationError)):
            status = ProcessStatus.FAILED
        elif is_rate_limit_error(error):
            status = ProcessStatus.PENDING
        else:
            status = ProcessStatus.FAILED

        logger.error(
            "audit_processing_failed",
            audit_record_id=audit_record_id,
            status=status.value,
            error_type=type(error).__name__,
            error=message,
        )
        self._safe_update(audit_record_id, {STATUS_FIELD: status.value, "last_error": message})
        return ProcessResult(
            ok=False,
            audit_record_id=audit_record_id,
            status=status,
            error=message,
        )


def create_processor(cache: Optional[RemediationCache] = None) -> AuditProcessor:
    """Factory wiring the processor to the environment-configured services."""
    return AuditProcessor(
        store=RecordStoreClient.from_env(),
        analyzer=GenerativeAnalyzer(),
        cache=cache,
    )
