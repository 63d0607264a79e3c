"""Airtable record store client for audits and findings.

Reads are reported as ``None`` on any failure; writes go through the
``FieldGuard`` first and report success as booleans or counts. Nothing here
raises past the client boundary once it is constructed.
"""
from __future__ import annotations

import os
from typing import Any, Iterable, Iterator, Mapping, Optional, Sequence

import httpx
import structlog

from audit_processor.config.loader import get_record_store_config
from audit_processor.guard.field_guard import EntityKind, FieldGuard
from audit_processor.models.audit import AuditRecord, BatchWriteResult, FindingRecord
from audit_processor.utils.error_handler import ConfigurationError

logger = structlog.get_logger(__name__)

# Airtable accepts at most 10 records per bulk create.
BATCH_SIZE = 10


def chunked(items: Sequence[Any], size: int = BATCH_SIZE) -> Iterator[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _as_fields(finding: FindingRecord | Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(finding, FindingRecord):
        return finding.to_fields()
    return finding


class RecordStoreClient:
    """Reads audit records and writes shielded updates and findings."""

    def __init__(
        self,
        api_key: str,
        base_id: str,
        guard: Optional[FieldGuard] = None,
        http_client: Optional[httpx.Client] = None,
        api_url: Optional[str] = None,
        audits_table: Optional[str] = None,
        findings_table: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        if not api_key or not base_id:
            raise ConfigurationError(
                "Record store not configured - missing AIRTABLE_API_KEY or AIRTABLE_BASE_ID",
            )

        settings = get_record_store_config()
        self.base_id = base_id
        self.audits_table = audits_table or settings["audits_table"]
        self.findings_table = findings_table or settings["findings_table"]
        self.guard = guard or FieldGuard()

        base_url = f"{(api_url or settings['api_url']).rstrip('/')}/{base_id}"
        self._owns_client = http_client is None
        self._http = http_client or httpx.Client(
            base_url=base_url,
            timeout=timeout or settings["timeout_seconds"],
        )
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        logger.info("record_store_initialized", base_id=base_id)

    @classmethod
    def from_env(cls, guard: Optional[FieldGuard] = None) -> RecordStoreClient:
        return cls(
            api_key=os.getenv("AIRTABLE_API_KEY", ""),
            base_id=os.getenv("AIRTABLE_BASE_ID", ""),
            guard=guard,
        )

    def close(self) -> None:
        if self._owns_client:
            self._http.close()

    def __enter__(self) -> RecordStoreClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, path: str, json_data: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        response = self._http.request(method, path, json=json_data, headers=self._headers)
        response.raise_for_status()
        payload = response.json() if response.content else {}
        if not isinstance(payload, dict):
            raise ValueError(f"Unexpected record store response type: {type(payload).__name__}")
        return payload

    # Audits -------------------------------------------------------------
    def get_audit_record(self, record_id: str) -> Optional[AuditRecord]:
        """Fetch one audit record. Any failure, including not found, returns None."""
        try:
            payload = self._request("GET", f"/{self.audits_table}/{record_id}")
            return AuditRecord.from_store_payload(payload)
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.error("audit_record_fetch_failed", record_id=record_id, error=str(e))
            return None

    def update_audit_record(self, record_id: str, fields: Mapping[str, Any]) -> bool:
        safe_fields = self.guard.filter(EntityKind.AUDIT, fields)
        if not safe_fields:
            logger.error("audit_update_aborted", record_id=record_id, reason="all fields blocked by write shield")
            return False

        try:
            self._request("PATCH", f"/{self.audits_table}/{record_id}", {"fields": safe_fields})
        except (httpx.HTTPError, ValueError) as e:
            logger.error("audit_update_failed", record_id=record_id, error=str(e))
            return False
        return True

    # Findings -----------------------------------------------------------
    def create_finding(self, finding: FindingRecord | Mapping[str, Any]) -> Optional[str]:
        """Create one finding record and return its id, or None."""
        safe_fields = self.guard.filter(EntityKind.FINDING, _as_fields(finding))
        if not safe_fields:
            logger.error("finding_create_aborted", reason="all fields blocked by write shield")
            return None

        try:
            payload = self._request("POST", f"/{self.findings_table}", {"fields": safe_fields})
            return payload["id"]
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.error("finding_create_failed", error=str(e))
            return None

    def create_findings_batch(self, findings: Iterable[FindingRecord | Mapping[str, Any]]) -> BatchWriteResult:
        """Create findings in chunks of ``BATCH_SIZE``.

        Each chunk succeeds or fails on its own; a failed chunk is counted in
        full and the next chunk is still attempted. Never raises.
        """
        items = list(findings)
        result = BatchWriteResult()

        for index, batch in enumerate(chunked(items, BATCH_SIZE)):
            try:
                records = [
                    {"fields": self.guard.filter(EntityKind.FINDING, _as_fields(f))}
                    for f in batch
                ]
                valid_records = [r for r in records if r["fields"]]
                if not valid_records:
                    logger.error("findings_batch_aborted", chunk=index, reason="all fields blocked by write shield")
                    result.failed += len(batch)
                    continue

                self._request("POST", f"/{self.findings_table}", {"records": valid_records})
            except Exception as e:
                logger.error("findings_batch_failed", chunk=index, size=len(batch), error=str(e))
                result.failed += len(batch)
                continue

            result.created += len(valid_records)
            result.failed += len(batch) - len(valid_records)

        logger.info("findings_batch_written", created=result.created, failed=result.failed)
        return result
