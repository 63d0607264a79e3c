"""Response parsing for the generative analyzer.

Decodes the service response into an ``AnalysisResult``. Decoding fails
closed: a response that is not a JSON object yields the fallback report,
never an exception.
"""
from __future__ import annotations

import json
import re
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from audit_processor.models.analysis import AnalysisResult, GeneratedFinding
from audit_processor.utils.error_handler import ParseError

logger = structlog.get_logger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


class ResponseParser:
    """Parses service responses into ``AnalysisResult`` objects."""

    def parse(self, content: str) -> AnalysisResult:
        result, _ = self.parse_with_status(content)
        return result

    def parse_with_status(self, content: str) -> tuple[AnalysisResult, bool]:
        """Parse a response and report whether the fallback was used.

        Returns: (result, had_parse_error)
        """
        try:
            data = self.decode(content)
        except ParseError as e:
            logger.warning("analyzer_response_parse_failed", error=e.message, details=e.details)
            return AnalysisResult.fallback(), True

        findings = self._parse_findings(data.get("findings"))
        result = AnalysisResult(
            findings=findings,
            exec_summary=data.get("exec_summary"),
            risk_analysis=data.get("risk_analysis"),
            remediation_overview=data.get("remediation_overview"),
        )
        return result, False

    def extract_json_text(self, content: str) -> str:
        """Strip a fenced code block if present."""
        match = _FENCED_BLOCK.search(content or "")
        text = match.group(1) if match else (content or "")
        return text.strip()

    @staticmethod
    def _outer_object(content: str) -> str:
        start, end = content.find("{"), content.rfind("}")
        return content[start:end + 1] if 0 <= start < end else ""

    def decode(self, content: str) -> dict[str, Any]:
        """Decode the JSON body. Raises ``ParseError`` on any failure.

        Candidates are tried in order: the whole body as raw JSON, the first
        fenced block, then the outermost ``{...}`` span. Fences inside string
        values (code snippets in ``ai_fix_code``) therefore never cut a valid
        raw body short.
        """
        raw = (content or "").strip()
        if not raw:
            raise ParseError("Empty response from generative service")

        candidates = [raw, self.extract_json_text(raw), self._outer_object(raw)]
        last_error: Optional[json.JSONDecodeError] = None
        for text in dict.fromkeys(c for c in candidates if c):
            try:
                data = json.loads(text)
                break
            except json.JSONDecodeError as e:
                last_error = e
        else:
            details = f"{last_error.msg} at {last_error.pos}" if last_error else ""
            raise ParseError("Response is not valid JSON", details=details)

        if not isinstance(data, dict):
            raise ParseError("Response JSON is not an object", details=type(data).__name__)
        return data

    def _parse_findings(self, raw: Any) -> list[GeneratedFinding]:
        if not isinstance(raw, list):
            if raw is not None:
                logger.warning("analyzer_findings_not_a_list", type=type(raw).__name__)
            return []

        findings: list[GeneratedFinding] = []
        for index, item in enumerate(raw):
            if not isinstance(item, dict):
                logger.warning("analyzer_finding_skipped", index=index, type=type(item).__name__)
                continue
            try:
                findings.append(GeneratedFinding.model_validate(item))
            except ValidationError as e:
                logger.warning("analyzer_finding_validation_error", index=index, error=str(e))
        return findings
