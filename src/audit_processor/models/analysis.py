"""Models for the generative analysis step: inputs, findings and reports."""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class Severity(str, Enum):
    """Finding severity, ordered CRITICAL > HIGH > MEDIUM > LOW > INFO."""
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"

    @property
    def rank(self) -> int:
        return SEVERITY_RANKS[self]

    @classmethod
    def parse(cls, value: Any) -> Severity:
        """Lenient parse: case-insensitive, unknown values become INFO."""
        if isinstance(value, Severity):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return cls.INFO


SEVERITY_RANKS: dict[Severity, int] = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
    Severity.INFO: 0,
}


def _text_or(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


class PageInputs(BaseModel):
    """Captured page content and metadata handed to the analyzer."""
    html_home: str
    html_contact: Optional[str] = None
    html_privacy: Optional[str] = None
    policy_text: Optional[str] = None
    tech_stack_json: Optional[str] = None
    forms_detected_json: Optional[str] = None


class GeneratedFinding(BaseModel):
    """One finding as produced by the generative service.

    Missing or malformed fields fall back to defaults instead of failing
    validation; only a non-object item is rejected.
    """
    model_config = ConfigDict(extra="ignore")

    severity: Severity = Severity.INFO
    category: str = "General"
    finding_title: str = Field(
        default="Untitled finding",
        validation_alias=AliasChoices("finding_title", "title"),
    )
    status: str = "OPEN"
    remediation_plan: str = ""
    ai_fix_code: Optional[str] = None
    evidence_snippet: Optional[str] = None
    edge_score_component: Optional[float] = Field(
        default=None,
        description="Contribution of this finding to the overall score, 0-100.",
    )

    @field_validator("severity", mode="before")
    @classmethod
    def parse_severity(cls, v: Any) -> Severity:
        return Severity.parse(v)

    @field_validator("category", mode="before")
    @classmethod
    def default_category(cls, v: Any) -> str:
        return _text_or(v, "General")

    @field_validator("finding_title", mode="before")
    @classmethod
    def default_title(cls, v: Any) -> str:
        return _text_or(v, "Untitled finding")

    @field_validator("status", mode="before")
    @classmethod
    def default_status(cls, v: Any) -> str:
        return _text_or(v, "OPEN")

    @field_validator("remediation_plan", mode="before")
    @classmethod
    def default_remediation(cls, v: Any) -> str:
        return v if isinstance(v, str) else ""

    @field_validator("ai_fix_code", "evidence_snippet", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Optional[str]:
        if isinstance(v, str) and v.strip():
            return v
        return None

    @field_validator("edge_score_component", mode="before")
    @classmethod
    def clamp_score(cls, v: Any) -> Optional[float]:
        """Clamp score to 0-100; unparseable scores are dropped."""
        if v is None or isinstance(v, bool):
            return None
        try:
            score = float(v)
        except (TypeError, ValueError):
            return None
        return min(max(score, 0.0), 100.0)


class AnalysisResult(BaseModel):
    """Structured audit report returned by the analyzer."""
    findings: list[GeneratedFinding] = Field(default_factory=list)
    exec_summary: str = ""
    risk_analysis: str = ""
    remediation_overview: str = ""

    @field_validator("exec_summary", "risk_analysis", "remediation_overview", mode="before")
    @classmethod
    def narrative_or_empty(cls, v: Any) -> str:
        return v if isinstance(v, str) else ""

    @classmethod
    def fallback(cls) -> AnalysisResult:
        """Report used when the service response cannot be decoded."""
        return cls(
            findings=[
                GeneratedFinding(
                    severity=Severity.INFO,
                    category="Audit",
                    finding_title="Audit completed with parsing error",
                    status="OPEN",
                    remediation_plan="Manual review required - LLM response could not be parsed",
                    edge_score_component=50,
                )
            ],
            exec_summary=(
                "The automated audit completed but encountered parsing issues. "
                "Manual review is recommended."
            ),
            risk_analysis="Unable to fully assess risk due to parsing error.",
            remediation_overview="Please conduct a manual security review.",
        )
