"""Tests for the generative analyzer: prompt, retry policy and parsing."""
from __future__ import annotations

import json
from unittest.mock import MagicMock

import anthropic
import httpx
import pytest

from audit_processor.models.analysis import AnalysisResult, PageInputs, Severity
from audit_processor.nodes.analyzer import GenerativeAnalyzer, PromptBuilder, ResponseParser, backoff_delays
from audit_processor.utils.error_handler import RetryExhaustedError


VALID_REPORT = {
    "findings": [
        {
            "severity": "HIGH",
            "category": "Security",
            "finding_title": "Contact form posts over HTTP",
            "status": "OPEN",
            "remediation_plan": "Serve the form action over HTTPS.",
            "ai_fix_code": "<form action=\"https://example.com/contact\">",
            "edge_score_component": 70,
        },
        {
            "severity": "low",
            "category": "Accessibility",
            "finding_title": "Images missing alt text",
            "remediation_plan": "Add alt attributes.",
        },
    ],
    "exec_summary": "Two issues found.",
    "risk_analysis": "Moderate risk.",
    "remediation_overview": "Fix the form first.",
}


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def rate_limit_error() -> anthropic.RateLimitError:
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    return anthropic.RateLimitError("rate limit exceeded", response=httpx.Response(429, request=request), body=None)


@pytest.fixture
def inputs() -> PageInputs:
    return PageInputs(html_home="<html><body><form action='http://example.com'></form></body></html>")


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


def make_analyzer(client, sleep) -> GenerativeAnalyzer:
    return GenerativeAnalyzer(client=client, model_name="test-model", max_tokens=1024, temperature=0.0, sleep=sleep)


class TestRetryPolicy:
    """Bounded exponential backoff on rate-limit style failures."""

    def test_backoff_schedule(self):
        assert backoff_delays(3) == [2.0, 4.0]
        assert backoff_delays(10)[-1] == 128.0

    def test_retryable_failure_exhausts_three_attempts(self, inputs, sleep):
        client = MagicMock()
        client.messages.create.side_effect = rate_limit_error()

        with pytest.raises(RetryExhaustedError) as exc_info:
            make_analyzer(client, sleep).analyze(inputs)

        assert client.messages.create.call_count == 3
        assert sleep.calls == [2.0, 4.0]
        assert sum(sleep.calls) * 1000 == 6000
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_error, anthropic.RateLimitError)

    def test_non_retryable_failure_short_circuits(self, inputs, sleep):
        client = MagicMock()
        client.messages.create.side_effect = ValueError("invalid request body")

        with pytest.raises(ValueError, match="invalid request body"):
            make_analyzer(client, sleep).analyze(inputs)

        assert client.messages.create.call_count == 1
        assert sleep.calls == []

    def test_recovers_after_transient_failure(self, inputs, sleep, llm_response):
        client = MagicMock()
        client.messages.create.side_effect = [
            RuntimeError("model is overloaded"),
            llm_response(json.dumps(VALID_REPORT)),
        ]

        result = make_analyzer(client, sleep).analyze(inputs)

        assert client.messages.create.call_count == 2
        assert sleep.calls == [2.0]
        assert len(result.findings) == 2

    def test_request_uses_configured_model(self, inputs, sleep, llm_response):
        client = MagicMock()
        client.messages.create.return_value = llm_response(json.dumps(VALID_REPORT))

        make_analyzer(client, sleep).analyze(inputs)

        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["max_tokens"] == 1024
        assert kwargs["messages"][0]["role"] == "user"
        assert inputs.html_home in kwargs["messages"][0]["content"]


class TestResponseParser:
    """JSON extraction, schema defaults and fallback."""

    def test_parses_raw_json(self):
        result = ResponseParser().parse(json.dumps(VALID_REPORT))

        assert [f.severity for f in result.findings] == [Severity.HIGH, Severity.LOW]
        assert result.findings[1].status == "OPEN"
        assert result.findings[0].edge_score_component == 70
        assert result.exec_summary == "Two issues found."

    def test_parses_fenced_json(self):
        content = "Here is the report:\n```json\n" + json.dumps(VALID_REPORT) + "\n```\n"
        result, had_error = ResponseParser().parse_with_status(content)

        assert not had_error
        assert len(result.findings) == 2

    def test_parses_unlabelled_fence(self):
        content = "```\n" + json.dumps(VALID_REPORT) + "\n```"
        assert len(ResponseParser().parse(content).findings) == 2

    def test_raw_json_with_fenced_fix_code(self):
        fix = "```nginx\nadd_header Strict-Transport-Security \"max-age=31536000\";\n```"
        report = {**VALID_REPORT, "findings": [{**VALID_REPORT["findings"][0], "ai_fix_code": fix}]}

        result, had_error = ResponseParser().parse_with_status(json.dumps(report))

        assert not had_error
        assert result.findings[0].ai_fix_code == fix

    def test_fenced_json_with_fenced_fix_code(self):
        fix = "```html\n<meta name=\"robots\">\n```"
        report = {**VALID_REPORT, "findings": [{**VALID_REPORT["findings"][0], "ai_fix_code": fix}]}
        content = "Report follows.\n```json\n" + json.dumps(report) + "\n```"

        result, had_error = ResponseParser().parse_with_status(content)

        assert not had_error
        assert result.findings[0].ai_fix_code == fix

    @pytest.mark.parametrize("content", [
        "not json at all",
        "",
        "[1, 2, 3]",
        "```json\n{broken\n```",
    ])
    def test_unparseable_response_uses_fallback(self, content):
        result, had_error = ResponseParser().parse_with_status(content)

        assert had_error
        assert result == AnalysisResult.fallback()
        assert len(result.findings) == 1
        finding = result.findings[0]
        assert finding.severity == Severity.INFO
        assert "Manual review required" in finding.remediation_plan
        assert result.exec_summary

    def test_findings_not_a_list_is_empty(self):
        result, had_error = ResponseParser().parse_with_status(json.dumps({
            "findings": {"severity": "HIGH"},
            "exec_summary": "s",
        }))

        assert not had_error
        assert result.findings == []
        assert result.exec_summary == "s"
        assert result.risk_analysis == ""

    def test_missing_fields_are_defaulted(self):
        result = ResponseParser().parse(json.dumps({
            "findings": [{"title": "Cookie banner missing", "severity": "urgent", "edge_score_component": 250}],
        }))

        finding = result.findings[0]
        assert finding.finding_title == "Cookie banner missing"
        assert finding.severity == Severity.INFO
        assert finding.category == "General"
        assert finding.remediation_plan == ""
        assert finding.edge_score_component == 100.0
        assert result.remediation_overview == ""

    def test_non_object_items_skipped(self):
        result = ResponseParser().parse(json.dumps({
            "findings": ["oops", None, {"finding_title": "Real", "severity": "MEDIUM"}],
        }))

        assert [f.finding_title for f in result.findings] == ["Real"]

    def test_fallback_used_end_to_end(self, inputs, sleep, llm_response):
        client = MagicMock()
        client.messages.create.return_value = llm_response("I could not produce JSON today.")

        result = make_analyzer(client, sleep).analyze(inputs)

        assert result.findings[0].finding_title == "Audit completed with parsing error"


class TestPromptBuilder:
    """Page capping and optional sections."""

    def test_home_page_capped(self):
        builder = PromptBuilder(home_page_max_chars=100, secondary_page_max_chars=10)
        prompt = builder.build_prompt(PageInputs(html_home="A" * 500))

        assert "A" * 100 in prompt
        assert "A" * 101 not in prompt

    def test_secondary_pages_capped_and_optional(self):
        builder = PromptBuilder(home_page_max_chars=100, secondary_page_max_chars=10)
        prompt = builder.build_prompt(PageInputs(html_home="home", html_privacy="P" * 50))

        assert "Privacy Page HTML (truncated):\n" + "P" * 10 + "\n" in prompt
        assert "P" * 11 not in prompt
        assert "Contact Page HTML" not in prompt
        assert "Tech Stack" not in prompt

    def test_metadata_sections_included(self):
        prompt = PromptBuilder().build_prompt(PageInputs(
            html_home="home",
            tech_stack_json='{"cms": "WordPress"}',
            forms_detected_json='[{"action": "/subscribe"}]',
        ))

        assert 'Tech Stack:\n{"cms": "WordPress"}' in prompt
        assert 'Forms Detected:\n[{"action": "/subscribe"}]' in prompt

    def test_prompt_describes_schema(self):
        prompt = PromptBuilder().build_prompt(PageInputs(html_home="home"))

        assert '"findings"' in prompt
        assert "exec_summary" in prompt
        assert "Return ONLY valid JSON" in prompt
