"""Generative Analyzer - turns captured pages into findings and narratives.

Sends one bounded prompt to the generative-analysis service, retrying
rate-limit, overload and quota failures with exponential backoff, and parses
the reply with the response parser's fallback semantics.
"""
from __future__ import annotations

import time
from typing import Any, Callable, Optional

import structlog

from audit_processor.config.loader import get_llm_max_tokens, get_llm_model, get_llm_temperature
from audit_processor.models.analysis import AnalysisResult, PageInputs
from audit_processor.nodes.analyzer.prompt_builder import PromptBuilder
from audit_processor.nodes.analyzer.response_parser import ResponseParser
from audit_processor.utils.error_handler import RetryExhaustedError, describe_error, is_rate_limit_error
from audit_processor.utils.llm_client import extract_text, get_anthropic_client

logger = structlog.get_logger(__name__)

MAX_ATTEMPTS = 3
INITIAL_DELAY_SECONDS = 2.0
MAX_DELAY_SECONDS = 128.0


def backoff_delays(attempts: int = MAX_ATTEMPTS) -> list[float]:
    """Sleeps scheduled between attempts: 2s, doubling, capped; none after the last."""
    delays: list[float] = []
    delay = INITIAL_DELAY_SECONDS
    for _ in range(attempts - 1):
        delays.append(delay)
        delay = min(delay * 2, MAX_DELAY_SECONDS)
    return delays


class GenerativeAnalyzer:
    """Calls the generative service for one audit and returns a structured report.

    Holds no per-audit state; one instance can serve concurrent runs.
    """

    def __init__(
        self,
        client: Any = None,
        model_name: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        response_parser: Optional[ResponseParser] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._client = client
        self.model_name = model_name or get_llm_model()
        self.max_tokens = max_tokens or get_llm_max_tokens()
        self.temperature = temperature if temperature is not None else get_llm_temperature()
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.response_parser = response_parser or ResponseParser()
        self._sleep = sleep

    @property
    def client(self):
        if self._client is None:
            self._client = get_anthropic_client()
        return self._client

    def analyze(self, inputs: PageInputs) -> AnalysisResult:
        """Generate findings and narratives for one audit's captured pages."""
        prompt = self.prompt_builder.build_prompt(inputs)
        logger.info("analyzer_started", model=self.model_name, prompt_chars=len(prompt))

        content = self.generate_with_retry(prompt)
        result, had_parse_error = self.response_parser.parse_with_status(content)

        logger.info(
            "analyzer_completed",
            findings=len(result.findings),
            used_fallback=had_parse_error,
        )
        return result

    def generate_with_retry(self, prompt: str) -> str:
        """Send ``prompt``, retrying transient failures.

        Non-retryable errors propagate on first occurrence. When every attempt
        fails with a retryable error, ``RetryExhaustedError`` is raised.
        """
        delays = backoff_delays(MAX_ATTEMPTS)
        last_error: Optional[BaseException] = None

        for attempt in range(MAX_ATTEMPTS):
            try:
                return self._call(prompt)
            except Exception as e:
                if not is_rate_limit_error(e):
                    logger.error("analyzer_llm_failed", attempt=attempt + 1, error=str(e))
                    raise

                last_error = e
                description = describe_error(e)
                if attempt == MAX_ATTEMPTS - 1:
                    break

                wait_time = delays[attempt]
                logger.warning(
                    "analyzer_llm_retry",
                    attempt=attempt + 1,
                    status_code=description.status_code,
                    error=description.message[:200],
                    retry_in_seconds=wait_time,
                )
                self._sleep(wait_time)

        logger.error("analyzer_retries_exhausted", attempts=MAX_ATTEMPTS)
        raise RetryExhaustedError(last_error, MAX_ATTEMPTS)

    def _call(self, prompt: str) -> str:
        response = self.client.messages.create(
            model=self.model_name,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            messages=[{"role": "user", "content": prompt}],
        )
        return extract_text(response)
