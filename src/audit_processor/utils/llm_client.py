"""Anthropic client factory for the generative analyzer.

Provides a centralized factory for creating Anthropic clients with
consistent SSL handling for corporate proxy environments and a bounded
request timeout.
"""
from __future__ import annotations

import os
from typing import Optional

import httpx
from anthropic import Anthropic

import structlog

from audit_processor.config.loader import get_llm_timeout

logger = structlog.get_logger(__name__)


def get_anthropic_client(timeout: Optional[float] = None) -> Anthropic:
    """Create an Anthropic client with appropriate SSL settings.

    SSL verification is enabled by default. Set ANTHROPIC_VERIFY_SSL=false
    to disable it behind an intercepting proxy.

    The SDK's built-in retries are turned off; the analyzer owns the retry
    and backoff policy.
    """
    timeout = timeout if timeout is not None else get_llm_timeout()
    verify_ssl = os.getenv("ANTHROPIC_VERIFY_SSL", "true").lower() != "false"

    if not verify_ssl:
        logger.warning("anthropic_ssl_verification_disabled")
        http_client = httpx.Client(verify=False, timeout=timeout)
        return Anthropic(http_client=http_client, timeout=timeout, max_retries=0)

    return Anthropic(timeout=timeout, max_retries=0)


def extract_text(response) -> str:
    """Return the concatenated text blocks of a Messages API response."""
    blocks = getattr(response, "content", None) or []
    return "".join(getattr(block, "text", "") or "" for block in blocks)
