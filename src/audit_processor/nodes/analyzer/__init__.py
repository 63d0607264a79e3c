"""Generative Analyzer package.

Turns one audit's captured pages into an ``AnalysisResult``.

Modules:
- node: GenerativeAnalyzer with retry and backoff
- prompt_builder: prompt template loading and page capping
- response_parser: JSON extraction, schema validation and fallback
"""
from audit_processor.nodes.analyzer.node import (
    GenerativeAnalyzer,
    backoff_delays,
    MAX_ATTEMPTS,
)
from audit_processor.nodes.analyzer.prompt_builder import PromptBuilder
from audit_processor.nodes.analyzer.response_parser import ResponseParser

__all__ = [
    "GenerativeAnalyzer",
    "backoff_delays",
    "MAX_ATTEMPTS",
    "PromptBuilder",
    "ResponseParser",
]
