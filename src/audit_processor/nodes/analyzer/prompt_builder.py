"""Prompt building for the generative analyzer.

Loads the versioned prompt template and assembles the single request sent to
the service, capping each captured page so the prompt stays bounded.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import structlog
import yaml

from audit_processor.config.loader import get_page_caps
from audit_processor.models.analysis import PageInputs
from audit_processor.utils.error_handler import ConfigurationError

logger = structlog.get_logger(__name__)

PROMPTS_DIR = Path(__file__).parent.parent.parent / "prompts" / "site_audit"
DEFAULT_PROMPT_VERSION = "v1.0"


def truncate(text: Optional[str], limit: int) -> str:
    return (text or "")[:limit]


class PromptBuilder:
    """Builds the audit prompt from page inputs."""

    def __init__(
        self,
        version: str = DEFAULT_PROMPT_VERSION,
        home_page_max_chars: Optional[int] = None,
        secondary_page_max_chars: Optional[int] = None,
    ):
        home_cap, secondary_cap = get_page_caps()
        self.version = version
        self.home_page_max_chars = home_page_max_chars or home_cap
        self.secondary_page_max_chars = secondary_page_max_chars or secondary_cap
        self._template: dict[str, Any] | None = None

    def load_prompt(self) -> dict[str, Any]:
        """Load prompt configuration from YAML file."""
        if self._template is not None:
            return self._template

        prompt_file = PROMPTS_DIR / f"{self.version}.yaml"
        if not prompt_file.exists():
            logger.error("analyzer_prompt_not_found", path=str(prompt_file))
            raise ConfigurationError(f"Prompt template not found: {prompt_file}")

        with open(prompt_file, "r", encoding="utf-8") as f:
            self._template = yaml.safe_load(f) or {}
        return self._template

    def build_sections(self, inputs: PageInputs) -> list[str]:
        """Capped page content, one section per available input."""
        sections = [f"HTML Home Page (truncated):\n{truncate(inputs.html_home, self.home_page_max_chars)}"]

        secondary = [
            ("Contact Page HTML (truncated)", inputs.html_contact),
            ("Privacy Page HTML (truncated)", inputs.html_privacy),
            ("Policy Text (truncated)", inputs.policy_text),
        ]
        for label, text in secondary:
            snippet = truncate(text, self.secondary_page_max_chars)
            if snippet:
                sections.append(f"{label}:\n{snippet}")

        if inputs.tech_stack_json:
            sections.append(f"Tech Stack:\n{inputs.tech_stack_json}")
        if inputs.forms_detected_json:
            sections.append(f"Forms Detected:\n{inputs.forms_detected_json}")

        return sections

    def build_prompt(self, inputs: PageInputs) -> str:
        template = self.load_prompt()
        focus = "\n".join(
            f"{i}. {area}" for i, area in enumerate(template.get("focus_areas", []), start=1)
        )

        parts = [
            template.get("role", "").strip(),
            "\n\n".join(self.build_sections(inputs)),
            "Generate a JSON response with the following structure:\n"
            + template.get("output_schema", "").strip(),
        ]
        if focus:
            parts.append(f"Focus on:\n{focus}")
        parts.append(template.get("instructions", "").strip())

        return "\n\n".join(p for p in parts if p)
