from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

import requests

from toolkit.config import get_settings
from toolkit.models import Assessment, CatalogEntry
from toolkit.services.errors import SummaryGenerationError

RequestFunc = Callable[[str, str, dict[str, str], dict[str, Any] | None, dict[str, Any] | None, int], Any]

ANTHROPIC_VERSION = "2023-06-01"


@dataclass(frozen=True)
class SummaryConfig:
    api_key: str | None
    model: str
    max_tokens: int = 1000
    api_url: str = "https://api.anthropic.com/v1/messages"
    timeout_seconds: int = 30


def build_prompt(entry: CatalogEntry | None, assessments: Sequence[Assessment]) -> str:
    def known(value: Any) -> str:
        return str(value) if value else "Unknown"

    blocks = []
    for index, assessment in enumerate(assessments, start=1):
        lines = [
            f"Submission {index} ({assessment.submitter_email}):",
            f"- Recommendation: {assessment.recommendation.replace('_', ' ')}",
        ]
        for label, value in (
            ("Usage", assessment.usage_frequency),
            ("Use cases", assessment.primary_use_cases),
            ("Learning impact", assessment.learning_impact),
            ("Justification", assessment.justification),
            ("Alternatives", assessment.alternatives_considered),
            ("Feedback", assessment.stakeholder_feedback),
            ("Proposed changes", assessment.proposed_changes),
        ):
            if value:
                lines.append(f"- {label}: {value}")
        blocks.append("\n".join(lines))

    header = "\n".join(
        [
            f"App: {known(entry.product if entry else None)}",
            f"Vendor: {known(entry.vendor if entry else None)}",
            f"Category: {known(entry.category if entry else None)}",
            f"Division: {known(entry.division if entry else None)}",
        ]
    )
    return (
        "You advise a school on whether to renew its software subscriptions.\n\n"
        f"{header}\n\n"
        f"{len(assessments)} staff member(s) submitted renewal assessments:\n\n"
        + "\n\n".join(blocks)
        + "\n\nWrite a concise executive summary in 3-5 paragraphs covering the overall sentiment,"
        " the main use cases and their effect on teaching and learning, any concerns or suggested"
        " changes, and an aggregated recommendation. Keep it objective and actionable."
    )


class SummaryGenerator:
    """Requests a narrative summary of an assessment corpus from the Messages API."""

    def __init__(
        self,
        *,
        config: SummaryConfig | None = None,
        request_func: RequestFunc | None = None,
    ) -> None:
        if config is None:
            settings = get_settings()
            config = SummaryConfig(
                api_key=settings.anthropic_api_key,
                model=settings.summary_model,
                max_tokens=settings.summary_max_tokens,
                api_url=settings.summary_api_url,
                timeout_seconds=settings.external_timeout_seconds,
            )
        self._config = config
        self._request_func = request_func

    def generate(self, entry: CatalogEntry | None, assessments: Sequence[Assessment]) -> str:
        api_key = (self._config.api_key or "").strip()
        if not api_key:
            raise SummaryGenerationError("Summary generation is not configured.")
        if not assessments:
            raise SummaryGenerationError("There are no assessments to summarize.")

        headers = {
            "Content-Type": "application/json",
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }
        body = {
            "model": self._config.model,
            "max_tokens": self._config.max_tokens,
            "messages": [{"role": "user", "content": build_prompt(entry, assessments)}],
        }
        try:
            response = self._dispatch_request(headers, body)
        except Exception as exc:
            raise SummaryGenerationError(f"Summary request failed: {exc}") from exc

        if response.status_code >= 400:
            raise SummaryGenerationError(
                f"Summary request failed with {response.status_code}: {str(getattr(response, 'text', '')).strip()[:500]}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise SummaryGenerationError("Summary service returned a non-JSON response.") from exc

        text = self._extract_text(payload)
        if not text:
            raise SummaryGenerationError("Summary service returned no text.")
        return text

    def _dispatch_request(self, headers: dict[str, str], body: dict[str, Any]):
        timeout = max(1, self._config.timeout_seconds)
        if self._request_func is not None:
            return self._request_func("POST", self._config.api_url, headers, body, None, timeout)
        return requests.post(self._config.api_url, headers=headers, json=body, timeout=timeout)

    @staticmethod
    def _extract_text(payload: Any) -> str | None:
        if not isinstance(payload, Mapping):
            return None
        content = payload.get("content")
        if not isinstance(content, list):
            return None
        parts = [
            block.get("text", "")
            for block in content
            if isinstance(block, Mapping) and block.get("type", "text") == "text"
        ]
        text = "".join(parts).strip()
        return text or None


def get_summary_generator() -> SummaryGenerator:
    return SummaryGenerator()
