"""Text generation advisor backed by an Ollama-compatible service."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Union

import httpx
from pydantic import BaseModel, ValidationError

from ...config import Settings, settings as default_settings
from ...errors import AdviceUnavailableError
from ...schemas.advice import ScheduleAnalysis, StopPlacement
from .prompts import PromptKind, render_prompt

logger = logging.getLogger(__name__)

_SCHEMAS: dict[PromptKind, type[BaseModel]] = {
    PromptKind.SCHEDULE_ANALYSIS: ScheduleAnalysis,
    PromptKind.STOP_OPTIMIZATION: StopPlacement,
}


@dataclass(frozen=True, slots=True)
class AdviceOk:
    payload: BaseModel


@dataclass(frozen=True, slots=True)
class AdviceUnavailable:
    reason: str


Advice = Union[AdviceOk, AdviceUnavailable]


def extract_json_block(text: str) -> dict:
    """Parse the JSON object spanning the first ``{`` to the last ``}`` of ``text``."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise AdviceUnavailableError("No JSON object found in the generated text.")
    try:
        parsed = json.loads(text[start : end + 1])
    except json.JSONDecodeError as e:
        raise AdviceUnavailableError(f"Generated JSON is invalid: {e}") from e
    if not isinstance(parsed, dict):
        raise AdviceUnavailableError("Generated JSON is not an object.")
    return parsed


class NarrativeAdvisor:
    """Asks the text generation service for schedule and stop placement advice.

    Every failure is reported as :class:`AdviceUnavailable`; a single attempt
    is made per call.
    """

    def __init__(
        self,
        config: Settings | None = None,
        *,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        config = config or default_settings
        self.base_url = (base_url or config.ollama_base_url or "").rstrip("/") or None
        self.model = model or config.ollama_model
        self.temperature = config.ollama_temperature
        self.timeout = timeout if timeout is not None else config.advisor_timeout_seconds
        self._transport = transport

    @property
    def configured(self) -> bool:
        return self.base_url is not None

    def _generate(self, prompt: str) -> str:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": self.temperature},
        }
        with httpx.Client(timeout=httpx.Timeout(self.timeout, connect=10.0), transport=self._transport) as client:
            try:
                response = client.post(f"{self.base_url}/api/generate", json=payload)
                response.raise_for_status()
                body = response.json()
            except httpx.HTTPError as e:
                raise AdviceUnavailableError(f"Text generation request failed: {e}") from e
            except ValueError as e:
                raise AdviceUnavailableError(f"Text generation returned a malformed body: {e}") from e
        text = body.get("response") if isinstance(body, dict) else None
        if not isinstance(text, str):
            raise AdviceUnavailableError("Text generation response has no text.")
        return text

    def advise(self, context: dict[str, Any], kind: PromptKind) -> Advice:
        kind = PromptKind(kind)
        if not self.configured:
            return AdviceUnavailable("Text generation service is not configured.")
        try:
            text = self._generate(render_prompt(kind, context))
            parsed = extract_json_block(text)
            advice = _SCHEMAS[kind].model_validate(parsed)
        except AdviceUnavailableError as e:
            logger.warning(f"Advice '{kind.value}' unavailable: {e}")
            return AdviceUnavailable(str(e))
        except ValidationError as e:
            logger.warning(f"Advice '{kind.value}' does not match the expected structure: {e.error_count()} errors")
            return AdviceUnavailable(f"Generated JSON does not match the {kind.value} structure.")
        logger.info(f"Advice '{kind.value}' received from {self.model}")
        return AdviceOk(advice)
