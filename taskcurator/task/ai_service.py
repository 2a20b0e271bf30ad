import json
import os
import re
import time
import logging
from typing import Any, Dict, List

import openai


class AIServiceError(Exception):
    pass


class AIServiceTimeoutError(AIServiceError):
    pass


class AIServiceInvalidResponseError(AIServiceError):
    pass


class AIServiceUnavailableError(AIServiceError):
    pass


_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


def strip_code_fences(content: str) -> str:
    return _CODE_FENCE.sub("", content.strip())


class AIService:
    """
    Provider-agnostic AI service.
    Callers own the fallback: every public method raises AIServiceError
    (or a subclass) when no usable answer is available.
    """

    def __init__(self, provider: str | None = None, model: str | None = None, timeout: float | None = None):
        self.timeout = timeout if timeout is not None else float(os.getenv("AI_TIMEOUT_SECONDS", "10"))
        self.provider = (provider or os.getenv("AI_PROVIDER", "none")).lower()
        self.openai_key = os.getenv("OPENAI_API_KEY")
        self.openai_model = model or os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        self.logger = logging.getLogger("taskcurator.ai")

    @property
    def is_configured(self) -> bool:
        return self.provider == "openai" and bool(self.openai_key)

    def chat(self, messages: List[Dict[str, str]], temperature: float = 0.2, max_tokens: int = 800) -> str:
        self.logger.info(
            "ai_request_started",
            extra={"provider": self.provider, "message_count": len(messages)},
        )

        if not self.is_configured:
            raise AIServiceUnavailableError(f"AI provider '{self.provider}' is not configured")

        start = time.time()
        return self._chat_openai(messages, temperature, max_tokens, start)

    def generate_json(self, system_prompt: str, user_prompt: str, **options) -> Dict[str, Any]:
        content = self.chat(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            **options,
        )
        try:
            data = json.loads(strip_code_fences(content))
        except json.JSONDecodeError as exc:
            raise AIServiceInvalidResponseError("AI response is not valid JSON") from exc

        if not isinstance(data, dict):
            raise AIServiceInvalidResponseError("AI response is not a JSON object")
        return data

    # -------------------------
    # Providers
    # -------------------------

    def _chat_openai(self, messages, temperature: float, max_tokens: int, start: float) -> str:
        client = openai.OpenAI(api_key=self.openai_key, timeout=self.timeout, max_retries=0)
        try:
            response = client.chat.completions.create(
                model=self.openai_model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.APITimeoutError as exc:
            raise AIServiceTimeoutError("OpenAI timeout") from exc
        except openai.OpenAIError as exc:
            raise AIServiceError("AI provider failure") from exc

        # safe extraction
        choices = response.choices or []
        if not choices:
            raise AIServiceInvalidResponseError("Empty OpenAI response")

        content = (choices[0].message.content or "").strip()
        if not content:
            raise AIServiceInvalidResponseError("Empty response from OpenAI")

        self._log_success(start, "openai")
        return content

    # -------------------------
    # Logging helpers
    # -------------------------

    def _log_success(self, start: float, provider: str) -> None:
        elapsed = round(time.time() - start, 3)
        self.logger.info(
            "ai_request_succeeded",
            extra={"provider": provider, "elapsed_seconds": elapsed},
        )


def service_for_project(project) -> AIService:
    """AIService honoring a project's own provider/model when it has one."""
    if project is not None and project.ai_provider:
        return AIService(provider=project.ai_provider, model=project.ai_model)
    return AIService()
