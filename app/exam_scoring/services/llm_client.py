"""Client wrapper around the Azure OpenAI chat completions API."""
from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional

import requests
from flask import current_app

from ..errors import DownstreamFailure, DownstreamTimeout


class AzureOpenAIClient:
    """Lightweight client for structured JSON judgments via Azure OpenAI.

    Exactly one HTTP attempt is made per call; retries are the caller's concern.
    """

    DEFAULT_DEPLOYMENT = "gpt-5-nano"
    DEFAULT_API_VERSION = "2024-10-21"
    DEFAULT_TIMEOUT = 20

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or os.getenv("AZURE_OPENAI_API_KEY", "")
        self.resource_name = os.getenv("AZURE_OPENAI_RESOURCE_NAME", "")
        self.deployment = os.getenv("AZURE_OPENAI_DEPLOYMENT", self.DEFAULT_DEPLOYMENT)
        self.api_version = os.getenv("AZURE_OPENAI_API_VERSION", self.DEFAULT_API_VERSION)
        endpoint = os.getenv("AZURE_OPENAI_ENDPOINT")
        if not endpoint and self.resource_name:
            endpoint = f"https://{self.resource_name}.openai.azure.com"
        self.endpoint = (endpoint or "").rstrip("/")
        try:
            self.timeout = float(os.getenv("LLM_TIMEOUT_SECONDS", str(self.DEFAULT_TIMEOUT)))
        except ValueError:
            self.timeout = self.DEFAULT_TIMEOUT

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.endpoint)

    @property
    def url(self) -> str:
        return (
            f"{self.endpoint}/openai/deployments/{self.deployment}/chat/completions"
            f"?api-version={self.api_version}"
        )

    def generate_json(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
    ) -> Any:
        """Send a prompt and parse the JSON object the model answers with.

        Raises:
            DownstreamTimeout: the request exceeded ``LLM_TIMEOUT_SECONDS``.
            DownstreamFailure: not configured, HTTP/connection error, or no
                parseable JSON in the reply.
        """
        if not self.is_configured:
            current_app.logger.error("[LLM] Azure OpenAI not configured - API key or endpoint missing")
            raise DownstreamFailure("LLM judgment service is not configured")

        messages = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        messages.append({"role": "user", "content": prompt})

        payload: Dict[str, Any] = {
            "messages": messages,
            "response_format": {"type": "json_object"},
        }
        if temperature is not None:
            payload["temperature"] = temperature
        if max_output_tokens is not None:
            payload["max_completion_tokens"] = max_output_tokens

        try:
            response = requests.post(
                self.url,
                json=payload,
                headers={"api-key": self.api_key},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.Timeout as exc:
            current_app.logger.error("[LLM] Request to deployment %s timed out after %.0fs: %s",
                                     self.deployment, self.timeout, exc)
            raise DownstreamTimeout(f"LLM judgment timed out after {self.timeout:.0f}s") from exc
        except requests.exceptions.HTTPError as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            current_app.logger.error("[LLM] HTTP error: %s - %s", status_code, exc)
            raise DownstreamFailure(f"LLM judgment failed with HTTP {status_code}") from exc
        except ValueError as exc:
            current_app.logger.error("[LLM] Failed to parse response body as JSON: %s", exc)
            raise DownstreamFailure("LLM judgment returned an unreadable response") from exc
        except requests.exceptions.RequestException as exc:
            current_app.logger.error("[LLM] Request failed: %s", exc)
            raise DownstreamFailure("LLM judgment request failed") from exc

        text, finish_reason = self._extract_text_and_finish_reason(data)
        if not text:
            current_app.logger.error(
                "[LLM] Response contained empty text. Finish reason: %s, Full response: %s",
                finish_reason,
                str(data)[:500],
            )
            raise DownstreamFailure("LLM judgment returned no content")

        parsed = self._robust_parse_json(text)
        if parsed is None:
            current_app.logger.error(
                "[LLM] JSON parsing failed. Text length: %s, First 500 chars: %s",
                len(text),
                text[:500],
            )
            raise DownstreamFailure("LLM judgment returned malformed JSON")
        return parsed

    @staticmethod
    def _parse_json_response(text: str) -> Optional[Any]:
        """Attempt to parse JSON payload even if wrapped in fences."""
        if not text:
            return None

        text = text.strip()

        if text.startswith("```"):
            parts = text.split("```")
            text = parts[1] if len(parts) > 1 else text
            if text.startswith("json"):
                text = text[4:]
            text = text.strip()

        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return None

    @staticmethod
    def _robust_parse_json(text: str) -> Optional[Any]:
        """Parse JSON with a fallback for stray prose around the object."""
        parsed = AzureOpenAIClient._parse_json_response(text)
        if parsed is not None:
            return parsed

        candidate = AzureOpenAIClient._extract_json_object(text)
        if candidate:
            try:
                return json.loads(candidate)
            except json.JSONDecodeError:
                return None
        return None

    @staticmethod
    def _extract_json_object(text: str) -> Optional[str]:
        """Extract the first balanced ``{...}`` substring from text."""
        if not text:
            return None
        start = text.find("{")
        if start == -1:
            return None

        depth = 0
        for i in range(start, len(text)):
            if text[i] == "{":
                depth += 1
            elif text[i] == "}":
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
        return None

    @staticmethod
    def _extract_text_and_finish_reason(data: Any) -> tuple[str, Optional[str]]:
        """Return the first choice's message content and its finish reason."""
        if not isinstance(data, dict):
            return "", None
        choices = data.get("choices") or []
        if not choices:
            prompt_filter = data.get("prompt_filter_results")
            if prompt_filter:
                current_app.logger.error("[LLM] Request blocked by content filter: %s", prompt_filter)
            else:
                current_app.logger.warning("[LLM] Response missing choices. Full response: %s", data)
            return "", None

        first = choices[0] or {}
        content = (first.get("message") or {}).get("content")
        if isinstance(content, str) and content.strip():
            return content, first.get("finish_reason")
        return "", first.get("finish_reason")


def get_llm_client() -> AzureOpenAIClient:
    """Per-app client getter."""
    if not hasattr(current_app, "llm_client"):
        current_app.llm_client = AzureOpenAIClient()
    return current_app.llm_client
