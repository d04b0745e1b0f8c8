from __future__ import annotations

import json
import logging
import os
import time
import urllib.error
import urllib.request
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from reflector.backends.registry import build_messages, register_backend
from reflector.core.errors import OracleError
from reflector.core.types import ChatMessage, OracleReply

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-3.5-turbo"
_FAILURE_MESSAGE = "Failed to get response from the language model"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(slots=True)
class ChatCompletionsBackend:
    base_url: str = os.getenv("REFLECTOR_OPENAI_BASE_URL", "https://api.openai.com")
    timeout_s: float = _env_float("REFLECTOR_OPENAI_TIMEOUT_S", 60.0)
    api_key: str | None = os.getenv("OPENAI_API_KEY")
    model: str | None = os.getenv("REFLECTOR_MODEL", DEFAULT_MODEL)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _build_payload(
        self,
        content: str,
        history: Sequence[ChatMessage] | None,
        params: dict[str, Any],
    ) -> dict[str, Any]:
        options = dict(params)
        options.pop("purpose", None)
        model = options.pop("model", None) or self.model
        options.setdefault("temperature", 0.7)
        options.setdefault("max_tokens", 150)
        payload: dict[str, Any] = {"messages": build_messages(content, history)}
        if model:
            payload["model"] = model
        payload.update(options)
        return payload

    @staticmethod
    def _extract_content(data: dict[str, Any]) -> str:
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            return ""
        first = choices[0]
        if isinstance(first, dict):
            message = first.get("message")
            if isinstance(message, str):
                return message
            if isinstance(message, dict):
                message_content = message.get("content")
                if isinstance(message_content, str):
                    return message_content
            text = first.get("text")
            if isinstance(text, str):
                return text
        return ""

    def complete(
        self,
        content: str,
        history: Sequence[ChatMessage] | None = None,
        params: dict[str, Any] | None = None,
    ) -> OracleReply:
        params = params or {}
        payload = self._build_payload(content, history, params)
        if not payload["messages"]:
            raise OracleError("No message content to send.")
        url = f"{self.base_url.rstrip('/')}/v1/chat/completions"
        if _env_bool("REFLECTOR_LOG_PAYLOAD"):
            logger.info(
                "chat completion request purpose=%s\n%s",
                params.get("purpose"),
                json.dumps(payload, indent=2),
            )
        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(url, data=data, headers=self._headers(), method="POST")
        start = time.monotonic()
        try:
            with urllib.request.urlopen(request, timeout=self.timeout_s) as response:
                body = response.read().decode("utf-8")
            decoded = json.loads(body)
        except (urllib.error.URLError, OSError, ValueError) as exc:
            logger.warning("chat completion failed purpose=%s: %s", params.get("purpose"), exc)
            raise OracleError(_FAILURE_MESSAGE) from exc
        if not isinstance(decoded, dict):
            raise OracleError(_FAILURE_MESSAGE)
        latency_ms = int((time.monotonic() - start) * 1000)
        logger.debug("chat completion done purpose=%s latency_ms=%d", params.get("purpose"), latency_ms)
        usage = decoded.get("usage")
        return OracleReply(
            message=self._extract_content(decoded),
            usage=usage if isinstance(usage, dict) else None,
        )


register_backend("openai", ChatCompletionsBackend)
