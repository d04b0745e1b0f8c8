from __future__ import annotations

import json
import os
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Union

from reflector.backends.registry import build_messages, register_backend
from reflector.core.types import ChatMessage, OracleReply

Scripted = Union[str, BaseException]


@dataclass(slots=True)
class FakeBackend:
    """Scripted backend.

    Responses are consumed in order, first from the queue matching the call's
    ``purpose`` param and then from the shared queue. A scripted exception is
    raised instead of returned. Every call is recorded in ``calls``.
    """

    responses: List[Scripted] = field(default_factory=list)
    purpose_responses: dict[str, List[Scripted]] = field(default_factory=dict)
    calls: List[dict[str, Any]] = field(default_factory=list)

    def complete(
        self,
        content: str,
        history: Sequence[ChatMessage] | None = None,
        params: dict[str, Any] | None = None,
    ) -> OracleReply:
        payload = {
            "content": content,
            "messages": build_messages(content, history),
            "params": dict(params or {}),
        }
        self.calls.append(payload)
        purpose = payload["params"].get("purpose")
        if purpose and self.purpose_responses.get(purpose):
            return _render(self.purpose_responses[purpose].pop(0))
        if self.responses:
            return _render(self.responses.pop(0))
        return OracleReply(message="")

    def calls_for(self, purpose: str) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["params"].get("purpose") == purpose]

    def extend_responses(self, responses: Iterable[Scripted]) -> None:
        self.responses.extend(responses)

    def set_responses(self, responses: Iterable[Scripted]) -> None:
        self.responses = list(responses)

    def extend_purpose_responses(self, purpose: str, responses: Iterable[Scripted]) -> None:
        self.purpose_responses.setdefault(purpose, []).extend(responses)

    def set_purpose_responses(self, purpose: str, responses: Iterable[Scripted]) -> None:
        self.purpose_responses[purpose] = list(responses)


def _render(response: Scripted) -> OracleReply:
    if isinstance(response, BaseException):
        raise response
    return OracleReply(message=response, usage={"fake": True})


def _load_env_json_list(env_value: str) -> list[str]:
    data = json.loads(env_value)
    if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
        raise ValueError("fake responses must be a JSON list of strings")
    return data


def _load_env_json_purpose_map(env_value: str) -> dict[str, list[str]]:
    data = json.loads(env_value)
    if not isinstance(data, dict):
        raise ValueError("fake purpose responses must be a JSON object")
    purpose_responses: dict[str, list[str]] = {}
    for purpose, responses in data.items():
        if not isinstance(purpose, str) or not isinstance(responses, list):
            raise ValueError("fake purpose responses must map purpose -> list[str]")
        if not all(isinstance(item, str) for item in responses):
            raise ValueError("fake purpose responses must map purpose -> list[str]")
        purpose_responses[purpose] = list(responses)
    return purpose_responses


def _factory(**_kwargs: Any) -> "FakeBackend":
    backend = FakeBackend()
    responses_json = os.getenv("REFLECTOR_FAKE_RESPONSES")
    if responses_json:
        backend.responses = list(_load_env_json_list(responses_json))
    purpose_json = os.getenv("REFLECTOR_FAKE_PURPOSE_RESPONSES")
    if purpose_json:
        backend.purpose_responses = dict(_load_env_json_purpose_map(purpose_json))
    return backend


register_backend("fake", _factory)
