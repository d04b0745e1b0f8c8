from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, Protocol

from reflector.core.types import ChatMessage, OracleReply


class Backend(Protocol):
    def complete(
        self,
        content: str,
        history: Sequence[ChatMessage] | None = None,
        params: dict[str, Any] | None = None,
    ) -> OracleReply:
        ...


_BACKENDS: dict[str, Callable[..., Backend]] = {}


def register_backend(name: str, factory: Callable[..., Backend]) -> None:
    key = name.lower()
    if key in _BACKENDS:
        raise ValueError(f"Backend '{name}' is already registered")
    _BACKENDS[key] = factory


def get_backend(name: str, **kwargs: Any) -> Backend:
    key = name.lower()
    factory = _BACKENDS.get(key)
    if factory is None:
        available = ", ".join(list_backends())
        raise ValueError(f"Unknown backend '{name}'. Available backends: {available}")
    return factory(**kwargs)


def list_backends() -> list[str]:
    return sorted(_BACKENDS)


def build_messages(
    content: str, history: Sequence[ChatMessage] | None = None
) -> list[dict[str, str]]:
    """Flatten ``history`` and append ``content`` as the newest user turn."""
    messages = [message.as_dict() for message in history or []]
    if content:
        messages.append({"role": "user", "content": content})
    return messages
