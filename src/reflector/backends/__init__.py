"""Backend implementations."""

from .fake import FakeBackend
from .openai_chat import ChatCompletionsBackend
from .registry import Backend, get_backend, list_backends, register_backend

__all__ = [
    "Backend",
    "ChatCompletionsBackend",
    "FakeBackend",
    "get_backend",
    "list_backends",
    "register_backend",
]
