from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Literal

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from reflector.backends import get_backend
from reflector.config import ReflectorConfig, load_config
from reflector.core.errors import OracleError, TurnValidationError
from reflector.core.types import ChatMessage
from reflector.prompts import load_instruction_table
from reflector.runtime import conversations, controller

logger = logging.getLogger(__name__)

DEFAULT_ERROR = "Internal server error"
_OPTION_KEYS = {
    "model": "model",
    "temperature": "temperature",
    "maxTokens": "max_tokens",
    "max_tokens": "max_tokens",
}


class MessageModel(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class CurrentUserMessage(BaseModel):
    content: str | None = None


class UserResponseRequest(BaseModel):
    currentUserMessage: CurrentUserMessage | None = None
    chatHistory: list[MessageModel] | None = None


class TextMessageRequest(BaseModel):
    message: str | None = None
    options: dict[str, Any] | None = None


class ChatHistoryRequest(BaseModel):
    chatHistory: list[MessageModel]


class CollectedInformationRequest(BaseModel):
    collectedInformation: dict[str, Any]
    nextGoalDisplay: str = ""
    nextGoalTiming: str = ""
    checkInDetails: dict[str, str] | None = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _to_messages(items: list[MessageModel] | None) -> list[ChatMessage]:
    return [ChatMessage(role=item.role, content=item.content) for item in items or []]


def _record_payload(record) -> dict[str, Any]:
    return {
        "ownerId": record.owner_id,
        "revision": record.revision,
        "updatedTs": record.updated_ts,
        "chatHistory": [message.as_dict() for message in record.chat_history],
        "collectedInformation": record.collected_information,
        "nextGoalDisplay": record.next_goal_display,
        "nextGoalTiming": record.next_goal_timing,
        "checkInDetails": record.check_in,
    }


def create_app(
    data_root: Path | None = None,
    backend=None,
    config: ReflectorConfig | None = None,
) -> FastAPI:
    config = config or load_config()
    root = data_root or config.data_root
    store_dir = root / "conversations"
    if backend is None:
        backend = get_backend(config.backend)
    instructions = load_instruction_table()

    app = FastAPI(title="reflector")
    app.state.data_root = root
    app.state.backend = backend
    app.state.config = config

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if not errors:
            return _error(400, "Invalid request body")
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        return _error(400, f"Invalid request body: {location}: {first.get('msg', 'invalid')}")

    @app.post("/api/chat/user-response")
    def user_response(payload: UserResponseRequest):
        content = payload.currentUserMessage.content if payload.currentUserMessage else None
        if not content:
            return _error(400, "currentUserMessage with content is required")
        try:
            result = controller.run_turn(
                content,
                _to_messages(payload.chatHistory),
                backend,
                config=config,
                instructions=instructions,
            )
        except TurnValidationError as exc:
            return _error(400, str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("user response failed")
            message = str(exc) if isinstance(exc, OracleError) else DEFAULT_ERROR
            return _error(500, message)
        return result.as_payload()

    @app.post("/api/chat/message")
    def text_message(payload: TextMessageRequest):
        if not payload.message:
            return _error(400, "Message is required")
        params = config.reply_params()
        options = payload.options or {}
        for key, target in _OPTION_KEYS.items():
            if key in options:
                params[target] = options[key]
        params["purpose"] = "message"
        try:
            reply = backend.complete(payload.message, [], params)
        except Exception as exc:  # noqa: BLE001
            logger.warning("text message failed: %s", exc)
            message = str(exc) if isinstance(exc, OracleError) else DEFAULT_ERROR
            return _error(500, message)
        return {"message": reply.message, "usage": reply.usage}

    @app.post("/api/chat/{owner_id}/chat-history")
    def store_chat_history(owner_id: str, payload: ChatHistoryRequest):
        try:
            conversations.store_chat_history(
                owner_id, _to_messages(payload.chatHistory), base_dir=store_dir
            )
        except ValueError as exc:
            return _error(400, str(exc))
        return {"success": True}

    @app.post("/api/chat/{owner_id}/collected-information")
    def set_collected_information(owner_id: str, payload: CollectedInformationRequest):
        try:
            conversations.set_collected_information(
                owner_id,
                payload.collectedInformation,
                payload.nextGoalDisplay,
                payload.nextGoalTiming,
                check_in=payload.checkInDetails,
                base_dir=store_dir,
            )
        except ValueError as exc:
            return _error(400, str(exc))
        return {"success": True}

    @app.get("/api/chat/{owner_id}")
    def get_conversation(owner_id: str):
        try:
            record = conversations.load_record(owner_id, base_dir=store_dir)
        except ValueError as exc:
            return _error(400, str(exc))
        if record is None:
            return _error(404, "conversation not found")
        return _record_payload(record)

    return app
