from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError

from reflector.core.tracing import TraceWriter, emit
from reflector.core.types import ChatMessage, PromptType, SlotState
from reflector.prompts import load_prompt

logger = logging.getLogger(__name__)

_BRACES_RE = re.compile(r"\{.*\}", re.DOTALL)
_EXTRACTION_PROMPT = "state_extraction.txt"
_EXTRACTION_REQUEST = "Extract the conversation state from this transcript. Output JSON only."


class SlotStatePayload(BaseModel):
    """Wire shape the model is asked to produce."""

    model_config = ConfigDict(strict=True)

    outcomeProvided: bool
    whyProvided: bool
    nextGoalProvided: bool
    nextGoalText: str
    nextGoalTimingProvided: bool
    nextGoalTiming: str
    conversationConcluded: bool
    lastSignificantPromptType: Literal[
        "NONE", "ASKED_INITIAL", "ASKED_WHY", "ASKED_NEXT_GOAL", "CONCLUDED_SESSION"
    ]

    def to_state(self) -> SlotState:
        return SlotState(
            outcome_provided=self.outcomeProvided,
            why_provided=self.whyProvided,
            next_goal_provided=self.nextGoalProvided,
            next_goal_text=self.nextGoalText,
            next_goal_timing_provided=self.nextGoalTimingProvided,
            next_goal_timing=self.nextGoalTiming,
            conversation_concluded=self.conversationConcluded,
            last_prompt_type=PromptType(self.lastSignificantPromptType),
        )


def parse_strict(text: str) -> Any | None:
    try:
        return json.loads(text.strip())
    except (json.JSONDecodeError, AttributeError, RecursionError):
        return None


def parse_braces(text: str) -> Any | None:
    """Parse the widest ``{...}`` span, for replies wrapped in prose or fences."""
    if not isinstance(text, str):
        return None
    match = _BRACES_RE.search(text)
    if match is None:
        return None
    try:
        return json.loads(match.group(0))
    except (json.JSONDecodeError, RecursionError):
        return None


def parse_json_object(text: str) -> dict[str, Any] | None:
    payload = parse_strict(text)
    if payload is None:
        payload = parse_braces(text)
    if not isinstance(payload, dict):
        return None
    return payload


def validate_slot_payload(payload: dict[str, Any]) -> SlotState | None:
    try:
        return SlotStatePayload.model_validate(payload).to_state()
    except ValidationError:
        return None


def format_transcript(history: Sequence[ChatMessage]) -> str:
    return json.dumps([message.as_dict() for message in history], ensure_ascii=False)


def parse_slot_state(text: str) -> SlotState:
    payload = parse_json_object(text)
    if payload is None:
        logger.warning("state inference returned no parseable JSON object")
        return SlotState.failure()
    state = validate_slot_payload(payload)
    if state is None:
        logger.warning("state inference JSON did not match the slot schema")
        return SlotState.failure()
    return state


def infer_slot_state(
    history: Sequence[ChatMessage],
    backend,
    params: dict[str, Any] | None = None,
    tracer: TraceWriter | None = None,
) -> SlotState:
    """Ask the model which slots the transcript has filled.

    Never raises: any backend error, unparseable output or schema mismatch
    yields ``SlotState.failure()``.
    """
    request_params = dict(params or {})
    request_params["purpose"] = "state"
    instruction = ChatMessage(role="system", content=load_prompt(_EXTRACTION_PROMPT))
    content = f"{_EXTRACTION_REQUEST}\n\nTRANSCRIPT_JSON:\n{format_transcript(history)}"
    try:
        reply = backend.complete(content, [instruction], request_params)
    except Exception as exc:  # noqa: BLE001
        logger.warning("state inference call failed: %s", exc)
        emit(tracer, "slot_state", failed=True, error=str(exc))
        return SlotState.failure()
    state = parse_slot_state(getattr(reply, "message", None))
    emit(tracer, "slot_state", failed=state.failed, raw=getattr(reply, "message", None))
    return state
