from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from reflector.core.tracing import TraceWriter, emit
from reflector.core.types import ChatMessage, CheckIn, GoalDisplay
from reflector.prompts import load_prompt
from reflector.runtime.inference import parse_json_object
from reflector.runtime.stages import is_concrete

logger = logging.getLogger(__name__)

ISO_CHECK_IN_PATTERN = r"^[0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}:[0-9]{2}(\.[0-9]+)?Z$"
FALLBACK_CHECK_IN = CheckIn(
    iso_check_in_datetime="",
    descriptive_check_in="Default check-in: Follow up as appropriate",
)


class GoalDisplayPayload(BaseModel):
    model_config = ConfigDict(strict=True, str_strip_whitespace=True)

    goal: str = Field(min_length=1)
    timing: str = Field(min_length=1)


class CheckInPayload(BaseModel):
    model_config = ConfigDict(strict=True)

    isoCheckInDateTime: str = Field(pattern=ISO_CHECK_IN_PATTERN)
    descriptiveCheckIn: str

    @field_validator("isoCheckInDateTime")
    @classmethod
    def _real_calendar_time(cls, value: str) -> str:
        # Raises ValueError for dates like 2023-13-45T99:99:99Z.
        datetime.strptime(value[:19], "%Y-%m-%dT%H:%M:%S")
        return value


def format_utc(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def capitalize_first(text: str) -> str:
    return text[:1].upper() + text[1:]


def _fallback_display(goal_text: str, timing_text: str) -> GoalDisplay:
    return GoalDisplay(goal=goal_text, timing=capitalize_first(timing_text))


def _ask(backend, purpose: str, prompt_file: str, content: str, params: dict[str, Any] | None):
    request_params = dict(params or {})
    request_params["purpose"] = purpose
    instruction = ChatMessage(role="system", content=load_prompt(prompt_file))
    return backend.complete(content, [instruction], request_params)


def normalize_goal(
    goal_text: str,
    timing_text: str,
    backend,
    params: dict[str, Any] | None = None,
    tracer: TraceWriter | None = None,
) -> GoalDisplay:
    """Turn raw goal and timing text into display strings.

    Falls back to the raw goal and the raw timing with a capitalized first
    letter when the model reply is unusable.
    """
    if not is_concrete(goal_text) or not is_concrete(timing_text):
        return GoalDisplay()
    content = json.dumps({"goal": goal_text, "timing": timing_text}, ensure_ascii=False)
    try:
        reply = _ask(backend, "goal", "goal_normalization.txt", content, params)
        payload = parse_json_object(reply.message)
        if payload is None:
            raise ValueError("no JSON object in goal normalization reply")
        parsed = GoalDisplayPayload.model_validate(payload)
    except (ValidationError, ValueError) as exc:
        logger.warning("goal normalization reply rejected: %s", exc)
        display = _fallback_display(goal_text, timing_text)
    except Exception as exc:  # noqa: BLE001
        logger.warning("goal normalization call failed: %s", exc)
        display = _fallback_display(goal_text, timing_text)
    else:
        display = GoalDisplay(goal=parsed.goal, timing=parsed.timing)
    emit(tracer, "goal_display", **display.as_payload())
    return display


def schedule_check_in(
    display: GoalDisplay,
    now: datetime,
    backend,
    params: dict[str, Any] | None = None,
    tracer: TraceWriter | None = None,
) -> CheckIn:
    """Resolve a display goal and timing into a concrete UTC check-in."""
    if display.is_empty:
        return CheckIn()
    content = json.dumps(
        {
            "goal": display.goal,
            "timing": display.timing,
            "currentIsoDateTime": format_utc(now),
        },
        ensure_ascii=False,
    )
    try:
        reply = _ask(backend, "check_in", "check_in.txt", content, params)
        payload = parse_json_object(reply.message)
        if payload is None:
            raise ValueError("no JSON object in check-in reply")
        parsed = CheckInPayload.model_validate(payload)
    except (ValidationError, ValueError) as exc:
        logger.warning("check-in reply rejected: %s", exc)
        check_in = FALLBACK_CHECK_IN
    except Exception as exc:  # noqa: BLE001
        logger.warning("check-in call failed: %s", exc)
        check_in = FALLBACK_CHECK_IN
    else:
        check_in = CheckIn(
            iso_check_in_datetime=parsed.isoCheckInDateTime,
            descriptive_check_in=parsed.descriptiveCheckIn,
        )
    emit(tracer, "check_in", **check_in.as_payload())
    return check_in
