from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

from reflector.backends import get_backend
from reflector.config import ReflectorConfig, load_config
from reflector.core.errors import OracleError, TurnValidationError
from reflector.core.tracing import TraceWriter, emit
from reflector.core.types import ChatMessage, CheckIn, GoalDisplay, SlotState, Stage, TurnResult
from reflector.prompts import InstructionTable, load_instruction_table
from reflector.runtime import conversations
from reflector.runtime.goals import normalize_goal, schedule_check_in
from reflector.runtime.inference import infer_slot_state
from reflector.runtime.patterns import infer_slots_from_patterns
from reflector.runtime.recovery import apply_uncertainty_override, build_recovery_instruction
from reflector.runtime.stages import resolve_stage

logger = logging.getLogger(__name__)

REPLY_FAILURE_MESSAGE = "Failed to get a response from the coach"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _infer(
    history: Sequence[ChatMessage],
    backend,
    config: ReflectorConfig,
    tracer: TraceWriter | None,
) -> SlotState:
    if config.inference == "patterns":
        state = infer_slots_from_patterns(history)
        emit(tracer, "slot_state", failed=False, mode="patterns")
        return state
    return infer_slot_state(history, backend, config.analysis_params(), tracer=tracer)


def run_turn(
    current_message: str | None,
    chat_history: Sequence[ChatMessage] | None,
    backend,
    *,
    config: ReflectorConfig | None = None,
    instructions: InstructionTable | None = None,
    now: Callable[[], datetime] = _utcnow,
    tracer: TraceWriter | None = None,
) -> TurnResult:
    """Process one user turn against the prior transcript.

    The steps run strictly in order: infer slots, resolve the stage, swap in
    the recovery instruction on inference failure, apply the uncertainty
    override, generate the reply, then normalize the goal and schedule the
    check-in once both goal and timing are known.
    """
    if current_message is None or not current_message.strip():
        raise TurnValidationError("currentUserMessage with content is required")
    config = config or load_config()
    table = instructions if instructions is not None else load_instruction_table()
    history = list(chat_history or [])
    # The newest user message is part of the transcript the slots are read from.
    transcript = [*history, ChatMessage(role="user", content=current_message)]

    state = _infer(transcript, backend, config, tracer)
    decision = resolve_stage(state, table)
    emit(tracer, "stage", stage=decision.stage.value, last_prompt=decision.last_prompt_type.value)

    if state.failed:
        recovery_text = build_recovery_instruction(current_message, history)
        decision = replace(decision, instruction_text=recovery_text)
        emit(tracer, "recovery", instruction=recovery_text)

    decision, overridden = apply_uncertainty_override(decision, current_message, table)
    if overridden:
        emit(tracer, "uncertainty_override", stage=decision.stage.value)

    reply_history = [ChatMessage(role="system", content=decision.instruction_text), *history]
    params = config.reply_params()
    params["purpose"] = "reply"
    try:
        reply = backend.complete(current_message, reply_history, params)
    except Exception as exc:  # noqa: BLE001
        logger.warning("reply generation failed: %s", exc)
        raise OracleError(REPLY_FAILURE_MESSAGE) from exc
    reply_text = reply.message or ""
    emit(tracer, "reply", text=reply_text)

    stage = decision.stage
    if stage is Stage.AWAITING_CONCLUSION and reply_text.strip():
        stage = Stage.CONCLUDED

    goal_display = GoalDisplay()
    check_in = CheckIn()
    if state.next_goal_provided and state.next_goal_timing_provided:
        analysis = config.analysis_params()
        goal_display = normalize_goal(
            state.next_goal_text, state.next_goal_timing, backend, analysis, tracer=tracer
        )
        if not goal_display.is_empty:
            check_in = schedule_check_in(goal_display, now(), backend, analysis, tracer=tracer)

    return TurnResult(
        assistant_reply=reply_text,
        stage=stage,
        collected_info=decision.collected_info,
        goal_display=goal_display,
        check_in=check_in,
    )


def run_session_turn(
    owner_id: str,
    user_text: str,
    backend=None,
    base_dir: Path | None = None,
    *,
    backend_name: str | None = None,
    backend_params: dict[str, object] | None = None,
    config: ReflectorConfig | None = None,
) -> TurnResult:
    """Run a turn against the stored transcript and persist the outcome."""
    config = config or load_config()
    if backend is None:
        backend = get_backend(backend_name or config.backend, **(backend_params or {}))
    data_root = base_dir or config.data_root
    store_dir = data_root / "conversations"
    record = conversations.load_or_create(owner_id, base_dir=store_dir)

    turn_id = f"turn-{record.revision + 1}"
    tracer = TraceWriter(owner_id, base_dir=data_root / "traces", turn_id=turn_id)
    result = run_turn(user_text, record.chat_history, backend, config=config, tracer=tracer)

    record.chat_history.append(ChatMessage(role="user", content=user_text))
    record.chat_history.append(ChatMessage(role="assistant", content=result.assistant_reply))
    record.collected_information = result.collected_info.as_payload()
    if not result.goal_display.is_empty:
        record.next_goal_display = result.goal_display.goal
        record.next_goal_timing = result.goal_display.timing
        record.check_in = result.check_in.as_payload()
    conversations.save_record(record, base_dir=store_dir)
    return result
