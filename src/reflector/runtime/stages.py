from __future__ import annotations

from reflector.core.types import (
    NOT_SPECIFIED,
    CollectedInfo,
    Instruction,
    PromptType,
    SlotState,
    Stage,
    StageDecision,
)
from reflector.prompts import InstructionTable, load_instruction_table


def is_concrete(text: str | None) -> bool:
    if not text:
        return False
    stripped = text.strip()
    return bool(stripped) and stripped.lower() != NOT_SPECIFIED


def _decide(
    state: SlotState,
    stage: Stage,
    instruction_text: str,
) -> StageDecision:
    return StageDecision(
        instruction_text=instruction_text,
        stage=stage,
        collected_info=CollectedInfo.from_state(state),
        last_prompt_type=state.last_prompt_type,
    )


def resolve_stage(state: SlotState, instructions: InstructionTable | None = None) -> StageDecision:
    """Map a slot state to the next instruction for the model.

    The checks run in script order (outcome, why, next goal, timing) and the
    first unmet one decides the stage.
    """
    table = instructions if instructions is not None else load_instruction_table()
    last = state.last_prompt_type

    if state.failed:
        return _decide(state, Stage.ERROR, table[Instruction.GENERAL_GUIDANCE])
    if state.conversation_concluded:
        return _decide(state, Stage.CONCLUDED, table[Instruction.POST_CONCLUSION])
    if not state.outcome_provided:
        # Asking and clarifying the outcome share one instruction.
        return _decide(state, Stage.AWAITING_INITIAL, table[Instruction.REQUEST_OUTCOME])
    if not state.why_provided:
        key = Instruction.CLARIFY_WHY if last is PromptType.ASKED_WHY else Instruction.REQUEST_WHY
        return _decide(state, Stage.AWAITING_WHY, table[key])
    if not state.next_goal_provided:
        key = (
            Instruction.CLARIFY_NEXT_GOAL
            if last is PromptType.ASKED_NEXT_GOAL
            else Instruction.REQUEST_NEXT_GOAL
        )
        return _decide(state, Stage.AWAITING_NEXT_GOAL, table[key])
    if not state.next_goal_timing_provided:
        if last is PromptType.ASKED_NEXT_GOAL and is_concrete(state.next_goal_text):
            text = table[Instruction.REQUEST_TIMING].replace("{goal}", state.next_goal_text.strip())
            return _decide(state, Stage.AWAITING_NEXT_GOAL, text)
        return _decide(state, Stage.AWAITING_NEXT_GOAL, table[Instruction.CLARIFY_NEXT_GOAL])
    return _decide(state, Stage.AWAITING_CONCLUSION, table[Instruction.REQUEST_CONCLUDE])
