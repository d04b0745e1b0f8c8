from __future__ import annotations

from collections.abc import Sequence

from reflector.core.types import ChatMessage, Instruction, PromptType, Stage, StageDecision
from reflector.prompts import InstructionTable, load_instruction_table, load_prompt
from reflector.runtime.patterns import last_question_type

UNCERTAINTY_PHRASES = ("i am not sure", "i don't know", "not sure", "unsure", "no idea")

GUIDING_QUESTIONS = {
    PromptType.ASKED_NEXT_GOAL: "'What's your goal for tomorrow? And when will you do it?'",
    PromptType.ASKED_WHY: (
        "'Why were you able to accomplish this goal?' or "
        "'Why were you NOT able to accomplish this goal?', whichever fits their outcome."
    ),
    PromptType.ASKED_INITIAL: (
        "'Your goal was the goal you set last time, were you able to do it?'"
    ),
}


def expresses_uncertainty(text: str | None) -> bool:
    if not text:
        return False
    lowered = text.lower()
    return any(phrase in lowered for phrase in UNCERTAINTY_PHRASES)


def apply_uncertainty_override(
    decision: StageDecision,
    current_message: str,
    instructions: InstructionTable | None = None,
) -> tuple[StageDecision, bool]:
    """Accept "I don't know" as the answer to the why question.

    Returns the possibly replaced decision and whether the override fired.
    """
    if decision.stage is not Stage.AWAITING_WHY or not expresses_uncertainty(current_message):
        return decision, False
    table = instructions if instructions is not None else load_instruction_table()
    overridden = StageDecision(
        instruction_text=table[Instruction.REQUEST_NEXT_GOAL],
        stage=Stage.AWAITING_NEXT_GOAL,
        collected_info=decision.collected_info.with_why_provided(),
        last_prompt_type=decision.last_prompt_type,
    )
    return overridden, True


def guess_outstanding_prompt(history: Sequence[ChatMessage]) -> PromptType:
    guessed = last_question_type(history)
    if guessed is PromptType.NONE:
        return PromptType.ASKED_INITIAL
    return guessed


def build_recovery_instruction(current_message: str, history: Sequence[ChatMessage]) -> str:
    """Instruction used when the slot state could not be inferred."""
    guessed = guess_outstanding_prompt(history)
    template = load_prompt("recovery.txt")
    return template.format(
        user_message=current_message.strip(),
        guiding_question=GUIDING_QUESTIONS[guessed],
    )
