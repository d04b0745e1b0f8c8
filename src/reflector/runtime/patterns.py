"""Phrase matchers for the coach's own fixed questions.

These only need to recognize the wording the coach is instructed to use, so
matching is plain case-sensitive substring search. They back the deterministic
slot inference and the failure-recovery scan; the primary path asks the model.
"""

from __future__ import annotations

from typing import Iterable

from reflector.core.types import NOT_SPECIFIED, ChatMessage, PromptType, SlotState

INITIAL_MARKERS = ("Your goal was", "were you able to do it?")
WHY_MARKERS = (
    "Why were you able to accomplish this goal",
    "why were you NOT able to accomplish this goal?",
    "Why were you NOT able to accomplish this goal?",
)
NEXT_GOAL_MARKER = "What's your goal for tomorrow?"
CONCLUSION_MARKERS = ("Good luck.", "This is the end of this reflection.")

# The next-goal question asks about tomorrow, so an answer to it carries that timing.
IMPLIED_NEXT_GOAL_TIMING = "tomorrow"


def is_initial_query(text: str | None) -> bool:
    return bool(text) and all(marker in text for marker in INITIAL_MARKERS)


def is_why_query(text: str | None) -> bool:
    return bool(text) and any(marker in text for marker in WHY_MARKERS)


def is_next_goal_query(text: str | None) -> bool:
    return bool(text) and NEXT_GOAL_MARKER in text


def is_conclusion(text: str | None) -> bool:
    return bool(text) and all(marker in text for marker in CONCLUSION_MARKERS)


def classify_prompt(text: str | None) -> PromptType:
    if is_initial_query(text):
        return PromptType.ASKED_INITIAL
    if is_why_query(text):
        return PromptType.ASKED_WHY
    if is_next_goal_query(text):
        return PromptType.ASKED_NEXT_GOAL
    if is_conclusion(text):
        return PromptType.CONCLUDED_SESSION
    return PromptType.NONE


def last_question_type(history: Iterable[ChatMessage]) -> PromptType:
    """Most recent assistant question, scanning newest first.

    Only next-goal, why and initial-outcome questions count.
    """
    for message in reversed(list(history)):
        if message.role != "assistant":
            continue
        if is_next_goal_query(message.content):
            return PromptType.ASKED_NEXT_GOAL
        if is_why_query(message.content):
            return PromptType.ASKED_WHY
        if is_initial_query(message.content):
            return PromptType.ASKED_INITIAL
    return PromptType.NONE


def infer_slots_from_patterns(history: Iterable[ChatMessage]) -> SlotState:
    """Rebuild the slot state from the transcript without calling the model."""
    outcome_provided = False
    why_provided = False
    next_goal_provided = False
    next_goal_text = NOT_SPECIFIED
    timing_provided = False
    timing = NOT_SPECIFIED
    concluded = False
    pending = PromptType.NONE
    last_significant = PromptType.NONE

    for message in history:
        if message.role == "assistant":
            pending = classify_prompt(message.content)
            if pending is PromptType.NONE:
                # A plain assistant message leaves the last significant prompt standing.
                continue
            last_significant = pending
            if pending is PromptType.CONCLUDED_SESSION:
                concluded = True
        elif message.role == "user":
            if pending is PromptType.ASKED_INITIAL:
                outcome_provided = True
            elif pending is PromptType.ASKED_WHY:
                why_provided = True
            elif pending is PromptType.ASKED_NEXT_GOAL and message.content.strip():
                next_goal_provided = True
                next_goal_text = message.content.strip()
                timing_provided = True
                timing = IMPLIED_NEXT_GOAL_TIMING

    return SlotState(
        outcome_provided=outcome_provided,
        why_provided=why_provided,
        next_goal_provided=next_goal_provided,
        next_goal_text=next_goal_text,
        next_goal_timing_provided=timing_provided,
        next_goal_timing=timing,
        conversation_concluded=concluded,
        last_prompt_type=last_significant,
    )
