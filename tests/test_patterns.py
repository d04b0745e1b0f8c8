from __future__ import annotations

import pytest

from reflector.core.types import NOT_SPECIFIED, ChatMessage, PromptType
from reflector.runtime import patterns

INITIAL = "Your goal was to go for a run, were you able to do it?"
WHY = "Nice work. Why were you able to accomplish this goal?"
WHY_NOT = "I see. Why were you NOT able to accomplish this goal?"
NEXT_GOAL = "Thanks. What's your goal for tomorrow? And when will you do it?"
CONCLUSION = "Good luck. This is the end of this reflection."


def _assistant(text: str) -> ChatMessage:
    return ChatMessage(role="assistant", content=text)


def _user(text: str) -> ChatMessage:
    return ChatMessage(role="user", content=text)


@pytest.mark.parametrize(
    "matcher",
    [
        patterns.is_initial_query,
        patterns.is_why_query,
        patterns.is_next_goal_query,
        patterns.is_conclusion,
    ],
)
def test_matchers_reject_empty_input(matcher) -> None:
    assert matcher(None) is False
    assert matcher("") is False


def test_matchers_recognize_coach_phrasing() -> None:
    assert patterns.is_initial_query(INITIAL)
    assert patterns.is_why_query(WHY)
    assert patterns.is_why_query(WHY_NOT)
    assert patterns.is_next_goal_query(NEXT_GOAL)
    assert patterns.is_conclusion(CONCLUSION)


def test_matchers_are_case_sensitive_and_need_all_fragments() -> None:
    assert not patterns.is_initial_query("Your goal was to run.")
    assert not patterns.is_next_goal_query("what's your goal for tomorrow?")
    assert not patterns.is_conclusion("Good luck.")


def test_classify_prompt() -> None:
    assert patterns.classify_prompt(INITIAL) is PromptType.ASKED_INITIAL
    assert patterns.classify_prompt(WHY_NOT) is PromptType.ASKED_WHY
    assert patterns.classify_prompt(NEXT_GOAL) is PromptType.ASKED_NEXT_GOAL
    assert patterns.classify_prompt(CONCLUSION) is PromptType.CONCLUDED_SESSION
    assert patterns.classify_prompt("Hello there") is PromptType.NONE


def test_last_question_type_scans_newest_first() -> None:
    history = [_assistant(INITIAL), _user("yes"), _assistant(WHY), _user("hmm"), _assistant("Okay.")]

    assert patterns.last_question_type(history) is PromptType.ASKED_WHY
    assert patterns.last_question_type([_user(WHY)]) is PromptType.NONE
    assert patterns.last_question_type([]) is PromptType.NONE


def test_infer_slots_walks_the_script() -> None:
    history = [
        _assistant(INITIAL),
        _user("Yes I did"),
        _assistant(WHY),
        _user("I planned ahead"),
        _assistant(NEXT_GOAL),
        _user("  Read a chapter  "),
    ]

    state = patterns.infer_slots_from_patterns(history)

    assert state.outcome_provided
    assert state.why_provided
    assert state.next_goal_provided
    assert state.next_goal_text == "Read a chapter"
    assert state.next_goal_timing_provided
    assert state.next_goal_timing == "tomorrow"
    assert not state.conversation_concluded
    assert state.last_prompt_type is PromptType.ASKED_NEXT_GOAL
    assert not state.failed


def test_infer_slots_ignores_answers_after_plain_assistant_messages() -> None:
    history = [
        _assistant(INITIAL),
        _assistant("Take your time."),
        _user("Yes"),
    ]

    state = patterns.infer_slots_from_patterns(history)

    assert not state.outcome_provided
    assert state.last_prompt_type is PromptType.ASKED_INITIAL
    assert state.next_goal_text == NOT_SPECIFIED


def test_infer_slots_detects_conclusion() -> None:
    state = patterns.infer_slots_from_patterns([_assistant(CONCLUSION)])

    assert state.conversation_concluded
    assert state.last_prompt_type is PromptType.CONCLUDED_SESSION
