from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from reflector.backends.fake import FakeBackend
from reflector.config import ReflectorConfig
from reflector.core.errors import OracleError, TurnValidationError
from reflector.core.tracing import TraceWriter
from reflector.core.types import ChatMessage, Instruction, PromptType, Stage
from reflector.prompts import load_instruction_table
from reflector.runtime import controller, conversations
from reflector.runtime.recovery import GUIDING_QUESTIONS

TABLE = load_instruction_table()
CONFIG = ReflectorConfig()
NOW = datetime(2023, 10, 26, 10, 0, 0, tzinfo=timezone.utc)


def _state_json(**overrides) -> str:
    payload = {
        "outcomeProvided": False,
        "whyProvided": False,
        "nextGoalProvided": False,
        "nextGoalText": "not specified",
        "nextGoalTimingProvided": False,
        "nextGoalTiming": "not specified",
        "conversationConcluded": False,
        "lastSignificantPromptType": "NONE",
    }
    payload.update(overrides)
    return json.dumps(payload)


def _run(backend: FakeBackend, text: str, history=None, **kwargs):
    return controller.run_turn(
        text,
        history or [],
        backend,
        config=CONFIG,
        instructions=TABLE,
        now=lambda: NOW,
        **kwargs,
    )


def test_first_turn_asks_for_outcome() -> None:
    backend = FakeBackend()
    backend.extend_purpose_responses("state", [_state_json()])
    backend.extend_purpose_responses("reply", ["Your goal was to run, were you able to do it?"])

    result = _run(backend, "No")

    assert result.stage is Stage.AWAITING_INITIAL
    assert result.assistant_reply
    assert result.stage.value in {stage.value for stage in Stage}
    reply_call = backend.calls_for("reply")[0]
    assert reply_call["messages"][0] == {
        "role": "system",
        "content": TABLE[Instruction.REQUEST_OUTCOME],
    }
    assert reply_call["messages"][-1] == {"role": "user", "content": "No"}
    assert reply_call["params"]["model"] == "gpt-3.5-turbo"


def test_inference_sees_the_current_message() -> None:
    backend = FakeBackend()
    backend.extend_purpose_responses("state", [_state_json()])
    backend.extend_purpose_responses("reply", ["ok"])
    history = [ChatMessage(role="assistant", content="Your goal was to run, were you able to do it?")]

    _run(backend, "Yes I did", history)

    state_call = backend.calls_for("state")[0]
    transcript = json.loads(state_call["content"].split("TRANSCRIPT_JSON:\n", 1)[1])
    assert transcript[-1] == {"role": "user", "content": "Yes I did"}
    assert state_call["params"]["temperature"] == 0.0


@pytest.mark.parametrize("text", [None, "", "   "])
def test_missing_message_is_rejected_before_any_call(text) -> None:
    backend = FakeBackend()

    with pytest.raises(TurnValidationError):
        _run(backend, text)

    assert backend.calls == []


def test_uncertain_why_answer_moves_to_next_goal() -> None:
    backend = FakeBackend()
    backend.extend_purpose_responses(
        "state", [_state_json(outcomeProvided=True, lastSignificantPromptType="ASKED_WHY")]
    )
    backend.extend_purpose_responses("reply", ["That's okay. What's your goal for tomorrow?"])

    result = _run(backend, "I don't know")

    assert result.stage is Stage.AWAITING_NEXT_GOAL
    assert result.collected_info.why_provided
    system = backend.calls_for("reply")[0]["messages"][0]["content"]
    assert system == TABLE[Instruction.REQUEST_NEXT_GOAL]


def test_inference_failure_uses_recovery_instruction() -> None:
    backend = FakeBackend()
    backend.extend_purpose_responses("state", ["<<not json>>"])
    backend.extend_purpose_responses("reply", ["Got it. Why were you able to accomplish this goal?"])
    history = [
        ChatMessage(role="assistant", content="Why were you NOT able to accomplish this goal?"),
    ]

    result = _run(backend, "I overslept", history)

    assert result.stage is Stage.ERROR
    assert not result.collected_info.outcome_provided
    system = backend.calls_for("reply")[0]["messages"][0]["content"]
    assert '"I overslept"' in system
    assert GUIDING_QUESTIONS[PromptType.ASKED_WHY] in system


def test_conclusion_turn_normalizes_goal_and_schedules_check_in(tmp_path: Path) -> None:
    backend = FakeBackend()
    backend.extend_purpose_responses(
        "state",
        [
            _state_json(
                outcomeProvided=True,
                whyProvided=True,
                nextGoalProvided=True,
                nextGoalText="go to the gym again",
                nextGoalTimingProvided=True,
                nextGoalTiming="tomorrow at midnight",
                lastSignificantPromptType="ASKED_NEXT_GOAL",
            )
        ],
    )
    backend.extend_purpose_responses("reply", ["Good luck. This is the end of this reflection."])
    backend.extend_purpose_responses(
        "goal", [json.dumps({"goal": "Go to the gym", "timing": "In 1 day at midnight"})]
    )
    backend.extend_purpose_responses(
        "check_in",
        [json.dumps({"isoCheckInDateTime": "2023-10-27T00:00:00Z", "descriptiveCheckIn": "Midnight"})],
    )
    tracer = TraceWriter("owner-1", base_dir=tmp_path, turn_id="turn-1")

    result = _run(backend, "Gym again tomorrow at midnight", tracer=tracer)

    assert result.stage is Stage.CONCLUDED
    assert result.goal_display.goal == "Go to the gym"
    assert result.check_in.iso_check_in_datetime == "2023-10-27T00:00:00Z"
    assert [call["params"]["purpose"] for call in backend.calls] == [
        "state",
        "reply",
        "goal",
        "check_in",
    ]
    payload = result.as_payload()
    assert payload["currentStage"] == "CONCLUDED"
    assert payload["nextGoalDisplay"] == {"goal": "Go to the gym", "timing": "In 1 day at midnight"}
    assert payload["collectedInformation"]["nextGoalTimingProvided"] is True
    kinds = [
        json.loads(line)["kind"] for line in tracer.path.read_text(encoding="utf-8").splitlines()
    ]
    assert kinds == ["slot_state", "stage", "reply", "goal_display", "check_in"]


def test_empty_reply_keeps_awaiting_conclusion() -> None:
    backend = FakeBackend()
    backend.extend_purpose_responses(
        "state",
        [
            _state_json(
                outcomeProvided=True,
                whyProvided=True,
                nextGoalProvided=True,
                nextGoalText="Run",
                nextGoalTimingProvided=True,
                nextGoalTiming="not specified",
            )
        ],
    )
    backend.extend_purpose_responses("reply", [""])

    result = _run(backend, "Run")

    assert result.stage is Stage.AWAITING_CONCLUSION
    assert result.goal_display.is_empty
    assert backend.calls_for("goal") == []


def test_reply_failure_raises_generic_oracle_error() -> None:
    backend = FakeBackend()
    backend.extend_purpose_responses("state", [_state_json()])
    backend.extend_purpose_responses("reply", [ConnectionError("10.0.0.3 refused")])

    with pytest.raises(OracleError) as excinfo:
        _run(backend, "hello")

    assert "10.0.0.3" not in str(excinfo.value)


def test_pattern_inference_skips_the_state_call() -> None:
    backend = FakeBackend()
    backend.extend_purpose_responses("reply", ["Why were you able to accomplish this goal?"])
    history = [ChatMessage(role="assistant", content="Your goal was to run, were you able to do it?")]

    result = controller.run_turn(
        "Yes",
        history,
        backend,
        config=ReflectorConfig(inference="patterns"),
        instructions=TABLE,
    )

    assert result.stage is Stage.AWAITING_WHY
    assert result.collected_info.outcome_provided
    assert backend.calls_for("state") == []


def test_run_session_turn_persists_transcript(tmp_path: Path) -> None:
    backend = FakeBackend()
    backend.extend_purpose_responses("state", [_state_json(), _state_json(outcomeProvided=True)])
    backend.extend_purpose_responses(
        "reply",
        ["Your goal was to run, were you able to do it?", "Why were you able to accomplish this goal?"],
    )

    controller.run_session_turn("owner-7", "Hi", backend, base_dir=tmp_path, config=CONFIG)
    result = controller.run_session_turn("owner-7", "Yes", backend, base_dir=tmp_path, config=CONFIG)

    assert result.stage is Stage.AWAITING_WHY
    record = conversations.load_record("owner-7", base_dir=tmp_path / "conversations")
    assert record is not None
    assert record.revision == 2
    assert [message.role for message in record.chat_history] == ["user", "assistant"] * 2
    assert record.collected_information["outcomeProvided"] is True
    assert (tmp_path / "traces" / "owner-7__turn-1.jsonl").exists()
    assert (tmp_path / "traces" / "owner-7__turn-2.jsonl").exists()
    second_state_call = backend.calls_for("state")[1]
    assert "were you able to do it?" in second_state_call["content"]
