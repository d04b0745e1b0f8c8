from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, List

NOT_SPECIFIED = "not specified"


class PromptType(str, Enum):
    NONE = "NONE"
    ASKED_INITIAL = "ASKED_INITIAL"
    ASKED_WHY = "ASKED_WHY"
    ASKED_NEXT_GOAL = "ASKED_NEXT_GOAL"
    CONCLUDED_SESSION = "CONCLUDED_SESSION"


class Stage(str, Enum):
    AWAITING_INITIAL = "AWAITING_INITIAL"
    AWAITING_WHY = "AWAITING_WHY"
    AWAITING_NEXT_GOAL = "AWAITING_NEXT_GOAL"
    AWAITING_CONCLUSION = "AWAITING_CONCLUSION"
    CONCLUDED = "CONCLUDED"
    ERROR = "ERROR"
    GENERAL = "GENERAL"


class Instruction(str, Enum):
    """Keys of the stage instruction table."""

    REQUEST_OUTCOME = "request_outcome"
    REQUEST_WHY = "request_why"
    CLARIFY_WHY = "clarify_why"
    REQUEST_NEXT_GOAL = "request_next_goal"
    CLARIFY_NEXT_GOAL = "clarify_next_goal"
    REQUEST_TIMING = "request_timing"
    REQUEST_CONCLUDE = "request_conclude"
    POST_CONCLUSION = "post_conclusion"
    GENERAL_GUIDANCE = "general_guidance"


@dataclass(slots=True)
class ChatMessage:
    role: str
    content: str

    def as_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(slots=True)
class OracleReply:
    message: str
    usage: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class SlotState:
    outcome_provided: bool = False
    why_provided: bool = False
    next_goal_provided: bool = False
    next_goal_text: str = NOT_SPECIFIED
    next_goal_timing_provided: bool = False
    next_goal_timing: str = NOT_SPECIFIED
    conversation_concluded: bool = False
    last_prompt_type: PromptType = PromptType.NONE
    failed: bool = False

    @classmethod
    def failure(cls) -> "SlotState":
        return cls(failed=True)


@dataclass(frozen=True, slots=True)
class CollectedInfo:
    outcome_provided: bool = False
    why_provided: bool = False
    next_goal_provided: bool = False
    next_goal_text: str = NOT_SPECIFIED
    next_goal_timing_provided: bool = False
    next_goal_timing: str = NOT_SPECIFIED

    @classmethod
    def from_state(cls, state: SlotState) -> "CollectedInfo":
        return cls(
            outcome_provided=state.outcome_provided,
            why_provided=state.why_provided,
            next_goal_provided=state.next_goal_provided,
            next_goal_text=state.next_goal_text,
            next_goal_timing_provided=state.next_goal_timing_provided,
            next_goal_timing=state.next_goal_timing,
        )

    def with_why_provided(self) -> "CollectedInfo":
        return replace(self, why_provided=True)

    def as_payload(self) -> dict[str, Any]:
        return {
            "outcomeProvided": self.outcome_provided,
            "whyProvided": self.why_provided,
            "nextGoalProvided": self.next_goal_provided,
            "nextGoalText": self.next_goal_text,
            "nextGoalTimingProvided": self.next_goal_timing_provided,
            "nextGoalTiming": self.next_goal_timing,
        }


@dataclass(frozen=True, slots=True)
class StageDecision:
    instruction_text: str
    stage: Stage
    collected_info: CollectedInfo
    last_prompt_type: PromptType


@dataclass(frozen=True, slots=True)
class GoalDisplay:
    goal: str = ""
    timing: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.goal or not self.timing

    def as_payload(self) -> dict[str, str]:
        return {"goal": self.goal, "timing": self.timing}


@dataclass(frozen=True, slots=True)
class CheckIn:
    iso_check_in_datetime: str = ""
    descriptive_check_in: str = ""

    def as_payload(self) -> dict[str, str]:
        return {
            "isoCheckInDateTime": self.iso_check_in_datetime,
            "descriptiveCheckIn": self.descriptive_check_in,
        }


@dataclass(slots=True)
class TurnResult:
    assistant_reply: str
    stage: Stage
    collected_info: CollectedInfo
    goal_display: GoalDisplay = field(default_factory=GoalDisplay)
    check_in: CheckIn = field(default_factory=CheckIn)

    def as_payload(self) -> dict[str, Any]:
        return {
            "aiMessage": self.assistant_reply,
            "currentStage": self.stage.value,
            "collectedInformation": self.collected_info.as_payload(),
            "nextGoalDisplay": self.goal_display.as_payload(),
            "checkInDetails": self.check_in.as_payload(),
        }


@dataclass(slots=True)
class ConversationRecord:
    owner_id: str
    revision: int
    updated_ts: float
    chat_history: List[ChatMessage] = field(default_factory=list)
    collected_information: dict[str, Any] = field(default_factory=dict)
    next_goal_display: str = ""
    next_goal_timing: str = ""
    check_in: dict[str, str] = field(default_factory=dict)
