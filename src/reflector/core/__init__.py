"""Core data contracts and utilities."""

from .errors import OracleError, ReflectorError, TurnValidationError
from .tracing import TraceEvent, TraceWriter
from .types import (
    NOT_SPECIFIED,
    ChatMessage,
    CheckIn,
    CollectedInfo,
    ConversationRecord,
    GoalDisplay,
    Instruction,
    OracleReply,
    PromptType,
    SlotState,
    Stage,
    StageDecision,
    TurnResult,
)

__all__ = [
    "NOT_SPECIFIED",
    "ChatMessage",
    "CheckIn",
    "CollectedInfo",
    "ConversationRecord",
    "GoalDisplay",
    "Instruction",
    "OracleError",
    "OracleReply",
    "PromptType",
    "ReflectorError",
    "SlotState",
    "Stage",
    "StageDecision",
    "TraceEvent",
    "TraceWriter",
    "TurnResult",
    "TurnValidationError",
]
