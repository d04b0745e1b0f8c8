"""Conversation state machine for the reflection script."""

from . import conversations, patterns
from .controller import run_session_turn, run_turn
from .goals import normalize_goal, schedule_check_in
from .inference import infer_slot_state, parse_slot_state
from .recovery import apply_uncertainty_override, build_recovery_instruction
from .stages import resolve_stage

__all__ = [
    "apply_uncertainty_override",
    "build_recovery_instruction",
    "conversations",
    "infer_slot_state",
    "normalize_goal",
    "parse_slot_state",
    "patterns",
    "resolve_stage",
    "run_session_turn",
    "run_turn",
    "schedule_check_in",
]
