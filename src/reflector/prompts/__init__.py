"""Prompt templates shipped with the package."""

from .loader import InstructionTable, get_stage_prompt, load_instruction_table, load_prompt

__all__ = ["InstructionTable", "get_stage_prompt", "load_instruction_table", "load_prompt"]
