from __future__ import annotations

from importlib import resources
from types import MappingProxyType
from typing import Mapping

from reflector.core.types import Instruction

_PROMPT_CACHE: dict[str, str] = {}

InstructionTable = Mapping[Instruction, str]


def load_prompt(rel_path: str) -> str:
    if rel_path in _PROMPT_CACHE:
        return _PROMPT_CACHE[rel_path]
    content = resources.files(__package__).joinpath(rel_path).read_text(encoding="utf-8")
    _PROMPT_CACHE[rel_path] = content.strip()
    return _PROMPT_CACHE[rel_path]


def get_stage_prompt(instruction: Instruction) -> str:
    return load_prompt(f"stages/{instruction.value}.txt")


def load_instruction_table(overrides: Mapping[Instruction, str] | None = None) -> InstructionTable:
    """Build the read-only stage instruction table, one template per ``Instruction``."""
    table = {instruction: get_stage_prompt(instruction) for instruction in Instruction}
    if overrides:
        table.update(overrides)
    return MappingProxyType(table)
