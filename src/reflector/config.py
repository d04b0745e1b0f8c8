from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

INFERENCE_MODES = ("oracle", "patterns")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True, slots=True)
class ReflectorConfig:
    backend: str = "fake"
    model: str = "gpt-3.5-turbo"
    temperature: float = 0.7
    max_tokens: int = 150
    analysis_model: str | None = None
    analysis_temperature: float = 0.0
    analysis_max_tokens: int = 400
    inference: str = "oracle"
    data_root: Path = Path("data")

    def reply_params(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

    def analysis_params(self) -> dict[str, Any]:
        return {
            "model": self.analysis_model or self.model,
            "temperature": self.analysis_temperature,
            "max_tokens": self.analysis_max_tokens,
        }


def load_config() -> ReflectorConfig:
    defaults = ReflectorConfig()
    inference = os.getenv("REFLECTOR_INFERENCE", defaults.inference).strip().lower()
    if inference not in INFERENCE_MODES:
        inference = defaults.inference
    return ReflectorConfig(
        backend=os.getenv("REFLECTOR_BACKEND", defaults.backend),
        model=os.getenv("REFLECTOR_MODEL", defaults.model),
        temperature=_env_float("REFLECTOR_TEMPERATURE", defaults.temperature),
        max_tokens=_env_int("REFLECTOR_MAX_TOKENS", defaults.max_tokens),
        analysis_model=os.getenv("REFLECTOR_ANALYSIS_MODEL") or None,
        analysis_temperature=_env_float(
            "REFLECTOR_ANALYSIS_TEMPERATURE", defaults.analysis_temperature
        ),
        analysis_max_tokens=_env_int("REFLECTOR_ANALYSIS_MAX_TOKENS", defaults.analysis_max_tokens),
        inference=inference,
        data_root=Path(os.getenv("DATA_ROOT", str(defaults.data_root))),
    )
