from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any


@dataclass(slots=True)
class TraceEvent:
    ts: float
    kind: str
    data: dict[str, Any] = field(default_factory=dict)


class TraceWriter:
    """Appends turn events to ``<owner_id>__<turn_id>.jsonl``."""

    def __init__(
        self, owner_id: str, base_dir: Path | None = None, turn_id: str | None = None
    ) -> None:
        self.owner_id = owner_id
        self.base_dir = base_dir or Path("data") / "traces"
        self.turn_id = turn_id

    @property
    def path(self) -> Path:
        if self.turn_id is None:
            return self.base_dir / f"{self.owner_id}.jsonl"
        return self.base_dir / f"{self.owner_id}__{self.turn_id}.jsonl"

    def write(self, event: TraceEvent) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(asdict(event), ensure_ascii=False, default=str)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(payload + "\n")
        return self.path

    def emit(self, kind: str, **data: Any) -> Path:
        return self.write(TraceEvent(ts=time.time(), kind=kind, data=data))


def emit(tracer: TraceWriter | None, kind: str, **data: Any) -> None:
    if tracer is not None:
        tracer.emit(kind, **data)
