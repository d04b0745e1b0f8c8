from __future__ import annotations

import json
import os
import time
from dataclasses import asdict
from pathlib import Path
from typing import Any, Iterable

from reflector.core.types import ChatMessage, ConversationRecord

DEFAULT_DIR = Path("data") / "conversations"


def _record_path(owner_id: str, base_dir: Path | None = None) -> Path:
    if not owner_id or "/" in owner_id or "\\" in owner_id or owner_id.startswith("."):
        raise ValueError("invalid owner id")
    root = base_dir or DEFAULT_DIR
    return root / f"{owner_id}.json"


def save_record(record: ConversationRecord, base_dir: Path | None = None) -> Path:
    path = _record_path(record.owner_id, base_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    record.revision += 1
    record.updated_ts = time.time()
    payload = asdict(record)
    temp_path = path.with_suffix(".json.tmp")
    with temp_path.open("w", encoding="utf-8") as handle:
        handle.write(json.dumps(payload, ensure_ascii=False))
        handle.flush()
        os.fsync(handle.fileno())
    temp_path.replace(path)
    return path


def _ensure_str(value: Any, field_name: str) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    raise ValueError(f"conversation field '{field_name}' must be str")


def _ensure_dict(value: Any, field_name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    raise ValueError(f"conversation field '{field_name}' must be an object")


def coerce_messages(payload: Any) -> list[ChatMessage]:
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise ValueError("chat history must be a list")
    messages: list[ChatMessage] = []
    for item in payload:
        if not isinstance(item, dict):
            raise ValueError("chat history entries must be objects")
        role = item.get("role")
        content = item.get("content")
        if not isinstance(role, str) or not isinstance(content, str):
            raise ValueError("chat history entries must include role/content strings")
        messages.append(ChatMessage(role=role, content=content))
    return messages


def load_record(owner_id: str, base_dir: Path | None = None) -> ConversationRecord | None:
    path = _record_path(owner_id, base_dir)
    if not path.exists():
        return None
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("conversation payload must be an object")
    if not isinstance(payload.get("owner_id"), str):
        raise ValueError("conversation owner_id must be str")
    if not isinstance(payload.get("revision"), int):
        raise ValueError("conversation revision must be int")
    if not isinstance(payload.get("updated_ts"), (float, int)):
        raise ValueError("conversation updated_ts must be float")
    return ConversationRecord(
        owner_id=payload["owner_id"],
        revision=payload["revision"],
        updated_ts=payload["updated_ts"],
        chat_history=coerce_messages(payload.get("chat_history")),
        collected_information=_ensure_dict(
            payload.get("collected_information"), "collected_information"
        ),
        next_goal_display=_ensure_str(payload.get("next_goal_display"), "next_goal_display"),
        next_goal_timing=_ensure_str(payload.get("next_goal_timing"), "next_goal_timing"),
        check_in=_ensure_dict(payload.get("check_in"), "check_in"),
    )


def load_or_create(owner_id: str, base_dir: Path | None = None) -> ConversationRecord:
    record = load_record(owner_id, base_dir)
    if record is not None:
        return record
    return ConversationRecord(owner_id=owner_id, revision=0, updated_ts=time.time())


def store_chat_history(
    owner_id: str, chat_history: Iterable[ChatMessage], base_dir: Path | None = None
) -> ConversationRecord:
    record = load_or_create(owner_id, base_dir)
    record.chat_history = list(chat_history)
    save_record(record, base_dir)
    return record


def set_collected_information(
    owner_id: str,
    collected_information: dict[str, Any],
    next_goal_display: str,
    next_goal_timing: str,
    check_in: dict[str, str] | None = None,
    base_dir: Path | None = None,
) -> ConversationRecord:
    record = load_or_create(owner_id, base_dir)
    record.collected_information = dict(collected_information)
    record.next_goal_display = next_goal_display
    record.next_goal_timing = next_goal_timing
    if check_in is not None:
        record.check_in = dict(check_in)
    save_record(record, base_dir)
    return record
