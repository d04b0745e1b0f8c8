from __future__ import annotations

import argparse
import json
import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Any

from reflector.backends import get_backend, list_backends
from reflector.backends.fake import FakeBackend
from reflector.config import INFERENCE_MODES, ReflectorConfig, load_config
from reflector.core.errors import ReflectorError
from reflector.core.types import TurnResult
from reflector.runtime import controller

SMOKE_USER_TURNS = [
    "Hi, I am ready to reflect.",
    "Yes, I went for a run.",
    "I planned it the night before.",
    "Go to the gym again tomorrow at midnight.",
]


def _state_json(**overrides: Any) -> str:
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


def _build_smoke_backend() -> FakeBackend:
    backend = FakeBackend()
    backend.extend_purpose_responses(
        "state",
        [
            _state_json(),
            _state_json(outcomeProvided=True, lastSignificantPromptType="ASKED_INITIAL"),
            _state_json(
                outcomeProvided=True,
                whyProvided=True,
                lastSignificantPromptType="ASKED_WHY",
            ),
            _state_json(
                outcomeProvided=True,
                whyProvided=True,
                nextGoalProvided=True,
                nextGoalText="go to the gym again",
                nextGoalTimingProvided=True,
                nextGoalTiming="tomorrow at midnight",
                lastSignificantPromptType="ASKED_NEXT_GOAL",
            ),
        ],
    )
    backend.extend_purpose_responses(
        "reply",
        [
            "Your goal was to go for a run, were you able to do it?",
            "Great job. Why were you able to accomplish this goal?",
            "Planning ahead works. What's your goal for tomorrow? And when will you do it?",
            "Good luck. This is the end of this reflection.",
        ],
    )
    backend.extend_purpose_responses(
        "goal", [json.dumps({"goal": "Go to the gym", "timing": "In 1 day at midnight"})]
    )
    backend.extend_purpose_responses(
        "check_in",
        [
            json.dumps(
                {
                    "isoCheckInDateTime": "2023-10-27T00:00:00Z",
                    "descriptiveCheckIn": "Tomorrow at midnight",
                }
            )
        ],
    )
    return backend


def _resolve_config(args: argparse.Namespace) -> ReflectorConfig:
    config = load_config()
    if getattr(args, "backend", None):
        config = replace(config, backend=args.backend)
    if getattr(args, "model", None):
        config = replace(config, model=args.model)
    if getattr(args, "inference", None):
        config = replace(config, inference=args.inference)
    return config


def _build_backend(args: argparse.Namespace, config: ReflectorConfig):
    backend_kwargs: dict[str, Any] = {}
    if getattr(args, "model", None) and config.backend == "openai":
        backend_kwargs["model"] = args.model
    if getattr(args, "base_url", None) and config.backend == "openai":
        backend_kwargs["base_url"] = args.base_url
    return get_backend(config.backend, **backend_kwargs)


def _print_result(result: TurnResult, verbose: bool) -> None:
    print(result.assistant_reply)
    if verbose:
        print(json.dumps(result.as_payload(), indent=2))


def _run_command(args: argparse.Namespace) -> int:
    config = _resolve_config(args)
    backend = _build_backend(args, config)
    try:
        result = controller.run_session_turn(args.session, args.text, backend, config=config)
    except ReflectorError as exc:
        raise SystemExit(str(exc)) from exc
    _print_result(result, args.verbose)
    return 0


def _repl_command(args: argparse.Namespace) -> int:
    config = _resolve_config(args)
    backend = _build_backend(args, config)
    while True:
        try:
            line = input("> ")
        except EOFError:
            break
        if line.strip() == "/exit":
            break
        if not line.strip():
            continue
        try:
            result = controller.run_session_turn(args.session, line, backend, config=config)
        except ReflectorError as exc:
            print(f"error: {exc}")
            continue
        _print_result(result, args.verbose)
        print(f"[{result.stage.value}]")
    return 0


def _smoke_command(args: argparse.Namespace) -> int:
    base_dir = Path(os.getenv("DATA_ROOT", "data")) / "smoke"
    config = replace(load_config(), inference="oracle", data_root=base_dir)
    backend = _build_smoke_backend()
    result = None
    for text in SMOKE_USER_TURNS:
        result = controller.run_session_turn(args.session, text, backend, config=config)
        print(f"user: {text}")
        print(f"coach: {result.assistant_reply} [{result.stage.value}]")
    if result is not None:
        print(json.dumps(result.as_payload(), indent=2))
    print(f"Conversation saved: {base_dir / 'conversations' / f'{args.session}.json'}")
    return 0


def _serve_command(args: argparse.Namespace) -> int:
    try:
        import uvicorn
    except ImportError as exc:
        raise SystemExit("uvicorn is required to run the service") from exc
    uvicorn.run(
        "reflector.api.app:create_app",
        host=args.host,
        port=args.port,
        factory=True,
        log_level=args.log_level.lower(),
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="reflector")
    parser.add_argument("--log-level", default=os.getenv("REFLECTOR_LOG_LEVEL", "WARNING"))
    subparsers = parser.add_subparsers(dest="command", required=True)

    def _add_backend_args(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--session", default="demo-1")
        sub.add_argument("--backend", choices=list_backends())
        sub.add_argument("--model")
        sub.add_argument("--base-url")
        sub.add_argument("--inference", choices=INFERENCE_MODES)
        sub.add_argument("--verbose", action="store_true")

    run_parser = subparsers.add_parser("run", help="Run a single turn")
    _add_backend_args(run_parser)
    run_parser.add_argument("--text", required=True)
    run_parser.set_defaults(func=_run_command)

    repl_parser = subparsers.add_parser("repl", help="Run an interactive REPL")
    _add_backend_args(repl_parser)
    repl_parser.set_defaults(func=_repl_command)

    smoke_parser = subparsers.add_parser("smoke", help="Run a scripted reflection")
    smoke_parser.add_argument("--session", default="smoke-1")
    smoke_parser.set_defaults(func=_smoke_command)

    serve_parser = subparsers.add_parser("serve", help="Serve the HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, default=3005)
    serve_parser.set_defaults(func=_serve_command)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
