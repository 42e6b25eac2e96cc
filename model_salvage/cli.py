"""CLI entry point for model-salvage.

Headless interpretation of saved model completions, for scripting and
for checking how a given model's output will be read.

Entry point:
    model-salvage-cli interpret --model <id> [--file completion.txt] [--deliverable]
    model-salvage-cli recommend --model <id> [--json]
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────
# ARGUMENT PARSING
# ─────────────────────────────────────────────────────────────────────


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="model-salvage-cli",
        description="Interpret raw model output as tool calls or structured deliverables.",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    sub = parser.add_subparsers(dest="command")

    # interpret
    interp_p = sub.add_parser("interpret", help="Interpret a model completion")
    interp_p.add_argument("--model", default=None, help="Model ID (default: SALVAGE_ACTIVE_MODEL)")
    interp_p.add_argument("--file", default="-", help="Completion text file (default: stdin)")
    interp_p.add_argument(
        "--deliverable", action="store_true",
        help="Expect a structured deliverable, skip tool-call extraction",
    )
    interp_p.add_argument(
        "--native", default=None,
        help="JSON file with the API's native tool_calls list",
    )

    # recommend
    rec_p = sub.add_parser("recommend", help="Show config recommendations for a model")
    rec_p.add_argument("--model", default=None, help="Model ID (default: SALVAGE_ACTIVE_MODEL)")
    rec_p.add_argument("--json", action="store_true", dest="json_output", help="JSON output")

    return parser


# ─────────────────────────────────────────────────────────────────────
# COMMANDS
# ─────────────────────────────────────────────────────────────────────


def _read_text(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    with open(path, encoding="utf-8") as f:
        return f.read()


async def _cmd_interpret(
    model_id: Optional[str],
    path: str,
    deliverable: bool,
    native_path: Optional[str],
) -> int:
    """Interpret one completion and print the result as JSON. Returns exit code."""
    from model_salvage.config import RecoveryConfig, get_active_model
    from model_salvage.interpreter import Interpreter
    from model_salvage.recovery import RecoveryEngine

    try:
        text = _read_text(path)
        native = None
        if native_path:
            with open(native_path, encoding="utf-8") as f:
                native = json.load(f)
    except (OSError, ValueError, RecursionError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    interpreter = Interpreter(
        engine=RecoveryEngine(RecoveryConfig.from_env()),
        default_model=get_active_model(),
    )
    result = await interpreter.interpret(
        text,
        model_id,
        expect_deliverable=deliverable,
        native_tool_calls=native,
    )

    json.dump(result.to_dict(), sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


def _cmd_recommend(model_id: Optional[str], json_output: bool = False) -> int:
    """Print config recommendations. Returns exit code."""
    from model_salvage.advisor import recommend
    from model_salvage.config import get_active_model

    model_id = model_id or get_active_model()
    if not model_id:
        print("Error: no model given (use --model or SALVAGE_ACTIVE_MODEL)", file=sys.stderr)
        return 1

    recommendation = recommend(model_id)

    if json_output:
        payload = recommendation.model_dump() if recommendation else None
        json.dump({"model": model_id, "recommendation": payload}, sys.stdout, indent=2)
        sys.stdout.write("\n")
    elif recommendation is None:
        print(f"No specific optimizations for model: {model_id}")
    else:
        print(recommendation.debug_message)
        if recommendation.top_p is not None:
            print(f"  top_p: {recommendation.top_p}")
        if recommendation.parallel_tool_calls is not None:
            print(f"  parallel_tool_calls: {recommendation.parallel_tool_calls}")
        for key, value in recommendation.chat_template_kwargs.items():
            print(f"  chat_template_kwargs.{key}: {value}")

    return 0


# ─────────────────────────────────────────────────────────────────────
# ENTRY POINT
# ─────────────────────────────────────────────────────────────────────


def main():
    parser = _build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Logging
    level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(name)s %(message)s", stream=sys.stderr)

    # Load env
    load_dotenv()

    # Dispatch
    if args.command == "interpret":
        code = asyncio.run(_cmd_interpret(
            model_id=args.model,
            path=args.file,
            deliverable=args.deliverable,
            native_path=args.native,
        ))
    elif args.command == "recommend":
        code = _cmd_recommend(model_id=args.model, json_output=args.json_output)
    else:
        parser.print_help()
        code = 1

    sys.exit(code)


if __name__ == "__main__":
    main()
