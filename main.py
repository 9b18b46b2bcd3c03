"""
# main.py

Module Contract
- Purpose: Command-line entry point. Builds the dependency container and orchestrator, runs one mode, and drains analytics / closes the model client on the way out.
- Inputs:
  - CLI mode: "chat" (default), "stats", "health"
  - chat options: --user, --session, --cultural-context
  - Environment: OPENAI_API_KEY, CLASSIFIER_MODEL, CRISIS_* overrides (see config/app_config.py)
- Outputs:
  - chat: one JSON response object per stdin line
  - stats / health: a single JSON document
- Key functions:
  - build_orchestrator() → (DependencyContainer, MentalHealthOrchestrator)
  - run_chat(), print_stats(), print_health()
- Side effects:
  - Configures root logging (console + LOG_FILE); audit emergency log under DATA_DIR when the primary store fails.
"""
import argparse
import asyncio
import json
import sys

from config.app_config import LOG_FILE, LOG_LEVEL
from core.dependencies import DependencyContainer
from core.orchestrator import MentalHealthOrchestrator
from utils.health_check import get_health_status
from utils.logging_utils import configure_logging, get_logger

logger = get_logger("main")


def build_orchestrator():
    """Builds the container and a wired orchestrator"""
    container = DependencyContainer()
    container.initialize()
    return container, MentalHealthOrchestrator(container)


def _dump(data) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


async def run_chat(orchestrator: MentalHealthOrchestrator, user_id: str, session_id: str,
                   cultural_context=None, stream=None):
    stream = stream or sys.stdin
    loop = asyncio.get_running_loop()
    print("Type a message and press Enter (Ctrl-D to quit).", file=sys.stderr)
    while True:
        line = await loop.run_in_executor(None, stream.readline)
        if not line:
            break
        message = line.strip()
        if not message:
            continue
        result = await orchestrator.process_message(user_id, session_id, message, cultural_context)
        print(_dump(result), flush=True)


async def print_stats(orchestrator: MentalHealthOrchestrator):
    print(_dump(await orchestrator.get_stats()))


async def _main(args) -> int:
    container, orchestrator = build_orchestrator()
    try:
        if args.mode == "chat":
            await run_chat(orchestrator, args.user, args.session, args.cultural_context)
        elif args.mode == "stats":
            await print_stats(orchestrator)
        elif args.mode == "health":
            health = get_health_status(container)
            print(_dump(health))
            return 0 if health["status"] == "healthy" else 1
        return 0
    finally:
        await container.shutdown()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Crisis-aware mental health support pipeline")
    parser.add_argument("mode", nargs="?", default="chat", choices=("chat", "stats", "health"))
    parser.add_argument("--user", default="cli_user", help="user id for chat mode")
    parser.add_argument("--session", default="cli_session", help="session id for chat mode")
    parser.add_argument("--cultural-context", default=None,
                        help="enables the cultural relevance boost for resource matching")
    parser.add_argument("--log-level", default=LOG_LEVEL)
    return parser.parse_args(argv)


def cli(argv=None):
    args = parse_args(argv)
    configure_logging(level=args.log_level, file_path=LOG_FILE)
    try:
        sys.exit(asyncio.run(_main(args)))
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    cli()
