import argparse
import json
from typing import Any

from dotenv import load_dotenv

from .agent.action_journal import read_generation_journal
from .agent.config import load_config
from .agent.logging_utils import setup_logging
from .agent.runner import build_executor, build_loop, load_runtime_config, run_loop
from .agent.state import load_state
from .twitter_client import TwitterAuthError, TwitterClient


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, sort_keys=True))


def cmd_run(args: argparse.Namespace) -> None:
    """Poll for mentions until interrupted (or for --max-cycles cycles)."""
    try:
        run_loop(max_cycles=args.max_cycles)
    except KeyboardInterrupt:
        print("Stopped.")


def cmd_once(_: argparse.Namespace) -> None:
    """Run a single fetch cycle and exit."""
    cfg = load_runtime_config()
    logger = setup_logging(cfg)
    loop = build_loop(cfg, logger)
    result = loop.tick()
    if result is None:
        raise SystemExit("Cycle failed; see log output above.")
    print_json(
        {
            "fetched": result.fetched,
            "processed": result.processed,
            "persisted": result.persisted,
            "last_seen_id": loop.state.last_seen_id,
        }
    )


def cmd_status(args: argparse.Namespace) -> None:
    """Summarize the persisted cursor, caches and recent generations."""
    load_dotenv()
    cfg = load_config()
    state = load_state(cfg.state_path)
    print_json(
        {
            "state_path": str(cfg.state_path),
            "last_seen_id": state.last_seen_id,
            "last_updated": state.last_updated,
            "tweets": len(state.tweets),
            "users": len(state.users),
            "recent_generations": read_generation_journal(cfg.journal_path, limit=args.limit),
        }
    )


def cmd_search(args: argparse.Namespace) -> None:
    """Search mentions once without touching local state.

    Example:

        python -m mentionmint.cli search --since-id 1790000000000000000
    """
    load_dotenv()
    cfg = load_config()
    username = args.username or cfg.twitter_username
    if not username:
        raise SystemExit("Provide --username or set TWITTER_USERNAME.")
    logger = setup_logging(cfg)
    execute = build_executor(cfg, logger)
    client = TwitterClient()
    page = execute(lambda: client.search_mentions(username, max_results=args.max_results, since_id=args.since_id))
    print_json(
        {
            "tweets": [t.to_dict() for t in page.tweets],
            "included_tweets": [t.to_dict() for t in page.included_tweets],
            "included_users": [u.to_dict() for u in page.included_users],
        }
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Watch mentions of a Twitter account and mint coin ideas from them.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_run = subparsers.add_parser("run", help="Start the polling loop")
    p_run.add_argument("--max-cycles", type=int, default=None, help="Stop after this many cycles")
    p_run.set_defaults(func=cmd_run)

    p_once = subparsers.add_parser("once", help="Run a single polling cycle")
    p_once.set_defaults(func=cmd_once)

    p_status = subparsers.add_parser("status", help="Show persisted state summary")
    p_status.add_argument("--limit", type=int, default=5, help="Recent journal rows to include")
    p_status.set_defaults(func=cmd_status)

    p_search = subparsers.add_parser("search", help="Search mentions once and print them")
    p_search.add_argument("--username", help="Handle to search for (defaults to TWITTER_USERNAME)")
    p_search.add_argument("--since-id", help="Only return tweets newer than this id")
    p_search.add_argument("--max-results", type=int, default=10)
    p_search.set_defaults(func=cmd_search)

    return parser


def main() -> None:
    try:
        parser = build_parser()
        args = parser.parse_args()
        args.func(args)
    except TwitterAuthError as e:
        raise SystemExit(str(e))
    except Exception as e:
        # Catch-all to avoid noisy tracebacks for common runtime issues
        raise SystemExit(f"Error: {e}")


if __name__ == "__main__":
    main()
