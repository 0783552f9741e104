import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest.mock import patch

from mentionmint.cli import build_parser, cmd_search, cmd_status
from mentionmint.models import SearchPage, Tweet, User
from mentionmint.twitter_client import RateLimitedError


class CliTests(unittest.TestCase):
    def test_parser_routes_subcommands(self):
        parser = build_parser()
        args = parser.parse_args(["run", "--max-cycles", "2"])
        self.assertEqual(args.max_cycles, 2)
        args = parser.parse_args(["search", "--since-id", "9"])
        self.assertEqual(args.since_id, "9")
        self.assertEqual(args.max_results, 10)

    def test_status_prints_state_summary(self):
        with tempfile.TemporaryDirectory() as tmp:
            state_path = Path(tmp) / "tweets.json"
            state_path.write_text(
                json.dumps(
                    {
                        "cursor": {"last_seen_id": "12"},
                        "tweets": [{"id": "12", "author_id": "u1", "text": "hi"}],
                        "users": [],
                        "last_updated": "2024-05-01T00:00:00+00:00",
                    }
                ),
                encoding="utf-8",
            )
            env = {
                "MENTIONMINT_STATE_PATH": str(state_path),
                "MENTIONMINT_JOURNAL_PATH": str(Path(tmp) / "journal.jsonl"),
            }
            out = io.StringIO()
            with patch.dict(os.environ, env, clear=True), patch("mentionmint.cli.load_dotenv"), redirect_stdout(out):
                cmd_status(build_parser().parse_args(["status"]))
        summary = json.loads(out.getvalue())
        self.assertEqual(summary["last_seen_id"], "12")
        self.assertEqual(summary["tweets"], 1)
        self.assertEqual(summary["recent_generations"], [])

    def test_search_waits_out_rate_limit(self):
        class _Client:
            calls = []

            def search_mentions(self, username, max_results=10, since_id=None):
                self.calls.append((username, max_results, since_id))
                if len(self.calls) == 1:
                    raise RateLimitedError("limited")
                return SearchPage(
                    tweets=[Tweet(id="8", author_id="u1", text="@mintbot hi")],
                    included_users=[User(id="u1", username="alice")],
                )

        env = {
            "TWITTER_USERNAME": "mintbot",
            "MENTIONMINT_INITIAL_RETRY_DELAY_MS": "1",
            "NO_COLOR": "1",
        }
        out = io.StringIO()
        with patch.dict(os.environ, env, clear=True), patch("mentionmint.cli.load_dotenv"), patch(
            "mentionmint.cli.TwitterClient", return_value=_Client()
        ), redirect_stdout(out):
            cmd_search(build_parser().parse_args(["search", "--since-id", "7"]))

        self.assertEqual(_Client.calls, [("mintbot", 10, "7"), ("mintbot", 10, "7")])
        printed = json.loads(out.getvalue())
        self.assertEqual([t["id"] for t in printed["tweets"]], ["8"])
        self.assertEqual(printed["included_users"][0]["username"], "alice")


if __name__ == "__main__":
    unittest.main()
