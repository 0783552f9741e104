import os
import unittest
from pathlib import Path
from unittest.mock import patch

from mentionmint.agent.config import load_config, missing_required_settings


class ConfigLoadTests(unittest.TestCase):
    @patch.dict(os.environ, {}, clear=True)
    def test_load_config_defaults(self) -> None:
        cfg = load_config()
        self.assertEqual(cfg.poll_seconds, 60)
        self.assertEqual(cfg.search_max_results, 10)
        self.assertEqual(cfg.cache_limit, 1000)
        self.assertEqual(cfg.max_retries, 3)
        self.assertEqual(cfg.initial_retry_delay_ms, 5000)
        self.assertEqual(cfg.state_path, Path("data/tweets.json"))
        self.assertFalse(cfg.dry_run)
        self.assertIsNone(cfg.log_path)
        self.assertEqual(
            missing_required_settings(cfg),
            ["TWITTER_USERNAME", "TWITTER_API_KEY", "TWITTER_API_SECRET", "OPENAI_API_KEY"],
        )

    @patch.dict(
        os.environ,
        {
            "TWITTER_USERNAME": " @mintbot ",
            "TWITTER_API_KEY": "k",
            "TWITTER_API_SECRET": "s",
            "OPENAI_API_KEY": "sk",
            "MENTIONMINT_DRY_RUN": "yes",
            "MENTIONMINT_LOG_LEVEL": "debug",
            "MENTIONMINT_LOG_PATH": "logs/agent.log",
        },
        clear=True,
    )
    def test_load_config_reads_environment(self) -> None:
        cfg = load_config()
        self.assertEqual(cfg.twitter_username, "mintbot")
        self.assertTrue(cfg.dry_run)
        self.assertEqual(cfg.log_level, "DEBUG")
        self.assertEqual(cfg.log_path, Path("logs/agent.log"))
        self.assertEqual(missing_required_settings(cfg), [])


if __name__ == "__main__":
    unittest.main()
