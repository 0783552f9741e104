import json
import logging
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from mentionmint.agent.config import load_config
from mentionmint.agent.generation import (
    ContentGenerator,
    GeneratedContent,
    GenerationTrigger,
    OpenAIContentGenerator,
    Responder,
    TwitterResponder,
    fallback_content,
    format_reply,
    parse_json_object_lenient,
    sanitize_generated_content,
)
from mentionmint.models import Tweet


_LOGGER = logging.getLogger("mentionmint.tests")


class _Generator(ContentGenerator):
    def __init__(self, error=None):
        self.inputs = []
        self.error = error

    def generate(self, text):
        self.inputs.append(text)
        if self.error is not None:
            raise self.error
        return GeneratedContent(ticker="CAT", name="Cat Coin", description="A coin about cats.")


class _Responder(Responder):
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def respond(self, target_id, content):
        self.calls.append((target_id, content))
        if self.error is not None:
            raise self.error


class _Resp:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload if payload is not None else {}
        self.text = text

    def json(self):
        return self._payload


MENTION = Tweet(id="200", author_id="u2", text="@bot mint this please")
PARENT = Tweet(id="150", author_id="u1", text="cats are taking over the timeline")


class GenerationTriggerTests(unittest.TestCase):
    def test_direct_mention_uses_its_own_text(self):
        generator = _Generator()
        responder = _Responder()
        trigger = GenerationTrigger(generator, responder, logger=_LOGGER)

        outcome = trigger.trigger(MENTION, None)

        self.assertEqual(generator.inputs, ["@bot mint this please"])
        self.assertEqual(outcome.source, "mention")
        self.assertEqual(responder.calls[0][0], "200")
        self.assertTrue(outcome.responded)

    def test_reply_mention_uses_parent_text(self):
        generator = _Generator()
        trigger = GenerationTrigger(generator, _Responder(), logger=_LOGGER)

        outcome = trigger.trigger(MENTION, PARENT)

        self.assertEqual(generator.inputs, ["cats are taking over the timeline"])
        self.assertEqual(outcome.source, "parent")

    def test_generator_failure_falls_back_and_still_responds(self):
        responder = _Responder()
        trigger = GenerationTrigger(_Generator(error=RuntimeError("llm down")), responder, logger=_LOGGER)

        outcome = trigger.trigger(MENTION, None)

        self.assertTrue(outcome.fallback)
        self.assertEqual(outcome.content.ticker, "MENTION")
        self.assertEqual(outcome.content.description, "@bot mint this please")
        self.assertEqual(len(responder.calls), 1)
        self.assertIn("llm down", outcome.error)

    def test_responder_failure_is_absorbed(self):
        trigger = GenerationTrigger(_Generator(), _Responder(error=RuntimeError("post failed")), logger=_LOGGER)

        outcome = trigger.trigger(MENTION, None)

        self.assertFalse(outcome.responded)
        self.assertIn("post failed", outcome.error)

    def test_attempt_is_journaled(self):
        with tempfile.TemporaryDirectory() as tmp:
            journal = Path(tmp) / "journal" / "gen.jsonl"
            trigger = GenerationTrigger(_Generator(), _Responder(), journal_path=journal, logger=_LOGGER)
            trigger.trigger(MENTION, PARENT)
            rows = [json.loads(line) for line in journal.read_text(encoding="utf-8").splitlines()]
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["mention_id"], "200")
        self.assertEqual(rows[0]["parent_id"], "150")
        self.assertEqual(rows[0]["ticker"], "CAT")
        self.assertFalse(rows[0]["fallback"])


class GeneratedContentTests(unittest.TestCase):
    def test_sanitize_clamps_fields(self):
        content = sanitize_generated_content(
            {"ticker": "$dog-e coin!!", "name": "x" * 50, "description": "  spaced\n out  "},
            source_text="source",
        )
        self.assertEqual(content.ticker, "DOGECOIN")
        self.assertEqual(len(content.name), 32)
        self.assertEqual(content.description, "spaced out")

    def test_sanitize_fills_missing_fields_from_fallback(self):
        content = sanitize_generated_content({"ticker": "$", "name": ""}, source_text="the source text")
        self.assertEqual(content.ticker, "MENTION")
        self.assertEqual(content.name, "Mention Coin")
        self.assertEqual(content.description, "the source text")

    def test_fallback_for_empty_text(self):
        self.assertEqual(fallback_content("   ").description, "Minted from a mention.")

    def test_format_reply_stays_within_tweet_length(self):
        text = format_reply(GeneratedContent(ticker="CAT", name="Cat Coin", description="d" * 400))
        self.assertTrue(text.startswith("$CAT | Cat Coin\n\n"))
        self.assertLessEqual(len(text), 280)

    def test_parse_json_object_lenient_handles_fenced_and_wrapped(self):
        self.assertEqual(parse_json_object_lenient('```json\n{"ticker": "A1"}\n```')["ticker"], "A1")
        self.assertEqual(parse_json_object_lenient('Sure! {"name": "N"} hope this helps')["name"], "N")
        with self.assertRaises(RuntimeError):
            parse_json_object_lenient("no json here")


class OpenAIContentGeneratorTests(unittest.TestCase):
    @patch.dict(os.environ, {"OPENAI_API_KEY": "sk-test", "OPENAI_BASE_URL": "https://llm.example/v1"}, clear=True)
    @patch("mentionmint.agent.generation.requests.post")
    def test_generate_parses_chat_completion(self, mock_post):
        mock_post.return_value = _Resp(
            payload={
                "choices": [{"message": {"content": '{"ticker": "meow", "name": "Meow", "description": "Cats."}'}}],
                "usage": {"prompt_tokens": 10, "completion_tokens": 5},
            }
        )
        generator = OpenAIContentGenerator(load_config())

        content = generator.generate("cats everywhere")

        self.assertEqual(content, GeneratedContent(ticker="MEOW", name="Meow", description="Cats."))
        url = mock_post.call_args.args[0]
        self.assertEqual(url, "https://llm.example/v1/chat/completions")
        body = json.loads(mock_post.call_args.kwargs["data"])
        self.assertIn("cats everywhere", body["messages"][1]["content"])

    @patch.dict(os.environ, {"OPENAI_API_KEY": "sk-test"}, clear=True)
    @patch("mentionmint.agent.generation.requests.post")
    def test_generate_raises_on_http_error(self, mock_post):
        mock_post.return_value = _Resp(status_code=500, text="server error")
        generator = OpenAIContentGenerator(load_config())
        with self.assertRaises(RuntimeError):
            generator.generate("anything")


class TwitterResponderTests(unittest.TestCase):
    def test_posts_formatted_reply_through_executor(self):
        posted = []
        executed = []

        class _Client:
            def create_reply(self, tweet_id, text):
                posted.append((tweet_id, text))
                return {"data": {"id": "999"}}

        def _execute(call):
            executed.append(call)
            return call()

        responder = TwitterResponder(_Client(), execute=_execute)
        responder.respond("200", GeneratedContent(ticker="CAT", name="Cat Coin", description="Cats."))

        self.assertEqual(len(executed), 1)
        self.assertEqual(posted, [("200", "$CAT | Cat Coin\n\nCats.")])


if __name__ == "__main__":
    unittest.main()
