from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import requests

from ..models import Tweet, normalize_str
from .action_journal import append_generation_journal
from .config import Config
from .rate_limit import execute_with_rate_limit


MAX_TICKER_CHARS = 8
MIN_TICKER_CHARS = 2
MAX_NAME_CHARS = 32
MAX_DESCRIPTION_CHARS = 200
MAX_REPLY_CHARS = 280
MAX_PROMPT_INPUT_CHARS = 1200

FALLBACK_TICKER = "MENTION"
FALLBACK_NAME = "Mention Coin"
FALLBACK_DESCRIPTION = "Minted from a mention."

GENERATION_SYSTEM_PROMPT = (
    "You turn a social media post into a memecoin concept. "
    "Reply with a JSON object holding exactly three string fields: "
    "ticker (2-8 uppercase letters or digits, no $ sign), "
    "name (at most 32 characters), "
    "description (one or two sentences, at most 200 characters). "
    "Stay close to the post's subject and tone. Do not give financial advice."
)

logger = logging.getLogger("mentionmint.agent")


@dataclass(frozen=True)
class GeneratedContent:
    ticker: str
    name: str
    description: str

    def to_dict(self) -> Dict[str, str]:
        return {"ticker": self.ticker, "name": self.name, "description": self.description}


def _clip_text(value: Any, max_chars: int) -> str:
    text = re.sub(r"\s+", " ", normalize_str(value)).strip()
    if len(text) <= max_chars:
        return text
    return text[:max_chars].rstrip()


def sanitize_ticker(value: Any) -> str:
    ticker = re.sub(r"[^A-Z0-9]", "", normalize_str(value).upper())
    ticker = ticker[:MAX_TICKER_CHARS]
    if len(ticker) < MIN_TICKER_CHARS:
        return ""
    return ticker


def fallback_content(text: str) -> GeneratedContent:
    description = _clip_text(text, MAX_DESCRIPTION_CHARS) or FALLBACK_DESCRIPTION
    return GeneratedContent(ticker=FALLBACK_TICKER, name=FALLBACK_NAME, description=description)


def sanitize_generated_content(raw: Dict[str, Any], source_text: str) -> GeneratedContent:
    """Clamp model output to publishable limits; any empty field takes the fallback value."""
    fallback = fallback_content(source_text)
    ticker = sanitize_ticker(raw.get("ticker"))
    name = _clip_text(raw.get("name"), MAX_NAME_CHARS).strip(" \"'")
    description = _clip_text(raw.get("description"), MAX_DESCRIPTION_CHARS)
    return GeneratedContent(
        ticker=ticker or fallback.ticker,
        name=name or fallback.name,
        description=description or fallback.description,
    )


def format_reply(content: GeneratedContent) -> str:
    text = f"${content.ticker} | {content.name}\n\n{content.description}"
    if len(text) > MAX_REPLY_CHARS:
        text = text[:MAX_REPLY_CHARS].rstrip()
    return text


def _extract_first_fenced_block(text: str) -> str:
    blob = normalize_str(text)
    if "```" not in blob:
        return ""
    match = re.search(r"```(?:json)?\s*(.*?)```", blob, flags=re.IGNORECASE | re.DOTALL)
    if not match:
        return ""
    return normalize_str(match.group(1)).strip()


def _extract_first_balanced_json_object(text: str) -> str:
    blob = normalize_str(text)
    start = blob.find("{")
    if start < 0:
        return ""

    depth = 0
    in_string = False
    escape = False
    for idx in range(start, len(blob)):
        ch = blob[idx]
        if in_string:
            if escape:
                escape = False
                continue
            if ch == "\\":
                escape = True
                continue
            if ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
            continue
        if ch == "{":
            depth += 1
            continue
        if ch == "}":
            depth -= 1
            if depth == 0:
                return blob[start : idx + 1]
    return ""


def parse_json_object_lenient(text: str) -> Dict[str, Any]:
    raw = normalize_str(text).lstrip("\ufeff").strip()
    if not raw:
        raise RuntimeError("Model returned empty text response")

    for candidate in (raw, _extract_first_fenced_block(raw), _extract_first_balanced_json_object(raw)):
        if not candidate:
            continue
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    preview = _clip_text(raw, 320)
    raise RuntimeError(f"Model returned non-JSON text (preview={preview})")


class ContentGenerator(ABC):
    @abstractmethod
    def generate(self, text: str) -> GeneratedContent:
        pass


class Responder(ABC):
    @abstractmethod
    def respond(self, target_id: str, content: GeneratedContent) -> None:
        pass


class OpenAIContentGenerator(ContentGenerator):
    def __init__(self, cfg: Config):
        self.cfg = cfg

    def build_messages(self, text: str) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": GENERATION_SYSTEM_PROMPT},
            {"role": "user", "content": f"Post:\n{_clip_text(text, MAX_PROMPT_INPUT_CHARS)}"},
        ]

    def generate(self, text: str) -> GeneratedContent:
        if not self.cfg.openai_api_key:
            raise RuntimeError("OPENAI_API_KEY not set")

        url = f"{self.cfg.openai_base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.cfg.openai_api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.cfg.openai_model,
            "messages": self.build_messages(text),
            "temperature": self.cfg.openai_temperature,
            "response_format": {"type": "json_object"},
        }
        logger.info("LLM request model=%s input_chars=%s", self.cfg.openai_model, len(text))

        resp = requests.post(url, headers=headers, data=json.dumps(payload), timeout=60)
        if resp.status_code >= 400:
            raise RuntimeError(f"OpenAI error {resp.status_code}: {resp.text}")

        data = resp.json()
        content = data["choices"][0]["message"]["content"]
        usage = data.get("usage") or {}
        logger.info(
            "LLM response model=%s prompt_tokens=%s completion_tokens=%s",
            self.cfg.openai_model,
            usage.get("prompt_tokens"),
            usage.get("completion_tokens"),
        )
        return sanitize_generated_content(parse_json_object_lenient(content), source_text=text)


class TwitterResponder(Responder):
    """Posts the generated coin as a reply to the mention."""

    def __init__(self, client: Any, execute: Callable[..., Any] = execute_with_rate_limit):
        self.client = client
        self.execute = execute

    def respond(self, target_id: str, content: GeneratedContent) -> None:
        text = format_reply(content)
        result = self.execute(lambda: self.client.create_reply(target_id, text))
        reply_id = ((result or {}).get("data") or {}).get("id")
        logger.info("Reply posted in_reply_to=%s reply_id=%s", target_id, reply_id)


class LogResponder(Responder):
    def respond(self, target_id: str, content: GeneratedContent) -> None:
        logger.info("Dry run reply in_reply_to=%s text=%r", target_id, format_reply(content))


@dataclass
class GenerationOutcome:
    source: str
    input_text: str
    content: GeneratedContent
    fallback: bool
    responded: bool
    error: Optional[str] = None


class GenerationTrigger:
    """Feeds a mention (or the tweet it replies to) into generation, then replies.

    Failures from either collaborator are logged and absorbed; each mention gets
    a single attempt per cycle.
    """

    def __init__(
        self,
        generator: ContentGenerator,
        responder: Responder,
        journal_path: Optional[Path] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.generator = generator
        self.responder = responder
        self.journal_path = journal_path
        self.logger = logger or logging.getLogger("mentionmint.agent")

    def trigger(self, mention: Tweet, parent: Optional[Tweet] = None) -> GenerationOutcome:
        if parent is not None:
            source = "parent"
            input_text = parent.text
        else:
            source = "mention"
            input_text = mention.text

        error: Optional[str] = None
        fallback = False
        try:
            content = self.generator.generate(input_text)
        except Exception as e:
            self.logger.warning("Generation failed mention_id=%s error=%s, using fallback content", mention.id, e)
            content = fallback_content(input_text)
            fallback = True
            error = str(e)

        responded = False
        try:
            self.responder.respond(mention.id, content)
            responded = True
        except Exception as e:
            self.logger.warning("Responder failed mention_id=%s error=%s", mention.id, e)
            error = f"{error}; respond: {e}" if error else f"respond: {e}"

        self.logger.info(
            "Generation complete mention_id=%s source=%s ticker=%s name=%r fallback=%s responded=%s",
            mention.id,
            source,
            content.ticker,
            content.name,
            fallback,
            responded,
        )

        if self.journal_path is not None:
            try:
                append_generation_journal(
                    self.journal_path,
                    mention_id=mention.id,
                    parent_id=parent.id if parent is not None else None,
                    source=source,
                    input_text=input_text,
                    ticker=content.ticker,
                    name=content.name,
                    description=content.description,
                    fallback=fallback,
                    responded=responded,
                    error=error,
                )
            except Exception as e:
                self.logger.warning("Generation journal write failed path=%s error=%s", self.journal_path, e)

        return GenerationOutcome(
            source=source,
            input_text=input_text,
            content=content,
            fallback=fallback,
            responded=responded,
            error=error,
        )
