from __future__ import annotations

import functools
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from dotenv import load_dotenv

from ..models import tweet_url
from ..twitter_client import TwitterAuthError, TwitterClient, TwitterCredentials
from .config import Config, load_config, missing_required_settings
from .generation import GenerationTrigger, LogResponder, OpenAIContentGenerator, Responder, TwitterResponder
from .logging_utils import setup_logging
from .rate_limit import execute_with_rate_limit
from .state import AgentState, load_state, save_state
from .thread_resolver import resolve_thread


@dataclass
class CycleResult:
    fetched: int = 0
    processed: int = 0
    persisted: bool = False


def build_executor(cfg: Config, logger: logging.Logger, sleep: Callable[[float], None] = time.sleep):
    return functools.partial(
        execute_with_rate_limit,
        max_retries=cfg.max_retries,
        initial_delay_ms=cfg.initial_retry_delay_ms,
        logger=logger,
        sleep=sleep,
    )


def run_cycle(
    cfg: Config,
    state: AgentState,
    client: Any,
    trigger: GenerationTrigger,
    logger: logging.Logger,
    execute: Callable[..., Any] = execute_with_rate_limit,
) -> CycleResult:
    """Fetch one page of mentions and push every unseen one through the pipeline."""
    since_id: Optional[str] = None
    if not state.first_run and state.last_seen_id:
        since_id = state.last_seen_id
        logger.info("Checking for mentions newer than id=%s", since_id)
    else:
        logger.info("Checking for initial mentions of @%s", cfg.twitter_username)

    page = execute(
        lambda: client.search_mentions(
            cfg.twitter_username,
            max_results=cfg.search_max_results,
            since_id=since_id,
        )
    )

    result = CycleResult(fetched=len(page.tweets))
    if not page.tweets:
        if state.first_run:
            logger.info("No existing mentions found.")
            state.first_run = False
        else:
            logger.info("No new mentions since last check.")
        return result

    logger.info("Found mentions count=%s newest_id=%s", len(page.tweets), page.newest_id or page.tweets[0].id)
    known_ids = {tweet.id for tweet in state.tweets}
    state.merge_users(page.included_users)
    state.merge_tweets(page.included_tweets)

    # The API returns newest first; handle oldest first.
    for mention in reversed(page.tweets):
        if mention.id in known_ids:
            logger.debug("Skipping already processed mention_id=%s", mention.id)
            continue
        known_ids.add(mention.id)
        state.add_tweet(mention)
        handle = state.username_for(mention.author_id)
        logger.info(
            "%s from=@%s url=%s text=%r",
            "Existing mention found" if state.first_run else "New mention detected",
            handle,
            tweet_url(handle, mention.id),
            mention.text,
        )
        thread = resolve_thread(mention, state, client, logger, execute=execute)
        trigger.trigger(mention, thread.parent)
        result.processed += 1

    state.advance_cursor(page.tweets[0].id)
    state.trim(cfg.cache_limit)
    try:
        save_state(cfg.state_path, state)
        result.persisted = True
        logger.info(
            "Saved state path=%s tweets=%s users=%s last_seen_id=%s",
            cfg.state_path,
            len(state.tweets),
            len(state.users),
            state.last_seen_id,
        )
    except Exception as e:
        logger.error("Error saving state path=%s error=%s", cfg.state_path, e)
    return result


class PollingLoop:
    """Runs ``run_cycle`` now and then every ``cfg.poll_seconds``, never two at once."""

    def __init__(
        self,
        cfg: Config,
        state: AgentState,
        client: Any,
        trigger: GenerationTrigger,
        logger: logging.Logger,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cfg = cfg
        self.state = state
        self.client = client
        self.trigger = trigger
        self.logger = logger
        self.sleep = sleep
        self.clock = clock
        self.execute = build_executor(cfg, logger, sleep=sleep)
        self.iteration = 0
        self._cycle_lock = threading.Lock()

    def tick(self) -> Optional[CycleResult]:
        """Run one guarded cycle; returns None when skipped or failed."""
        if not self._cycle_lock.acquire(blocking=False):
            self.logger.warning("Skipping tick, previous cycle still in flight")
            return None
        self.iteration += 1
        try:
            return run_cycle(self.cfg, self.state, self.client, self.trigger, self.logger, execute=self.execute)
        except TwitterAuthError as e:
            self.logger.error("Poll cycle=%s auth_error=%s", self.iteration, e)
        except Exception as e:
            self.logger.exception("Poll cycle=%s loop_error=%s", self.iteration, e)
        finally:
            self._cycle_lock.release()
        return None

    def run(self, max_cycles: Optional[int] = None) -> None:
        period = max(1, self.cfg.poll_seconds)
        limit = self.cfg.max_cycles if max_cycles is None else max_cycles
        cycles = 0
        next_tick = self.clock()
        while True:
            self.tick()
            cycles += 1
            if limit and cycles >= limit:
                self.logger.info("Stopping after cycles=%s", cycles)
                return

            now = self.clock()
            next_tick += period
            if next_tick < now:
                skipped = int((now - next_tick) // period) + 1
                self.logger.warning("Cycle overran poll period, skipping ticks=%s", skipped)
                next_tick += skipped * period
            sleep_seconds = next_tick - now
            self.logger.info("Sleeping seconds=%.1f", sleep_seconds)
            self.sleep(sleep_seconds)


def build_responder(cfg: Config, client: Any, execute: Callable[..., Any]) -> Responder:
    if cfg.dry_run or not cfg.twitter_user_access_token:
        return LogResponder()
    return TwitterResponder(client, execute=execute)


def build_loop(cfg: Config, logger: logging.Logger, client: Optional[Any] = None) -> PollingLoop:
    client = client or TwitterClient(TwitterCredentials.load())
    state = load_state(cfg.state_path, logger=logger)
    trigger = GenerationTrigger(
        generator=OpenAIContentGenerator(cfg),
        responder=build_responder(cfg, client, build_executor(cfg, logger)),
        journal_path=cfg.journal_path,
        logger=logger,
    )
    return PollingLoop(cfg, state, client, trigger, logger)


def load_runtime_config() -> Config:
    load_dotenv()
    cfg = load_config()
    missing = missing_required_settings(cfg)
    if missing:
        raise SystemExit(
            f"Missing required configuration: {', '.join(missing)}. Please check your .env file."
        )
    return cfg


def run_loop(max_cycles: Optional[int] = None) -> None:
    cfg = load_runtime_config()
    logger = setup_logging(cfg)
    logger.info(
        "Mention loop starting username=@%s poll_seconds=%s max_results=%s state_path=%s dry_run=%s",
        cfg.twitter_username,
        cfg.poll_seconds,
        cfg.search_max_results,
        cfg.state_path,
        cfg.dry_run,
    )
    if cfg.log_path:
        logger.info("File logging enabled path=%s", cfg.log_path)
    loop = build_loop(cfg, logger)
    loop.run(max_cycles=max_cycles)


if __name__ == "__main__":
    run_loop()
