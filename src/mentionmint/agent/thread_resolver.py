from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..models import Tweet, tweet_url
from .rate_limit import execute_with_rate_limit
from .state import UNKNOWN_USERNAME, AgentState


@dataclass(frozen=True)
class ResolvedThread:
    parent: Optional[Tweet] = None
    parent_author_handle: str = UNKNOWN_USERNAME


def resolve_thread(
    mention: Tweet,
    state: AgentState,
    client: Any,
    logger: logging.Logger,
    execute: Callable[..., Any] = execute_with_rate_limit,
) -> ResolvedThread:
    """Find the tweet ``mention`` replies to, preferring the local cache.

    A cache miss costs one single-tweet fetch; the fetched tweet and its author
    are cached. Fetch failures are logged and resolve to no parent.
    """
    parent_id = mention.replied_to_id()
    if not parent_id:
        logger.info("No parent tweet mention_id=%s, direct mention rather than a reply", mention.id)
        return ResolvedThread()

    parent = state.find_tweet(parent_id)
    if parent is not None:
        handle = state.username_for(parent.author_id)
        logger.info(
            "Parent tweet found in cache from=@%s url=%s text=%r",
            handle,
            tweet_url(handle, parent.id),
            parent.text,
        )
        return ResolvedThread(parent=parent, parent_author_handle=handle)

    logger.info("Parent tweet referenced but not cached parent_id=%s, fetching", parent_id)
    try:
        fetched, author = execute(lambda: client.get_tweet(parent_id))
    except Exception as e:
        logger.warning("Error fetching parent tweet parent_id=%s error=%s", parent_id, e)
        return ResolvedThread()

    if fetched is None:
        logger.warning("Parent tweet lookup returned no data parent_id=%s", parent_id)
        return ResolvedThread()

    state.add_tweet(fetched)
    if author is not None:
        state.add_user(author)
    handle = state.username_for(fetched.author_id)
    logger.info(
        "Parent tweet fetched from=@%s url=%s text=%r",
        handle,
        tweet_url(handle, fetched.id),
        fetched.text,
    )
    return ResolvedThread(parent=fetched, parent_author_handle=handle)
