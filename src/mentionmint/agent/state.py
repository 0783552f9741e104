import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..models import Tweet, User


DEFAULT_CACHE_LIMIT = 1000
UNKNOWN_USERNAME = "unknown"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


@dataclass
class AgentState:
    """Cursor plus bounded tweet/user caches, owned by the polling loop.

    ``first_run`` is process-local: it starts true when no cursor was loaded and
    flips after the first cycle that completes, with or without results.
    """

    last_seen_id: Optional[str] = None
    tweets: List[Tweet] = field(default_factory=list)
    users: List[User] = field(default_factory=list)
    last_updated: Optional[str] = None
    first_run: bool = True

    def __post_init__(self) -> None:
        self._tweet_index: Dict[str, Tweet] = {}
        self._user_index: Dict[str, User] = {}
        self._reindex()

    def _reindex(self) -> None:
        deduped_tweets: List[Tweet] = []
        self._tweet_index = {}
        for tweet in self.tweets:
            if tweet.id and tweet.id not in self._tweet_index:
                self._tweet_index[tweet.id] = tweet
                deduped_tweets.append(tweet)
        self.tweets = deduped_tweets

        deduped_users: List[User] = []
        self._user_index = {}
        for user in self.users:
            if user.id and user.id not in self._user_index:
                self._user_index[user.id] = user
                deduped_users.append(user)
        self.users = deduped_users

    @property
    def mode(self) -> str:
        return "first_run" if self.first_run else "incremental"

    def find_tweet(self, tweet_id: Optional[str]) -> Optional[Tweet]:
        if not tweet_id:
            return None
        return self._tweet_index.get(tweet_id)

    def find_user(self, user_id: Optional[str]) -> Optional[User]:
        if not user_id:
            return None
        return self._user_index.get(user_id)

    def add_tweet(self, tweet: Tweet) -> bool:
        if not tweet.id or tweet.id in self._tweet_index:
            return False
        self._tweet_index[tweet.id] = tweet
        self.tweets.append(tweet)
        return True

    def add_user(self, user: User) -> bool:
        if not user.id or user.id in self._user_index:
            return False
        self._user_index[user.id] = user
        self.users.append(user)
        return True

    def merge_tweets(self, tweets: Iterable[Tweet]) -> int:
        return sum(1 for tweet in tweets if self.add_tweet(tweet))

    def merge_users(self, users: Iterable[User]) -> int:
        return sum(1 for user in users if self.add_user(user))

    def username_for(self, author_id: Optional[str]) -> str:
        user = self.find_user(author_id)
        if user and user.username:
            return user.username
        return UNKNOWN_USERNAME

    def advance_cursor(self, newest_id: str) -> None:
        if not newest_id:
            return
        self.last_seen_id = newest_id
        self.first_run = False

    def trim(self, limit: int = DEFAULT_CACHE_LIMIT) -> None:
        limit = max(0, int(limit))
        if len(self.tweets) > limit:
            self.tweets = self.tweets[len(self.tweets) - limit :]
        if len(self.users) > limit:
            self.users = self.users[len(self.users) - limit :]
        self._reindex()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cursor": {"last_seen_id": self.last_seen_id},
            "tweets": [tweet.to_dict() for tweet in self.tweets],
            "users": [user.to_dict() for user in self.users],
            "last_updated": self.last_updated or utc_now_iso(),
        }


def _state_from_dict(data: Dict[str, Any]) -> AgentState:
    cursor = data.get("cursor")
    if isinstance(cursor, dict):
        last_seen_id = cursor.get("last_seen_id")
    else:
        # Older agents wrote a flat camelCase layout.
        last_seen_id = data.get("lastCheckedId")
    last_seen_id = str(last_seen_id).strip() if last_seen_id else None

    tweets = [Tweet.from_api(t) for t in data.get("tweets") or [] if isinstance(t, dict) and t.get("id")]
    users = [User.from_api(u) for u in data.get("users") or [] if isinstance(u, dict) and u.get("id")]
    last_updated = data.get("last_updated") or data.get("lastUpdated")
    return AgentState(
        last_seen_id=last_seen_id or None,
        tweets=tweets,
        users=users,
        last_updated=last_updated,
        first_run=not last_seen_id,
    )


def load_state(path: Path, logger: Optional[logging.Logger] = None) -> AgentState:
    logger = logger or logging.getLogger("mentionmint.agent")
    if not path.exists():
        logger.info("No saved state found path=%s, starting fresh", path)
        return AgentState()
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        state = _state_from_dict(data)
    except Exception as e:
        logger.error("Error loading state path=%s error=%s, starting fresh", path, e)
        return AgentState()
    logger.info(
        "Loaded state last_seen_id=%s last_updated=%s tweets=%s users=%s",
        state.last_seen_id,
        state.last_updated,
        len(state.tweets),
        len(state.users),
    )
    return state


def save_state(path: Path, state: AgentState) -> None:
    state.last_updated = utc_now_iso()
    path.parent.mkdir(parents=True, exist_ok=True)
    # The previous file stays in place until the new one is fully written.
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(state.to_dict(), f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except Exception:
        if tmp.exists():
            tmp.unlink()
        raise
