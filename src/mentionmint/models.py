from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


def normalize_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


@dataclass(frozen=True)
class TweetReference:
    type: str
    id: str

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "id": self.id}


@dataclass(frozen=True)
class Tweet:
    id: str
    author_id: Optional[str]
    text: str
    references: Tuple[TweetReference, ...] = ()
    created_at: Optional[str] = None
    conversation_id: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Tweet":
        refs: List[TweetReference] = []
        for item in data.get("referenced_tweets") or []:
            if not isinstance(item, dict):
                continue
            ref_type = normalize_str(item.get("type")).strip()
            ref_id = normalize_str(item.get("id")).strip()
            if ref_type and ref_id:
                refs.append(TweetReference(type=ref_type, id=ref_id))
        return cls(
            id=normalize_str(data.get("id")).strip(),
            author_id=normalize_str(data.get("author_id")).strip() or None,
            text=normalize_str(data.get("text")),
            references=tuple(refs),
            created_at=data.get("created_at") or None,
            conversation_id=normalize_str(data.get("conversation_id")).strip() or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.id, "text": self.text}
        if self.author_id:
            out["author_id"] = self.author_id
        if self.references:
            out["referenced_tweets"] = [ref.to_dict() for ref in self.references]
        if self.created_at:
            out["created_at"] = self.created_at
        if self.conversation_id:
            out["conversation_id"] = self.conversation_id
        return out

    def replied_to_id(self) -> Optional[str]:
        for ref in self.references:
            if ref.type == "replied_to":
                return ref.id
        return None


@dataclass(frozen=True)
class User:
    id: str
    username: str
    name: str = ""

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=normalize_str(data.get("id")).strip(),
            username=normalize_str(data.get("username")).strip(),
            name=normalize_str(data.get("name")),
        )

    def to_dict(self) -> Dict[str, str]:
        out = {"id": self.id, "username": self.username}
        if self.name:
            out["name"] = self.name
        return out


@dataclass
class SearchPage:
    """One page of a mention search: primary results newest first plus expansions."""

    tweets: List[Tweet] = field(default_factory=list)
    included_tweets: List[Tweet] = field(default_factory=list)
    included_users: List[User] = field(default_factory=list)
    newest_id: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "SearchPage":
        includes = payload.get("includes") or {}
        meta = payload.get("meta") or {}
        tweets = [Tweet.from_api(t) for t in payload.get("data") or [] if isinstance(t, dict) and t.get("id")]
        included_tweets = [
            Tweet.from_api(t) for t in includes.get("tweets") or [] if isinstance(t, dict) and t.get("id")
        ]
        included_users = [User.from_api(u) for u in includes.get("users") or [] if isinstance(u, dict) and u.get("id")]
        return cls(
            tweets=tweets,
            included_tweets=included_tweets,
            included_users=included_users,
            newest_id=normalize_str(meta.get("newest_id")).strip() or None,
        )


def tweet_url(username: str, tweet_id: str) -> str:
    return f"https://twitter.com/{username}/status/{tweet_id}"
