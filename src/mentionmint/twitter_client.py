import base64
import json
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import requests
from requests import exceptions as requests_exceptions

from .models import SearchPage, Tweet, User


TWITTER_API_BASE = "https://api.twitter.com"
TWITTER_API_BASE_ENV = "TWITTER_API_BASE"

SEARCH_TWEET_FIELDS = [
    "created_at",
    "author_id",
    "text",
    "id",
    "conversation_id",
    "referenced_tweets",
    "in_reply_to_user_id",
]
SEARCH_USER_FIELDS = ["username", "name"]
SEARCH_EXPANSIONS = [
    "author_id",
    "referenced_tweets.id",
    "referenced_tweets.id.author_id",
    "in_reply_to_user_id",
]


class TwitterAuthError(Exception):
    pass


class TwitterApiError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(TwitterApiError):
    """HTTP 429 from the API. ``reset_at`` is the epoch second the window reopens, when known."""

    def __init__(self, message: str, reset_at: Optional[int] = None):
        super().__init__(message, status_code=429)
        self.reset_at = reset_at


@dataclass
class TwitterCredentials:
    api_key: str
    api_secret: str
    bearer_token: Optional[str] = None
    user_access_token: Optional[str] = None

    @classmethod
    def load(cls) -> "TwitterCredentials":
        """Load app credentials from the environment.

        TWITTER_API_KEY and TWITTER_API_SECRET are required. TWITTER_BEARER_TOKEN
        skips the client-credentials exchange and TWITTER_USER_ACCESS_TOKEN
        (an OAuth 2.0 user-context token) enables posting replies.
        """
        api_key = os.getenv("TWITTER_API_KEY", "").strip()
        api_secret = os.getenv("TWITTER_API_SECRET", "").strip()
        if not api_key or not api_secret:
            raise TwitterAuthError(
                "Missing TWITTER_API_KEY or TWITTER_API_SECRET environment variables. "
                "Please check your .env file."
            )
        return cls(
            api_key=api_key,
            api_secret=api_secret,
            bearer_token=os.getenv("TWITTER_BEARER_TOKEN", "").strip() or None,
            user_access_token=os.getenv("TWITTER_USER_ACCESS_TOKEN", "").strip() or None,
        )


def _parse_reset(value: Any) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _error_message(data: Dict[str, Any], fallback: str) -> str:
    message = data.get("detail") or data.get("title") or data.get("error_description") or data.get("error")
    if not message and isinstance(data.get("errors"), list) and data["errors"]:
        first = data["errors"][0]
        if isinstance(first, dict):
            message = first.get("message") or first.get("detail")
    return str(message or fallback)


def raise_for_response(resp: requests.Response, label: str) -> None:
    """Translate an HTTP failure into a typed error.

    429 may arrive as the response status or as a ``status`` field nested in
    the JSON body; both become RateLimitedError.
    """
    try:
        data = resp.json()
    except Exception:
        data = {}
    if not isinstance(data, dict):
        data = {}

    if resp.status_code == 429 or data.get("status") == 429:
        reset_at = _parse_reset(resp.headers.get("x-rate-limit-reset"))
        raise RateLimitedError(f"Twitter rate limit on {label}: {_error_message(data, 'Too Many Requests')}", reset_at)

    if resp.status_code in {401, 403}:
        message = _error_message(data, "Authentication required")
        raise TwitterAuthError(f"Twitter auth error {resp.status_code} on {label}: {message}")

    if resp.status_code >= 400:
        message = _error_message(data, resp.text)
        raise TwitterApiError(f"Twitter error {resp.status_code} on {label}: {message}", status_code=resp.status_code)


class TwitterClient:
    """Minimal Twitter API v2 client covering mention search, tweet lookup and replies."""

    def __init__(self, credentials: Optional[TwitterCredentials] = None):
        self.credentials = credentials or TwitterCredentials.load()
        self.base_url = (os.getenv(TWITTER_API_BASE_ENV) or TWITTER_API_BASE).strip().rstrip("/")
        self._bearer_token: Optional[str] = self.credentials.bearer_token

    def _url(self, path: str) -> str:
        path = path.lstrip("/")
        return f"{self.base_url}/{path}"

    def fetch_bearer_token(self) -> str:
        basic = base64.b64encode(
            f"{self.credentials.api_key}:{self.credentials.api_secret}".encode("utf-8")
        ).decode("ascii")
        try:
            resp = requests.post(
                self._url("oauth2/token"),
                headers={
                    "Authorization": f"Basic {basic}",
                    "Content-Type": "application/x-www-form-urlencoded;charset=UTF-8",
                },
                data="grant_type=client_credentials",
                timeout=30,
            )
        except requests_exceptions.RequestException as e:
            raise TwitterApiError(f"Failed to get bearer token: {e}") from e

        raise_for_response(resp, "oauth2/token")

        token = str(resp.json().get("access_token") or "").strip()
        if not token:
            raise TwitterAuthError("Failed to get bearer token: response carried no access_token")
        return token

    @property
    def bearer_token(self) -> str:
        if not self._bearer_token:
            self._bearer_token = self.fetch_bearer_token()
        return self._bearer_token

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.bearer_token}"}

    def _get(self, path: str, params: Dict[str, Any], label: str) -> Dict[str, Any]:
        try:
            resp = requests.get(
                self._url(path),
                headers=self._headers,
                params=params,
                timeout=30,
            )
        except requests_exceptions.Timeout as e:
            raise TwitterApiError(f"Timed out while contacting Twitter for {label}.") from e
        except requests_exceptions.RequestException as e:
            raise TwitterApiError(f"Network error while contacting Twitter for {label}: {e}") from e

        raise_for_response(resp, label)
        return resp.json()

    def search_mentions(self, username: str, max_results: int = 10, since_id: Optional[str] = None) -> SearchPage:
        handle = username.lstrip("@").strip()
        if not handle:
            raise ValueError("username must be provided.")
        # search/recent rejects max_results outside 10..100
        params: Dict[str, Any] = {
            "query": f"@{handle}",
            "tweet.fields": ",".join(SEARCH_TWEET_FIELDS),
            "user.fields": ",".join(SEARCH_USER_FIELDS),
            "expansions": ",".join(SEARCH_EXPANSIONS),
            "max_results": max(10, min(int(max_results), 100)),
        }
        if since_id:
            params["since_id"] = since_id
        payload = self._get("2/tweets/search/recent", params, label="search/recent")
        return SearchPage.from_api(payload)

    def get_tweet(self, tweet_id: str) -> Tuple[Optional[Tweet], Optional[User]]:
        if not str(tweet_id).strip():
            raise ValueError("tweet_id must be provided.")
        params = {
            "tweet.fields": "author_id,text,id",
            "user.fields": "username",
            "expansions": "author_id",
        }
        payload = self._get(f"2/tweets/{tweet_id}", params, label=f"tweets/{tweet_id}")
        data = payload.get("data")
        if not isinstance(data, dict) or not data.get("id"):
            return None, None
        users: List[Dict[str, Any]] = (payload.get("includes") or {}).get("users") or []
        author = User.from_api(users[0]) if users and isinstance(users[0], dict) else None
        return Tweet.from_api(data), author

    def create_reply(self, in_reply_to_tweet_id: str, text: str) -> Dict[str, Any]:
        if not text:
            raise ValueError("Reply text must be provided.")
        token = self.credentials.user_access_token
        if not token:
            raise TwitterAuthError("Posting replies requires TWITTER_USER_ACCESS_TOKEN.")

        payload = {"text": text, "reply": {"in_reply_to_tweet_id": in_reply_to_tweet_id}}
        try:
            resp = requests.post(
                self._url("2/tweets"),
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                },
                data=json.dumps(payload),
                timeout=60,
            )
        except requests_exceptions.Timeout as e:
            raise TwitterApiError(
                "Timed out while posting a reply. Twitter may be slow or temporarily unavailable."
            ) from e
        except requests_exceptions.RequestException as e:
            raise TwitterApiError(f"Network error while posting a reply: {e}") from e

        raise_for_response(resp, "create_tweet")
        return resp.json()
