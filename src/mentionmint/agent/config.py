from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
import os


REQUIRED_SETTINGS = (
    "TWITTER_USERNAME",
    "TWITTER_API_KEY",
    "TWITTER_API_SECRET",
    "OPENAI_API_KEY",
)


@dataclass
class Config:
    twitter_username: str
    twitter_api_key: str
    twitter_api_secret: str
    twitter_user_access_token: Optional[str]
    poll_seconds: int
    search_max_results: int
    cache_limit: int
    max_retries: int
    initial_retry_delay_ms: int
    state_path: Path
    journal_path: Path
    dry_run: bool
    max_cycles: int
    openai_api_key: Optional[str]
    openai_base_url: str
    openai_model: str
    openai_temperature: float
    log_level: str
    log_path: Optional[Path]


def _env_flag(env_key: str, default: str = "0") -> bool:
    return os.getenv(env_key, default).strip().lower() in {"1", "true", "yes"}


def load_config() -> Config:
    twitter_username = os.getenv("TWITTER_USERNAME", "").strip().lstrip("@")
    twitter_api_key = os.getenv("TWITTER_API_KEY", "").strip()
    twitter_api_secret = os.getenv("TWITTER_API_SECRET", "").strip()
    twitter_user_access_token = os.getenv("TWITTER_USER_ACCESS_TOKEN", "").strip() or None

    poll_seconds = int(os.getenv("MENTIONMINT_POLL_SECONDS", "60"))
    search_max_results = int(os.getenv("MENTIONMINT_SEARCH_MAX_RESULTS", "10"))
    cache_limit = int(os.getenv("MENTIONMINT_CACHE_LIMIT", "1000"))
    max_retries = int(os.getenv("MENTIONMINT_MAX_RETRIES", "3"))
    initial_retry_delay_ms = int(os.getenv("MENTIONMINT_INITIAL_RETRY_DELAY_MS", "5000"))

    state_path = Path(os.getenv("MENTIONMINT_STATE_PATH", "data/tweets.json"))
    journal_path = Path(os.getenv("MENTIONMINT_JOURNAL_PATH", "data/generation-journal.jsonl"))
    dry_run = _env_flag("MENTIONMINT_DRY_RUN")
    max_cycles = int(os.getenv("MENTIONMINT_MAX_CYCLES", "0"))

    openai_api_key = os.getenv("OPENAI_API_KEY", "").strip() or None
    openai_base_url = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/")
    openai_model = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    openai_temperature = float(os.getenv("OPENAI_TEMPERATURE", "0.7"))

    log_level = os.getenv("MENTIONMINT_LOG_LEVEL", "INFO").strip().upper()
    log_path_str = os.getenv("MENTIONMINT_LOG_PATH", "").strip()
    log_path = Path(log_path_str) if log_path_str else None

    return Config(
        twitter_username=twitter_username,
        twitter_api_key=twitter_api_key,
        twitter_api_secret=twitter_api_secret,
        twitter_user_access_token=twitter_user_access_token,
        poll_seconds=poll_seconds,
        search_max_results=search_max_results,
        cache_limit=cache_limit,
        max_retries=max_retries,
        initial_retry_delay_ms=initial_retry_delay_ms,
        state_path=state_path,
        journal_path=journal_path,
        dry_run=dry_run,
        max_cycles=max_cycles,
        openai_api_key=openai_api_key,
        openai_base_url=openai_base_url,
        openai_model=openai_model,
        openai_temperature=openai_temperature,
        log_level=log_level,
        log_path=log_path,
    )


def missing_required_settings(cfg: Config) -> List[str]:
    values = {
        "TWITTER_USERNAME": cfg.twitter_username,
        "TWITTER_API_KEY": cfg.twitter_api_key,
        "TWITTER_API_SECRET": cfg.twitter_api_secret,
        "OPENAI_API_KEY": cfg.openai_api_key,
    }
    return [key for key in REQUIRED_SETTINGS if not values.get(key)]
