import logging
import os
import sys
import time
from .config import Config


LOGGER_NAME = "mentionmint.agent"
LOG_FORMAT = "%(asctime)sZ %(levelname)s %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"

_RESET = "\033[0m"
_BOLD = "\033[1m"
_DIM = "\033[2m"
_CYAN = "\033[36m"
_MAGENTA = "\033[35m"
_GREEN = "\033[32m"
_YELLOW = "\033[33m"
_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[31m",
}


def _stream_supports_color() -> bool:
    if os.getenv("NO_COLOR"):
        return False
    force = os.getenv("FORCE_COLOR", "").strip().lower()
    if force in {"1", "true", "yes"}:
        return True
    return bool(sys.stderr.isatty())


class ColorFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        level_name = record.levelname.upper()
        color = _COLORS.get(level_name, "")
        if not color:
            return message

        # Highlight key runtime phases so operators can scan the console quickly.
        if "Rate limit hit" in message:
            painted = f"{_BOLD}{_YELLOW}[RATE LIMIT] {message}{_RESET}"
        elif "mention detected" in message or "mention found" in message:
            painted = f"{_BOLD}{_CYAN}[MENTION] {message}{_RESET}"
        elif "Parent tweet" in message:
            painted = f"{_CYAN}{message}{_RESET}"
        elif "LLM request" in message:
            painted = f"{_BOLD}{_CYAN}[LLM REQUEST] {message}{_RESET}"
        elif "LLM response" in message:
            painted = f"{_BOLD}{_MAGENTA}[LLM RESPONSE] {message}{_RESET}"
        elif "Reply posted" in message or "Generation complete" in message:
            painted = f"{_BOLD}{_GREEN}[SUCCESS] {message}{_RESET}"
        elif "Sleeping seconds=" in message:
            painted = f"{_DIM}{color}{message}{_RESET}"
        else:
            painted = f"{color}{message}{_RESET}"
        return painted


def _utc_formatter(cls=logging.Formatter) -> logging.Formatter:
    formatter = cls(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    formatter.converter = time.gmtime
    return formatter


def setup_logging(cfg: Config) -> logging.Logger:
    level = getattr(logging, cfg.log_level, logging.INFO)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = False

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(_utc_formatter(ColorFormatter if _stream_supports_color() else logging.Formatter))
    logger.addHandler(stream_handler)

    if cfg.log_path:
        cfg.log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(cfg.log_path, encoding="utf-8")
        file_handler.setFormatter(_utc_formatter())
        logger.addHandler(file_handler)

    return logger
