# tickerfeed/config.py
from dataclasses import dataclass
from enum import Enum
from typing import Optional
import logging
import os

from dotenv import load_dotenv, find_dotenv

from tickerfeed.errors import ConfigurationError

# Load nearest .env from project tree, don't override existing process env
load_dotenv(find_dotenv(usecwd=True), override=False)

logger = logging.getLogger(__name__)

DEFAULT_WS_URL = "wss://advanced-trade-ws.coinbase.com"
DEFAULT_CHANNEL = "ticker"


class UnroutablePolicy(str, Enum):
    """What to do with a ticker whose key has no handler."""
    DROP = "drop"
    ABORT = "abort"


class DecodeFailurePolicy(str, Enum):
    """What to do with a frame that fails to decode."""
    SKIP = "skip"
    ABORT = "abort"


@dataclass(frozen=True)
class FeedConfig:
    ws_url: str = DEFAULT_WS_URL
    channel: str = DEFAULT_CHANNEL
    unroutable_policy: UnroutablePolicy = UnroutablePolicy.DROP
    decode_policy: DecodeFailurePolicy = DecodeFailurePolicy.SKIP
    close_timeout_s: float = 10.0
    symbols: tuple = ("BTC-USD",)
    log_level: str = "INFO"
    log_file: Optional[str] = None


def _parse_policy(enum_cls, name: str, default: Enum) -> Enum:
    raw = (os.getenv(name) or default.value).strip().lower()
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = ", ".join(p.value for p in enum_cls)
        raise ConfigurationError(
            f"{name} must be one of: {allowed}",
            details={"env": name, "value": raw},
        )


def _parse_symbols(raw: str) -> tuple:
    return tuple(s.strip().upper() for s in raw.split(",") if s.strip())


def load_feed_config() -> FeedConfig:
    """Build a FeedConfig from TICKERFEED_* environment variables."""
    try:
        close_timeout_s = float(os.getenv("TICKERFEED_CLOSE_TIMEOUT_S", "10"))
    except ValueError:
        raise ConfigurationError(
            "TICKERFEED_CLOSE_TIMEOUT_S must be a number",
            details={"value": os.getenv("TICKERFEED_CLOSE_TIMEOUT_S")},
        )

    symbols = _parse_symbols(os.getenv("TICKERFEED_SYMBOLS") or "BTC-USD")
    if not symbols:
        logger.warning("TICKERFEED_SYMBOLS is empty, nothing will be subscribed")

    return FeedConfig(
        ws_url=(os.getenv("TICKERFEED_WS_URL") or DEFAULT_WS_URL).strip(),
        channel=(os.getenv("TICKERFEED_CHANNEL") or DEFAULT_CHANNEL).strip(),
        unroutable_policy=_parse_policy(UnroutablePolicy, "TICKERFEED_UNROUTABLE_POLICY", UnroutablePolicy.DROP),
        decode_policy=_parse_policy(DecodeFailurePolicy, "TICKERFEED_DECODE_POLICY", DecodeFailurePolicy.SKIP),
        close_timeout_s=close_timeout_s,
        symbols=symbols,
        log_level=(os.getenv("TICKERFEED_LOG_LEVEL") or "INFO").strip().upper(),
        log_file=(os.getenv("TICKERFEED_LOG_FILE") or "").strip() or None,
    )
