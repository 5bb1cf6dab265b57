"""Environment configuration and runtime settings."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from dotenv import load_dotenv

from .ranking import RankKey
from .scoring import ScoringStrategy

logger = logging.getLogger(__name__)

# Load environment variables from .env file
load_dotenv()


class Environment(Enum):
    """Application environment types."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


def current_environment() -> Environment:
    raw = os.getenv("ENVIRONMENT", "development").lower()
    if raw in ["prod", "production"]:
        return Environment.PRODUCTION
    if raw in ["stage", "staging"]:
        return Environment.STAGING
    if raw in ["test", "testing"]:
        return Environment.TESTING
    return Environment.DEVELOPMENT


ENV = current_environment()


# Per-environment profile
ENV_CONFIG = {
    Environment.DEVELOPMENT: {
        "log_level": "DEBUG",           # Verbose logging
        "cors_origins": ["*"],          # All origins allowed
        "refresh_on_startup": True,
    },
    Environment.TESTING: {
        "log_level": "INFO",
        "cors_origins": ["*"],
        "refresh_on_startup": False,    # Tests trigger refreshes explicitly
    },
    Environment.STAGING: {
        "log_level": "INFO",
        "cors_origins": ["http://localhost:3000"],
        "refresh_on_startup": True,
    },
    Environment.PRODUCTION: {
        "log_level": "WARNING",         # Minimal logging
        "cors_origins": ["http://localhost:3000"],
        "refresh_on_startup": True,
    },
}


def get_env_config() -> dict:
    """Get the profile for the current environment."""
    return ENV_CONFIG[ENV]


def get_config(key: str, default=None):
    """Get a specific profile value."""
    return get_env_config().get(key, default)


def get_cors_origins() -> list:
    """Get allowed CORS origins, GEM_CORS_ORIGINS overrides the profile."""
    raw = os.getenv("GEM_CORS_ORIGINS", "").strip()
    if raw:
        return [o.strip() for o in raw.split(",") if o.strip()]
    return get_config("cors_origins", ["*"])


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging from GEM_LOG_LEVEL or the environment profile."""
    name = (level or os.getenv("GEM_LOG_LEVEL") or get_config("log_level", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


DEFAULT_DENYLIST: Tuple[str, ...] = (
    "USDT", "USDC", "DAI", "BUSD", "TUSD", "USDP", "USDD", "GUSD", "FDUSD",
    "USDE", "SUSD", "EURS", "UST", "PYUSD", "EUR", "GBP", "TRY",
)


@dataclass
class Settings:
    coingecko_url: str = "https://api.coingecko.com/api/v3"
    venue_url: str = "https://openapi.blofin.com"
    venue_inst_type: str = "SWAP"
    pages: int = 3                      # each page = per_page tokens
    per_page: int = 250
    top_n: int = 100
    highlight_fraction: float = 0.10
    rank_by: RankKey = RankKey.MOMENTUM
    strategy: ScoringStrategy = ScoringStrategy.MOMENTUM
    denylist: Tuple[str, ...] = DEFAULT_DENYLIST
    exclude_usd_like: bool = True
    max_market_cap_rank: int = 200     # fallback eligibility, 0 disables
    http_timeout_s: float = 10.0
    adapter_wait_s: float = 15.0
    primary_sources: Tuple[str, ...] = ("venue", "coingecko_markets", "coingecko_trending")
    fallback_sources: Tuple[str, ...] = ("coingecko_markets",)
    anchor_source: Optional[str] = "venue"
    user_agent: str = "gemfinder/1.0"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"[CONFIG] invalid integer for {name}={raw!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"[CONFIG] invalid number for {name}={raw!r}, using {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: Tuple[str, ...], *, upper: bool = False) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    items = [s.strip() for s in raw.split(",") if s.strip()]
    if upper:
        items = [s.upper() for s in items]
    return tuple(items)


def _env_enum(name: str, enum_cls, default):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return enum_cls(raw.strip().lower())
    except ValueError:
        logger.warning(f"[CONFIG] unknown value for {name}={raw!r}, using {default.value}")
        return default


def load_settings() -> Settings:
    """Build ``Settings`` from GEM_* environment variables."""
    d = Settings()
    anchor = os.getenv("GEM_ANCHOR_SOURCE", d.anchor_source or "").strip() or None
    return Settings(
        coingecko_url=os.getenv("GEM_COINGECKO_URL", d.coingecko_url).rstrip("/"),
        venue_url=os.getenv("GEM_VENUE_URL", d.venue_url).rstrip("/"),
        venue_inst_type=os.getenv("GEM_VENUE_INST_TYPE", d.venue_inst_type).strip().upper(),
        pages=max(1, _env_int("GEM_PAGES", d.pages)),
        per_page=max(1, min(250, _env_int("GEM_PER_PAGE", d.per_page))),
        top_n=max(1, _env_int("GEM_TOP_N", d.top_n)),
        highlight_fraction=min(1.0, max(0.0, _env_float("GEM_HIGHLIGHT_FRACTION", d.highlight_fraction))),
        rank_by=_env_enum("GEM_RANK_BY", RankKey, d.rank_by),
        strategy=_env_enum("GEM_STRATEGY", ScoringStrategy, d.strategy),
        denylist=_env_list("GEM_DENYLIST", d.denylist, upper=True),
        exclude_usd_like=_env_bool("GEM_EXCLUDE_USD_LIKE", d.exclude_usd_like),
        max_market_cap_rank=max(0, _env_int("GEM_MAX_MARKET_CAP_RANK", d.max_market_cap_rank)),
        http_timeout_s=_env_float("GEM_HTTP_TIMEOUT_S", d.http_timeout_s),
        adapter_wait_s=_env_float("GEM_ADAPTER_WAIT_S", d.adapter_wait_s),
        primary_sources=_env_list("GEM_PRIMARY_SOURCES", d.primary_sources),
        fallback_sources=_env_list("GEM_FALLBACK_SOURCES", d.fallback_sources),
        anchor_source=anchor,
    )
