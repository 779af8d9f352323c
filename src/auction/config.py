"""
Auction configuration.

Defaults suit the simulation harness; deployments override them through
environment variables.
"""

import os
from dataclasses import dataclass
from typing import Optional

from objective.errors import ConfigError


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


@dataclass
class AuctionConfig:
    """Configuration for auction behavior"""
    max_rounds: int = 3
    offer_timeout: float = 1.0  # seconds, per offer request
    auction_timeout: Optional[float] = None  # seconds, whole auction
    sample_size: Optional[int] = None  # offers requested per round; None = whole pool
    round_backoff_base: float = 0.0  # seconds; 0 disables the delay between rounds
    round_backoff_max: float = 1.0
    round_backoff_jitter: float = 0.0

    def __post_init__(self):
        if self.max_rounds < 1:
            raise ConfigError(f"max_rounds must be at least 1, got {self.max_rounds}")
        if self.offer_timeout <= 0:
            raise ConfigError(f"offer_timeout must be positive, got {self.offer_timeout}")
        if self.auction_timeout is not None and self.auction_timeout <= 0:
            raise ConfigError(f"auction_timeout must be positive, got {self.auction_timeout}")
        if self.sample_size is not None and self.sample_size < 1:
            raise ConfigError(f"sample_size must be at least 1, got {self.sample_size}")
        if self.round_backoff_base < 0 or self.round_backoff_max < 0 or self.round_backoff_jitter < 0:
            raise ConfigError("backoff settings must be non-negative")

    @classmethod
    def from_env(cls) -> "AuctionConfig":
        """
        Build configuration from environment variables.

        AUCTION_MAX_ROUNDS, AUCTION_OFFER_TIMEOUT, AUCTION_TIMEOUT,
        AUCTION_SAMPLE_SIZE, AUCTION_BACKOFF_BASE, AUCTION_BACKOFF_MAX
        """
        defaults = cls()
        return cls(
            max_rounds=_env_int("AUCTION_MAX_ROUNDS", defaults.max_rounds),
            offer_timeout=_env_float("AUCTION_OFFER_TIMEOUT", defaults.offer_timeout),
            auction_timeout=_env_float("AUCTION_TIMEOUT", defaults.auction_timeout),
            sample_size=_env_int("AUCTION_SAMPLE_SIZE", defaults.sample_size),
            round_backoff_base=_env_float("AUCTION_BACKOFF_BASE", defaults.round_backoff_base),
            round_backoff_max=_env_float("AUCTION_BACKOFF_MAX", defaults.round_backoff_max),
        )
