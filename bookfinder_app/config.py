"""
Search configuration.

Every tunable is a named option on SearchConfig. from_env() reads the
same options from BOOKFINDER_* environment variables (a local .env file
is loaded first).
"""

import os
from dataclasses import dataclass, fields
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigError


ENV_PREFIX = "BOOKFINDER_"


@dataclass
class SearchConfig:
    """Tunables for the cache, the adapters and the coordinator."""

    page_size: int = 40
    cache_ttl: float = 15 * 60.0        # seconds
    cache_capacity: int = 100
    eviction_fraction: float = 0.2
    debounce_delay: float = 0.3         # seconds
    request_timeout: float = 10.0       # seconds, per adapter call
    max_retries: int = 2
    backoff_base: float = 2.0
    default_query: str = "subject:fiction"
    google_api_key: Optional[str] = None
    user_agent: str = "BookFinder/1.0"

    def validate(self) -> "SearchConfig":
        """Reject values the pipeline can't run with. Returns self."""
        if self.page_size < 1:
            raise ConfigError(f"page_size must be >= 1, got {self.page_size}")
        if self.cache_capacity < 1:
            raise ConfigError(f"cache_capacity must be >= 1, got {self.cache_capacity}")
        if not 0 < self.eviction_fraction <= 1:
            raise ConfigError(
                f"eviction_fraction must be in (0, 1], got {self.eviction_fraction}"
            )
        if self.cache_ttl <= 0:
            raise ConfigError(f"cache_ttl must be > 0, got {self.cache_ttl}")
        if self.debounce_delay < 0:
            raise ConfigError(f"debounce_delay must be >= 0, got {self.debounce_delay}")
        if self.request_timeout <= 0:
            raise ConfigError(f"request_timeout must be > 0, got {self.request_timeout}")
        if self.max_retries < 0:
            raise ConfigError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.backoff_base <= 0:
            raise ConfigError(f"backoff_base must be > 0, got {self.backoff_base}")
        if not self.default_query.strip():
            raise ConfigError("default_query must not be blank")
        return self

    @classmethod
    def from_env(cls, load_dotenv_file: bool = True) -> "SearchConfig":
        """
        Build a config from BOOKFINDER_* environment variables.

        Unset variables keep their defaults. Blank values are treated as
        unset.

        Raises:
            ConfigError: If a variable can't be parsed or fails validate()
        """
        if load_dotenv_file:
            load_dotenv()

        values = {}
        for f in fields(cls):
            raw = os.environ.get(ENV_PREFIX + f.name.upper())
            if raw is None or not raw.strip():
                continue
            raw = raw.strip()

            default = f.default
            try:
                if isinstance(default, int):
                    values[f.name] = int(raw)
                elif isinstance(default, float):
                    values[f.name] = float(raw)
                else:
                    values[f.name] = raw
            except ValueError:
                raise ConfigError(
                    f"{ENV_PREFIX}{f.name.upper()}: invalid value {raw!r}"
                ) from None

        return cls(**values).validate()
