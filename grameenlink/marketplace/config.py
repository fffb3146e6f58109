"""Configuration for the marketplace core.

Values come from keyword arguments or, through ``from_env``, from
``GRAMEENLINK_*`` environment variables.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

ENV_PREFIX = "GRAMEENLINK_"

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


@dataclass(frozen=True)
class MarketplaceConfig:
    """Tunables for the transition engine and the view synchronizer."""

    poll_interval_seconds: float = 5.0
    settle_delay_seconds: float = 0.5
    request_timeout_seconds: float = 10.0
    max_list_limit: int = 100
    # When a single-worker job gets its final selection, reject the remaining
    # pending/accepted applications for that job.
    reject_others_on_final_selection: bool = False

    def __post_init__(self):
        if self.poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")
        if self.settle_delay_seconds < 0:
            raise ValueError("settle_delay_seconds cannot be negative")
        if self.request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be positive")
        if self.max_list_limit < 1:
            raise ValueError("max_list_limit must be at least 1")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "MarketplaceConfig":
        """Build a config from ``GRAMEENLINK_*`` variables, defaults elsewhere."""
        env = os.environ if environ is None else environ
        kwargs = {}

        for name, cast in (
            ("poll_interval_seconds", float),
            ("settle_delay_seconds", float),
            ("request_timeout_seconds", float),
            ("max_list_limit", int),
        ):
            key = ENV_PREFIX + name.upper()
            raw = env.get(key)
            if raw is None or raw.strip() == "":
                continue
            try:
                kwargs[name] = cast(raw)
            except ValueError as exc:
                raise ValueError(f"{key} must be a number, got {raw!r}") from exc

        key = ENV_PREFIX + "REJECT_OTHERS_ON_FINAL_SELECTION"
        raw = env.get(key)
        if raw:
            kwargs["reject_others_on_final_selection"] = _parse_bool(key, raw)

        return cls(**kwargs)
