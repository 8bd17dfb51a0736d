# environments/democracy/configuration.py
import logging
import os
from dataclasses import dataclass
from typing import Literal, Optional

from dotenv import load_dotenv

ENV_PREFIX = "LIQUID_TALLY_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class LiquidDemocracyConfig:
    """
    Configuration for a liquid democracy instance.

    Attributes:
        undelegate_policy: "strict" raises NotDelegating when undelegating a
                           participant without a delegate; "lenient" ignores it.
        verify_invariants: Recheck every invariant from scratch after each
                           mutation (slow, meant for testing and audits).
        max_history: Number of operations kept by the history tracker.
        log_level: Level applied to the liquid_tally logger.
    """
    undelegate_policy: Literal["strict", "lenient"] = "strict"
    verify_invariants: bool = False
    max_history: int = 1000
    log_level: str = "WARNING"

    def __post_init__(self):
        if self.undelegate_policy not in ("strict", "lenient"):
            raise ValueError(
                f"undelegate_policy must be 'strict' or 'lenient', got {self.undelegate_policy!r}"
            )
        if self.max_history <= 0:
            raise ValueError(f"max_history must be positive, got {self.max_history}")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log level {self.log_level!r}")

    @property
    def strict_undelegate(self) -> bool:
        return self.undelegate_policy == "strict"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{ENV_PREFIX + name} must be a boolean, got {raw!r}")


def load_config_from_env(dotenv_path: Optional[str] = None) -> LiquidDemocracyConfig:
    """Build a config from LIQUID_TALLY_* variables, reading a .env file first."""
    load_dotenv(dotenv_path)
    defaults = LiquidDemocracyConfig()
    return LiquidDemocracyConfig(
        undelegate_policy=os.getenv(ENV_PREFIX + "UNDELEGATE_POLICY", defaults.undelegate_policy),
        verify_invariants=_env_bool("VERIFY_INVARIANTS", defaults.verify_invariants),
        max_history=int(os.getenv(ENV_PREFIX + "MAX_HISTORY", defaults.max_history)),
        log_level=os.getenv(ENV_PREFIX + "LOG_LEVEL", defaults.log_level),
    )
