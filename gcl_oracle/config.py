# gcl_oracle/config.py
"""Bounds shared by the interpreter, the fixpoint engine and the trace checker."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisConfig:
    """Tuning knobs for one analysis invocation.

    Every bound turns potential non-termination into a ``Timeout`` outcome
    instead of a hang.
    """
    max_steps: int = 10_000           # interpreter / trace checker steps
    max_iterations: int = 100_000     # worklist transfer applications
    max_paths: int = 1_000            # distinct results kept by explore()
    max_pairings: int = 100_000       # pairings visited by the trace checker
    max_states: Optional[int] = None  # states kept by explore() and check_model()

    def validate(self) -> List[str]:
        """Return a list of validation warnings (empty if valid)."""
        warnings: List[str] = []
        if self.max_steps <= 0:
            warnings.append("max_steps must be positive")
        if self.max_iterations <= 0:
            warnings.append("max_iterations must be positive")
        if self.max_paths <= 0:
            warnings.append("max_paths must be positive")
        if self.max_pairings <= 0:
            warnings.append("max_pairings must be positive")
        if self.max_states is not None and self.max_states <= 0:
            warnings.append("max_states must be positive when set")
        return warnings

    def with_overrides(self, **overrides: Any) -> "AnalysisConfig":
        """Copy with the non-``None`` keyword arguments applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(self, **changes)


DEFAULT_CONFIG = AnalysisConfig()


def resolve(config: Optional[AnalysisConfig]) -> AnalysisConfig:
    """*config* or the defaults; logs any validation warnings."""
    cfg = config or DEFAULT_CONFIG
    for warning in cfg.validate():
        logger.warning("config: %s", warning)
    return cfg


__all__ = ["AnalysisConfig", "DEFAULT_CONFIG", "resolve"]
