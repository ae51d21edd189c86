"""Pacing between consecutive transactions on a shared, rate-limited RPC provider."""

from __future__ import annotations

import random
from dataclasses import dataclass

from pmarket.config import PmarketConfig


@dataclass(frozen=True)
class FixedPacing:
    delay: float

    def pace(self, previous_attempt: int) -> float:
        return self.delay


@dataclass(frozen=True)
class ExponentialPacing:
    base: float
    cap: float
    jitter: bool = False

    def pace(self, previous_attempt: int) -> float:
        """base * 2**(attempt-1), capped; full jitter draws uniformly below that."""
        delay = min(self.cap, self.base * (2 ** max(previous_attempt - 1, 0)))
        if self.jitter:
            return random.uniform(0, delay)
        return delay


def build_pacing(cfg: PmarketConfig, delay: float):
    """Pacing strategy named by cfg.pacing_strategy with *delay* as its base."""
    if cfg.pacing_strategy == "exponential":
        return ExponentialPacing(base=delay, cap=cfg.pacing_max_sec)
    if cfg.pacing_strategy == "jittered":
        return ExponentialPacing(base=delay, cap=cfg.pacing_max_sec, jitter=True)
    return FixedPacing(delay)
