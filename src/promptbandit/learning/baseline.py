"""Baseline sampling for counterfactual evaluation.

A fraction of runs (baseline_rate) use the full prompt without
Thompson Sampling. Those runs give a token-usage reference point for
measuring savings and keep collecting observations for every arm.
"""

from __future__ import annotations

from typing import Protocol

from promptbandit.learning.beta import RandomSource, default_rng

_LCG_A = 1664525
_LCG_C = 1013904223
_LCG_M = 2**32


class HasBaselineRate(Protocol):
    baseline_rate: float


def should_run_baseline(config: HasBaselineRate, rng: RandomSource | None = None) -> bool:
    """Fresh draw on every call."""
    return (rng or default_rng()).random() < config.baseline_rate


def should_run_baseline_seeded(config: HasBaselineRate, seed: int) -> bool:
    """Same seed, same answer. For tests and trace replay."""
    return _lcg(seed) < config.baseline_rate


def _lcg(seed: int) -> float:
    return ((seed * _LCG_A + _LCG_C) % _LCG_M) / _LCG_M


def generate_baseline_seed(session_key: str | None, timestamp: int) -> int:
    """Polynomial rolling hash (x31) of "session_key:timestamp", 32-bit, non-negative."""
    h = 0
    for ch in f"{session_key or 'default'}:{timestamp}":
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 2**31:
        h -= 2**32
    return abs(h)


def recommended_baseline_rate(arm_count: int) -> float:
    """Smaller inventories need more baseline coverage per arm."""
    if arm_count <= 10:
        return 0.20
    if arm_count <= 50:
        return 0.10
    return 0.05
