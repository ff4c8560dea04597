"""Beta distribution utilities for Thompson Sampling.

Pure math over Beta(alpha, beta). Sampling draws all its uniforms from
an injected RandomSource so tests can pass a seeded random.Random.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from statistics import NormalDist
from typing import Protocol, runtime_checkable

from promptbandit.learning.types import ArmSource


@runtime_checkable
class RandomSource(Protocol):
    """Uniform [0, 1) generator. random.Random satisfies this."""

    def random(self) -> float: ...


_default_rng: RandomSource = random.Random()


def default_rng() -> RandomSource:
    """Process-local generator used when none is injected."""
    return _default_rng


@dataclass(frozen=True)
class BetaParams:
    alpha: float  # successes + prior
    beta: float  # failures + prior


@dataclass(frozen=True)
class CredibleInterval:
    lower: float
    upper: float


def sample_beta(params: BetaParams, rng: RandomSource | None = None) -> float:
    """Draw X = Ga / (Ga + Gb) with Ga ~ Gamma(alpha, 1), Gb ~ Gamma(beta, 1)."""
    rng = rng or _default_rng
    ga = _sample_gamma(params.alpha, rng)
    gb = _sample_gamma(params.beta, rng)
    if ga + gb == 0:
        return 0.5
    return ga / (ga + gb)


def _sample_gamma(shape: float, rng: RandomSource) -> float:
    """Marsaglia-Tsang for shape >= 1; boost-and-shrink for shape < 1."""
    if shape <= 0:
        return 0.0

    if shape < 1:
        # Gamma(a) = Gamma(a + 1) * U^(1/a)
        u = rng.random()
        return _sample_gamma(shape + 1, rng) * u ** (1 / shape)

    d = shape - 1 / 3
    c = 1 / math.sqrt(9 * d)

    while True:
        x = _gaussian(rng)
        v = 1 + c * x
        while v <= 0:
            x = _gaussian(rng)
            v = 1 + c * x

        v = v * v * v
        u = rng.random()
        x_sq = x * x
        if u < 1 - 0.0331 * x_sq * x_sq:
            return d * v
        if u > 0 and math.log(u) < 0.5 * x_sq + d * (1 - v + math.log(v)):
            return d * v


def _gaussian(rng: RandomSource) -> float:
    """Box-Muller standard normal."""
    u1 = rng.random()
    while u1 == 0:
        u1 = rng.random()
    u2 = rng.random()
    return math.sqrt(-2 * math.log(u1)) * math.cos(2 * math.pi * u2)


def beta_mean(params: BetaParams) -> float:
    """E[X] = alpha / (alpha + beta); 0.5 for the degenerate Beta(0, 0)."""
    total = params.alpha + params.beta
    if total == 0:
        return 0.5
    return params.alpha / total


def beta_variance(params: BetaParams) -> float:
    """Var[X] = alpha * beta / ((alpha + beta)^2 (alpha + beta + 1))."""
    total = params.alpha + params.beta
    if total == 0 or total + 1 == 0:
        return 0.0
    return (params.alpha * params.beta) / (total * total * (total + 1))


def update_beta(params: BetaParams, reward: float) -> BetaParams:
    """Conjugate update: alpha += reward, beta += 1 - reward.

    Bernoulli observations pass 0 or 1; continuous rewards in [0, 1]
    are accepted as-is.
    """
    return BetaParams(alpha=params.alpha + reward, beta=params.beta + (1.0 - reward))


def beta_credible_interval(params: BetaParams, level: float = 0.95) -> CredibleInterval:
    """Normal-approximation credible interval, clamped to [0, 1]."""
    if not 0.0 < level < 1.0:
        raise ValueError(f"level must be in (0, 1), got {level}")
    mean = beta_mean(params)
    std = math.sqrt(beta_variance(params))
    z = NormalDist().inv_cdf((1 + level) / 2)  # 1.96 at 0.95
    return CredibleInterval(
        lower=max(0.0, mean - z * std),
        upper=min(1.0, mean + z * std),
    )


_PRIORS: dict[ArmSource, BetaParams] = {
    # Shipped on purpose; optimistic (mean 0.75) so they aren't pruned early.
    ArmSource.CURATED: BetaParams(alpha=3.0, beta=1.0),
    # Workspace content; neutral (mean 0.50).
    ArmSource.LEARNED: BetaParams(alpha=1.0, beta=1.0),
}


def get_initial_prior(source: ArmSource | str) -> BetaParams:
    return _PRIORS[ArmSource(source)]
