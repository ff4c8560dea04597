"""Tests for Beta posterior math: sampling, moments, updates, intervals, priors."""

from __future__ import annotations

import random
import statistics

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from promptbandit.learning.beta import (
    BetaParams,
    RandomSource,
    beta_credible_interval,
    beta_mean,
    beta_variance,
    get_initial_prior,
    sample_beta,
    update_beta,
)
from promptbandit.learning.types import ArmSource

shape = st.floats(min_value=0.05, max_value=200.0, allow_nan=False, allow_infinity=False)


class TestSampleBeta:
    @settings(max_examples=200, deadline=None)
    @given(alpha=shape, beta=shape, seed=st.integers(min_value=0, max_value=2**32))
    def test_sample_in_unit_interval(self, alpha, beta, seed):
        x = sample_beta(BetaParams(alpha, beta), random.Random(seed))
        assert 0.0 <= x <= 1.0

    @pytest.mark.parametrize("alpha,beta", [(1.0, 1.0), (3.0, 1.0), (2.0, 8.0), (0.5, 0.5)])
    def test_empirical_mean_converges(self, alpha, beta):
        rng = random.Random(7)
        params = BetaParams(alpha, beta)
        draws = [sample_beta(params, rng) for _ in range(10_000)]
        assert statistics.fmean(draws) == pytest.approx(beta_mean(params), abs=0.02)

    def test_zero_shapes_return_half(self):
        assert sample_beta(BetaParams(0.0, 0.0), random.Random(1)) == 0.5

    def test_nonpositive_shape_contributes_zero(self):
        # Gb = 0 -> X = Ga / Ga = 1
        assert sample_beta(BetaParams(2.0, 0.0), random.Random(1)) == 1.0
        assert sample_beta(BetaParams(0.0, 2.0), random.Random(1)) == 0.0

    def test_seeded_draws_repeat(self):
        params = BetaParams(2.0, 3.0)
        a = [sample_beta(params, random.Random(99)) for _ in range(3)]
        b = [sample_beta(params, random.Random(99)) for _ in range(3)]
        assert a == b

    def test_default_rng_used_when_none(self):
        x = sample_beta(BetaParams(2.0, 2.0))
        assert 0.0 <= x <= 1.0

    def test_random_satisfies_protocol(self):
        assert isinstance(random.Random(), RandomSource)


class TestMoments:
    def test_mean(self):
        assert beta_mean(BetaParams(3.0, 1.0)) == 0.75
        assert beta_mean(BetaParams(1.0, 1.0)) == 0.5

    def test_mean_degenerate(self):
        assert beta_mean(BetaParams(0.0, 0.0)) == 0.5

    def test_variance(self):
        # 1*1 / (4 * 3)
        assert beta_variance(BetaParams(1.0, 1.0)) == pytest.approx(1 / 12)

    def test_variance_degenerate(self):
        assert beta_variance(BetaParams(0.0, 0.0)) == 0.0

    def test_variance_shrinks_with_evidence(self):
        assert beta_variance(BetaParams(30.0, 10.0)) < beta_variance(BetaParams(3.0, 1.0))


class TestUpdateBeta:
    def test_success(self):
        assert update_beta(BetaParams(1.0, 1.0), 1.0) == BetaParams(2.0, 1.0)

    def test_failure(self):
        assert update_beta(BetaParams(1.0, 1.0), 0.0) == BetaParams(1.0, 2.0)

    def test_fractional_reward(self):
        assert update_beta(BetaParams(1.0, 1.0), 0.5) == BetaParams(1.5, 1.5)

    def test_repeated_success_drives_mean_up(self):
        params = BetaParams(1.0, 1.0)
        for _ in range(10):
            params = update_beta(params, 1.0)
        assert params == BetaParams(11.0, 1.0)
        assert beta_mean(params) == pytest.approx(11 / 12)

    @given(reward=st.floats(min_value=0.0, max_value=1.0), a=shape, b=shape)
    def test_total_mass_grows_by_one(self, reward, a, b):
        updated = update_beta(BetaParams(a, b), reward)
        assert updated.alpha + updated.beta == pytest.approx(a + b + 1.0)


class TestCredibleInterval:
    def test_contains_mean(self):
        params = BetaParams(5.0, 3.0)
        ci = beta_credible_interval(params)
        assert ci.lower <= beta_mean(params) <= ci.upper

    def test_clamped(self):
        # Beta(1, 1): 0.5 +/- 1.96 * 0.289 overshoots both ends
        ci = beta_credible_interval(BetaParams(1.0, 1.0))
        assert ci.lower == 0.0
        assert ci.upper == 1.0

    def test_uses_normal_quantile(self):
        params = BetaParams(50.0, 50.0)
        ci = beta_credible_interval(params, level=0.95)
        half_width = 1.959964 * beta_variance(params) ** 0.5
        assert ci.upper - 0.5 == pytest.approx(half_width, rel=1e-4)

    def test_narrower_at_lower_level(self):
        params = BetaParams(10.0, 5.0)
        wide = beta_credible_interval(params, level=0.99)
        narrow = beta_credible_interval(params, level=0.80)
        assert narrow.upper - narrow.lower < wide.upper - wide.lower

    @pytest.mark.parametrize("level", [0.0, 1.0, -0.5, 1.5])
    def test_rejects_bad_level(self, level):
        with pytest.raises(ValueError):
            beta_credible_interval(BetaParams(2.0, 2.0), level=level)


class TestPriors:
    def test_curated_is_optimistic(self):
        assert get_initial_prior(ArmSource.CURATED) == BetaParams(3.0, 1.0)

    def test_learned_is_uniform(self):
        assert get_initial_prior(ArmSource.LEARNED) == BetaParams(1.0, 1.0)

    def test_accepts_string(self):
        assert get_initial_prior("learned") == BetaParams(1.0, 1.0)
