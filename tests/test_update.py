"""Tests for posterior updates, trace replay, and reward models."""

from __future__ import annotations

import pytest
from conftest import make_trace

from promptbandit.config import LearningConfig, Phase
from promptbandit.learning.errors import StoreError
from promptbandit.learning.reward import (
    BinaryReward,
    RewardModel,
    TernaryReward,
    reference_outcome,
)
from promptbandit.learning.store import SqlitePosteriorStore
from promptbandit.learning.types import ArmOutcome, ArmPosterior, Observation
from promptbandit.learning.update import (
    UpdateReport,
    apply_trace,
    infer_prior,
    observations_from_trace,
    posterior_stats,
    replay_traces,
    update_posteriors,
)

NOW = 1_700_000_000_000


class FlakyStore(SqlitePosteriorStore):
    """Fails every save for one arm."""

    def __init__(self, path, bad_arm: str) -> None:
        super().__init__(path)
        self.bad_arm = bad_arm

    async def save_posterior(self, posterior: ArmPosterior) -> None:
        if posterior.arm_id == self.bad_arm:
            raise StoreError("save_posterior", "disk I/O error")
        await super().save_posterior(posterior)


class TestUpdatePosteriors:
    async def test_creates_from_curated_prior(self, store):
        report = await update_posteriors(store, [Observation("tool:fs:Read", 1.0)], now=NOW)
        assert report == UpdateReport(updated=0, created=1)
        got = await store.get_posterior("tool:fs:Read")
        assert (got.alpha, got.beta, got.pulls, got.last_updated) == (4.0, 1.0, 1, NOW)

    async def test_creates_from_learned_prior(self, store):
        await update_posteriors(store, [Observation("file:workspace:a.md", 0.0)], now=NOW)
        got = await store.get_posterior("file:workspace:a.md")
        assert (got.alpha, got.beta, got.pulls) == (1.0, 2.0, 1)

    async def test_updates_existing(self, store):
        await store.save_posterior(ArmPosterior("tool:exec:Bash", alpha=5.0, beta=2.0, pulls=4))
        report = await update_posteriors(store, [Observation("tool:exec:Bash", 0.0)], now=NOW)
        assert report.updated == 1
        got = await store.get_posterior("tool:exec:Bash")
        assert (got.alpha, got.beta, got.pulls) == (5.0, 3.0, 5)

    async def test_repeated_success(self, store):
        await store.save_posterior(ArmPosterior("skill:coding:main", alpha=2.0, beta=3.0))
        for _ in range(7):
            await update_posteriors(store, [Observation("skill:coding:main", 1.0)])
        got = await store.get_posterior("skill:coding:main")
        assert got.alpha == 9.0
        assert got.beta == 3.0
        assert got.pulls == 7

    async def test_default_timestamp(self, store):
        await update_posteriors(store, [Observation("tool:fs:Read", 1.0)])
        got = await store.get_posterior("tool:fs:Read")
        assert got.last_updated > NOW

    async def test_failure_isolated_per_arm(self, tmp_path):
        store = FlakyStore(tmp_path / "flaky.db", bad_arm="tool:fs:Write")
        try:
            report = await update_posteriors(
                store,
                [
                    Observation("tool:fs:Read", 1.0),
                    Observation("tool:fs:Write", 1.0),
                    Observation("tool:fs:Edit", 0.0),
                ],
            )
            assert report.created == 2
            assert set(report.failures) == {"tool:fs:Write"}
            assert "disk I/O error" in report.failures["tool:fs:Write"]
            assert set(await store.load_posteriors()) == {"tool:fs:Read", "tool:fs:Edit"}
        finally:
            await store.close()

    @pytest.mark.parametrize("reward", [2.0, -0.5, float("nan")])
    async def test_out_of_range_reward_rejected_per_arm(self, store, reward):
        report = await update_posteriors(
            store,
            [Observation("tool:fs:Read", reward), Observation("tool:fs:Grep", 1.0)],
            now=NOW,
        )
        assert report.created == 1
        assert set(report.failures) == {"tool:fs:Read"}
        assert "[0, 1]" in report.failures["tool:fs:Read"]
        assert await store.get_posterior("tool:fs:Read") is None
        grep = await store.get_posterior("tool:fs:Grep")
        assert grep.alpha >= 1.0 and grep.beta >= 1.0

    def test_unparseable_arm_gets_curated_prior(self):
        assert infer_prior("garbage").alpha == 3.0
        assert infer_prior("file:workspace:x").alpha == 1.0


class TestObservationsFromTrace:
    def test_included_only(self):
        trace = make_trace("t", arms=(
            ArmOutcome("tool:fs:Read", included=True, referenced=True, token_cost=1),
            ArmOutcome("tool:fs:Grep", included=True, referenced=False, token_cost=1),
            ArmOutcome("tool:web:Fetch", included=False, referenced=False, token_cost=1),
        ))
        obs = observations_from_trace(trace)
        assert [(o.arm_id, o.reward) for o in obs] == [
            ("tool:fs:Read", 1.0),
            ("tool:fs:Grep", 0.0),
        ]
        assert [o.outcome for o in obs] == ["referenced", "unreferenced"]

    def test_uses_reward_model(self):
        class _Generous:
            def compute(self, outcome):
                return 0.25 if outcome == "unreferenced" else 1.0

        trace = make_trace("t", arms=(
            ArmOutcome("tool:fs:Grep", included=True, referenced=False, token_cost=1),
        ))
        assert observations_from_trace(trace, _Generous())[0].reward == 0.25


def _trace(trace_id: str = "t", **kw):
    return make_trace(
        trace_id,
        arms=(
            ArmOutcome("tool:fs:Read", True, True, 10),
            ArmOutcome("tool:fs:Grep", True, False, 10),
        ),
        **kw,
    )


class TestApplyTrace:
    async def test_active(self, store):
        report = await apply_trace(store, _trace(), LearningConfig(phase=Phase.ACTIVE))
        assert report.created == 2
        assert (await store.get_posterior("tool:fs:Read")).alpha == 4.0
        assert (await store.get_posterior("tool:fs:Grep")).beta == 2.0

    async def test_passive_skips(self, store):
        report = await apply_trace(store, _trace(), LearningConfig(phase=Phase.PASSIVE))
        assert report == UpdateReport()
        assert await store.load_posteriors() == {}

    async def test_aborted_skips(self, store):
        report = await apply_trace(store, _trace(aborted=True), LearningConfig(phase=Phase.ACTIVE))
        assert report == UpdateReport()
        assert await store.load_posteriors() == {}

    async def test_errored_skips(self, store):
        report = await apply_trace(store, _trace(error="boom"), LearningConfig(phase=Phase.ACTIVE))
        assert report == UpdateReport()

    async def test_replay_sums(self, store):
        config = LearningConfig(phase=Phase.ACTIVE)
        report = await replay_traces(
            store, [_trace("a"), _trace("b", aborted=True), _trace("c")], config
        )
        assert report.created == 2
        assert report.updated == 2
        read = await store.get_posterior("tool:fs:Read")
        assert read.pulls == 2
        assert read.alpha == 5.0


class TestPosteriorStats:
    def test_missing(self):
        assert posterior_stats({}, "tool:fs:Read") is None

    @pytest.mark.parametrize("pulls,confidence", [(0, "low"), (4, "low"), (5, "medium"), (19, "medium"), (20, "high")])
    def test_confidence(self, pulls, confidence):
        p = ArmPosterior("a:b:c", alpha=3.0, beta=1.0, pulls=pulls)
        stats = posterior_stats({"a:b:c": p}, "a:b:c")
        assert stats.mean == 0.75
        assert stats.pulls == pulls
        assert stats.confidence == confidence


class TestRewardModels:
    def test_protocol(self):
        assert isinstance(BinaryReward(), RewardModel)
        assert isinstance(TernaryReward(), RewardModel)

    def test_binary(self):
        r = BinaryReward()
        assert r.compute("accepted") == 1.0
        assert r.compute("partial") == 0.0
        assert r.compute("rejected") == 0.0

    def test_ternary(self):
        r = TernaryReward()
        assert r.compute("accepted") == 1.0
        assert r.compute("partial") == 0.5
        assert r.compute("rejected") == 0.0
        assert r.compute("unknown") == 0.0

    def test_reference_outcomes(self):
        for model in (BinaryReward(), TernaryReward()):
            assert model.compute(reference_outcome(True)) == 1.0
            assert model.compute(reference_outcome(False)) == 0.0
            assert model.compute("Referenced") == 1.0

    async def test_explicit_and_trace_feedback_agree(self, tmp_path):
        from_trace = SqlitePosteriorStore(tmp_path / "trace.db")
        explicit = SqlitePosteriorStore(tmp_path / "explicit.db")
        try:
            trace = make_trace("t", arms=(
                ArmOutcome("tool:fs:Read", included=True, referenced=True, token_cost=1),
                ArmOutcome("tool:fs:Grep", included=True, referenced=False, token_cost=1),
            ))
            await update_posteriors(from_trace, observations_from_trace(trace), now=NOW)
            model = TernaryReward()
            await update_posteriors(
                explicit,
                [
                    Observation("tool:fs:Read", model.compute("referenced"), "referenced"),
                    Observation("tool:fs:Grep", model.compute("unreferenced"), "unreferenced"),
                ],
                now=NOW,
            )
            assert await from_trace.load_posteriors() == await explicit.load_posteriors()
        finally:
            await from_trace.close()
            await explicit.close()
