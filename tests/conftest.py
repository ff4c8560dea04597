"""Shared fixtures for promptbandit tests."""

from __future__ import annotations

import os
import random

import pytest

from promptbandit.config import LearningConfig, Phase, reset_config
from promptbandit.learning.store import SqlitePosteriorStore
from promptbandit.learning.types import ArmOutcome, RunTrace, TokenUsage
from promptbandit.observability import reset as obs_reset


@pytest.fixture(autouse=True)
def _reset_singletons():
    obs_reset()
    reset_config()
    yield
    reset_config()
    obs_reset()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """No host config leaks in: PROMPTBANDIT_* cleared, HOME in tmp."""
    for key in list(os.environ):
        if key.startswith("PROMPTBANDIT_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
async def store(tmp_path):
    s = SqlitePosteriorStore(tmp_path / "learning.db")
    yield s
    await s.close()


@pytest.fixture
def active_config(tmp_path):
    return LearningConfig(
        phase=Phase.ACTIVE,
        baseline_rate=0.0,
        state_dir=str(tmp_path / "state"),
    )


def make_trace(
    trace_id: str,
    *,
    timestamp: int = 1_700_000_000_000,
    is_baseline: bool = False,
    total_tokens: int = 0,
    session_key: str | None = "s1",
    arms: tuple[ArmOutcome, ...] = (),
    duration_ms: int | None = None,
    aborted: bool = False,
    error: str | None = None,
) -> RunTrace:
    return RunTrace(
        trace_id=trace_id,
        run_id=f"run-{trace_id}",
        session_id="sess",
        timestamp=timestamp,
        is_baseline=is_baseline,
        arms=arms,
        usage=TokenUsage(input=total_tokens, total=total_tokens),
        session_key=session_key,
        duration_ms=duration_ms,
        aborted=aborted,
        error=error,
    )
