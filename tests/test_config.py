"""Tests for LearningConfig: defaults, YAML loading, env overrides, validation."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from promptbandit.config import (
    SEED_ARM_IDS,
    LearningConfig,
    Phase,
    get_config,
    reset_config,
)


class TestDefaults:
    def test_defaults(self):
        cfg = LearningConfig()
        assert cfg.enabled is True
        assert cfg.phase == Phase.PASSIVE
        assert cfg.token_budget == 8000
        assert cfg.baseline_rate == 0.10
        assert cfg.min_pulls == 5
        assert cfg.seed_arm_ids == list(SEED_ARM_IDS)

    def test_seed_list_not_shared(self):
        a, b = LearningConfig(), LearningConfig()
        a.seed_arm_ids.append("tool:x:y")
        assert "tool:x:y" not in b.seed_arm_ids

    def test_is_active(self):
        assert not LearningConfig().is_active
        assert LearningConfig(phase="active").is_active
        assert not LearningConfig(phase="active", enabled=False).is_active

    def test_db_path(self, tmp_path):
        cfg = LearningConfig(state_dir=str(tmp_path))
        assert cfg.db_path == tmp_path / "learning.db"
        assert LearningConfig().db_path.name == "learning.db"

    def test_to_dict(self):
        d = LearningConfig(phase="active").to_dict()
        assert d["phase"] == "active"
        assert d["token_budget"] == 8000


class TestValidation:
    def test_bad_phase(self):
        with pytest.raises(ValueError, match="phase"):
            LearningConfig(phase="eager")

    @pytest.mark.parametrize("rate", [-0.1, 1.5])
    def test_bad_rate(self, rate):
        with pytest.raises(ValueError, match="baseline_rate"):
            LearningConfig(baseline_rate=rate)

    def test_negative_budget(self):
        with pytest.raises(ValueError, match="token_budget"):
            LearningConfig(token_budget=-1)

    def test_negative_min_pulls(self):
        with pytest.raises(ValueError, match="min_pulls"):
            LearningConfig(min_pulls=-3)


class TestYAMLLoading:
    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "learning.yaml"
        path.write_text(yaml.dump({
            "phase": "active",
            "token_budget": 4000,
            "baseline_rate": 0.2,
            "seed_arm_ids": ["tool:fs:Read"],
        }))
        cfg = LearningConfig.load(path)
        assert cfg.phase == Phase.ACTIVE
        assert cfg.token_budget == 4000
        assert cfg.baseline_rate == 0.2
        assert cfg.seed_arm_ids == ["tool:fs:Read"]

    def test_missing_file_uses_defaults(self, tmp_path):
        cfg = LearningConfig.load(tmp_path / "absent.yaml")
        assert cfg == LearningConfig()

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "learning.yaml"
        path.write_text(yaml.dump({"nonsense": 1, "min_pulls": 9}))
        assert LearningConfig.load(path).min_pulls == 9

    def test_empty_file(self, tmp_path):
        path = tmp_path / "learning.yaml"
        path.write_text("")
        assert LearningConfig.load(path) == LearningConfig()

    def test_invalid_value_raises(self, tmp_path):
        path = tmp_path / "learning.yaml"
        path.write_text(yaml.dump({"phase": "sometimes"}))
        with pytest.raises(ValueError):
            LearningConfig.load(path)


class TestEnvOverrides:
    def test_env_beats_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "learning.yaml"
        path.write_text(yaml.dump({"token_budget": 4000, "phase": "passive"}))
        monkeypatch.setenv("PROMPTBANDIT_TOKEN_BUDGET", "1234")
        monkeypatch.setenv("PROMPTBANDIT_PHASE", "active")
        cfg = LearningConfig.load(path)
        assert cfg.token_budget == 1234
        assert cfg.phase == Phase.ACTIVE

    @pytest.mark.parametrize("raw,expected", [("0", False), ("false", False), ("YES", True), ("on", True)])
    def test_enabled(self, tmp_path, monkeypatch, raw, expected):
        monkeypatch.setenv("PROMPTBANDIT_ENABLED", raw)
        assert LearningConfig.load(tmp_path / "none.yaml").enabled is expected

    def test_enabled_garbage(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PROMPTBANDIT_ENABLED", "maybe")
        with pytest.raises(ValueError):
            LearningConfig.load(tmp_path / "none.yaml")

    def test_seed_ids_comma_separated(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PROMPTBANDIT_SEED_ARM_IDS", "tool:fs:Read, tool:exec:Bash,,")
        cfg = LearningConfig.load(tmp_path / "none.yaml")
        assert cfg.seed_arm_ids == ["tool:fs:Read", "tool:exec:Bash"]

    def test_numeric(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PROMPTBANDIT_BASELINE_RATE", "0.25")
        monkeypatch.setenv("PROMPTBANDIT_MIN_PULLS", "3")
        cfg = LearningConfig.load(tmp_path / "none.yaml")
        assert cfg.baseline_rate == 0.25
        assert cfg.min_pulls == 3


class TestSingleton:
    def test_cached(self, tmp_path):
        path = tmp_path / "learning.yaml"
        path.write_text(yaml.dump({"min_pulls": 7}))
        first = get_config(path)
        path.write_text(yaml.dump({"min_pulls": 1}))
        assert get_config(path) is first
        assert first.min_pulls == 7

    def test_reset(self, tmp_path):
        first = get_config(Path(tmp_path / "none.yaml"))
        reset_config()
        assert get_config(Path(tmp_path / "none.yaml")) is not first
