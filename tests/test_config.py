"""
Tests for configuration loading, validation and CLI overrides.
"""

import json

import pytest

from amlsubtypes.config import (
    FilterConfig,
    PipelineConfig,
    load_config,
    load_pipeline_config,
)


class TestDefaults:

    def test_published_thresholds(self):
        config = PipelineConfig()
        assert config.filters.detection_threshold == 4.0
        assert config.filters.detection_fraction == 0.99
        assert config.filters.min_sd == 1.0
        assert config.subtypes.min_prevalence == 0.05
        assert config.rank_sum.method == "asymptotic"
        assert config.rank_sum.use_continuity is False
        assert config.significance.fdr_method == "fdr_bh"

    def test_no_path_gives_defaults(self):
        assert load_pipeline_config(None) == PipelineConfig()


class TestLoadConfig:

    def test_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "filters:\n"
            "  min_sd: 0.5\n"
            "  excluded_substrings: ['.']\n"
            "subtypes:\n"
            "  min_prevalence: 0.1\n"
        )
        config = load_pipeline_config(path)
        assert config.filters.min_sd == 0.5
        assert config.filters.excluded_substrings == (".",)
        assert config.subtypes.min_prevalence == 0.1
        # untouched sections keep defaults
        assert config.filters.detection_threshold == 4.0

    def test_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"rank_sum": {"use_continuity": True}}))
        assert load_pipeline_config(path).rank_sum.use_continuity is True

    def test_tiers_from_yaml_become_tuples(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("significance:\n  tiers: [[0.01, '**'], [0.05, '*']]\n")
        config = load_pipeline_config(path)
        assert config.significance.tiers == ((0.01, "**"), (0.05, "*"))
        hash(config)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("")
        with pytest.raises(ValueError, match="Unsupported config format"):
            load_config(path)

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="dictionary"):
            load_config(path)


class TestValidation:

    def test_unknown_section(self):
        with pytest.raises(ValueError, match="Unknown config sections"):
            PipelineConfig.from_dict({"filter": {}})

    def test_unknown_key(self):
        with pytest.raises(ValueError, match="Unknown keys in 'filters'"):
            PipelineConfig.from_dict({"filters": {"min_std": 1.0}})

    @pytest.mark.parametrize("payload", [
        {"filters": {"detection_fraction": 1.5}},
        {"filters": {"min_sd": -1}},
        {"subtypes": {"min_prevalence": 1.0}},
        {"rank_sum": {"method": "permutation"}},
        {"rank_sum": {"alternative": "bigger"}},
        {"significance": {"fdr_method": "qvalue"}},
    ])
    def test_invalid_values(self, payload):
        with pytest.raises(ValueError):
            PipelineConfig.from_dict(payload)


class TestOverrides:

    def test_explicit_values_win(self):
        config = PipelineConfig().with_overrides(min_sd=0.5, min_prevalence=0.1)
        assert config.filters.min_sd == 0.5
        assert config.subtypes.min_prevalence == 0.1
        assert config.filters.detection_threshold == 4.0

    def test_none_keeps_file_values(self):
        base = PipelineConfig(filters=FilterConfig(min_sd=2.0))
        assert base.with_overrides(min_sd=None).filters.min_sd == 2.0

    def test_to_dict_is_json_serializable(self):
        json.dumps(PipelineConfig().to_dict())
