"""Unit tests for clustering.config module."""

import json

import pytest

from clustering import ClusteringEngine, ClusterOptions, InvalidOptions
from clustering.config import (
    engine_from_config,
    load_config,
    options_from_config,
    validate_config,
)


class TestLoadConfig:
    """Test suite for clustering.config.load_config function.

    Tests configuration loading, merging with defaults, and validation.
    """

    def test_load_default_config(self):
        """Test loading default config when no file specified."""
        config = load_config(None)
        
        assert "cluster" in config
        assert "engine" in config
        assert "logging" in config
        assert config["cluster"]["radius"] == 50
        assert config["engine"]["max_entities"] == 500

    def test_load_default_config_nonexistent(self):
        """Test loading default config when file doesn't exist."""
        config = load_config("nonexistent.json")
        
        assert config["engine"]["strategy"] == "hierarchical"
        assert config["engine"]["debounce_ms"] == 100

    def test_load_custom_config(self, tmp_path):
        """Test loading custom config file."""
        config_file = tmp_path / "test_config.json"
        custom_config = {
            "cluster": {"radius": 60, "max_zoom": 17},
            "engine": {"strategy": "greedy"},
        }
        config_file.write_text(json.dumps(custom_config), encoding="utf-8")
        
        config = load_config(str(config_file))
        
        assert config["cluster"]["radius"] == 60
        assert config["cluster"]["max_zoom"] == 17
        assert config["engine"]["strategy"] == "greedy"

    def test_load_config_merging(self, tmp_path):
        """Test that custom config merges with defaults one level deep."""
        config_file = tmp_path / "test_config.json"
        config_file.write_text(json.dumps({"cluster": {"min_points": 3}}), encoding="utf-8")
        
        config = load_config(str(config_file))
        
        assert config["cluster"]["min_points"] == 3
        assert config["cluster"]["radius"] == 50
        assert config["engine"]["max_entities"] == 500

    def test_defaults_not_mutated(self, tmp_path):
        """Test loading a custom file leaves later defaults untouched."""
        config_file = tmp_path / "test_config.json"
        config_file.write_text(json.dumps({"cluster": {"radius": 80}}), encoding="utf-8")
        
        load_config(str(config_file))
        
        assert load_config(None)["cluster"]["radius"] == 50

    def test_invalid_value(self, tmp_path):
        """Test out-of-range values raise InvalidOptions."""
        config_file = tmp_path / "test_config.json"
        config_file.write_text(json.dumps({"cluster": {"max_zoom": 25}}), encoding="utf-8")
        
        with pytest.raises(InvalidOptions) as exc_info:
            load_config(str(config_file))
        
        assert "cluster/max_zoom" in str(exc_info.value)

    def test_unknown_key(self, tmp_path):
        """Test unknown keys in the engine section are rejected."""
        config_file = tmp_path / "test_config.json"
        config_file.write_text(json.dumps({"engine": {"workers": 4}}), encoding="utf-8")
        
        with pytest.raises(InvalidOptions):
            load_config(str(config_file))


class TestValidateConfig:
    """Test suite for validate_config function."""

    def test_every_error_reported(self):
        """Test all failing paths are listed."""
        cfg = load_config(None)
        cfg["cluster"]["radius"] = 0
        cfg["engine"]["strategy"] = "kmeans"
        
        with pytest.raises(InvalidOptions) as exc_info:
            validate_config(cfg)
        
        assert len(exc_info.value.details["errors"]) == 2


class TestConfigFactories:
    """Test suite for options_from_config and engine_from_config."""

    def test_options_from_config(self):
        """Test the cluster section becomes ClusterOptions."""
        cfg = load_config(None)
        cfg["cluster"]["radius"] = 70
        
        assert options_from_config(cfg) == ClusterOptions(radius=70)

    def test_engine_from_config(self):
        """Test the engine section and overrides reach the engine."""
        cfg = load_config(None)
        cfg["engine"]["max_entities"] = 50
        results = []
        
        engine = engine_from_config(cfg, on_result=results.append, debounce_ms=0)
        
        assert isinstance(engine, ClusteringEngine)
        assert engine.max_entities == 50
        assert engine.debounce_ms == 0
        assert engine.on_result is not None

    def test_engines_are_independent(self):
        """Test each call builds a separate engine."""
        assert engine_from_config() is not engine_from_config()
