"""Configuration management for the clustering engine.

Provides default settings, JSON loading with schema validation, and
helpers that turn a configuration dictionary into ClusterOptions or a
ready ClusteringEngine.
"""
from __future__ import annotations

import copy
import json
import pathlib
from typing import Any

from jsonschema import Draft202012Validator

from clustering.entities import ClusterOptions
from clustering.errors import InvalidOptions

_DEFAULT = {
    "cluster": {
        "radius": 50,
        "max_zoom": 16,
        "min_zoom": 0,
        "min_points": 2,
        "extent": 512,
    },
    "engine": {
        "strategy": "hierarchical",
        "max_entities": 500,
        "debounce_ms": 100,
        "async_threshold": 200,
        "enable_clustering": True,
    },
    "logging": {"json": False},
}

CONFIG_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "properties": {
        "cluster": {
            "type": "object",
            "properties": {
                "radius": {"type": "number", "exclusiveMinimum": 0},
                "max_zoom": {"type": "integer", "minimum": 0, "maximum": 20},
                "min_zoom": {"type": "integer", "minimum": 0, "maximum": 20},
                "min_points": {"type": "integer", "minimum": 2},
                "extent": {"type": "integer", "exclusiveMinimum": 0},
            },
            "additionalProperties": False,
        },
        "engine": {
            "type": "object",
            "properties": {
                "strategy": {"enum": ["hierarchical", "greedy", "auto"]},
                "max_entities": {"type": "integer", "minimum": 1},
                "debounce_ms": {"type": "number", "minimum": 0},
                "async_threshold": {"type": "integer", "minimum": 0},
                "enable_clustering": {"type": "boolean"},
            },
            "additionalProperties": False,
        },
        "logging": {
            "type": "object",
            "properties": {"json": {"type": "boolean"}},
        },
    },
}


def validate_config(cfg: dict) -> None:
    """Validate a configuration dictionary against CONFIG_SCHEMA.
    
    Raises:
        InvalidOptions: Listing every failing path, one per line.
    """
    v = Draft202012Validator(CONFIG_SCHEMA)
    errs = sorted(v.iter_errors(cfg), key=lambda e: list(e.path))
    if errs:
        raise InvalidOptions(
            "\n".join(f"{'/'.join(map(str, e.path))}: {e.message}" for e in errs),
            details={"errors": [e.message for e in errs]},
        )


def load_config(path: str | None = None) -> dict:
    """Load engine configuration from JSON file.
    
    Loads user configuration file and merges with default configuration.
    User values override defaults for matching keys.
    
    Args:
        path: Path to configuration JSON file. If None or file doesn't exist,
            returns default configuration.
            
    Returns:
        dict: Merged, validated configuration dictionary.
        
    Raises:
        InvalidOptions: If the merged configuration fails validation.
    """
    merged = copy.deepcopy(_DEFAULT)
    p = pathlib.Path(path) if path else None
    if p and p.exists():
        with p.open("r", encoding="utf-8") as f:
            user = json.load(f)
        for k, v in user.items():
            if isinstance(v, dict) and isinstance(merged.get(k), dict):
                merged[k].update(v)
            else:
                merged[k] = v
    validate_config(merged)
    return merged


def options_from_config(cfg: dict | None = None) -> ClusterOptions:
    """Build ClusterOptions from the ``cluster`` section."""
    cfg = cfg or load_config()
    return ClusterOptions(**cfg["cluster"])


def engine_from_config(cfg: dict | None = None, **kwargs: Any):
    """Build a ClusteringEngine from configuration.
    
    Args:
        cfg: Configuration dictionary (default: load_config()).
        **kwargs: Extra engine arguments such as callbacks; override config.
        
    Returns:
        ClusteringEngine: A new, independent engine.
    """
    from clustering.engine import ClusteringEngine
    
    cfg = cfg or load_config()
    settings = dict(cfg["engine"])
    settings.update(kwargs)
    return ClusteringEngine(options_from_config(cfg), **settings)
