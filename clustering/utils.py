"""Utility functions for clustering operations.

Provides helpers for parameter hashing, stable cluster ids, loading raw
record files and converting points/entities to GeoDataFrames or JSON.
"""

import hashlib
import json
import os
from typing import Any, Dict, List, Sequence, Set

import geopandas as gpd
import pandas as pd
from shapely.geometry import Point

from src.geography.models import FeaturePoint


HYPERPARAM_KEYS: Dict[str, Set[str]] = {
    "hierarchical": {"radius", "max_zoom", "min_zoom", "min_points", "extent"},
    "greedy": {"clip_to_viewport", "colocated_m"},
}


def canonical_params_json(method: str, params: Dict[str, Any], include: Set[str]) -> str:
    """Create canonical JSON representation of hyperparameters.
    
    Args:
        method: Strategy name (e.g., "hierarchical", "greedy").
        params: Dictionary of all parameters.
        include: Set of parameter keys to include in hash.
        
    Returns:
        Canonical JSON string (sorted keys, compact separators).
        
    Note:
        Always includes __method__ for cross-method collision prevention.
    """
    filtered = {k: params[k] for k in sorted(params.keys()) if k in include}
    filtered["__method__"] = method
    return json.dumps(filtered, sort_keys=True, separators=(",", ":"))


def param_hash_from_json(params_json: str) -> str:
    """Generate deterministic SHA-1 hash from parameter JSON.
    
    Args:
        params_json: Canonical JSON string of parameters.
        
    Returns:
        10-character hex digest of SHA-1 hash.
    """
    return hashlib.sha1(params_json.encode()).hexdigest()[:10]


def stable_cluster_id(member_ids: Sequence[str]) -> int:
    """Deterministic numeric id for a group of member ids.
    
    The same members in the same order always hash to the same id, across
    processes and runs (unlike the builtin hash()).
    
    Args:
        member_ids: Ordered FeaturePoint ids.
        
    Returns:
        Non-negative integer below 2**48.
    """
    digest = hashlib.sha1("\x1f".join(member_ids).encode("utf-8")).hexdigest()
    return int(digest[:12], 16)


def load_records(path: str) -> List[Dict[str, Any]]:
    """Load raw records ({id, wkb, properties}) from JSONL/JSON/CSV.
    
    Args:
        path: Path to input file (.jsonl, .json, or .csv).
        
    Returns:
        List of record dictionaries in file order.
        
    Raises:
        FileNotFoundError: If input file doesn't exist.
        ValueError: If the file format is unsupported.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Input file not found: {path}")
    
    ext = os.path.splitext(path)[1].lower()
    if ext == ".jsonl":
        records = []
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    records.append(json.loads(line))
        return records
    elif ext == ".json":
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if isinstance(data, dict):
            data = data.get("records", [])
        return list(data)
    elif ext == ".csv":
        df = pd.read_csv(path, dtype={"id": str})
        return df.to_dict(orient="records")
    raise ValueError(f"Unsupported file format: {ext} (use .jsonl, .json, or .csv)")


def features_to_gdf(points: Sequence[FeaturePoint]) -> gpd.GeoDataFrame:
    """Convert feature points to a GeoDataFrame in EPSG:4326."""
    if not points:
        return gpd.GeoDataFrame({"id": []}, geometry=[], crs="EPSG:4326")
    return gpd.GeoDataFrame(
        {"id": [p.id for p in points]},
        geometry=[Point(p.longitude, p.latitude) for p in points],
        crs="EPSG:4326",
    )


def entities_to_gdf(entities: Sequence[Any]) -> gpd.GeoDataFrame:
    """Convert clustering entities to a GeoDataFrame in EPSG:4326.
    
    Columns: key, kind ("cluster" or "point"), entity_id, point_count and
    member_ids (semicolon separated, so the frame can be written as GeoJSON).
    """
    from clustering.entities import is_cluster
    
    rows = []
    geometries = []
    for entity in entities:
        if is_cluster(entity):
            rows.append({
                "key": entity.key,
                "kind": "cluster",
                "entity_id": str(entity.id),
                "point_count": entity.point_count,
                "member_ids": ";".join(entity.member_ids),
            })
        else:
            rows.append({
                "key": entity.key,
                "kind": "point",
                "entity_id": entity.point.id,
                "point_count": 1,
                "member_ids": entity.point.id,
            })
        geometries.append(Point(entity.coordinate.longitude, entity.coordinate.latitude))
    
    columns = ["key", "kind", "entity_id", "point_count", "member_ids"]
    return gpd.GeoDataFrame(
        pd.DataFrame(rows, columns=columns),
        geometry=geometries,
        crs="EPSG:4326",
    )


def entities_to_json(entities: Sequence[Any], out_path: str) -> None:
    """Write entities as a JSON array of objects.
    
    JSON Format:
        [{"key": ..., "kind": ..., "lon": ..., "lat": ..., "point_count": ...,
          "member_ids": [...]}, ...]
    """
    from clustering.entities import is_cluster
    
    out_dir = os.path.dirname(out_path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    
    items = []
    for entity in entities:
        members = list(entity.member_ids) if is_cluster(entity) else [entity.point.id]
        items.append({
            "key": entity.key,
            "kind": "cluster" if is_cluster(entity) else "point",
            "lon": entity.coordinate.longitude,
            "lat": entity.coordinate.latitude,
            "point_count": entity.point_count,
            "member_ids": members,
        })
    
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(items, f, ensure_ascii=False, indent=2)
