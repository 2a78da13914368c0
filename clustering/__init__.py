"""Unified clustering interface for map markers.

Provides a consistent interface for the hierarchical zoom-level index and
the greedy distance clusterer, plus the viewport-driven engine that runs
them and the helpers for stable ids, record loading and export.
"""

from clustering.errors import (
    ClusteringError,
    InvalidOptions,
    IndexNotBuilt,
    ClusterNotFound,
)
from clustering.entities import (
    ClusterOptions,
    IndividualPoint,
    Cluster,
    ClusterEntity,
    is_cluster,
)
from clustering.base import Clusterer, get_bounds_for_cluster_expansion
from clustering.hierarchical import SpatialClusterIndex, HierarchicalClustering
from clustering.greedy import GreedyDistanceClustering, cluster_distance
from clustering.engine import ClusteringEngine, EngineState, cap_entities
from clustering.utils import (
    canonical_params_json,
    param_hash_from_json,
    stable_cluster_id,
    HYPERPARAM_KEYS,
    load_records,
    features_to_gdf,
    entities_to_gdf,
    entities_to_json,
)


def make_clusterer(name: str, **kwargs) -> Clusterer:
    """Factory function to create clusterer instances.
    
    Args:
        name: Strategy name ("hierarchical" or "greedy").
        **kwargs: Strategy-specific parameters.
        
    Returns:
        Clusterer instance.
        
    Raises:
        InvalidOptions: If the strategy name is unknown.
        
    Examples:
        >>> clusterer = make_clusterer("hierarchical", radius=60, max_zoom=17)
        >>> clusterer = make_clusterer("greedy", clip_to_viewport=True)
    """
    if name == "hierarchical":
        return HierarchicalClustering(**kwargs)
    elif name == "greedy":
        return GreedyDistanceClustering(**kwargs)
    else:
        raise InvalidOptions(f"Unknown strategy: {name}. Must be one of: hierarchical, greedy")


__all__ = [
    "ClusteringError",
    "InvalidOptions",
    "IndexNotBuilt",
    "ClusterNotFound",
    "ClusterOptions",
    "IndividualPoint",
    "Cluster",
    "ClusterEntity",
    "is_cluster",
    "Clusterer",
    "get_bounds_for_cluster_expansion",
    "SpatialClusterIndex",
    "HierarchicalClustering",
    "GreedyDistanceClustering",
    "cluster_distance",
    "ClusteringEngine",
    "EngineState",
    "cap_entities",
    "make_clusterer",
    "canonical_params_json",
    "param_hash_from_json",
    "stable_cluster_id",
    "HYPERPARAM_KEYS",
    "load_records",
    "features_to_gdf",
    "entities_to_gdf",
    "entities_to_json",
]
