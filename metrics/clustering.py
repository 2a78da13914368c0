"""Clustering diagnostics for published entity lists.

Provides summary statistics, marker count formatting, and agreement
metrics for comparing the groupings two strategies produce for the same
points and viewport.
"""

from typing import Any, Dict, List, Sequence

import numpy as np
from sklearn.metrics import adjusted_rand_score

from clustering.entities import ClusterEntity, is_cluster
from clustering.hierarchical import SpatialClusterIndex
from src.geography.models import BBox


def cluster_stats(entities: Sequence[ClusterEntity]) -> Dict[str, int]:
    """Summarise an entity list.
    
    Returns:
        Dictionary with total_clusters, total_points (points represented,
        clustered or not), largest_cluster and individual_points.
    """
    stats = {
        "total_clusters": 0,
        "total_points": 0,
        "largest_cluster": 0,
        "individual_points": 0,
    }
    for entity in entities:
        if is_cluster(entity):
            stats["total_clusters"] += 1
            stats["total_points"] += entity.point_count
            stats["largest_cluster"] = max(stats["largest_cluster"], entity.point_count)
        else:
            stats["individual_points"] += 1
            stats["total_points"] += 1
    return stats


def format_cluster_count(count: int) -> str:
    """Abbreviate a cluster size for a marker label.
    
    Examples:
        >>> format_cluster_count(999)
        '999'
        >>> format_cluster_count(1234)
        '1.2k'
        >>> format_cluster_count(12345)
        '12k'
        >>> format_cluster_count(1250000)
        '1.2M'
    """
    if count < 1000:
        return str(count)
    elif count < 10000:
        return f"{count // 100 / 10:g}k"
    elif count < 1000000:
        return f"{count // 1000}k"
    return f"{count // 100000 / 10:g}M"


def entity_labels(entities: Sequence[ClusterEntity], point_ids: Sequence[str]) -> np.ndarray:
    """Label each point id with the index of the entity that holds it.
    
    Args:
        entities: Entity list from one clustering pass.
        point_ids: Ids to label, in the order the labels should come back.
        
    Returns:
        Integer array; -1 for ids not present in any entity.
    """
    owner: Dict[str, int] = {}
    for label, entity in enumerate(entities):
        members = entity.member_ids if is_cluster(entity) else (entity.point.id,)
        for member in members:
            owner[member] = label
    return np.array([owner.get(pid, -1) for pid in point_ids], dtype=int)


def grouping_agreement(
    entities_a: Sequence[ClusterEntity],
    entities_b: Sequence[ClusterEntity],
    point_ids: Sequence[str],
) -> float:
    """Adjusted Rand index between two groupings of the same points.
    
    1.0 means both strategies grouped the points identically; values near
    0 mean agreement no better than chance. Points missing from either
    list are ignored.
    """
    labels_a = entity_labels(entities_a, point_ids)
    labels_b = entity_labels(entities_b, point_ids)
    mask = (labels_a >= 0) & (labels_b >= 0)
    if mask.sum() < 2:
        return 1.0
    return float(adjusted_rand_score(labels_a[mask], labels_b[mask]))


def zoom_profile(index: SpatialClusterIndex, bbox: BBox) -> List[Dict[str, Any]]:
    """Entity counts per zoom level for one bounding box.
    
    Useful to tune radius/min_points: with clusters only splitting as zoom
    grows, ``entities`` should never decrease down the list.
    """
    profile = []
    for zoom in range(index.options.min_zoom, index.options.max_zoom + 2):
        entities = index.get_clusters(bbox, zoom)
        stats = cluster_stats(entities)
        profile.append({
            "zoom": zoom,
            "entities": len(entities),
            "clusters": stats["total_clusters"],
            "points": stats["total_points"],
        })
    return profile
