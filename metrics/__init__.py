"""Metrics package for clustering diagnostics.

Provides summary statistics and comparison metrics for the entity lists
produced by the clustering strategies.
"""

from metrics.clustering import (
    cluster_stats,
    format_cluster_count,
    entity_labels,
    grouping_agreement,
    zoom_profile,
)

__all__ = [
    "cluster_stats",
    "format_cluster_count",
    "entity_labels",
    "grouping_agreement",
    "zoom_profile",
]
