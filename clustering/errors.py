"""Exceptions raised by the clustering layer."""

from typing import Any, Dict, Optional


class ClusteringError(Exception):
    """Base exception for clustering failures, with optional details."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidOptions(ClusteringError):
    """Cluster or engine configuration is invalid."""


class IndexNotBuilt(ClusteringError):
    """A query was issued before any index was built."""


class ClusterNotFound(ClusteringError):
    """Cluster id is unknown to the index (e.g. it was rebuilt since render)."""

    def __init__(self, cluster_id: Any):
        self.cluster_id = cluster_id
        super().__init__(
            f"No cluster with id {cluster_id}", details={"cluster_id": cluster_id}
        )
