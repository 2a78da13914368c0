"""Base clustering interface for the viewport clustering engine.

Defines the abstract base class Clusterer that both clustering strategies
implement, so the engine can swap the hierarchical index for the greedy
distance clusterer without changing how it asks for entities or handles
cluster taps.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from src.geography.models import FeaturePoint, Viewport
from src.geography.projection import MIN_DELTA, MAX_ZOOM_LEVEL, delta_for_zoom

from clustering.entities import Cluster, ClusterEntity
from clustering.errors import IndexNotBuilt
from clustering.utils import (
    canonical_params_json,
    param_hash_from_json,
    HYPERPARAM_KEYS,
)


def get_bounds_for_cluster_expansion(
    cluster: Cluster,
    target_zoom: int,
    current_viewport: Viewport,
) -> Viewport:
    """Viewport to animate to when a cluster is tapped.
    
    Centers on the middle of the members' bounding box with a latitude span
    of ``360 / 2**target_zoom``. Spans are clamped from below by MIN_DELTA so
    coincident points cannot zoom forever, and from above by the current
    spans so a tap never zooms out. The longitude span keeps the current
    viewport's aspect ratio.
    
    Args:
        cluster: Cluster that was tapped.
        target_zoom: Zoom at which the cluster expands.
        current_viewport: Viewport at the time of the tap.
        
    Returns:
        New Viewport.
    """
    west, south, east, north = cluster.bounds
    center_lat = (south + north) / 2.0
    center_lon = (west + east) / 2.0
    
    aspect = current_viewport.longitude_delta / current_viewport.latitude_delta
    lat_delta = delta_for_zoom(min(target_zoom, MAX_ZOOM_LEVEL))
    lon_delta = lat_delta * aspect
    
    lat_delta = min(max(lat_delta, MIN_DELTA), current_viewport.latitude_delta)
    lon_delta = min(max(lon_delta, MIN_DELTA), current_viewport.longitude_delta)
    
    return Viewport(
        center_latitude=center_lat,
        center_longitude=center_lon,
        latitude_delta=lat_delta,
        longitude_delta=lon_delta,
    )


class Clusterer(ABC):
    """Abstract base class for clustering strategies.
    
    All strategies implement this interface to provide consistent fit,
    clusters and expansion operations.
    
    Attributes:
        params: Dictionary of strategy-specific parameters.
        n_samples: Number of points after fitting.
        data_bbox: Bounding box of input data (west, south, east, north).
        method: Strategy name, set by subclasses.
    """
    
    def __init__(self, **params):
        self.params = params
        self.n_samples: Optional[int] = None
        self.data_bbox: Optional[Tuple[float, float, float, float]] = None
        self.method: Optional[str] = None
    
    @abstractmethod
    def fit(self, points: Sequence[FeaturePoint]) -> "Clusterer":
        """Prepare the strategy for queries over ``points``.
        
        Args:
            points: Decoded feature points.
            
        Returns:
            self for method chaining.
        """
        pass
    
    @abstractmethod
    def clusters(self, viewport: Viewport) -> List[ClusterEntity]:
        """Return the entities to render for ``viewport``.
        
        Raises:
            IndexNotBuilt: If fit() has not been called.
        """
        pass
    
    @abstractmethod
    def expansion_zoom(self, cluster: Cluster, viewport: Viewport) -> int:
        """Zoom level at which ``cluster`` splits into more than one entity.
        
        Raises:
            ClusterNotFound: If the cluster is unknown to this strategy.
        """
        pass
    
    @property
    def is_fitted(self) -> bool:
        return self.n_samples is not None
    
    def _check_fitted(self) -> None:
        if not self.is_fitted:
            raise IndexNotBuilt(f"{self.method} clusterer not fitted. Run .fit() first.")
    
    def _record_fit(self, points: Sequence[FeaturePoint]) -> None:
        self.n_samples = len(points)
        if points:
            lons = [p.longitude for p in points]
            lats = [p.latitude for p in points]
            self.data_bbox = (min(lons), min(lats), max(lons), max(lats))
        else:
            self.data_bbox = None
    
    def expansion_viewport(self, cluster: Cluster, viewport: Viewport) -> Viewport:
        """Viewport that expands ``cluster``, starting from ``viewport``."""
        zoom = self.expansion_zoom(cluster, viewport)
        return get_bounds_for_cluster_expansion(cluster, zoom, viewport)
    
    def info(self) -> Dict[str, Any]:
        """Return clusterer information.
        
        Returns:
            Dictionary with method name, params, params_json, params_hash,
            n_samples, data_bbox and timestamp.
        """
        if self.method is None:
            raise RuntimeError("Method name not set. This should not happen.")
        
        include = HYPERPARAM_KEYS.get(self.method, set())
        params_json = canonical_params_json(self.method, self.params, include)
        
        return {
            "method": self.method,
            "params": self.params,
            "params_json": params_json,
            "params_hash": param_hash_from_json(params_json),
            "n_samples": self.n_samples,
            "data_bbox": self.data_bbox,
            "timestamp": datetime.now().isoformat(),
        }
