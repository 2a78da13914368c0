"""Greedy distance-threshold clustering for small point sets.

A single pass over the points in input order: each unprocessed point
collects every other unprocessed point within a threshold distance, and
the group becomes one cluster. The threshold comes from a step function of
the viewport's latitude span, so clusters shrink as the user zooms in.

Worst case is O(n²); this strategy is meant for hundreds of points, not
tens of thousands.
"""

from typing import List, Optional, Sequence

import numpy as np

from src.geography.distance import pairwise_distance_matrix
from src.geography.models import FeaturePoint, GeoPoint, Viewport
from src.geography.projection import MAX_ZOOM_LEVEL, MIN_ZOOM_LEVEL, delta_for_zoom

from clustering.base import Clusterer
from clustering.entities import Cluster, ClusterEntity, IndividualPoint
from clustering.errors import ClusterNotFound
from clustering.utils import stable_cluster_id

# (latitude_delta lower bound, threshold in meters), checked top-down with ">"
DISTANCE_STEPS = (
    (0.2, 3000.0),
    (0.1, 1500.0),
    (0.05, 800.0),
    (0.02, 300.0),
    (0.015, 150.0),
    (0.01, 75.0),
    (0.007, 30.0),
    (0.005, 15.0),
    (0.003, 5.0),
)
MIN_DISTANCE_M = 1.0

# Below this span only co-located points may share a marker
COLOCATED_DELTA = 0.005
COLOCATED_M = 1.0


def cluster_distance(latitude_delta: float) -> float:
    """Clustering threshold in meters for a viewport latitude span.
    
    Args:
        latitude_delta: Visible latitude span in degrees.
        
    Returns:
        float: 3000 m when zoomed far out down to 1 m at extreme zoom.
        
    Example:
        >>> cluster_distance(0.5)
        3000.0
        >>> cluster_distance(0.001)
        1.0
    """
    for lower, meters in DISTANCE_STEPS:
        if latitude_delta > lower:
            return meters
    return MIN_DISTANCE_M


class GreedyDistanceClustering(Clusterer):
    """Greedy single-pass clustering with a zoom-derived distance threshold.
    
    Args:
        clip_to_viewport: Only cluster points inside the viewport bbox (default: False).
        colocated_m: Max pairwise spread of a group at high zoom (default: 1.0).
    """
    
    def __init__(self, clip_to_viewport: bool = False, colocated_m: float = COLOCATED_M):
        super().__init__(clip_to_viewport=clip_to_viewport, colocated_m=colocated_m)
        self.clip_to_viewport = clip_to_viewport
        self.colocated_m = colocated_m
        self.method = "greedy"
        self.points_: Optional[tuple] = None
        self._lats: Optional[np.ndarray] = None
        self._lons: Optional[np.ndarray] = None
    
    def fit(self, points: Sequence[FeaturePoint]) -> "GreedyDistanceClustering":
        self.points_ = tuple(points)
        self._lats = np.array([p.latitude for p in self.points_], dtype=float)
        self._lons = np.array([p.longitude for p in self.points_], dtype=float)
        self._record_fit(self.points_)
        return self
    
    def _visible(self, viewport: Viewport) -> List[int]:
        if not self.clip_to_viewport:
            return list(range(len(self.points_)))
        return [i for i, p in enumerate(self.points_) if viewport.contains(p.geometry)]
    
    def clusters(self, viewport: Viewport) -> List[ClusterEntity]:
        """Cluster the (visible) points for ``viewport``.
        
        Algorithm:
            1. threshold = cluster_distance(viewport.latitude_delta)
            2. For each unprocessed point in input order, gather all other
               unprocessed points within threshold and mark them processed.
            3. Lone point -> IndividualPoint; group -> Cluster at the mean
               coordinate, unless the span is below COLOCATED_DELTA and the
               group spreads more than colocated_m, in which case every
               member is emitted individually.
        """
        self._check_fitted()
        visible = self._visible(viewport)
        if not visible:
            return []
        
        threshold = cluster_distance(viewport.latitude_delta)
        dist = pairwise_distance_matrix(self._lats[visible], self._lons[visible])
        processed = np.zeros(len(visible), dtype=bool)
        out: List[ClusterEntity] = []
        
        for i in range(len(visible)):
            if processed[i]:
                continue
            near = np.flatnonzero((dist[i] <= threshold) & ~processed)
            near = near[near != i]
            processed[i] = True
            processed[near] = True
            
            if len(near) == 0:
                out.append(IndividualPoint(self.points_[visible[i]]))
                continue
            
            group = [i] + near.tolist()
            if viewport.latitude_delta < COLOCATED_DELTA:
                spread = dist[np.ix_(group, group)].max()
                if spread > self.colocated_m:
                    out.extend(IndividualPoint(self.points_[visible[k]]) for k in group)
                    continue
            
            out.append(self._make_cluster([self.points_[visible[k]] for k in group]))
        
        return out
    
    def _make_cluster(self, members: List[FeaturePoint]) -> Cluster:
        lons = [m.longitude for m in members]
        lats = [m.latitude for m in members]
        member_ids = tuple(m.id for m in members)
        return Cluster(
            id=stable_cluster_id(member_ids),
            coordinate=GeoPoint(
                longitude=sum(lons) / len(lons),
                latitude=sum(lats) / len(lats),
            ),
            point_count=len(members),
            member_ids=member_ids,
            bounds=(min(lons), min(lats), max(lons), max(lats)),
        )
    
    def expansion_zoom(self, cluster: Cluster, viewport: Viewport) -> int:
        """First zoom above the current one whose threshold separates the members.
        
        Co-located members never separate, so they map to the maximum zoom.
        
        Raises:
            ClusterNotFound: If a member id is not among the fitted points.
        """
        self._check_fitted()
        positions = {p.id: i for i, p in enumerate(self.points_)}
        try:
            idx = [positions[m] for m in cluster.member_ids]
        except KeyError:
            raise ClusterNotFound(cluster.id) from None
        
        spread = pairwise_distance_matrix(self._lats[idx], self._lons[idx]).max()
        start = max(viewport.zoom + 1, MIN_ZOOM_LEVEL)
        for zoom in range(start, MAX_ZOOM_LEVEL + 1):
            delta = delta_for_zoom(zoom)
            if cluster_distance(delta) < spread:
                return zoom
            if delta < COLOCATED_DELTA and spread > self.colocated_m:
                return zoom
        return MAX_ZOOM_LEVEL
