"""Hierarchical zoom-level clustering index for map markers.

Builds a supercluster-style hierarchy once per point set: points are
projected to Web-Mercator, then merged bottom-up from ``max_zoom`` down to
``min_zoom``, two entities joining whenever they are within ``radius``
screen pixels of each other at that zoom. Each level is kept as an
immutable array, so viewport queries are a box filter over one level and
never rebuild anything.
"""

import time
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from sklearn.neighbors import KDTree

from src.geography.models import BBox, FeaturePoint, GeoPoint, Viewport
from src.geography.projection import (
    lat_y,
    lng_x,
    pixel_radius_to_unit,
    project,
    split_bbox,
)
from src.utils.logger import get_logger

from clustering.base import Clusterer, get_bounds_for_cluster_expansion
from clustering.entities import Cluster, ClusterEntity, ClusterOptions, IndividualPoint
from clustering.errors import ClusterNotFound

logger = get_logger(__name__)


@dataclass(frozen=True)
class _Node:
    """One entity of the hierarchy: a source point or a merged cluster."""
    
    x: float
    y: float
    count: int
    lon_sum: float
    lat_sum: float
    bounds: BBox
    leaves: Tuple[int, ...]
    zoom: Optional[int] = None
    children: Tuple[int, ...] = ()


@dataclass(frozen=True)
class _Level:
    node_ids: np.ndarray
    xy: np.ndarray


def _frozen(arr: np.ndarray) -> np.ndarray:
    arr.flags.writeable = False
    return arr


def _merge_bounds(boxes: Sequence[BBox]) -> BBox:
    return (
        min(b[0] for b in boxes),
        min(b[1] for b in boxes),
        max(b[2] for b in boxes),
        max(b[3] for b in boxes),
    )


class SpatialClusterIndex:
    """Static multi-zoom cluster index over a set of feature points.
    
    Build with SpatialClusterIndex.build(); an index is never modified
    afterwards, so it can be read from several threads while a newer one
    is being built.
    
    Node ids 0..n-1 are the input points in input order; cluster ids start
    at n and are handed out in build order, so the same input and options
    always produce the same ids.
    """
    
    def __init__(
        self,
        points: Tuple[FeaturePoint, ...],
        options: ClusterOptions,
        levels: Dict[int, _Level],
        nodes: Dict[int, _Node],
        separates_at: Dict[int, int],
    ):
        self._points = points
        self._options = options
        self._levels = levels
        self._nodes = nodes
        self._separates_at = separates_at
        self._leaf_by_feature: Dict[str, int] = {}
        for i, p in enumerate(points):
            self._leaf_by_feature.setdefault(p.id, i)
    
    @property
    def points(self) -> Tuple[FeaturePoint, ...]:
        return self._points
    
    @property
    def options(self) -> ClusterOptions:
        return self._options
    
    @property
    def cluster_count(self) -> int:
        return len(self._nodes) - len(self._points)
    
    @classmethod
    def build(
        cls,
        points: Sequence[FeaturePoint],
        options: Optional[ClusterOptions] = None,
    ) -> "SpatialClusterIndex":
        """Build the index for ``points``.
        
        Args:
            points: Feature points; their order fixes the cluster ids.
            options: Clustering options (default: ClusterOptions()).
            
        Returns:
            A new, immutable SpatialClusterIndex.
            
        Algorithm:
            For z = max_zoom .. min_zoom, over the entities of level z + 1:
            1. Query all neighbours within radius/(extent * 2**z) (KD-tree).
            2. Walk entities in level order; an unprocessed entity absorbs
               its unprocessed neighbours if the group reaches min_points,
               becoming a cluster at the count-weighted projected centroid.
            3. Groups that stay below min_points are emitted unchanged.
        """
        options = options or ClusterOptions()
        points = tuple(points)
        started = time.perf_counter()
        
        n = len(points)
        nodes: Dict[int, _Node] = {}
        separates_at: Dict[int, int] = {}
        
        lons = np.array([p.longitude for p in points], dtype=float)
        lats = np.array([p.latitude for p in points], dtype=float)
        xy = project(lons, lats) if n else np.zeros((0, 2))
        
        for i, p in enumerate(points):
            nodes[i] = _Node(
                x=float(xy[i, 0]),
                y=float(xy[i, 1]),
                count=1,
                lon_sum=p.longitude,
                lat_sum=p.latitude,
                bounds=(p.longitude, p.latitude, p.longitude, p.latitude),
                leaves=(i,),
            )
        
        levels: Dict[int, _Level] = {
            options.max_zoom + 1: _Level(
                node_ids=_frozen(np.arange(n, dtype=np.int64)),
                xy=_frozen(xy.copy()),
            )
        }
        next_id = n
        
        for zoom in range(options.max_zoom, options.min_zoom - 1, -1):
            below = levels[zoom + 1]
            ids = below.node_ids
            if len(ids) == 0:
                levels[zoom] = below
                continue
            
            r = pixel_radius_to_unit(options.radius, options.extent, zoom)
            neighbours = KDTree(below.xy).query_radius(below.xy, r=r)
            processed = np.zeros(len(ids), dtype=bool)
            out_ids: List[int] = []
            
            for i in range(len(ids)):
                if processed[i]:
                    continue
                processed[i] = True
                
                free = [j for j in np.sort(neighbours[i]) if not processed[j]]
                node = nodes[int(ids[i])]
                total = node.count + sum(nodes[int(ids[j])].count for j in free)
                
                if not free or total < options.min_points:
                    out_ids.append(int(ids[i]))
                    # too few to cluster: neighbours stay individual at this zoom
                    for j in free:
                        processed[j] = True
                        out_ids.append(int(ids[j]))
                    continue
                
                for j in free:
                    processed[j] = True
                group = [int(ids[k]) for k in [i] + free]
                members = [nodes[g] for g in group]
                
                cluster_id = next_id
                next_id += 1
                nodes[cluster_id] = _Node(
                    x=sum(m.x * m.count for m in members) / total,
                    y=sum(m.y * m.count for m in members) / total,
                    count=total,
                    lon_sum=sum(m.lon_sum for m in members),
                    lat_sum=sum(m.lat_sum for m in members),
                    bounds=_merge_bounds([m.bounds for m in members]),
                    leaves=tuple(leaf for m in members for leaf in m.leaves),
                    zoom=zoom,
                    children=tuple(group),
                )
                for g in group:
                    separates_at[g] = zoom + 1
                out_ids.append(cluster_id)
            
            level_ids = np.array(out_ids, dtype=np.int64)
            level_xy = np.array([[nodes[k].x, nodes[k].y] for k in out_ids], dtype=float)
            levels[zoom] = _Level(node_ids=_frozen(level_ids), xy=_frozen(level_xy))
        
        index = cls(points, options, levels, nodes, separates_at)
        logger.debug(
            f"Built cluster index over {n} points in "
            f"{(time.perf_counter() - started) * 1000:.1f}ms",
            clusters=index.cluster_count,
        )
        return index
    
    def _limit_zoom(self, zoom: float) -> int:
        return int(max(self._options.min_zoom, min(int(np.floor(zoom)), self._options.max_zoom + 1)))
    
    def _entity(self, node_id: int) -> ClusterEntity:
        if node_id < len(self._points):
            return IndividualPoint(self._points[node_id])
        node = self._nodes[node_id]
        return Cluster(
            id=node_id,
            coordinate=GeoPoint(
                longitude=node.lon_sum / node.count,
                latitude=node.lat_sum / node.count,
            ),
            point_count=node.count,
            member_ids=tuple(self._points[leaf].id for leaf in node.leaves),
            bounds=node.bounds,
            zoom=node.zoom,
        )
    
    def _cluster_node(self, cluster_id: int) -> _Node:
        if cluster_id < len(self._points) or cluster_id not in self._nodes:
            raise ClusterNotFound(cluster_id)
        return self._nodes[cluster_id]
    
    def get_clusters(self, bbox: BBox, zoom: float) -> List[ClusterEntity]:
        """Return clusters and points visible in ``bbox`` at ``zoom``.
        
        Args:
            bbox: (west, south, east, north) in degrees; may cross the
                antimeridian or be wider than 360°.
            zoom: Zoom level; floored and clamped to [min_zoom, max_zoom + 1].
            
        Returns:
            Entities in level order (stable for a fixed bbox and zoom).
        """
        level = self._levels[self._limit_zoom(zoom)]
        if len(level.node_ids) == 0:
            return []
        
        x = level.xy[:, 0]
        y = level.xy[:, 1]
        hits: List[np.ndarray] = []
        for west, south, east, north in split_bbox(bbox):
            mask = (
                (x >= lng_x(west)) & (x <= lng_x(east)) &
                (y >= lat_y(north)) & (y <= lat_y(south))
            )
            hits.append(np.flatnonzero(mask))
        
        positions = np.unique(np.concatenate(hits)) if len(hits) > 1 else hits[0]
        return [self._entity(int(level.node_ids[k])) for k in positions]
    
    def get_cluster(self, cluster_id: int) -> Cluster:
        """Return the cluster entity for ``cluster_id``.
        
        Raises:
            ClusterNotFound: If the id is unknown to this index.
        """
        self._cluster_node(cluster_id)
        return self._entity(cluster_id)
    
    def get_expansion_zoom(self, cluster_id: int) -> int:
        """Smallest zoom at which the cluster shows as more than one entity.
        
        A cluster formed at zoom z is made of entities that are still
        separate at z + 1, so that is where it splits.
        
        Raises:
            ClusterNotFound: If the id is unknown (e.g. index rebuilt since render).
        """
        node = self._cluster_node(cluster_id)
        return node.zoom + 1
    
    def get_children(self, cluster_id: int) -> List[ClusterEntity]:
        """Entities the cluster splits into at its expansion zoom."""
        node = self._cluster_node(cluster_id)
        return [self._entity(child) for child in node.children]
    
    def get_leaves(self, cluster_id: int, limit: Optional[int] = 10, offset: int = 0) -> List[IndividualPoint]:
        """Source points of the cluster, paginated (limit=None for all)."""
        node = self._cluster_node(cluster_id)
        end = None if limit is None else offset + limit
        return [IndividualPoint(self._points[leaf]) for leaf in node.leaves[offset:end]]
    
    def separation_zoom(self, feature_id: str) -> Optional[int]:
        """Zoom at which a source point becomes distinguishable from its parent.
        
        Returns None for unknown ids and for points that never join a
        cluster (visible on their own at every zoom).
        """
        leaf = self._leaf_by_feature.get(feature_id)
        if leaf is None:
            return None
        return self._separates_at.get(leaf)


class HierarchicalClustering(Clusterer):
    """Viewport clustering backed by a SpatialClusterIndex.
    
    Args:
        options: ClusterOptions (default: ClusterOptions()).
        **kwargs: Individual option overrides when options is None.
    """
    
    def __init__(self, options: Optional[ClusterOptions] = None, **kwargs):
        options = options or ClusterOptions(**kwargs)
        super().__init__(**asdict(options))
        self.options = options
        self.method = "hierarchical"
        self.index: Optional[SpatialClusterIndex] = None
    
    def fit(self, points: Sequence[FeaturePoint]) -> "HierarchicalClustering":
        """Build a fresh index over ``points``.
        
        The previous index is replaced, not modified, so readers holding it
        keep a consistent view.
        """
        self.index = SpatialClusterIndex.build(points, self.options)
        self._record_fit(self.index.points)
        return self
    
    def clusters(self, viewport: Viewport) -> List[ClusterEntity]:
        self._check_fitted()
        return self.index.get_clusters(viewport.bbox, viewport.zoom)
    
    def expansion_zoom(self, cluster: Cluster, viewport: Viewport) -> int:
        """Expansion zoom of ``cluster`` in the current index.
        
        Raises:
            ClusterNotFound: If the id is unknown or now names a different
                group of points (the index was rebuilt after render).
        """
        self._check_fitted()
        current = self.index.get_cluster(cluster.id)
        if current.member_ids != cluster.member_ids:
            raise ClusterNotFound(cluster.id)
        return self.index.get_expansion_zoom(cluster.id)


__all__ = [
    "SpatialClusterIndex",
    "HierarchicalClustering",
    "get_bounds_for_cluster_expansion",
]
