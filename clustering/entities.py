"""Cluster options and the render entities produced by a clustering pass.

Entities are frozen value objects: every pass creates new ones and nothing
holds on to them across unrelated queries.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Generic, Optional, Tuple, Union

from src.geography.models import BBox, FeaturePoint, GeoPoint, P
from src.geography.projection import MAX_ZOOM_LEVEL

from clustering.errors import InvalidOptions


@dataclass(frozen=True)
class ClusterOptions:
    """Parameters of the hierarchical clustering index.
    
    Args:
        radius: Merge radius in screen pixels (default: 50).
        max_zoom: Highest zoom level at which points are still clustered (default: 16).
        min_zoom: Lowest zoom level an index is built for (default: 0).
        min_points: Minimum group size that forms a cluster (default: 2).
        extent: Tile extent in pixels the radius is relative to (default: 512).
        
    Raises:
        InvalidOptions: If any value is out of range.
    """
    
    radius: int = 50
    max_zoom: int = 16
    min_zoom: int = 0
    min_points: int = 2
    extent: int = 512
    
    def __post_init__(self):
        errors = []
        if not self.radius > 0:
            errors.append(f"radius must be > 0, got {self.radius}")
        if not 0 <= self.min_zoom <= self.max_zoom <= MAX_ZOOM_LEVEL:
            errors.append(
                f"expected 0 <= min_zoom <= max_zoom <= {MAX_ZOOM_LEVEL}, "
                f"got min_zoom={self.min_zoom}, max_zoom={self.max_zoom}"
            )
        if not self.min_points >= 2:
            errors.append(f"min_points must be >= 2, got {self.min_points}")
        if not self.extent > 0:
            errors.append(f"extent must be > 0, got {self.extent}")
        if errors:
            raise InvalidOptions("; ".join(errors), details={"options": asdict(self)})
    
    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]] = None) -> "ClusterOptions":
        """Build options from a (possibly camelCase) mapping; missing keys use defaults."""
        data = data or {}
        aliases = {"maxZoom": "max_zoom", "minZoom": "min_zoom", "minPoints": "min_points"}
        kwargs = {aliases.get(k, k): v for k, v in data.items()}
        unknown = set(kwargs) - {"radius", "max_zoom", "min_zoom", "min_points", "extent"}
        if unknown:
            raise InvalidOptions(f"Unknown cluster options: {sorted(unknown)}")
        return cls(**kwargs)


@dataclass(frozen=True)
class IndividualPoint(Generic[P]):
    """A single source point rendered on its own."""
    
    point: FeaturePoint[P]
    
    @property
    def coordinate(self) -> GeoPoint:
        return self.point.geometry
    
    @property
    def point_count(self) -> int:
        return 1
    
    @property
    def key(self) -> str:
        return f"marker-{self.point.id}"


@dataclass(frozen=True)
class Cluster:
    """Aggregate of nearby points at one zoom level.
    
    Attributes:
        id: Deterministic numeric id, used for expansion lookups.
        coordinate: Arithmetic mean of the member coordinates.
        point_count: Number of source points represented.
        member_ids: FeaturePoint ids in a deterministic order.
        bounds: (west, south, east, north) of the members.
        zoom: Zoom level the cluster was formed at, when known.
    """
    
    id: int
    coordinate: GeoPoint
    point_count: int
    member_ids: Tuple[str, ...]
    bounds: BBox
    zoom: Optional[int] = None
    
    @property
    def key(self) -> str:
        return f"cluster-{self.id}"


ClusterEntity = Union[IndividualPoint, Cluster]


def is_cluster(entity: ClusterEntity) -> bool:
    return isinstance(entity, Cluster)
