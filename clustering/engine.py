"""Viewport-driven clustering controller.

ClusteringEngine owns the current point set, viewport and clustering
strategy, and turns changes to any of them into a published list of
render entities.

State machine:

    IDLE      --(data/viewport change)-->  COMPUTING
    COMPUTING --(another change)-------->  STALE
    COMPUTING --(result, still latest)-->  IDLE       result published
    STALE     --(result arrives)-------->  COMPUTING  result dropped, rerun on latest inputs

Every change bumps a request sequence number; a pass only publishes if its
number is still the latest one when it finishes. In-flight passes are never
cancelled, and at most one rerun is ever pending.
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Iterable, List, Mapping, Optional, Sequence, Tuple

from src.geography.models import FeaturePoint, P, Viewport
from src.geography.wkb import decode_batch
from src.utils.logger import get_logger

from clustering.base import Clusterer
from clustering.entities import Cluster, ClusterEntity, ClusterOptions, IndividualPoint, is_cluster
from clustering.errors import ClusterNotFound, InvalidOptions

logger = get_logger(__name__)

DEFAULT_MAX_ENTITIES = 500
DEFAULT_DEBOUNCE_MS = 100
DEFAULT_ASYNC_THRESHOLD = 200
# "auto" strategy uses the greedy clusterer up to this many points
AUTO_GREEDY_MAX_POINTS = 100

STRATEGIES = ("hierarchical", "greedy", "auto")


class EngineState(str, Enum):
    IDLE = "idle"
    COMPUTING = "computing"
    STALE = "stale"


@dataclass(frozen=True)
class _PassInputs:
    seq: int
    points: Tuple[FeaturePoint, ...]
    build_version: int
    viewport: Optional[Viewport]
    clusterer: Optional[Clusterer]


def cap_entities(entities: Sequence[ClusterEntity], max_entities: int) -> List[ClusterEntity]:
    """Truncate ``entities`` to at most ``max_entities``.
    
    Clusters win over individual points, then larger point counts, then
    earlier position. Survivors keep their original relative order.
    """
    if len(entities) <= max_entities:
        return list(entities)
    ranked = sorted(
        range(len(entities)),
        key=lambda i: (not is_cluster(entities[i]), -entities[i].point_count, i),
    )
    keep = sorted(ranked[:max_entities])
    logger.debug(f"Truncated {len(entities)} entities to {max_entities}")
    return [entities[i] for i in keep]


class ClusteringEngine(Generic[P]):
    """Owns points, viewport and strategy; publishes render entities.
    
    Args:
        options: ClusterOptions for the hierarchical strategy (default: ClusterOptions()).
        strategy: "hierarchical", "greedy" or "auto" (default: "hierarchical").
        max_entities: Cap on published entities (default: 500).
        debounce_ms: Quiet period for viewport changes (default: 100).
        async_threshold: Passes over more points run on a worker thread (default: 200).
        enable_clustering: When False, publish visible points unclustered (default: True).
        on_result: Called with each published entity list.
        on_marker_press: Called with the pressed IndividualPoint.
        on_cluster_press: Called with (cluster, target viewport).
        executor: Executor for background passes (default: a private single worker).
        
    Raises:
        InvalidOptions: If any setting is out of range.
        
    Note:
        on_result runs on whichever thread finished the pass: the caller's
        for small point sets, the worker's otherwise.
    """
    
    def __init__(
        self,
        options: Optional[ClusterOptions] = None,
        *,
        strategy: str = "hierarchical",
        max_entities: int = DEFAULT_MAX_ENTITIES,
        debounce_ms: float = DEFAULT_DEBOUNCE_MS,
        async_threshold: int = DEFAULT_ASYNC_THRESHOLD,
        enable_clustering: bool = True,
        on_result: Optional[Callable[[List[ClusterEntity]], Any]] = None,
        on_marker_press: Optional[Callable[[IndividualPoint], Any]] = None,
        on_cluster_press: Optional[Callable[[Cluster, Viewport], Any]] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        if strategy not in STRATEGIES:
            raise InvalidOptions(f"Unknown strategy: {strategy}. Must be one of: {', '.join(STRATEGIES)}")
        if max_entities <= 0:
            raise InvalidOptions(f"max_entities must be > 0, got {max_entities}")
        if debounce_ms < 0:
            raise InvalidOptions(f"debounce_ms must be >= 0, got {debounce_ms}")
        if async_threshold < 0:
            raise InvalidOptions(f"async_threshold must be >= 0, got {async_threshold}")
        
        self.options = options or ClusterOptions()
        self.strategy = strategy
        self.max_entities = max_entities
        self.debounce_ms = debounce_ms
        self.async_threshold = async_threshold
        self.enable_clustering = enable_clustering
        self.on_result = on_result
        self.on_marker_press = on_marker_press
        self.on_cluster_press = on_cluster_press
        
        self._cond = threading.Condition()
        self._state = EngineState.IDLE
        self._seq = 0
        
        self._points: Tuple[FeaturePoint, ...] = ()
        self._viewport: Optional[Viewport] = None
        self._build_version = 0
        # last fitted clusterer and the build version it belongs to
        self._built: Optional[Tuple[int, Clusterer]] = None
        
        self._entities: List[ClusterEntity] = []
        self._published_clusterer: Optional[Clusterer] = None
        self._published_viewport: Optional[Viewport] = None
        
        self._pending_viewport: Optional[Viewport] = None
        self._viewport_token = 0
        self._timer: Optional[threading.Timer] = None
        
        self._executor = executor
        self._owns_executor = executor is None
    
    # ------------------------------------------------------------------
    # Read side
    
    @property
    def state(self) -> EngineState:
        with self._cond:
            return self._state
    
    @property
    def entities(self) -> List[ClusterEntity]:
        """Most recently published entities."""
        with self._cond:
            return list(self._entities)
    
    @property
    def points(self) -> Tuple[FeaturePoint, ...]:
        with self._cond:
            return self._points
    
    @property
    def viewport(self) -> Optional[Viewport]:
        with self._cond:
            return self._viewport
    
    @property
    def clusterer(self) -> Optional[Clusterer]:
        """Clusterer that produced the published entities."""
        with self._cond:
            return self._published_clusterer
    
    # ------------------------------------------------------------------
    # Inputs
    
    def load_records(self, records: Iterable[Mapping[str, Any]]) -> int:
        """Decode raw records and replace the point set.
        
        Returns:
            int: Number of points that decoded successfully.
        """
        points = decode_batch(records)
        self.set_points(points)
        return len(points)
    
    def set_points(self, points: Sequence[FeaturePoint]) -> None:
        """Replace the point set and recompute right away (not debounced)."""
        with self._cond:
            self._points = tuple(points)
            self._build_version += 1
            inputs = self._next_pass()
        self._dispatch(inputs)

    def set_options(self, options: ClusterOptions) -> None:
        """Swap cluster options; the index is rebuilt on the next pass."""
        with self._cond:
            self.options = options
            self._build_version += 1
            inputs = self._next_pass()
        self._dispatch(inputs)
    
    def set_viewport(self, viewport: Viewport, immediate: bool = False) -> None:
        """Report a viewport change.
        
        Changes are coalesced over ``debounce_ms``; only the last viewport of
        a burst triggers a pass. ``immediate=True`` skips the debounce.
        """
        if immediate or self.debounce_ms == 0:
            with self._cond:
                self._cancel_pending_viewport()
                inputs = self._apply_viewport(viewport)
            self._dispatch(inputs)
            return
        
        with self._cond:
            self._pending_viewport = viewport
            self._viewport_token += 1
            token = self._viewport_token
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(self.debounce_ms / 1000.0, self._fire_viewport, args=(token,))
            timer.daemon = True
            self._timer = timer
        timer.start()
    
    def flush(self) -> None:
        """Apply a pending debounced viewport now."""
        with self._cond:
            viewport = self._cancel_pending_viewport()
            if viewport is None:
                return
            inputs = self._apply_viewport(viewport)
        self._dispatch(inputs)

    def _cancel_pending_viewport(self) -> Optional[Viewport]:
        with self._cond:
            viewport = self._pending_viewport
            self._pending_viewport = None
            self._viewport_token += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._cond.notify_all()
            return viewport
    
    def _fire_viewport(self, token: int) -> None:
        with self._cond:
            # a newer change or a flush superseded this timer
            if token != self._viewport_token or self._pending_viewport is None:
                return
            viewport = self._pending_viewport
            self._pending_viewport = None
            self._timer = None
            inputs = self._apply_viewport(viewport)
        self._dispatch(inputs)

    def _apply_viewport(self, viewport: Viewport) -> Optional[_PassInputs]:
        # caller holds self._cond
        self._viewport = viewport
        return self._next_pass()
    
    # ------------------------------------------------------------------
    # State machine
    
    def _snapshot(self) -> _PassInputs:
        clusterer = None
        if self._built is not None and self._built[0] == self._build_version:
            clusterer = self._built[1]
        return _PassInputs(
            seq=self._seq,
            points=self._points,
            build_version=self._build_version,
            viewport=self._viewport,
            clusterer=clusterer,
        )
    
    def _next_pass(self) -> Optional[_PassInputs]:
        # caller holds self._cond; None means the running pass will rerun
        self._seq += 1
        if self._state is not EngineState.IDLE:
            self._state = EngineState.STALE
            return None
        self._state = EngineState.COMPUTING
        return self._snapshot()

    def _dispatch(self, inputs: Optional[_PassInputs]) -> None:
        if inputs is None:
            return
        if len(inputs.points) > self.async_threshold:
            future = self._get_executor().submit(self._drive, inputs, True)
            future.add_done_callback(self._log_failure)
        else:
            self._drive(inputs)
    
    def _get_executor(self) -> ThreadPoolExecutor:
        with self._cond:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="clustering")
            return self._executor
    
    @staticmethod
    def _log_failure(future: Future) -> None:
        error = future.exception()
        if error is not None:
            logger.error(f"Background clustering pass failed: {error!r}")
    
    def _drive(self, inputs: Optional[_PassInputs], background: bool = False) -> None:
        while inputs is not None:
            if not background and len(inputs.points) > self.async_threshold:
                # a rerun picked up a point set that is too big for this thread
                self._dispatch(inputs)
                return
            try:
                clusterer, entities = self._compute(inputs)
            except Exception as e:
                # a failed pass publishes nothing rather than wedging the state machine
                logger.exception(f"Clustering pass {inputs.seq} failed: {e}")
                clusterer, entities = None, []
            inputs = self._complete(inputs, clusterer, entities)
    
    def _make_clusterer(self, n_points: int) -> Clusterer:
        from clustering import make_clusterer
        
        strategy = self.strategy
        if strategy == "auto":
            strategy = "greedy" if n_points <= AUTO_GREEDY_MAX_POINTS else "hierarchical"
        if strategy == "hierarchical":
            return make_clusterer(strategy, options=self.options)
        return make_clusterer(strategy, clip_to_viewport=True)
    
    def _compute(self, inputs: _PassInputs) -> Tuple[Optional[Clusterer], List[ClusterEntity]]:
        started = time.perf_counter()
        viewport = inputs.viewport
        
        if not self.enable_clustering:
            visible = [
                IndividualPoint(p) for p in inputs.points
                if viewport is None or viewport.contains(p.geometry)
            ]
            return None, cap_entities(visible, self.max_entities)
        
        clusterer = inputs.clusterer
        if clusterer is None:
            clusterer = self._make_clusterer(len(inputs.points)).fit(inputs.points)
        
        entities = clusterer.clusters(viewport) if viewport is not None else []
        entities = cap_entities(entities, self.max_entities)
        logger.debug(
            f"Clustered {len(inputs.points)} points into {len(entities)} entities "
            f"in {(time.perf_counter() - started) * 1000:.1f}ms",
            seq=inputs.seq,
        )
        return clusterer, entities
    
    def _complete(
        self,
        inputs: _PassInputs,
        clusterer: Optional[Clusterer],
        entities: List[ClusterEntity],
    ) -> Optional[_PassInputs]:
        with self._cond:
            if clusterer is not None and inputs.build_version == self._build_version:
                self._built = (inputs.build_version, clusterer)
            
            if inputs.seq != self._seq:
                logger.debug(f"Dropping stale clustering pass {inputs.seq} (latest {self._seq})")
                self._state = EngineState.COMPUTING
                return self._snapshot()
            
            self._entities = entities
            self._published_clusterer = clusterer
            self._published_viewport = inputs.viewport
            self._state = EngineState.IDLE
            self._cond.notify_all()
            callback = self.on_result
        
        if callback is not None:
            callback(list(entities))
        return None
    
    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no pass is running and no viewport change is pending.
        
        Returns:
            bool: False if ``timeout`` elapsed first.
        """
        with self._cond:
            return self._cond.wait_for(
                lambda: self._state is EngineState.IDLE and self._pending_viewport is None,
                timeout=timeout,
            )
    
    # ------------------------------------------------------------------
    # Events
    
    def press_marker(self, entity: IndividualPoint) -> None:
        if self.on_marker_press is not None:
            self.on_marker_press(entity)
    
    def press_cluster(self, cluster: Cluster) -> Optional[Viewport]:
        """Handle a tap on ``cluster``.
        
        Computes the viewport that expands the cluster and passes it to
        on_cluster_press. A cluster that no longer exists (the index was
        rebuilt since it was rendered) is ignored.
        
        Returns:
            The target Viewport, or None if the tap was ignored.
        """
        with self._cond:
            clusterer = self._published_clusterer
            viewport = self._published_viewport or self._viewport
        
        if clusterer is None or viewport is None:
            logger.warning(f"Ignoring press on cluster {cluster.id}: nothing published yet")
            return None
        
        try:
            target = clusterer.expansion_viewport(cluster, viewport)
        except ClusterNotFound:
            logger.warning(f"Ignoring press on stale cluster {cluster.id}", cluster_id=cluster.id)
            return None
        
        if self.on_cluster_press is not None:
            self.on_cluster_press(cluster, target)
        return target
    
    # ------------------------------------------------------------------
    # Lifecycle
    
    def close(self) -> None:
        """Cancel pending debounces and stop the private worker, if any."""
        self._cancel_pending_viewport()
        with self._cond:
            executor = self._executor if self._owns_executor else None
            self._executor = None if self._owns_executor else self._executor
        if executor is not None:
            executor.shutdown(wait=True)
    
    def __enter__(self) -> "ClusteringEngine[P]":
        return self
    
    def __exit__(self, *exc) -> None:
        self.close()
