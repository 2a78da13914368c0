"""Unit tests for metrics.clustering module."""

import pytest

from clustering import (
    GreedyDistanceClustering,
    HierarchicalClustering,
    SpatialClusterIndex,
    is_cluster,
)
from metrics.clustering import (
    cluster_stats,
    entity_labels,
    format_cluster_count,
    grouping_agreement,
    zoom_profile,
)

WORLD = (-180.0, -90.0, 180.0, 90.0)


class TestClusterStats:
    """Test suite for cluster_stats function."""

    def test_counts(self, szeged_points):
        """Test totals over a mixed entity list."""
        index = SpatialClusterIndex.build(szeged_points)
        entities = index.get_clusters(WORLD, 0)
        
        stats = cluster_stats(entities)
        
        assert stats == {
            "total_clusters": 1,
            "total_points": 10,
            "largest_cluster": 10,
            "individual_points": 0,
        }

    def test_empty(self):
        """Test an empty list gives zeros."""
        assert cluster_stats([])["total_points"] == 0


class TestFormatClusterCount:
    """Test suite for format_cluster_count function."""

    @pytest.mark.parametrize("count,label", [
        (2, "2"),
        (999, "999"),
        (1000, "1k"),
        (1234, "1.2k"),
        (9999, "9.9k"),
        (12345, "12k"),
        (999999, "999k"),
        (1250000, "1.2M"),
    ])
    def test_labels(self, count, label):
        """Test abbreviation thresholds."""
        assert format_cluster_count(count) == label


class TestGroupingAgreement:
    """Test suite for entity_labels and grouping_agreement."""

    def test_labels(self, pair_points, world_viewport):
        """Test each id is labelled with its entity index."""
        entities = GreedyDistanceClustering().fit(pair_points).clusters(world_viewport)
        
        labels = entity_labels(entities, ["a", "b", "missing"])
        
        assert labels.tolist() == [0, 0, -1]

    def test_identical_groupings(self, szeged_points, world_viewport):
        """Test a grouping agrees perfectly with itself."""
        entities = HierarchicalClustering().fit(szeged_points).clusters(world_viewport)
        ids = [p.id for p in szeged_points]
        
        assert grouping_agreement(entities, entities, ids) == pytest.approx(1.0)

    def test_strategies_compared(self, szeged_points, city_viewport):
        """Test agreement between strategies lies in the ARI range."""
        ids = [p.id for p in szeged_points]
        hier = HierarchicalClustering().fit(szeged_points).clusters(city_viewport)
        greedy = GreedyDistanceClustering().fit(szeged_points).clusters(city_viewport)
        
        score = grouping_agreement(hier, greedy, ids)
        
        assert -1.0 <= score <= 1.0


class TestZoomProfile:
    """Test suite for zoom_profile function."""

    def test_profile(self, blob_points):
        """Test one row per zoom, points conserved and entities non-decreasing."""
        index = SpatialClusterIndex.build(blob_points)
        
        profile = zoom_profile(index, WORLD)
        
        assert [row["zoom"] for row in profile] == list(range(0, 18))
        assert all(row["points"] == 300 for row in profile)
        entities = [row["entities"] for row in profile]
        assert entities == sorted(entities)
        assert profile[-1]["clusters"] == 0
