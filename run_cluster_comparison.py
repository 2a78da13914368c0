#!/usr/bin/env python3
"""Cluster strategy comparison runner.

Decodes a raw record file, clusters it with both the hierarchical index and
the greedy distance clusterer for one viewport, prints summary statistics
and their agreement, and optionally exports GeoJSON and a side-by-side map.

Usage:
    python run_cluster_comparison.py --input records.jsonl \
        --lat 46.253 --lon 20.148 --lat-delta 0.05 --lon-delta 0.05

    # With exports
    python run_cluster_comparison.py --input records.jsonl --out out --plot
"""

import argparse
import os
import sys

import geopandas as gpd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from clustering import (
    GreedyDistanceClustering,
    HierarchicalClustering,
    InvalidOptions,
    cluster_distance,
    entities_to_gdf,
    load_records,
)
from clustering.config import load_config, options_from_config
from metrics.clustering import cluster_stats, grouping_agreement, zoom_profile
from src.geography import Viewport, decode_batch
from src.utils.logger import setup_logging


def plot_strategy_comparison(
    gdf_hier: gpd.GeoDataFrame,
    gdf_greedy: gpd.GeoDataFrame,
    viewport: Viewport,
    out_path: str,
) -> None:
    """Draw both entity lists side by side, marker size by point count.
    
    Args:
        gdf_hier: Hierarchical entities GeoDataFrame.
        gdf_greedy: Greedy entities GeoDataFrame.
        viewport: Viewport both were computed for (sets the axes limits).
        out_path: Output PNG path.
    """
    west, south, east, north = viewport.bbox
    fig, axes = plt.subplots(1, 2, figsize=(14, 7), sharex=True, sharey=True)
    
    for ax, gdf, title in (
        (axes[0], gdf_hier, "Hierarchical index"),
        (axes[1], gdf_greedy, "Greedy distance"),
    ):
        if len(gdf) > 0:
            points = gdf[gdf["kind"] == "point"]
            clusters = gdf[gdf["kind"] == "cluster"]
            if len(points) > 0:
                points.plot(ax=ax, color="#2b8cbe", markersize=12)
            if len(clusters) > 0:
                clusters.plot(
                    ax=ax, color="#e34a33", alpha=0.7,
                    markersize=clusters["point_count"].clip(upper=40) * 15,
                )
        ax.set_xlim(west, east)
        ax.set_ylim(south, north)
        ax.set_title(f"{title} ({len(gdf)} markers)")
        ax.set_xlabel("Longitude")
        ax.set_ylabel("Latitude")
    
    plt.tight_layout()
    plt.savefig(out_path, dpi=150, bbox_inches="tight")
    plt.close(fig)


def main() -> None:
    """Run both strategies on one record file and viewport.
    
    Raises:
        SystemExit: If loading or configuration fails.
    """
    parser = argparse.ArgumentParser(
        description="Compare hierarchical and greedy marker clustering"
    )
    parser.add_argument("--input", required=True, help="Record file (.jsonl, .json or .csv)")
    parser.add_argument("--config", default=None, help="Engine configuration JSON (optional)")
    parser.add_argument("--lat", type=float, default=None, help="Viewport center latitude (default: data center)")
    parser.add_argument("--lon", type=float, default=None, help="Viewport center longitude (default: data center)")
    parser.add_argument("--lat-delta", type=float, default=0.05, help="Viewport latitude span (default: 0.05)")
    parser.add_argument("--lon-delta", type=float, default=None, help="Viewport longitude span (default: lat-delta)")
    parser.add_argument("--out", default=None, help="Directory for GeoJSON exports")
    parser.add_argument("--plot", action="store_true", help="Also write a comparison PNG (needs --out)")
    parser.add_argument("--profile", action="store_true", help="Print entity counts per zoom")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    args = parser.parse_args()
    
    try:
        cfg = load_config(args.config)
        options = options_from_config(cfg)
    except InvalidOptions as e:
        print(f"[ERROR] Invalid configuration: {e}")
        sys.exit(1)
    setup_logging(json_logs=args.json_logs or cfg["logging"]["json"])
    
    print(f"[INFO] Loading records from {args.input}...")
    try:
        records = load_records(args.input)
    except (OSError, ValueError) as e:
        print(f"[ERROR] Failed to load records: {e}")
        sys.exit(1)
    
    points = decode_batch(records)
    print(f"[INFO] Decoded {len(points)} of {len(records)} records")
    if not points:
        print("[WARN] Nothing to cluster")
        return
    
    hier = HierarchicalClustering(options).fit(points)
    greedy = GreedyDistanceClustering(clip_to_viewport=True).fit(points)
    
    west, south, east, north = hier.data_bbox
    viewport = Viewport(
        center_latitude=args.lat if args.lat is not None else (south + north) / 2,
        center_longitude=args.lon if args.lon is not None else (west + east) / 2,
        latitude_delta=args.lat_delta,
        longitude_delta=args.lon_delta or args.lat_delta,
    )
    print(
        f"[INFO] Viewport zoom={viewport.zoom}, "
        f"greedy threshold={cluster_distance(viewport.latitude_delta):.0f}m"
    )
    
    hier_entities = hier.clusters(viewport)
    greedy_entities = greedy.clusters(viewport)
    
    for name, entities in (("hierarchical", hier_entities), ("greedy", greedy_entities)):
        stats = cluster_stats(entities)
        print(
            f"[INFO] {name:>12}: {len(entities)} markers, "
            f"{stats['total_clusters']} clusters (largest {stats['largest_cluster']}), "
            f"{stats['individual_points']} single points"
        )
    
    ari = grouping_agreement(hier_entities, greedy_entities, [p.id for p in points])
    print(f"[INFO] Grouping agreement (ARI): {ari:.3f}")
    
    if args.profile:
        for row in zoom_profile(hier.index, viewport.bbox):
            print(f"  zoom {row['zoom']:>2}: {row['entities']} entities ({row['clusters']} clusters)")
    
    if args.out:
        os.makedirs(args.out, exist_ok=True)
        gdf_hier = entities_to_gdf(hier_entities)
        gdf_greedy = entities_to_gdf(greedy_entities)
        for name, gdf in (("hierarchical", gdf_hier), ("greedy", gdf_greedy)):
            path = os.path.join(args.out, f"{name}_entities.geojson")
            if len(gdf) > 0:
                gdf.to_file(path, driver="GeoJSON")
                print(f"[OK] Wrote {path}")
        if args.plot:
            png = os.path.join(args.out, "strategy_comparison.png")
            plot_strategy_comparison(gdf_hier, gdf_greedy, viewport, png)
            print(f"[OK] Wrote {png}")
    
    print("[DONE] Cluster comparison complete.")


if __name__ == "__main__":
    main()
