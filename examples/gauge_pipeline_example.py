"""Example: Stream gauges joined to state boundaries.

Writes a small gauge table and two state polygons, then runs the pipeline
from examples/pipeline.yaml:

1. Load and harmonize into CONUS Albers
2. Join gauges to states and list gauges outside both
3. Render a PNG map and export a GeoPackage with one layer per state

Pass --live to also traverse the river network upstream of each gauge
through the USGS NLDI and fetch daily discharge (needs network access).
"""

import argparse
from pathlib import Path

import geopandas as gpd
from shapely.geometry import box

from hydrosmith.config import configure_logging, load_config
from hydrosmith.workflows import GaugePipeline, plot_hydrograph

HERE = Path(__file__).parent


def write_example_data(data_dir: Path) -> None:
    """Gauge table and state outlines (simplified to rectangles)."""
    data_dir.mkdir(parents=True, exist_ok=True)
    (data_dir / "gages.csv").write_text(
        "STAID,STANAME,LON,LAT\n"
        "06719505,CLEAR CREEK AT GOLDEN,-105.235,39.753\n"
        "07105500,FOUNTAIN CREEK AT COLORADO SPRINGS,-104.813,38.818\n"
        "09180000,DOLORES RIVER NEAR CISCO,-109.320,38.797\n"
        "06891000,KANSAS RIVER AT LAWRENCE,-95.242,38.983\n"
    )
    states = gpd.GeoDataFrame(
        {"NAME": ["Colorado", "Utah"]},
        geometry=[box(-109.05, 37.0, -102.05, 41.0), box(-114.05, 37.0, -109.05, 42.0)],
        crs="EPSG:4269",
    )
    states.to_file(data_dir / "states.gpkg", layer="states", driver="GPKG", engine="pyogrio")


def main():
    """Run the gauge pipeline example."""
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--live", action="store_true", help="query NLDI and NWIS")
    args = parser.parse_args()

    configure_logging()
    print("=" * 60)
    print("Stream Gauge Pipeline Example")
    print("=" * 60)

    print("\n1. Writing example data...")
    write_example_data(HERE / "data")

    config = load_config(HERE / "pipeline.yaml")
    if not args.live:
        config.fetch.enabled = False
        print("   Network fetch disabled (use --live to enable)")

    print("\n2. Running pipeline...")
    result = GaugePipeline(config).run()
    for stage, count in result.summary().items():
        print(f"   {stage:16s} {count}")

    print("\n3. Gauges by state:")
    attrs = result.joined.collection.attributes
    for _, row in attrs.iterrows():
        print(f"   {row['STAID']}  {row['NAME']:10s} {row['STANAME']}")
    print(f"   Outside: {result.outside.collection.ids('STAID')}")

    if result.fetch_failures:
        print("\n   Fetch failures:")
        for failure in result.fetch_failures:
            print(f"   {failure.origin_id}: {failure.error}")

    if result.daily is not None and not result.daily.empty:
        output = HERE / "outputs" / "hydrograph.png"
        plot_hydrograph(
            result.daily, label_col="station_nm", ylabel="Discharge (cfs)", output=output
        )
        print(f"\n   {len(result.gaps)} gaps in the daily record")
        print(f"   Hydrograph saved to {output}")

    print(f"\n4. Map saved to {result.image_path}")
    print(f"   GeoPackage layers: {result.manifest.layers}")


if __name__ == "__main__":
    main()
