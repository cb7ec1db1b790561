import argparse
import json
import logging
import os
import sys
from typing import Optional

from . import config
from .errors import GeocodingError
from .index.snapshot import Snapshot, build_snapshot, snapshot_from_pois
from .poi.ingest import fetch_overpass_pois, load_boundary, load_raw_pois
from .poi.normalize import IngestionReport
from .poi.schema import CategoryGroup, dumps_canonical, pois_from_geojson, to_geodataframe
from .query.buffers import buffers_to_geodataframe, generate_buffers
from .service import GeocodingService

logger = logging.getLogger(__name__)

CANONICAL_FILE = "canonical_pois.geojson"
REPORT_FILE = "ingestion_report.json"


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="mapifyit",
        description=f"MapifyIt POI geocoding for {config.REGION_NAME}",
    )
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = ap.add_subparsers(dest="command", required=True)

    ing = sub.add_parser("ingest", help="Normalize raw POIs into a canonical dataset")
    src = ing.add_mutually_exclusive_group(required=True)
    src.add_argument("--raw", help="Raw POI GeoJSON (e.g., data/rawPois.geojson)")
    src.add_argument("--overpass", action="store_true", help=f"Fetch raw POIs from Overpass for bbox {config.REGION_BBOX}")
    ing.add_argument("--boundary", help="Region boundary file (e.g., data/islamabad.geojson)")
    ing.add_argument("--out", required=True, help="Output directory for canonical dataset + report")
    ing.add_argument("--parquet", action="store_true", help="Also write canonical_pois.parquet")
    ing.add_argument("--overpass-limit", type=int, help="Keep at most this many Overpass elements")
    ing.add_argument("--overpass-fallback", action="store_true", help="Use the built-in landmark POIs if Overpass is unreachable")

    srch = sub.add_parser("search", help="Search canonical POIs by name")
    srch.add_argument("query")
    srch.add_argument("--canonical", required=True, help=f"Path to {CANONICAL_FILE}")

    rev = sub.add_parser("reverse", help="Nearest POI to a point")
    rev.add_argument("lat")
    rev.add_argument("lng")
    rev.add_argument("--canonical", required=True, help=f"Path to {CANONICAL_FILE}")

    buf = sub.add_parser("buffers", help="Geodesic buffers around one category")
    buf.add_argument("category_group", help=f"One of {[g.value for g in CategoryGroup]}")
    buf.add_argument("radius_meters")
    buf.add_argument("--canonical", required=True, help=f"Path to {CANONICAL_FILE}")
    buf.add_argument("--out", help="Write buffers to this GeoJSON file instead of stdout")
    return ap


def load_canonical_snapshot(path: str) -> Snapshot:
    with open(path, "r", encoding="utf-8") as f:
        pois = pois_from_geojson(json.load(f))

    report_path = os.path.join(os.path.dirname(path), REPORT_FILE)
    if os.path.exists(report_path):
        with open(report_path, "r", encoding="utf-8") as f:
            report = IngestionReport(**json.load(f))
    else:
        counts = {g.value: 0 for g in CategoryGroup}
        for p in pois:
            counts[p.category_group.value] += 1
        report = IngestionReport(
            total_raw=len(pois), total_kept=len(pois), duplicates_dropped=0,
            invalid_dropped=0, category_counts=counts,
        )
    return snapshot_from_pois(pois, report)


def run_ingest(args) -> int:
    if args.overpass:
        records = fetch_overpass_pois(limit=args.overpass_limit, use_fallback=args.overpass_fallback)
    else:
        records = load_raw_pois(args.raw)
    boundary = load_boundary(args.boundary)
    snapshot = build_snapshot(records, boundary)

    os.makedirs(args.out, exist_ok=True)
    canonical_path = os.path.join(args.out, CANONICAL_FILE)
    with open(canonical_path, "w", encoding="utf-8") as f:
        f.write(dumps_canonical(snapshot.pois))
    with open(os.path.join(args.out, REPORT_FILE), "w", encoding="utf-8") as f:
        json.dump(snapshot.report.to_dict(), f, indent=2, sort_keys=True)
    if args.parquet:
        to_geodataframe(snapshot.pois).to_parquet(os.path.join(args.out, "canonical_pois.parquet"))

    logger.info(f"[ok] Wrote {len(snapshot.pois)} canonical POIs to {canonical_path}")
    print(json.dumps(snapshot.report.to_dict(), indent=2, sort_keys=True))
    return 0


def run_query(args) -> int:
    service = GeocodingService()
    service.publish(load_canonical_snapshot(args.canonical))

    if args.command == "search":
        result = service.search(args.query)
    elif args.command == "reverse":
        result = service.reverse(args.lat, args.lng)
    elif args.out:
        try:
            buffers = generate_buffers(service.holder.current(), args.category_group, args.radius_meters)
        except GeocodingError as e:
            print(json.dumps({"error": e.kind.value, "message": str(e)}))
            return 1
        gdf = buffers_to_geodataframe(buffers)
        gdf.to_file(args.out, driver="GeoJSON")
        logger.info(f"[ok] Wrote {len(gdf)} buffers to {args.out}")
        return 0
    else:
        result = service.buffers(args.category_group, args.radius_meters)

    if not result.ok:
        print(json.dumps({"error": result.error.value, "message": result.message}))
        return 1
    print(json.dumps(result.data, indent=2, ensure_ascii=False))
    return 0


def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        if args.command == "ingest":
            return run_ingest(args)
        return run_query(args)
    except KeyboardInterrupt:
        print("\n[cli] Interrupted.", file=sys.stderr)
        return 130
    except GeocodingError as e:
        logger.error(f"[cli] Fatal error: {e}")
        return 2
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.error(f"[cli] Could not read input: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
