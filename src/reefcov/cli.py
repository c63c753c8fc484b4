"""Command-line entry point for covariate extraction.

Usage:
    python -m reefcov --records surveys.csv --collection noaa-crw-dhw-monthly
    python -m reefcov --records surveys.csv --window-months 3 --stat max -o out.parquet
    python -m reefcov --list-collections --catalog-url https://stac.example.org

Settings not given as flags are read from REEFCOV_* environment variables
(REEFCOV_CATALOG_URL, REEFCOV_ZONAL_URL, REEFCOV_COLLECTION_ID, ...).
"""

import argparse
import logging
import os
import signal
import sys
import threading
from pathlib import Path

from pydantic import ValidationError

from reefcov.config import ENV_PREFIX, SUPPORTED_STATS, ExtractionSettings
from reefcov.errors import CatalogUnavailable, ExtractionCancelled
from reefcov.pipelines.catalog import CatalogClient
from reefcov.pipelines.covariates import CovariatePipeline
from reefcov.records import load_survey_records
from reefcov.utils.io import get_data_path, write_table

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reefcov",
        description="Extract windowed zonal covariates for survey records",
        epilog="""
Examples:
  python -m reefcov --records surveys.csv --collection noaa-crw-dhw-monthly
  python -m reefcov --records surveys.csv --window-months 3 -o dhw.parquet
  python -m reefcov --list-collections --catalog-url https://stac.example.org
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--records", type=Path, help="Survey table (.csv or .parquet)")
    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Output table (.csv or .parquet, default: data/processed/covariates.csv)",
    )
    parser.add_argument("--diagnostics", type=Path, default=None, help="Write warnings to this table")
    parser.add_argument("--catalog-url", default=None, help="STAC API base URL")
    parser.add_argument("--zonal-url", default=None, help="Zonal statistics service base URL")
    parser.add_argument("--collection", dest="collection_id", default=None, help="Catalog collection id")
    parser.add_argument("--asset-key", default=None, help="Asset key within each item (default: first asset)")
    parser.add_argument("--band", default=None, help="Band key in zonal responses (default: band_1)")
    parser.add_argument("--stat", choices=SUPPORTED_STATS, default=None, help="Statistic (default: max)")
    parser.add_argument("--window-months", type=int, default=None, help="Trailing window in months (default: 12)")
    parser.add_argument(
        "--buffer",
        dest="buffer_radius_m",
        type=float,
        default=None,
        help="Buffer radius in meters for every record (default: per-record buffer_radius_m)",
    )
    parser.add_argument("--workers", dest="max_workers", type=int, default=None, help="Concurrent records")
    parser.add_argument("--timeout", dest="request_timeout", type=float, default=None, help="HTTP timeout (s)")
    parser.add_argument(
        "--list-collections",
        action="store_true",
        help="List the catalog's collections and exit",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress output except errors",
    )
    return parser


def list_collections(catalog_url: str | None) -> int:
    catalog_url = catalog_url or os.environ.get(f"{ENV_PREFIX}CATALOG_URL")
    if not catalog_url:
        logger.error("--catalog-url (or REEFCOV_CATALOG_URL) is required")
        return 2
    for collection_id in CatalogClient(catalog_url).list_collections():
        print(collection_id)
    return 0


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging
    if args.quiet:
        level = logging.ERROR
    elif args.verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        if args.list_collections:
            return list_collections(args.catalog_url)

        if args.records is None:
            parser.error("--records is required")

        try:
            settings = ExtractionSettings.from_env(
                catalog_url=args.catalog_url,
                zonal_url=args.zonal_url,
                collection_id=args.collection_id,
                asset_key=args.asset_key,
                band=args.band,
                stat=args.stat,
                window_months=args.window_months,
                buffer_radius_m=args.buffer_radius_m,
                max_workers=args.max_workers,
                request_timeout=args.request_timeout,
            )
        except ValidationError as e:
            logger.error(f"Invalid settings:\n{e}")
            return 2

        records = load_survey_records(args.records, default_buffer_m=settings.buffer_radius_m)

        # SIGTERM stops the run between records
        stop_event = threading.Event()
        signal.signal(signal.SIGTERM, lambda *_: stop_event.set())

        pipeline = CovariatePipeline.from_settings(settings, stop_event=stop_event)
        report = pipeline.run(
            records,
            window_months=settings.window_months,
            buffer_radius=settings.buffer_radius_m,
            stat=settings.stat,
        )

        df = report.to_dataframe(records)
        validation = pipeline.validate(df)
        logger.info(str(validation))
        for issue in validation.issues:
            logger.warning(issue)

        output = args.output or get_data_path("processed") / "covariates.csv"
        write_table(df, output)
        logger.info(f"Wrote {len(df)} rows to {output}")

        if args.diagnostics is not None:
            write_table(report.diagnostics_dataframe(), args.diagnostics)
            logger.info(f"Wrote {len(report.diagnostics)} diagnostics to {args.diagnostics}")

        return 0 if validation.valid else 1

    except CatalogUnavailable as e:
        logger.error(f"Catalog unavailable, aborting: {e}")
        return 1

    except ExtractionCancelled as e:
        logger.error(str(e))
        return 130

    except (ValueError, OSError) as e:
        logger.error(f"Extraction failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
