"""
Meter survey dashboard: end-to-end pipeline smoke run.

Fetches the dataset (configured backends, or the simulator when none are
set), then prints the summaries the dashboard panels are built from.

Usage:
    python main.py              # LPB_* environment variables, else simulator
    python main.py --simulate   # always use the simulator
    python main.py export.csv   # also dry-run an upload file through assembly
"""

import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent))

from lpb_dashboard.cache import DatasetCache
from lpb_dashboard.config import REGION_NAME, load_settings
from lpb_dashboard.dashboard import FilterState, apply_filter, filter_options, mappable_records
from lpb_dashboard.kpis import (
    GroupBy,
    SummaryMode,
    aggregate_by,
    daily_realization,
    overall_summary,
    summary_frame,
)
from lpb_dashboard.loaders.delimited import ParserService
from lpb_dashboard.service import DatasetService, build_sources
from lpb_dashboard.simulator import SimulatedSource
from lpb_dashboard.transforms import dedupe_for_upload, records_from_file

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def main(argv: list[str]) -> None:
    """Run the pipeline and print smoke-test outputs."""

    simulate = "--simulate" in argv
    upload_paths = [a for a in argv if not a.startswith("--")]

    print("=" * 70)
    print(f"  LPB DASHBOARD — {REGION_NAME}")
    print("  Pipeline Smoke Test")
    print("=" * 70)
    print()

    settings = load_settings()
    with ParserService() as parser:
        sources = [] if simulate else build_sources(settings, parser)
        if not sources:
            logger.info("Using simulated data source")
            sources = [SimulatedSource()]

        service = DatasetService(sources, DatasetCache(ttl=settings.cache_ttl))

        # ------------------------------------------------------------------
        # 1. Fetch dataset
        # ------------------------------------------------------------------
        print("[ 1 ] FETCHING DATASET")
        print("-" * 40)
        result = service.fetch_dataset(settings.table)
        print(f"\nSource: {result.source or '-'}")
        print(f"Records: {len(result.records)} ({result.rejected} rows rejected without ID)")
        print(f"From cache: {result.from_cache}, last sync: {result.timestamp:.0f}")
        if result.error:
            print(f"Error: {result.error}")

        # A second call inside the TTL is served from cache
        again = service.fetch_dataset(settings.table)
        print(f"Second fetch from cache: {again.from_cache}")

        records = list(result.records)

        # ------------------------------------------------------------------
        # 2. Filters
        # ------------------------------------------------------------------
        print("\n")
        print("[ 2 ] FILTERS")
        print("-" * 40)
        options = filter_options(records)
        print(f"\nPeriods: {options['periods']}")
        print(f"Units:   {options['units']}")

        filters = FilterState(unit=options["units"][0] if options["units"] else "")
        filtered = apply_filter(records, filters)
        print(f"\nFilter {filters}: {len(filtered)} records")
        print(f"Mappable points: {len(mappable_records(records))}")

        # ------------------------------------------------------------------
        # 3. Summaries
        # ------------------------------------------------------------------
        print("\n")
        print("[ 3 ] SUMMARIES")
        print("-" * 40)
        print(f"\nOverall: {overall_summary(records)}")

        print("\nBy unit (count):")
        print(summary_frame(aggregate_by(records, GroupBy.UNIT)).to_string(index=False))

        print("\nBy officer (billing):")
        by_officer = aggregate_by(records, GroupBy.OFFICER, SummaryMode.BILLING)
        print(summary_frame(by_officer).head(10).to_string(index=False))

        print("\nDaily realization:")
        print(daily_realization(records).head(15).to_string(index=False))

        # ------------------------------------------------------------------
        # 4. Upload dry run
        # ------------------------------------------------------------------
        for path in upload_paths:
            print("\n")
            print(f"[ 4 ] UPLOAD DRY RUN — {path}")
            print("-" * 40)
            assembled = records_from_file(path)
            unique, dropped = dedupe_for_upload(assembled.records)
            print(f"\nRows accepted: {len(assembled.records)}, rejected: {assembled.rejected}")
            print(f"After de-duplication: {len(unique)} ({dropped} duplicates dropped)")

        # ------------------------------------------------------------------
        # 5. Checks
        # ------------------------------------------------------------------
        print("\n")
        print("[ 5 ] CONSISTENCY CHECKS")
        print("-" * 40)

        by_unit = aggregate_by(records, GroupBy.UNIT)
        check1 = sum(e.total for e in by_unit) == len(records)
        print(f"\n  [{'PASS' if check1 else 'FAIL'}] Unit totals sum to record count")

        by_date = aggregate_by(records, GroupBy.DATE)
        realized = sum(e.realized for e in by_date)
        expected = sum(r.total_realized for r in records)
        check2 = abs(realized - expected) < 1e-6
        print(f"  [{'PASS' if check2 else 'FAIL'}] Daily realized total = {realized:,.0f}")

        ids = [r.customer_id for r in records]
        print(f"  [INFO] Distinct customer IDs: {len(set(ids))} of {len(ids)}")

    print("\n" + "=" * 70)
    print("  Pipeline complete.")
    print("=" * 70)


if __name__ == "__main__":
    main(sys.argv[1:])
