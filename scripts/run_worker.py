"""Run one bounded pass of a pipeline worker, as the scheduler would.

Usage:
    python scripts/run_worker.py activation
    python scripts/run_worker.py backfill --real --force --sequence-id demo-renewal
"""

from __future__ import annotations

import argparse
import json

from cadence.core.config import AppSettings
from cadence.core.logging import setup_logging
from cadence.workers.runner import WORKERS, build_pipeline, run_worker


def main() -> None:
    parser = argparse.ArgumentParser(description="Run a Cadence pipeline worker once")
    parser.add_argument("worker", choices=WORKERS)
    parser.add_argument("--real", action="store_true", help="Backfill: write records (default is a dry run)")
    parser.add_argument("--force", action="store_true", help="Backfill: also fill earlier steps")
    parser.add_argument("--sequence-id", default=None, help="Backfill: limit to one sequence")
    parser.add_argument("--member-id", action="append", dest="member_ids", help="Backfill: limit to members")
    args = parser.parse_args()

    settings = AppSettings()
    setup_logging(settings.log_level, settings.log_format)
    result = run_worker(
        args.worker, build_pipeline(settings),
        dry_run=not args.real, force=args.force,
        sequence_id=args.sequence_id, member_ids=args.member_ids,
    )
    print(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2))


if __name__ == "__main__":
    main()
