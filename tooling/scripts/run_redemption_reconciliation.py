"""Run a single redemption consistency sweep.

Lists redeemed wallet items that have no redemption record. Pass ``--repair``
to append the missing records.

Example:
    python tooling/scripts/run_redemption_reconciliation.py --trigger cron --repair
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Execute a redemption reconciliation sweep once")
    parser.add_argument(
        "--trigger",
        default="manual",
        help="Label recorded in logs to describe the invocation source.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Override the number of wallet items inspected in this sweep.",
    )
    parser.add_argument(
        "--repair",
        action="store_true",
        help="Append missing redemption records for orphaned wallet items.",
    )
    return parser.parse_args()


async def _run(trigger: str, limit: int | None, repair: bool) -> dict[str, object]:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from dealpass_api.core.settings import settings  # type: ignore import-position
    from dealpass_api.db.session import async_session  # type: ignore import-position
    from dealpass_api.workers import RedemptionReconciliationWorker  # type: ignore import-position

    worker = RedemptionReconciliationWorker(
        async_session,  # type: ignore[arg-type]
        limit=limit or settings.redemption_reconciliation_limit,
        repair=repair,
        trigger_label=trigger,
    )
    summary = await worker.run_once(triggered_by=trigger)
    return summary.as_dict()


def main() -> int:
    args = parse_args()
    summary = asyncio.run(_run(args.trigger, args.limit, args.repair))
    logger.success(
        "Redemption reconciliation run completed",
        orphaned=summary.get("orphaned", 0),
        repaired=summary.get("repaired", 0),
        trigger=args.trigger,
    )
    return 1 if summary.get("orphaned") and not args.repair else 0


if __name__ == "__main__":
    sys.exit(main())
