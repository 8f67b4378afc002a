#!/usr/bin/env python3
"""Quick health check for DealPass redemption observability.

Usage:
    python tooling/scripts/check_observability.py \
        --base-url https://staging-api.example.com \
        --api-key "$OPERATOR_API_KEY"

The script validates:
  * Redemption telemetry: inconsistencies and storage conflicts stay within thresholds.
  * Reconciliation: orphaned redeemed wallet items have not piled up (optional sweep).
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any, Dict, Optional

import httpx


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="DealPass redemption observability checker")
    parser.add_argument(
        "--base-url",
        default="http://localhost:8000",
        help="Base URL of the DealPass API service.",
    )
    parser.add_argument(
        "--api-key",
        default=None,
        help="Operator API key for the observability endpoints.",
    )
    parser.add_argument(
        "--max-inconsistencies",
        type=int,
        default=0,
        help="Maximum redeemed items without a record before failing (default: 0).",
    )
    parser.add_argument(
        "--max-conflicts",
        type=int,
        default=5,
        help="Maximum unresolved redemption conflicts before failing (default: 5).",
    )
    parser.add_argument(
        "--sweep",
        action="store_true",
        help="Also run a read-only reconciliation sweep and fail on orphaned items.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="HTTP request timeout in seconds.",
    )
    return parser.parse_args()


def _headers(api_key: Optional[str]) -> Dict[str, str]:
    return {"X-API-Key": api_key} if api_key else {}


def _fail(message: str) -> None:
    print(f"[check-observability] FAIL {message}")
    sys.exit(1)


def _log_ok(message: str) -> None:
    print(f"[check-observability] OK {message}")


async def validate_redemptions(
    client: httpx.AsyncClient,
    api_key: Optional[str],
    max_inconsistencies: int,
    max_conflicts: int,
) -> None:
    response = await client.get("/api/v1/observability/redemptions", headers=_headers(api_key))
    response.raise_for_status()
    payload: Dict[str, Any] = response.json()

    inconsistencies = int(payload.get("inconsistencies", 0))
    rejections = payload.get("rejections", {}) or {}
    conflicts = int(rejections.get("redemption_conflict", 0))
    redemptions = payload.get("redemptions", {}) or {}

    if inconsistencies > max_inconsistencies:
        _fail(f"Redemption inconsistencies {inconsistencies} exceed threshold {max_inconsistencies}")
    if conflicts > max_conflicts:
        _fail(f"Redemption conflicts {conflicts} exceed threshold {max_conflicts}")

    _log_ok(
        f"Redemption telemetry OK (owned={redemptions.get('owned', 0)}, "
        f"unowned={redemptions.get('unowned', 0)}, conflicts={conflicts}, "
        f"inconsistencies={inconsistencies})"
    )


async def validate_reconciliation(client: httpx.AsyncClient, api_key: Optional[str]) -> None:
    response = await client.post(
        "/api/v1/observability/redemptions/reconcile",
        params={"repair": "false"},
        headers=_headers(api_key),
    )
    response.raise_for_status()
    summary = response.json()
    orphaned = int(summary.get("orphaned", 0))
    if orphaned:
        sample = ", ".join(summary.get("wallet_item_ids", [])[:5])
        _fail(f"Found {orphaned} redeemed wallet items without records ({sample})")
    _log_ok("Reconciliation sweep found no orphaned wallet items")


async def main() -> None:
    args = parse_args()

    async with httpx.AsyncClient(base_url=args.base_url, timeout=args.timeout) as client:
        await validate_redemptions(
            client,
            api_key=args.api_key,
            max_inconsistencies=args.max_inconsistencies,
            max_conflicts=args.max_conflicts,
        )
        if args.sweep:
            await validate_reconciliation(client, api_key=args.api_key)

    _log_ok("Observability checks completed successfully")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except httpx.HTTPStatusError as exc:
        _fail(f"HTTP {exc.response.status_code} while calling {exc.request.url}")
    except httpx.HTTPError as exc:
        _fail(f"Request failed: {exc}")
