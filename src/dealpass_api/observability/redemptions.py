from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class RedemptionTelemetrySnapshot:
    redemptions: Dict[str, int]
    rejections: Dict[str, int]
    claims: Dict[str, int]
    inconsistencies: int
    reconciliation: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "redemptions": dict(self.redemptions),
            "rejections": dict(self.rejections),
            "claims": dict(self.claims),
            "inconsistencies": self.inconsistencies,
            "reconciliation": dict(self.reconciliation),
        }


class RedemptionObservabilityStore:
    """Count redemption outcomes for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._redemptions: Dict[str, int] = defaultdict(int)
        self._rejections: Dict[str, int] = defaultdict(int)
        self._claims: Dict[str, int] = defaultdict(int)
        self._inconsistencies = 0
        self._reconciliation: Dict[str, int] = defaultdict(int)

    def record_redemption(self, path: str) -> None:
        with self._lock:
            self._redemptions[path] += 1

    def record_rejection(self, code: str) -> None:
        with self._lock:
            self._rejections[code] += 1

    def record_claim(self, outcome: str) -> None:
        with self._lock:
            self._claims[outcome] += 1

    def record_inconsistency(self) -> None:
        with self._lock:
            self._inconsistencies += 1

    def record_reconciliation(self, *, orphaned: int, repaired: int) -> None:
        with self._lock:
            self._reconciliation["runs"] += 1
            self._reconciliation["orphaned"] += orphaned
            self._reconciliation["repaired"] += repaired

    def snapshot(self) -> RedemptionTelemetrySnapshot:
        with self._lock:
            return RedemptionTelemetrySnapshot(
                redemptions=dict(self._redemptions),
                rejections=dict(self._rejections),
                claims=dict(self._claims),
                inconsistencies=self._inconsistencies,
                reconciliation=dict(self._reconciliation),
            )

    def reset(self) -> None:
        with self._lock:
            self._redemptions.clear()
            self._rejections.clear()
            self._claims.clear()
            self._inconsistencies = 0
            self._reconciliation.clear()


_STORE = RedemptionObservabilityStore()


def get_redemption_telemetry() -> RedemptionObservabilityStore:
    return _STORE


__all__ = ["get_redemption_telemetry", "RedemptionObservabilityStore", "RedemptionTelemetrySnapshot"]
