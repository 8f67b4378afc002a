"""Worker wiring for redemption consistency sweeps."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from dealpass_api.core.settings import settings
from dealpass_api.services.redemptions.reconciliation import ReconciliationSummary, reconcile_redemptions
from dealpass_api.services.redemptions.store import SqlAlchemyRedemptionStore

SessionFactory = Callable[[], Awaitable[AsyncSession]] | Callable[[], AsyncSession]


class RedemptionReconciliationWorker:
    """Periodically looks for redeemed wallet items missing a redemption record."""

    # meta: worker: redemption-reconciliation

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        interval_seconds: int | None = None,
        limit: int | None = None,
        repair: bool | None = None,
        trigger_label: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.redemption_reconciliation_interval_seconds
        self._limit = limit or settings.redemption_reconciliation_limit
        self._repair = settings.redemption_reconciliation_repair if repair is None else repair
        self._trigger_label = trigger_label or settings.redemption_reconciliation_trigger_label
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.is_running: bool = False

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        self.is_running = True
        logger.info(
            "Redemption reconciliation worker started",
            interval_seconds=self.interval_seconds,
            limit=self._limit,
            repair=self._repair,
        )

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self.is_running = False
        logger.info("Redemption reconciliation worker stopped")

    async def run_once(
        self,
        *,
        repair: bool | None = None,
        triggered_by: str | None = None,
    ) -> ReconciliationSummary:
        """Execute a single sweep and log a structured summary."""

        trigger = triggered_by or self._trigger_label
        should_repair = self._repair if repair is None else repair

        session = await self._ensure_session()
        async with session as managed_session:
            store = SqlAlchemyRedemptionStore(managed_session)
            try:
                summary = await reconcile_redemptions(store, limit=self._limit, repair=should_repair)
            except Exception as exc:
                await managed_session.rollback()
                logger.exception(
                    "Redemption reconciliation sweep failed",
                    trigger=trigger,
                    error=str(exc),
                )
                raise

        log = logger.warning if summary.orphaned and not should_repair else logger.info
        log(
            "Redemption reconciliation sweep completed",
            orphaned=summary.orphaned,
            repaired=summary.repaired,
            repair=should_repair,
            trigger=trigger,
        )
        return summary

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as exc:  # pragma: no cover - logged for operators
                logger.exception("Redemption reconciliation iteration failed", error=str(exc))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

    async def _ensure_session(self) -> AsyncSession:
        maybe_session = self._session_factory()
        if isinstance(maybe_session, AsyncSession):
            return maybe_session
        return await maybe_session
