"""Scheduled market sync job."""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from resale_market import metrics
from resale_market.config import settings
from resale_market.db.cache_store import CacheStore
from resale_market.db.models import SyncRun, utcnow
from resale_market.ingest.credentials import MissingCredentialsError, TokenProvider
from resale_market.sync.budget import RunBudget
from resale_market.sync.orchestrator import SyncOptions, SyncOrchestrator
from resale_market.sync.results import SyncResult
from resale_market.worker.sync_lock import SyncLockManager

logger = logging.getLogger(__name__)

JOB_TYPE = "market_sync"
MAX_STORED_ERRORS = 5


@dataclass
class SyncJobSummary:
    """What one job run did; mirrored into its SyncRun row."""

    run_id: str
    trigger: str
    status: str = "running"
    items_total: int = 0
    items_refreshed: int = 0
    items_failed: int = 0
    items_skipped: int = 0
    market_rows_refreshed: int = 0
    rate_limited: int = 0
    errors: list[str] = field(default_factory=list)
    results: list[SyncResult] = field(default_factory=list)


class SyncJob:
    """
    Refreshes the stalest catalog items within a time and item budget.

    Items are processed one at a time through every marketplace
    orchestrator. When the budget cannot fit another item the remaining
    ones are reported as skipped and picked up by the next run.
    """

    def __init__(
        self,
        orchestrators: list[SyncOrchestrator],
        store: CacheStore,
        session_factory: Optional[async_sessionmaker] = None,
        lock_manager: Optional[SyncLockManager] = None,
        stale_after: Optional[timedelta] = None,
    ):
        self.orchestrators = orchestrators
        self.store = store
        self.session_factory = session_factory or store.session_factory
        self.lock_manager = lock_manager
        self.stale_after = stale_after or timedelta(hours=settings.sync_stale_after_hours)

    async def run(
        self,
        trigger: str = "scheduled",
        budget_seconds: Optional[float] = None,
        max_items: Optional[int] = None,
    ) -> SyncJobSummary:
        run_id = uuid4().hex
        summary = SyncJobSummary(run_id=run_id, trigger=trigger)
        budget = RunBudget(budget_seconds)
        max_items = max_items if max_items is not None else settings.sync_max_items_per_run

        token = None
        if self.lock_manager is not None:
            token = await self.lock_manager.acquire_lock(run_id, trigger=trigger)
            if not token:
                holder = await self.lock_manager.get_lock_info() or {}
                logger.info(
                    f"Market sync skipped ({trigger}): {holder.get('trigger', 'another')} run "
                    f"started at {holder.get('started_at')} still holds the lock"
                )
                summary.status = "skipped"
                metrics.record_scheduler_run(JOB_TYPE, success=True)
                return summary

        logger.info(
            f"Starting market sync (trigger: {trigger}, run_id: {run_id[:16]}..., "
            f"budget: {budget_seconds}s, max_items: {max_items})"
        )

        try:
            await self._create_run_row(summary)
            try:
                await self._process(summary, budget, max_items)
                summary.status = "completed"
            except Exception as e:
                logger.error(f"Market sync failed: {e}", exc_info=True)
                summary.status = "failed"
                summary.errors.insert(0, str(e)[:500])
            await self._complete_run_row(summary)
        finally:
            if token is not None:
                await self.lock_manager.release_lock(run_id, token)

        metrics.record_scheduler_run(
            JOB_TYPE, success=summary.status == "completed", skipped=summary.items_skipped
        )
        logger.info(
            f"Market sync {summary.status}: {summary.items_refreshed} refreshed, "
            f"{summary.items_failed} failed, {summary.items_skipped} skipped "
            f"of {summary.items_total} items"
        )
        return summary

    def _batch_estimate(self) -> float:
        """Seconds the cheapest marketplace needs for one full batch."""
        if not self.orchestrators:
            return 0.0
        return min(o.batcher.estimated_batch_seconds() for o in self.orchestrators)

    async def _process(self, summary: SyncJobSummary, budget: RunBudget, max_items: int):
        stale_before = utcnow() - self.stale_after
        items = await self.store.select_stale_items(stale_before, max_items)
        summary.items_total = len(items)

        if not items:
            logger.info("No stale catalog items to refresh")
            return

        needed = self._batch_estimate()
        for index, (_, sku) in enumerate(items):
            if budget.expired or not budget.can_fit(needed):
                left = len(items) - index
                summary.items_skipped += left
                logger.info(
                    f"Budget exhausted ({budget.remaining():.1f}s left, a batch needs "
                    f"{needed:.1f}s), leaving {left} items for the next run"
                )
                break

            item_ok = False
            out_of_time = False
            for orchestrator in self.orchestrators:
                try:
                    result = await orchestrator.sync(sku, budget=budget)
                except MissingCredentialsError as e:
                    summary.errors.append(f"{sku}: {e}")
                    logger.error(f"Cannot sync {sku} on {e.marketplace}: {e}")
                    continue
                except Exception as e:
                    summary.errors.append(f"{sku} ({orchestrator.marketplace}): {e}")
                    logger.error(f"Unexpected error syncing {sku} on {orchestrator.marketplace}: {e}", exc_info=True)
                    continue

                summary.results.append(result)
                summary.market_rows_refreshed += result.counts.market_data_refreshed
                summary.rate_limited += result.counts.rate_limited
                if result.success:
                    item_ok = True
                    continue

                if result.counts.skipped:
                    out_of_time = True
                error = result.critical_error or (result.errors[0] if result.errors else None)
                if error is not None:
                    summary.errors.append(
                        f"{sku} ({result.marketplace}) {error.stage.value}: {error.error}"
                    )

            if item_ok:
                summary.items_refreshed += 1
            elif out_of_time:
                summary.items_skipped += 1
            else:
                summary.items_failed += 1

    async def _create_run_row(self, summary: SyncJobSummary):
        async with self.session_factory() as db:
            db.add(
                SyncRun(
                    run_id=summary.run_id,
                    trigger=summary.trigger,
                    status="running",
                    started_at=utcnow(),
                )
            )
            await db.commit()

    async def _complete_run_row(self, summary: SyncJobSummary):
        async with self.session_factory() as db:
            result = await db.execute(select(SyncRun).where(SyncRun.run_id == summary.run_id))
            run = result.scalar_one_or_none()
            if run is None:
                return

            run.status = summary.status
            run.completed_at = utcnow()
            run.items_total = summary.items_total
            run.items_refreshed = summary.items_refreshed
            run.items_failed = summary.items_failed
            run.items_skipped = summary.items_skipped
            run.market_rows_refreshed = summary.market_rows_refreshed
            run.rate_limited = summary.rate_limited
            if summary.errors:
                run.error_message = "\n".join(summary.errors[:MAX_STORED_ERRORS])
            await db.commit()


def build_orchestrators(
    store: CacheStore,
    token_provider: Optional[TokenProvider] = None,
    options: Optional[SyncOptions] = None,
) -> list[SyncOrchestrator]:
    """One orchestrator per marketplace, StockX first."""
    from resale_market.ingest.marketplaces.alias import AliasClient
    from resale_market.ingest.marketplaces.stockx import StockxClient

    token_provider = token_provider or TokenProvider()
    options = options or SyncOptions.from_settings()
    clients = [StockxClient(token_provider=token_provider), AliasClient(token_provider=token_provider)]
    return [SyncOrchestrator(client, store, options) for client in clients]


async def run_scheduled_sync():
    """APScheduler entry point."""
    from resale_market.worker.sync_lock import sync_lock_manager

    store = CacheStore()
    orchestrators = build_orchestrators(store)
    job = SyncJob(orchestrators, store, lock_manager=sync_lock_manager)
    try:
        await job.run(
            trigger="scheduled",
            budget_seconds=settings.sync_budget_seconds,
            max_items=settings.sync_max_items_per_run,
        )
    except Exception as e:
        logger.error(f"Scheduled market sync crashed: {e}", exc_info=True)
        metrics.record_scheduler_run(JOB_TYPE, success=False)
    finally:
        for orchestrator in orchestrators:
            await orchestrator.client.close()
