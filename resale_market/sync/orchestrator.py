"""Per-marketplace sync pipeline.

Unknown items go through the full pipeline::

    catalog_search -> product_details -> variants -> market_data

Known items (catalog id mapped, variants stored) skip straight to
``market_data``. The first three stages are critical: any failure ends the
run with a single stage-tagged error. ``market_data`` fans out over
variants x currencies and records each failing unit without stopping the
others. The orchestrator returns a SyncResult for every partial failure and
only raises for problems that make the run impossible to start (missing
credentials, unreachable database).
"""

import logging
import math
import time
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from functools import partial
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from resale_market import metrics
from resale_market.db.cache_store import CATALOG_ID_COLUMNS, CacheStore
from resale_market.db.models import CatalogItem, Variant
from resale_market.ingest.base import MarketplaceClient, MarketQuote, VariantInfo
from resale_market.ingest.credentials import MissingCredentialsError
from resale_market.ingest.http_client import RateLimitedError
from resale_market.ingest.request_batcher import RequestBatcher
from resale_market.logging_config import get_logger
from resale_market.sync.budget import RunBudget
from resale_market.sync.results import (
    SyncCounts,
    SyncError,
    SyncMode,
    SyncResult,
    SyncStage,
)


def min_required(total: int, min_variants: int = 4, ratio: float = 0.5) -> int:
    """
    Primary-currency refreshes needed for a run to count as successful.

    Runs with fewer than ``min_variants`` variants need every one; larger
    runs need ``ceil(total * ratio)``.
    """
    if total < min_variants:
        return total
    return math.ceil(total * ratio)


@dataclass
class SyncOptions:
    """Explicit run configuration handed to each orchestrator."""

    full_currency_coverage: bool = False
    batch_size: int = 5
    # Stagger between batch members; None uses the client's rate limit
    interval: Optional[float] = None
    ttl: timedelta = timedelta(hours=24)
    coverage_min_variants: int = 4
    coverage_ratio: float = 0.5
    logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None

    @classmethod
    def from_settings(cls, settings=None, **overrides) -> "SyncOptions":
        if settings is None:
            from resale_market.config import settings

        values = dict(
            full_currency_coverage=settings.full_currency_coverage,
            batch_size=settings.sync_batch_size,
            ttl=timedelta(hours=settings.market_data_ttl_hours),
            coverage_min_variants=settings.coverage_min_variants,
            coverage_ratio=settings.coverage_ratio,
        )
        values.update(overrides)
        return cls(**values)

    def currencies_for(self, client: MarketplaceClient) -> list[str]:
        """Primary only in baseline mode, every supported currency otherwise."""
        if self.full_currency_coverage:
            return client.supported_currencies
        return [client.primary_currency]


class SyncState(str, Enum):
    """Whether an item is already mapped on a marketplace."""

    UNKNOWN = "unknown"
    KNOWN = "known"

    @property
    def mode(self) -> SyncMode:
        return SyncMode.REFRESH if self is SyncState.KNOWN else SyncMode.FULL


def _variant_info(variant: Variant) -> VariantInfo:
    return VariantInfo(
        variant_id=variant.marketplace_variant_id,
        size_label=variant.size_label,
        barcodes=list(variant.barcodes or []),
        region=variant.region,
        consigned=variant.consigned,
    )


class SyncOrchestrator:
    """Drives one marketplace client over one catalog item at a time."""

    def __init__(
        self,
        client: MarketplaceClient,
        store: CacheStore,
        options: Optional[SyncOptions] = None,
    ):
        self.client = client
        self.store = store
        self.options = options or SyncOptions()
        self.marketplace = client.marketplace.value
        self.logger = self.options.logger or get_logger(__name__, marketplace=self.marketplace)

        interval = self.options.interval
        if interval is None:
            interval = client.get_rate_limit().min_interval_seconds
        self.batcher = RequestBatcher(batch_size=self.options.batch_size, interval=interval)

    async def sync(self, sku: str, budget: Optional[RunBudget] = None) -> SyncResult:
        """Sync ``sku``, choosing full or refresh mode from what is stored."""
        item = await self.store.get_catalog_item(sku)
        state, product_id, variants = await self._resolve_state(item)

        if state is SyncState.KNOWN:
            return await self._run_refresh(sku, product_id, variants, budget)
        return await self.full_sync(sku, budget)

    async def _resolve_state(
        self, item: Optional[CatalogItem]
    ) -> tuple[SyncState, Optional[str], list[Variant]]:
        if item is None:
            return SyncState.UNKNOWN, None, []

        product_id = getattr(item, CATALOG_ID_COLUMNS[self.marketplace])
        if not product_id:
            return SyncState.UNKNOWN, None, []

        variants = await self.store.load_variants(item.id, self.marketplace)
        if not variants:
            return SyncState.UNKNOWN, product_id, []
        return SyncState.KNOWN, product_id, variants

    async def full_sync(self, sku: str, budget: Optional[RunBudget] = None) -> SyncResult:
        """Resolve the catalog id, fetch product and variants, then prices."""
        started = time.monotonic()
        result = SyncResult(success=False, marketplace=self.marketplace, sku=sku, mode=SyncMode.FULL)

        # Fails loudly when the database is unreachable; the item row is only
        # created once the catalog search and product details succeed
        await self.store.get_catalog_item(sku)

        stage = SyncStage.CATALOG_SEARCH
        try:
            product_id = await self.client.search_catalog(sku)
            result.product_id = product_id

            stage = SyncStage.PRODUCT_DETAILS
            product = await self.client.fetch_product(product_id)
            item = await self.store.link_catalog_item(sku, self.marketplace, product)

            stage = SyncStage.VARIANTS
            infos = await self.client.fetch_variants(product_id)
            variants = await self.store.upsert_variants(item.id, self.marketplace, infos)
        except MissingCredentialsError:
            raise
        except Exception as e:
            self.logger.warning(f"{self.marketplace} {sku}: {stage.value} failed: {e}")
            result.errors.append(
                SyncError(stage=stage, error=str(e) or type(e).__name__, kind=getattr(e, "kind", None))
            )
            return self._finish(result, started)

        result.counts.variants_synced = len(variants)
        if not variants:
            result.errors.append(SyncError(stage=SyncStage.VARIANTS, error="Product has no variants"))
            return self._finish(result, started)

        await self._sync_market_data(result, product_id, variants, budget)
        return self._finish(result, started)

    async def refresh(self, sku: str, budget: Optional[RunBudget] = None) -> SyncResult:
        """Refresh prices for an item whose variants are already stored."""
        item = await self.store.get_catalog_item(sku)
        product_id = getattr(item, CATALOG_ID_COLUMNS[self.marketplace]) if item else None

        if item is None or not product_id:
            result = SyncResult(
                success=False, marketplace=self.marketplace, sku=sku, mode=SyncMode.REFRESH
            )
            result.errors.append(
                SyncError(
                    stage=SyncStage.CATALOG_SEARCH,
                    error=f"{sku} is not mapped on {self.marketplace}",
                )
            )
            return self._finish(result, time.monotonic())

        variants = await self.store.load_variants(item.id, self.marketplace)
        return await self._run_refresh(sku, product_id, variants, budget)

    async def _run_refresh(
        self,
        sku: str,
        product_id: str,
        variants: list[Variant],
        budget: Optional[RunBudget],
    ) -> SyncResult:
        started = time.monotonic()
        result = SyncResult(
            success=False,
            marketplace=self.marketplace,
            sku=sku,
            mode=SyncMode.REFRESH,
            product_id=product_id,
        )
        result.counts.variants_synced = len(variants)

        if not variants:
            result.errors.append(
                SyncError(stage=SyncStage.VARIANTS, error="No variants found for product")
            )
            return self._finish(result, started)

        await self._sync_market_data(result, product_id, variants, budget)
        return self._finish(result, started)

    async def _sync_unit(self, product_id: str, variant: Variant, currency: str) -> MarketQuote:
        """Fetch, then write, one (variant, currency) quote."""
        quote = await self.client.fetch_market_data(product_id, _variant_info(variant), currency)
        await self.store.upsert_latest(variant.id, quote, self.options.ttl)
        if currency == self.client.primary_currency:
            await self.store.upsert_history_day(variant.id, quote)
        return quote

    async def _sync_market_data(
        self,
        result: SyncResult,
        product_id: str,
        variants: list[Variant],
        budget: Optional[RunBudget],
    ) -> None:
        counts: SyncCounts = result.counts
        primary = self.client.primary_currency
        currencies = self.options.currencies_for(self.client)

        units_total = len(variants) * len(currencies)
        units_started = 0
        primary_refreshed = 0
        out_of_time = False

        for batch in self.batcher.batches(variants):
            for currency in currencies:
                needed = self.batcher.estimated_batch_seconds(len(batch))
                if budget is not None and (budget.expired or not budget.can_fit(needed)):
                    out_of_time = True
                    break

                units_started += len(batch)
                outcomes = await self.batcher.run_batch(
                    batch, partial(self._sync_unit, product_id, currency=currency)
                )

                for outcome in outcomes:
                    variant = outcome.item
                    if outcome.success:
                        quote: MarketQuote = outcome.value
                        counts.market_data_refreshed += 1
                        metrics.record_market_row(self.marketplace, currency)
                        if currency == primary:
                            primary_refreshed += 1
                            counts.price_snapshots_inserted += 1
                        for warning in quote.warnings:
                            result.warnings.append(
                                f"[{currency}] {variant.marketplace_variant_id}: {warning}"
                            )
                        continue

                    self._record_unit_error(result, variant, currency, outcome.error)

            if out_of_time:
                break

        if out_of_time:
            counts.skipped = units_total - units_started
            self.logger.info(
                f"{self.marketplace} {result.sku}: budget exhausted, "
                f"skipped {counts.skipped}/{units_total} market data units"
            )

        if counts.rate_limited:
            attempted = counts.market_data_refreshed + counts.rate_limited
            self.logger.warning(
                f"{self.marketplace} sync: rate limited {counts.rate_limited}/{attempted} "
                f"requests for product {product_id}"
            )

        required = min_required(
            len(variants), self.options.coverage_min_variants, self.options.coverage_ratio
        )
        result.success = primary_refreshed >= required

    def _record_unit_error(
        self, result: SyncResult, variant: Variant, currency: str, error: BaseException
    ) -> None:
        if isinstance(error, MissingCredentialsError):
            raise error

        rate_limited = isinstance(error, RateLimitedError)
        if rate_limited:
            result.counts.rate_limited += 1
            self.logger.warning(
                f"{self.marketplace} rate limited: product={result.product_id} "
                f"variant={variant.marketplace_variant_id} size={variant.size_label} "
                f"currency={currency}"
            )

        if isinstance(error, SQLAlchemyError):
            kind = "storage"
        else:
            kind = getattr(error, "kind", "error")

        tag = f"[{currency}]" + (" [RATE LIMITED]" if rate_limited else "")
        result.errors.append(
            SyncError(
                stage=SyncStage.MARKET_DATA,
                error=f"{tag} {str(error) or type(error).__name__}",
                variant_id=variant.marketplace_variant_id,
                size=variant.size_label,
                currency=currency,
                kind=kind,
            )
        )

    def _finish(self, result: SyncResult, started: float) -> SyncResult:
        duration = time.monotonic() - started
        metrics.record_sync_run(
            self.marketplace,
            result.mode.value,
            result.success,
            duration,
            rate_limited=result.counts.rate_limited,
        )

        counts = result.counts
        summary = (
            f"{self.marketplace} {result.mode.value} sync for {result.sku}: "
            f"success={result.success} variants={counts.variants_synced} "
            f"refreshed={counts.market_data_refreshed} history={counts.price_snapshots_inserted} "
            f"errors={len(result.errors)}"
        )
        if result.success:
            self.logger.info(summary)
        else:
            self.logger.warning(summary)
        return result
