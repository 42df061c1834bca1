"""Market data cache: latest snapshot per (variant, currency) plus daily history.

Every write is a keyed upsert, so re-running a sync is idempotent and
concurrent writers on different keys never touch the same row. Each call
opens its own session; a failed write only affects the unit that issued it.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from resale_market.db.models import (
    CatalogItem,
    MarketSnapshot,
    PriceHistoryEntry,
    Variant,
    utcnow,
)
from resale_market.ingest.base import CatalogProduct, Marketplace, MarketQuote, VariantInfo

logger = logging.getLogger(__name__)

# CatalogItem column holding each marketplace's catalog id
CATALOG_ID_COLUMNS = {
    Marketplace.STOCKX.value: "stockx_product_id",
    Marketplace.ALIAS.value: "alias_catalog_id",
}


class CatalogConflictError(Exception):
    """A marketplace catalog id is already linked to a different SKU."""

    kind = "conflict"


def _insert_for(session: AsyncSession, model):
    """Dialect-specific INSERT supporting ON CONFLICT."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    raise NotImplementedError(f"Upserts are not supported on {dialect}")


def is_fresh(updated_at: datetime, ttl: Optional[timedelta], now: datetime) -> bool:
    """A row is fresh while ``now - updated_at < ttl``; None disables the check."""
    if ttl is None:
        return True
    return now - updated_at < ttl


class CacheStore:
    """Keyed reads and upserts over the market data tables."""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        if session_factory is None:
            from resale_market.db.session import AsyncSessionLocal

            session_factory = AsyncSessionLocal
        self.session_factory = session_factory

    # =========================================================================
    # Catalog items
    # =========================================================================

    async def get_catalog_item(self, sku: str) -> Optional[CatalogItem]:
        async with self.session_factory() as db:
            result = await db.execute(select(CatalogItem).where(CatalogItem.sku == sku))
            return result.scalar_one_or_none()

    async def ensure_catalog_item(self, sku: str) -> CatalogItem:
        """Return the item for ``sku``, creating an empty one if needed."""
        async with self.session_factory() as db:
            now = utcnow()
            stmt = _insert_for(db, CatalogItem).values(
                sku=sku, created_at=now, updated_at=now
            )
            await db.execute(stmt.on_conflict_do_nothing(index_elements=["sku"]))
            await db.commit()

            result = await db.execute(select(CatalogItem).where(CatalogItem.sku == sku))
            return result.scalar_one()

    async def link_catalog_item(
        self, sku: str, marketplace: str, product: CatalogProduct
    ) -> CatalogItem:
        """
        Record the marketplace catalog id for ``sku`` and fill metadata gaps.

        Creates the item on first successful resolution. Brand, title and
        image are only written where the item has none, so whichever
        marketplace resolves first wins and later syncs never overwrite
        curated values.

        Raises:
            CatalogConflictError: If another SKU already owns ``product``
        """
        column = getattr(CatalogItem, CATALOG_ID_COLUMNS[marketplace])
        async with self.session_factory() as db:
            result = await db.execute(
                select(CatalogItem.sku).where(
                    column == product.product_id, CatalogItem.sku != sku
                )
            )
            owner = result.scalars().first()
        if owner is not None:
            raise CatalogConflictError(
                f"{marketplace} product {product.product_id} is already linked to {owner}"
            )

        item = await self.ensure_catalog_item(sku)

        async with self.session_factory() as db:
            item = await db.get(CatalogItem, item.id)
            setattr(item, CATALOG_ID_COLUMNS[marketplace], product.product_id)

            filled = []
            for field_name in ("brand", "title", "image_url"):
                value = getattr(product, field_name)
                if value and not getattr(item, field_name):
                    setattr(item, field_name, value)
                    filled.append(field_name)

            item.updated_at = utcnow()
            await db.commit()

            if filled:
                logger.debug(f"Filled {', '.join(filled)} for {sku} from {marketplace}")
            return item

    # =========================================================================
    # Variants
    # =========================================================================

    async def upsert_variants(
        self, catalog_item_id: int, marketplace: str, variants: list[VariantInfo]
    ) -> list[Variant]:
        """
        Upsert variants keyed by (marketplace, marketplace variant id).

        A variant keeps the item it was first stored under; rows owned by
        another item are left alone and not returned.
        """
        if not variants:
            return []

        async with self.session_factory() as db:
            now = utcnow()
            for info in variants:
                stmt = _insert_for(db, Variant).values(
                    catalog_item_id=catalog_item_id,
                    marketplace=marketplace,
                    marketplace_variant_id=info.variant_id,
                    size_label=info.size_label,
                    barcodes=list(info.barcodes),
                    region=info.region,
                    consigned=info.consigned,
                    created_at=now,
                    updated_at=now,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["marketplace", "marketplace_variant_id"],
                    set_={
                        "size_label": stmt.excluded.size_label,
                        "barcodes": stmt.excluded.barcodes,
                        "region": stmt.excluded.region,
                        "consigned": stmt.excluded.consigned,
                        "updated_at": stmt.excluded.updated_at,
                    },
                )
                await db.execute(stmt)
            await db.commit()

            result = await db.execute(
                select(Variant)
                .where(
                    Variant.catalog_item_id == catalog_item_id,
                    Variant.marketplace == marketplace,
                    Variant.marketplace_variant_id.in_([v.variant_id for v in variants]),
                )
                .order_by(Variant.id)
            )
            rows = list(result.scalars().all())

        if len(rows) < len(variants):
            logger.warning(
                f"Catalog item {catalog_item_id}: {len(variants) - len(rows)} {marketplace} "
                f"variants belong to another item"
            )
        return rows

    async def load_variants(self, catalog_item_id: int, marketplace: str) -> list[Variant]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(Variant)
                .where(
                    Variant.catalog_item_id == catalog_item_id,
                    Variant.marketplace == marketplace,
                )
                .order_by(Variant.id)
            )
            return list(result.scalars().all())

    # =========================================================================
    # Snapshots
    # =========================================================================

    async def get_latest(
        self,
        variant_id: int,
        currency: str,
        ttl: Optional[timedelta],
        now: Optional[datetime] = None,
    ) -> Optional[MarketSnapshot]:
        """
        Latest snapshot for (variant, currency) if still fresh.

        A row whose age has reached ``ttl`` is a miss even though it exists.
        Pass ``ttl=None`` to read the row regardless of age.
        """
        now = now or utcnow()
        async with self.session_factory() as db:
            result = await db.execute(
                select(MarketSnapshot).where(
                    MarketSnapshot.variant_id == variant_id,
                    MarketSnapshot.currency == currency,
                )
            )
            snapshot = result.scalar_one_or_none()

        if snapshot is None or not is_fresh(snapshot.updated_at, ttl, now):
            return None
        return snapshot

    async def upsert_latest(
        self,
        variant_id: int,
        quote: MarketQuote,
        ttl: timedelta,
        now: Optional[datetime] = None,
    ) -> None:
        """Replace the (variant, currency) snapshot in place; last writer wins."""
        now = now or utcnow()
        values = {
            "variant_id": variant_id,
            "currency": quote.currency,
            "lowest_ask": quote.lowest_ask,
            "highest_bid": quote.highest_bid,
            "last_sale": quote.last_sale,
            "flex_lowest_ask": quote.flex_lowest_ask,
            "global_indicator_price": quote.global_indicator_price,
            "captured_at": quote.captured_at,
            "updated_at": now,
            "expires_at": now + ttl,
        }

        async with self.session_factory() as db:
            stmt = _insert_for(db, MarketSnapshot).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["variant_id", "currency"],
                set_={k: v for k, v in values.items() if k not in ("variant_id", "currency")},
            )
            await db.execute(stmt)
            await db.commit()

    async def upsert_history_day(
        self,
        variant_id: int,
        quote: MarketQuote,
        day: Optional[date] = None,
    ) -> None:
        """Write the daily history row; a same-day re-run overwrites it."""
        day = day or quote.captured_at.date()
        values = {
            "variant_id": variant_id,
            "currency": quote.currency,
            "snapshot_date": day,
            "lowest_ask": quote.lowest_ask,
            "highest_bid": quote.highest_bid,
            "last_sale": quote.last_sale,
            "recorded_at": utcnow(),
        }

        async with self.session_factory() as db:
            stmt = _insert_for(db, PriceHistoryEntry).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["variant_id", "currency", "snapshot_date"],
                set_={
                    "lowest_ask": stmt.excluded.lowest_ask,
                    "highest_bid": stmt.excluded.highest_bid,
                    "last_sale": stmt.excluded.last_sale,
                    "recorded_at": stmt.excluded.recorded_at,
                },
            )
            await db.execute(stmt)
            await db.commit()

    async def snapshots_for_item(
        self, catalog_item_id: int, marketplace: str, currency: str
    ) -> list[tuple[Variant, MarketSnapshot]]:
        """Every (variant, snapshot) pair of an item on one marketplace."""
        async with self.session_factory() as db:
            result = await db.execute(
                select(Variant, MarketSnapshot)
                .join(MarketSnapshot, MarketSnapshot.variant_id == Variant.id)
                .where(
                    Variant.catalog_item_id == catalog_item_id,
                    Variant.marketplace == marketplace,
                    MarketSnapshot.currency == currency,
                )
                .order_by(Variant.id)
            )
            return [(row[0], row[1]) for row in result.all()]

    async def history_for_variant(
        self, variant_id: int, currency: str, since: Optional[date] = None
    ) -> list[PriceHistoryEntry]:
        async with self.session_factory() as db:
            query = select(PriceHistoryEntry).where(
                PriceHistoryEntry.variant_id == variant_id,
                PriceHistoryEntry.currency == currency,
            )
            if since is not None:
                query = query.where(PriceHistoryEntry.snapshot_date >= since)
            result = await db.execute(query.order_by(PriceHistoryEntry.snapshot_date))
            return list(result.scalars().all())

    # =========================================================================
    # Scheduling
    # =========================================================================

    async def select_stale_items(
        self, stale_before: datetime, limit: int
    ) -> list[tuple[int, str]]:
        """
        Mapped catalog items whose newest snapshot predates ``stale_before``.

        Items with no marketplace id are left out. Items never refreshed
        come first, then the stalest.

        Returns:
            List of (catalog item id, sku)
        """
        last_refreshed = (
            select(
                Variant.catalog_item_id.label("catalog_item_id"),
                func.max(MarketSnapshot.updated_at).label("last_refreshed"),
            )
            .join(MarketSnapshot, MarketSnapshot.variant_id == Variant.id)
            .group_by(Variant.catalog_item_id)
            .subquery()
        )

        query = (
            select(CatalogItem.id, CatalogItem.sku, last_refreshed.c.last_refreshed)
            .outerjoin(last_refreshed, last_refreshed.c.catalog_item_id == CatalogItem.id)
            .where(
                CatalogItem.stockx_product_id.isnot(None)
                | CatalogItem.alias_catalog_id.isnot(None)
            )
            .where(
                (last_refreshed.c.last_refreshed.is_(None))
                | (last_refreshed.c.last_refreshed < stale_before)
            )
            .order_by(
                case((last_refreshed.c.last_refreshed.is_(None), 0), else_=1),
                last_refreshed.c.last_refreshed,
                CatalogItem.id,
            )
            .limit(limit)
        )

        async with self.session_factory() as db:
            result = await db.execute(query)
            return [(row[0], row[1]) for row in result.all()]
