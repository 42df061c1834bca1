"""SQLAlchemy database models."""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Naive UTC timestamp (all DateTime columns store UTC without tzinfo)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class CatalogItem(Base):
    """Product identity shared by both marketplaces via its style/SKU."""

    __tablename__ = "catalog_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sku: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    brand: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Per-marketplace catalog identifiers, null until mapped
    stockx_product_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    alias_catalog_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    variants: Mapped[list["Variant"]] = relationship(
        "Variant", back_populates="catalog_item", cascade="all, delete-orphan"
    )


class Variant(Base):
    """A sellable size of a catalog item on one marketplace."""

    __tablename__ = "variants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    catalog_item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("catalog_items.id"), nullable=False
    )
    marketplace: Mapped[str] = mapped_column(String(16), nullable=False)  # stockx, alias
    marketplace_variant_id: Mapped[str] = mapped_column(String(191), nullable=False)
    size_label: Mapped[str] = mapped_column(String(32), nullable=False)
    barcodes: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    # Alias variants are per liquidity region and consignment state
    region: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    consigned: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    catalog_item: Mapped["CatalogItem"] = relationship("CatalogItem", back_populates="variants")
    snapshots: Mapped[list["MarketSnapshot"]] = relationship(
        "MarketSnapshot", back_populates="variant", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("marketplace", "marketplace_variant_id", name="uq_variant_marketplace_id"),
        Index("ix_variants_catalog_item_marketplace", "catalog_item_id", "marketplace"),
    )


class MarketSnapshot(Base):
    """Latest known quote for a (variant, currency) pair."""

    __tablename__ = "market_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    variant_id: Mapped[int] = mapped_column(Integer, ForeignKey("variants.id"), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    lowest_ask: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    highest_bid: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    last_sale: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    flex_lowest_ask: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)  # StockX
    global_indicator_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)  # Alias
    captured_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    variant: Mapped["Variant"] = relationship("Variant", back_populates="snapshots")

    __table_args__ = (
        UniqueConstraint("variant_id", "currency", name="uq_snapshot_variant_currency"),
        Index("ix_market_snapshots_updated_at", "updated_at"),
    )


class PriceHistoryEntry(Base):
    """One row per (variant, currency, calendar day)."""

    __tablename__ = "price_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    variant_id: Mapped[int] = mapped_column(Integer, ForeignKey("variants.id"), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    snapshot_date: Mapped[date] = mapped_column(Date, nullable=False)
    lowest_ask: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    highest_bid: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    last_sale: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "variant_id", "currency", "snapshot_date", name="uq_price_history_daily"
        ),
    )


class SyncRun(Base):
    """Persisted summary of one scheduled or manual sync job."""

    __tablename__ = "sync_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    run_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    trigger: Mapped[str] = mapped_column(String(16), nullable=False)  # scheduled, manual
    status: Mapped[str] = mapped_column(String(16), nullable=False)  # running, completed, failed
    started_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    items_total: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    items_refreshed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    items_failed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    items_skipped: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    market_rows_refreshed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rate_limited: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()
