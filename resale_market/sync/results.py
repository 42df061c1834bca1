"""Value objects describing the outcome of one marketplace sync."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Optional


class SyncStage(str, Enum):
    """Pipeline stage an error happened in."""

    CATALOG_SEARCH = "catalog_search"
    PRODUCT_DETAILS = "product_details"
    VARIANTS = "variants"
    MARKET_DATA = "market_data"

    @property
    def critical(self) -> bool:
        return self is not SyncStage.MARKET_DATA


class SyncMode(str, Enum):
    FULL = "full"
    REFRESH = "refresh"


@dataclass
class SyncError:
    """One recorded failure; market_data errors carry the unit they belong to."""

    stage: SyncStage
    error: str
    variant_id: Optional[str] = None
    size: Optional[str] = None
    currency: Optional[str] = None
    kind: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["stage"] = self.stage.value
        return data


@dataclass
class SyncCounts:
    variants_synced: int = 0
    market_data_refreshed: int = 0
    price_snapshots_inserted: int = 0
    rate_limited: int = 0
    skipped: int = 0


@dataclass
class SyncResult:
    """Summary of one orchestrator run. Never persisted as-is."""

    success: bool
    marketplace: str
    sku: str
    mode: SyncMode
    product_id: Optional[str] = None
    counts: SyncCounts = field(default_factory=SyncCounts)
    errors: list[SyncError] = field(default_factory=list)
    # Price fields the normalizer rejected; the unit itself still succeeded
    warnings: list[str] = field(default_factory=list)

    @property
    def critical_error(self) -> Optional[SyncError]:
        for error in self.errors:
            if error.stage.critical:
                return error
        return None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "marketplace": self.marketplace,
            "sku": self.sku,
            "mode": self.mode.value,
            "product_id": self.product_id,
            "counts": asdict(self.counts),
            "errors": [e.to_dict() for e in self.errors],
            "warnings": list(self.warnings),
        }
