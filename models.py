"""
Shipment data models
"""
from datetime import datetime
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field, model_validator

from couriers import Courier


class ShipmentStatus(str, Enum):
    PENDING = "PENDING"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERING = "DELIVERING"
    DELIVERED = "DELIVERED"
    EXCEPTION = "EXCEPTION"
    UNKNOWN = "UNKNOWN"

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]

    @property
    def attention_rank(self) -> int:
        """Lower rank means the shipment needs attention sooner"""
        return ATTENTION_ORDER.index(self)


STATUS_LABELS = {
    ShipmentStatus.PENDING: "Pending",
    ShipmentStatus.IN_TRANSIT: "In transit",
    ShipmentStatus.DELIVERING: "Out for delivery",
    ShipmentStatus.DELIVERED: "Delivered",
    ShipmentStatus.EXCEPTION: "Problem",
    ShipmentStatus.UNKNOWN: "Unknown",
}

# Most-attention-needed first
ATTENTION_ORDER = [
    ShipmentStatus.EXCEPTION,
    ShipmentStatus.DELIVERING,
    ShipmentStatus.IN_TRANSIT,
    ShipmentStatus.PENDING,
    ShipmentStatus.DELIVERED,
    ShipmentStatus.UNKNOWN,
]


class SourceLink(BaseModel):
    """Where a status summary came from"""
    title: str
    url: str


class TrackingResult(BaseModel):
    """Outcome of a single lookup, before it is merged into a Shipment"""
    model_config = ConfigDict(frozen=True)

    status: ShipmentStatus
    summary: str
    sources: List[SourceLink] = Field(default_factory=list)
    # True when the result was simulated locally instead of coming from the provider
    degraded: bool = False


class Shipment(BaseModel):
    """Model for a tracked parcel"""
    model_config = ConfigDict(validate_assignment=True)

    id: str
    tracking_code: str
    courier: Courier
    status: ShipmentStatus
    last_updated: datetime
    created_at: datetime
    summary: str = ""
    source_links: List[SourceLink] = Field(default_factory=list)
    degraded: bool = False

    @model_validator(mode="after")
    def _check_timestamps(self):
        if self.last_updated < self.created_at:
            raise ValueError("last_updated can't be earlier than created_at")
        return self

    def with_result(self, result: TrackingResult, checked_at: datetime) -> "Shipment":
        """Copy of this shipment updated from a fresh lookup"""
        return self.model_copy(update={
            "status": result.status,
            "summary": result.summary,
            "source_links": list(result.sources),
            "degraded": result.degraded,
            "last_updated": max(checked_at, self.last_updated),
        })
