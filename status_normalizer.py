"""
Status normalization utilities for TrackingMore API responses
"""
import logging
from typing import Any, Dict, List, Optional, Union

from config import TRACKINGMORE_PUBLIC_URL
from couriers import Courier
from models import ShipmentStatus, SourceLink, TrackingResult

logger = logging.getLogger(__name__)

# Realtime endpoint answers with an object, the listing endpoint with an array
TrackingPayload = Union[Dict[str, Any], List[Dict[str, Any]], None]

# Provider renamed the field between API versions
STATUS_KEYS = ("delivery_status", "status")

STATUS_MAP = {
    "pending": ShipmentStatus.PENDING,
    "info_received": ShipmentStatus.PENDING,
    "transit": ShipmentStatus.IN_TRANSIT,
    "pickup": ShipmentStatus.DELIVERING,
    "delivered": ShipmentStatus.DELIVERED,
    "undelivered": ShipmentStatus.EXCEPTION,
    "exception": ShipmentStatus.EXCEPTION,
    "expired": ShipmentStatus.EXCEPTION,
    "notfound": ShipmentStatus.UNKNOWN,
}

SUMMARY_PLACEHOLDER = "Updating..."
NO_DATA_SUMMARY = "No data found"


def coerce_payload(raw_payload: TrackingPayload) -> Optional[Dict[str, Any]]:
    """
    Reduce a provider payload to a single tracking record.

    Args:
        raw_payload: object, array of objects, or nothing

    Returns:
        The tracking record, or None if the payload holds no record
    """
    if isinstance(raw_payload, list):
        if not raw_payload:
            return None
        raw_payload = raw_payload[0]

    if isinstance(raw_payload, dict) and raw_payload:
        return raw_payload
    return None


def normalize_status(status: Optional[str]) -> ShipmentStatus:
    """
    Map a provider status string to a ShipmentStatus.

    Unrecognized or missing values count as in transit: most provider
    updates are transit events without an explicit terminal code.
    """
    if not status:
        return ShipmentStatus.IN_TRANSIT
    return STATUS_MAP.get(str(status).lower().strip(), ShipmentStatus.IN_TRANSIT)


def _read_status(record: Dict[str, Any]) -> Optional[str]:
    for key in STATUS_KEYS:
        if record.get(key):
            return record[key]
    return None


def build_summary(record: Dict[str, Any]) -> str:
    summary = str(record.get("latest_event") or SUMMARY_PLACEHOLDER)

    # State alone isn't enough to name a destination
    if record.get("destination_city") or record.get("destination_country"):
        location = ", ".join(
            str(part) for part in (
                record.get("destination_city"),
                record.get("destination_state"),
                record.get("destination_country"),
            ) if part
        )
        summary += f"\nTo: {location}"

    if record.get("latest_checkpoint_time"):
        summary += f"\n({record['latest_checkpoint_time']})"

    return summary


def normalize(raw_payload: TrackingPayload, tracking_code: str, courier: Courier) -> TrackingResult:
    """
    Turn a provider payload into a TrackingResult.

    Args:
        raw_payload: `data` part of the provider response
        tracking_code: code that was looked up
        courier: courier the code belongs to

    Returns:
        TrackingResult with exactly one TrackingMore source link, or
        UNKNOWN without sources when the payload is empty
    """
    record = coerce_payload(raw_payload)
    if record is None:
        logger.warning(f"No tracking data for {tracking_code} ({courier.name})")
        return TrackingResult(status=ShipmentStatus.UNKNOWN, summary=NO_DATA_SUMMARY, sources=[])

    raw_status = _read_status(record)
    status = normalize_status(raw_status)
    logger.info(f"{tracking_code}: provider status = {raw_status!r}, mapped to {status.value}")

    return TrackingResult(
        status=status,
        summary=build_summary(record),
        sources=[SourceLink(
            title="TrackingMore Realtime",
            url=TRACKINGMORE_PUBLIC_URL.format(code=tracking_code)
        )],
    )
