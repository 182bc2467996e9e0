"""
Simulated tracking results, used when the live lookup fails so the
dashboard stays usable offline
"""
from typing import Optional

from couriers import Courier, external_tracking_url
from models import ShipmentStatus, SourceLink, TrackingResult

SIMULATED_PREFIX = "[SIMULATED]"

# Last character of the tracking code -> (status, summary)
_BRANCHES = {
    "1": (ShipmentStatus.DELIVERED, "Parcel delivered successfully."),
    "2": (ShipmentStatus.DELIVERED, "Parcel delivered successfully."),
    "3": (ShipmentStatus.DELIVERED, "Parcel delivered successfully."),
    "4": (ShipmentStatus.PENDING, "Waiting for pickup."),
    "5": (ShipmentStatus.PENDING, "Waiting for pickup."),
    "0": (ShipmentStatus.EXCEPTION, "Delivery failed."),
}
_DEFAULT_BRANCH = (ShipmentStatus.IN_TRANSIT, "Parcel is in transit.")


def fallback(code: str, courier: Optional[Courier] = None) -> TrackingResult:
    """Deterministic stand-in result for `code`: same code, same result."""
    status, text = _BRANCHES.get(code[-1:], _DEFAULT_BRANCH)

    return TrackingResult(
        status=status,
        summary=f"{SIMULATED_PREFIX} {text}",
        sources=[SourceLink(title="Simulated data (demo)", url=external_tracking_url(courier, code))],
        degraded=True,
    )
