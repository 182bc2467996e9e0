"""
Courier registry: provider codes and public tracking pages
"""
from enum import Enum
from typing import Optional

from config import TRACKINGMORE_COURIER_URL, SEVENTEEN_TRACK_URL


class Courier(str, Enum):
    """Couriers an operator can register a parcel against"""
    SF_EXPRESS = "SF Express"
    DEBON = "Deppon Express"
    ZTO = "ZTO Express"
    YTO = "YTO Express"
    STO = "STO Express"
    YUNDA = "Yunda Express"
    EMS_CHINA = "EMS China"
    BEST_EXPRESS = "Best Express"
    OTHER = "Other"

    @property
    def label(self) -> str:
        return self.value


# TrackingMore courier codes. Couriers missing here can't be looked up via API.
COURIER_SLUGS = {
    Courier.SF_EXPRESS: "sf-express",
    Courier.DEBON: "deppon",
    Courier.ZTO: "zto-express",
    Courier.YTO: "yto",
    Courier.STO: "sto",
    Courier.YUNDA: "yunda",
    Courier.EMS_CHINA: "china-ems",
    Courier.BEST_EXPRESS: "bestex",
}


def provider_code(courier: Courier) -> Optional[str]:
    return COURIER_SLUGS.get(courier)


def external_tracking_url(courier: Optional[Courier], code: str) -> str:
    """Public tracking page for `code`, via TrackingMore when the courier is mapped."""
    slug = provider_code(courier) if courier is not None else None
    if slug:
        return TRACKINGMORE_COURIER_URL.format(code=code, slug=slug)
    return SEVENTEEN_TRACK_URL.format(code=code)


def courier_from_value(value: str) -> Courier:
    """
    Resolve a courier from its enum name or display label

    Args:
        value: "SF_EXPRESS", "SF Express", "sf express", ...

    Returns:
        Matching Courier

    Raises:
        ValueError: if nothing matches
    """
    if isinstance(value, Courier):
        return value

    cleaned = str(value).strip()
    if cleaned in Courier.__members__:
        return Courier[cleaned]

    lowered = cleaned.lower()
    for courier in Courier:
        if courier.value.lower() == lowered or courier.name.lower() == lowered:
            return courier

    raise ValueError(f"Unknown courier: {value!r}")
