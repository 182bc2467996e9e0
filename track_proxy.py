"""
Forwards tracking lookups to TrackingMore so browsers don't hit CORS
"""
import json
import logging
from typing import Any, Dict, Tuple

import aiohttp

from config import TRACKINGMORE_REALTIME_URL, TRACKINGMORE_TIMEOUT

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("tracking_number", "courier_code", "api_key")


class MissingParametersError(ValueError):
    pass


def parse_track_request(payload: Any) -> Tuple[str, str, str]:
    """
    Pull tracking number, courier code and API key out of a request body

    Raises:
        MissingParametersError: if the body isn't an object or lacks a field
    """
    if not isinstance(payload, dict):
        raise MissingParametersError("Request body must be a JSON object")

    missing = [field for field in REQUIRED_FIELDS if not payload.get(field)]
    if missing:
        raise MissingParametersError(
            "Tracking number, courier code and API key are required "
            f"(missing: {', '.join(missing)})"
        )

    return tuple(str(payload[field]) for field in REQUIRED_FIELDS)


async def forward_tracking_request(
    tracking_number: str,
    courier_code: str,
    api_key: str,
    upstream_url: str = TRACKINGMORE_REALTIME_URL
) -> Tuple[int, Dict[str, Any]]:
    """
    Call the TrackingMore realtime endpoint once

    Args:
        tracking_number: parcel tracking number
        courier_code: TrackingMore courier code
        api_key: TrackingMore API key
        upstream_url: realtime endpoint

    Returns:
        (status code, JSON body) to hand back to the caller. Upstream JSON is
        relayed verbatim; a non-JSON upstream body becomes a 502 error object.

    Raises:
        aiohttp.ClientError, asyncio.TimeoutError: transport failures
    """
    logger.info(f"[Backend] Looking up {tracking_number} ({courier_code})")

    headers = {
        "Tracking-Api-Key": api_key,
        "Content-Type": "application/json",
        "Accept": "application/json",
    }
    body = {
        "tracking_number": tracking_number,
        "courier_code": courier_code,
    }

    async with aiohttp.ClientSession() as session:
        async with session.post(
            upstream_url,
            json=body,
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=TRACKINGMORE_TIMEOUT)
        ) as response:
            text = await response.text()
            status = response.status

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        logger.error(f"TrackingMore returned non-JSON for {tracking_number}: {text[:200]}")
        return 502, {
            "error": "Third-party service error",
            "message": "Could not read the response from TrackingMore.",
            "raw": text[:200],
        }

    return status, data
