"""
Tracking API module
Calls the tracking proxy and turns its answers into TrackingResults
"""
import asyncio
import json
import logging
from typing import Any, Iterable, List, Optional, Tuple

import aiohttp

from config import TrackingConfig
from couriers import Courier, provider_code
from fallback import fallback
from models import ShipmentStatus, TrackingResult
from status_normalizer import normalize

logger = logging.getLogger(__name__)

UNSUPPORTED_COURIER_SUMMARY = "Courier not supported via API"

# Upstream application-level success code
META_SUCCESS_CODE = 200


class TrackingLookupError(Exception):
    """A lookup failed; the message is shown to the operator next to the simulated result"""
    pass


def _error_detail(result: Any, reason: str) -> str:
    """Best available explanation from a failed proxy response"""
    if isinstance(result, dict):
        for key in ("raw", "details", "error", "message"):
            if result.get(key):
                return json.dumps(result[key], ensure_ascii=False)
    return reason or "Unknown error"


class TrackingClient:
    """Looks up tracking codes through the proxy endpoint"""

    def __init__(self, config: TrackingConfig):
        self.config = config

    async def lookup(
        self,
        code: str,
        courier: Courier,
        session: Optional[aiohttp.ClientSession] = None
    ) -> TrackingResult:
        """
        Look up a single tracking code. Never raises.

        Args:
            code: tracking code
            courier: courier the code belongs to
            session: aiohttp session to reuse; a private one is opened if omitted

        Returns:
            Normalized provider answer, or a simulated result carrying the
            failure reason when the lookup fails
        """
        slug = provider_code(courier)
        if not slug:
            logger.info(f"{code}: courier {courier.name} has no provider code, skipping lookup")
            return TrackingResult(status=ShipmentStatus.UNKNOWN, summary=UNSUPPORTED_COURIER_SUMMARY, sources=[])

        try:
            if session is None:
                async with aiohttp.ClientSession() as own_session:
                    data = await self._fetch(own_session, code, slug)
            else:
                data = await self._fetch(session, code, slug)
        except TrackingLookupError as e:
            reason = str(e)
        except asyncio.TimeoutError:
            reason = f"TIMEOUT: no answer within {self.config.timeout}s"
        except aiohttp.ClientError as e:
            reason = f"NETWORK_ERROR: {type(e).__name__} - {str(e)}"
        except Exception as e:
            logger.error(f"Unexpected error looking up {code}: {type(e).__name__} - {str(e)}", exc_info=True)
            reason = f"{type(e).__name__}: {str(e)}"
        else:
            try:
                return normalize(data, code, courier)
            except (TypeError, ValueError) as e:
                logger.error(f"Unreadable tracking data for {code}: {type(e).__name__} - {str(e)}", exc_info=True)
                reason = f"PARSE_ERROR: {type(e).__name__}"

        logger.warning(f"Lookup failed for {code} ({slug}), switching to simulated data: {reason}")
        simulated = fallback(code, courier)
        return simulated.model_copy(update={"summary": f"{simulated.summary}\n\n(Server error: {reason})"})

    async def lookup_many(self, items: Iterable[Tuple[str, Courier]]) -> List[TrackingResult]:
        """
        Look up several codes concurrently over one session

        Returns:
            Results in the same order as `items`
        """
        items = list(items)
        if not items:
            return []

        async with aiohttp.ClientSession() as session:
            tasks = [self.lookup(code, courier, session=session) for code, courier in items]
            return list(await asyncio.gather(*tasks))

    async def _fetch(self, session: aiohttp.ClientSession, code: str, slug: str) -> Any:
        """
        Make one request to the proxy and return the `data` part of the answer

        Raises:
            TrackingLookupError: non-success status, unparseable body or
                provider error code
            asyncio.TimeoutError, aiohttp.ClientError: transport failures
        """
        body = {
            "tracking_number": code,
            "courier_code": slug,
            "api_key": self.config.api_key,
        }
        logger.info(f"Calling backend {self.config.backend_url} for {code} ({slug})")

        async with session.post(
            self.config.backend_url,
            json=body,
            headers={"accept": "application/json"},
            timeout=aiohttp.ClientTimeout(total=self.config.timeout)
        ) as response:
            # Read response text first to capture content on error
            text = await response.text()
            status = response.status
            reason = response.reason

        result = None
        parse_error = None
        if not text or not text.strip():
            parse_error = "Empty response from backend"
        else:
            try:
                result = json.loads(text)
            except json.JSONDecodeError as e:
                parse_error = f"{type(e).__name__}: {text[:100]}"

        if status == 404:
            raise TrackingLookupError("API_NOT_FOUND_404: tracking endpoint not found (check the backend URL)")

        if not 200 <= status < 300:
            detail = _error_detail(result, reason)
            raise TrackingLookupError(f"SERVER_ERROR_{status}: {detail[:100]}")

        if parse_error:
            raise TrackingLookupError(f"INVALID_JSON: {parse_error}")

        meta = result.get("meta") if isinstance(result, dict) else None
        meta = meta if isinstance(meta, dict) else {}
        if meta.get("code") != META_SUCCESS_CODE:
            raise TrackingLookupError(f"API_ERROR_{meta.get('code')}: {meta.get('message')}")

        return result.get("data")
