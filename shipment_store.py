"""
Local key/value storage and the shipment list kept in it
"""
import json
import logging
import os
import tempfile
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from config import (
    DEFAULT_BACKEND_URL,
    DEFAULT_TRACKINGMORE_KEY,
    STORAGE_KEY_API_KEY,
    STORAGE_KEY_BACKEND_URL,
    STORAGE_KEY_SHIPMENTS,
    TRACKING_API_TIMEOUT,
    TRACKING_CODE_MAX_LENGTH,
    TrackingConfig,
)
from couriers import Courier
from models import Shipment, ShipmentStatus, TrackingResult
from tracking_api import TrackingClient

logger = logging.getLogger(__name__)

SORT_KEYS = ("date", "status")


class StorageError(Exception):
    """Storage file exists but can't be read"""
    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_shipment(code: str, courier: Courier, result: TrackingResult, created_at: datetime) -> Shipment:
    return Shipment(
        id=uuid.uuid4().hex,
        tracking_code=code,
        courier=courier,
        status=result.status,
        last_updated=created_at,
        created_at=created_at,
        summary=result.summary,
        source_links=list(result.sources),
        degraded=result.degraded,
    )


class LocalStorage:
    """String-keyed JSON values persisted in a single file"""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as file:
                data = json.load(file)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Can't read storage file {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise StorageError(f"Storage file {self.path} doesn't hold a JSON object")
        return data

    def _dump(self, data: Dict[str, Any]):
        # Replace the whole file at once so readers never see a partial write
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".storage-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file:
                json.dump(data, file, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def set(self, key: str, value: Any):
        data = self._load()
        data[key] = value
        self._dump(data)

    def remove(self, key: str):
        data = self._load()
        if key in data:
            del data[key]
            self._dump(data)


# Operator settings

def get_api_key(storage: LocalStorage) -> str:
    return storage.get(STORAGE_KEY_API_KEY) or DEFAULT_TRACKINGMORE_KEY


def save_api_key(storage: LocalStorage, key: str):
    storage.set(STORAGE_KEY_API_KEY, key.strip())


def get_backend_url(storage: LocalStorage) -> str:
    return storage.get(STORAGE_KEY_BACKEND_URL) or DEFAULT_BACKEND_URL


def save_backend_url(storage: LocalStorage, url: str):
    """Store the proxy URL; an empty value restores the default"""
    clean_url = url.strip()
    if clean_url.endswith("/"):
        clean_url = clean_url[:-1]

    if clean_url == "":
        storage.remove(STORAGE_KEY_BACKEND_URL)
    else:
        storage.set(STORAGE_KEY_BACKEND_URL, clean_url)


def tracking_config(storage: LocalStorage, timeout: float = TRACKING_API_TIMEOUT) -> TrackingConfig:
    """Build the tracking client configuration from stored settings"""
    backend_url = get_backend_url(storage)
    if not backend_url.startswith(("http://", "https://")):
        logger.warning(f"Ignoring non-absolute backend URL {backend_url!r}, using {DEFAULT_BACKEND_URL}")
        backend_url = DEFAULT_BACKEND_URL

    return TrackingConfig(api_key=get_api_key(storage), backend_url=backend_url, timeout=timeout)


class ShipmentStore:
    """Owns the persisted shipment list"""

    def __init__(self, storage: LocalStorage, client: TrackingClient):
        self.storage = storage
        self.client = client

    def list(self) -> List[Shipment]:
        raw = self.storage.get(STORAGE_KEY_SHIPMENTS, [])
        try:
            return [Shipment.model_validate(item) for item in raw]
        except (TypeError, ValidationError) as e:
            raise StorageError(f"Stored shipment list is invalid: {e}") from e

    def _save(self, shipments: List[Shipment]):
        self.storage.set(
            STORAGE_KEY_SHIPMENTS,
            [shipment.model_dump(mode="json") for shipment in shipments]
        )

    async def add(self, code: str, courier: Courier) -> Shipment:
        """
        Look up a new tracking code and store it.

        Args:
            code: tracking code
            courier: courier the code belongs to

        Returns:
            The created shipment

        Raises:
            ValueError: for a blank or oversized code
        """
        code = (code or "").strip()
        if not code:
            raise ValueError("Tracking code is required")
        if len(code) > TRACKING_CODE_MAX_LENGTH:
            raise ValueError(f"Tracking code longer than {TRACKING_CODE_MAX_LENGTH} characters")

        result = await self.client.lookup(code, courier)
        shipment = _new_shipment(code, courier, result, _now())

        self._save([shipment] + self.list())
        logger.info(f"Added shipment {shipment.id}: {code} ({courier.name}) -> {shipment.status.value}")
        return shipment

    async def add_many(self, entries: List[Tuple[str, Courier]]) -> List[Shipment]:
        """Add several codes: lookups run concurrently, the list is written once"""
        entries = [(code.strip(), courier) for code, courier in entries if code and code.strip()]
        if not entries:
            return []

        results = await self.client.lookup_many(entries)
        created_at = _now()
        created = [
            _new_shipment(code, courier, result, created_at)
            for (code, courier), result in zip(entries, results)
        ]

        self._save(created + self.list())
        logger.info(f"Imported {len(created)} shipments")
        return created

    def delete(self, shipment_id: str):
        shipments = self.list()
        remaining = [s for s in shipments if s.id != shipment_id]
        if len(remaining) != len(shipments):
            self._save(remaining)
            logger.info(f"Deleted shipment {shipment_id}")

    async def refresh_all(self) -> List[Shipment]:
        """Re-check every shipment concurrently, then write the list back once"""
        shipments = self.list()
        logger.info(f"Refreshing {len(shipments)} shipments...")

        results = await self.client.lookup_many((s.tracking_code, s.courier) for s in shipments)
        checked_at = _now()
        updated = [s.with_result(r, checked_at) for s, r in zip(shipments, results)]

        self._save(updated)
        degraded = sum(1 for s in updated if s.degraded)
        logger.info(f"Refreshed {len(updated)} shipments ({degraded} simulated)")
        return updated


def sorted_shipments(shipments: List[Shipment], sort_by: str = "date") -> List[Shipment]:
    """
    Order shipments for display.

    "date": most recently updated first.
    "status": most attention needed first, then most recently updated.
    """
    if sort_by not in SORT_KEYS:
        raise ValueError(f"sort_by must be one of {', '.join(SORT_KEYS)}")

    by_date = sorted(shipments, key=lambda s: s.last_updated, reverse=True)
    if sort_by == "date":
        return by_date
    # sorted() is stable, so date order survives inside each status
    return sorted(by_date, key=lambda s: s.status.attention_rank)


def status_counts(shipments: List[Shipment]) -> Dict[ShipmentStatus, int]:
    counts = {status: 0 for status in ShipmentStatus}
    for shipment in shipments:
        counts[shipment.status] += 1
    return counts


def find_shipment(shipments: List[Shipment], shipment_id: str) -> Optional[Shipment]:
    return next((s for s in shipments if s.id == shipment_id), None)
