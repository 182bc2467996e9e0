from datetime import datetime, timedelta, timezone

import pytest

from config import DEFAULT_BACKEND_URL, DEFAULT_TRACKINGMORE_KEY
from couriers import Courier
from models import Shipment, ShipmentStatus
from shipment_store import (
    ShipmentStore,
    StorageError,
    get_api_key,
    get_backend_url,
    save_api_key,
    save_backend_url,
    sorted_shipments,
    status_counts,
    tracking_config,
)


def make_shipment(id_, status, updated_minutes_ago=0) -> Shipment:
    stamp = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc) - timedelta(minutes=updated_minutes_ago)
    return Shipment(
        id=id_,
        tracking_code=f"CODE{id_}",
        courier=Courier.SF_EXPRESS,
        status=status,
        last_updated=stamp,
        created_at=stamp,
    )


class TestLocalStorage:
    def test_missing_file_is_empty(self, storage):
        assert storage.get("anything") is None
        assert storage.get("anything", []) == []

    def test_set_get_remove(self, storage):
        storage.set("a", [1, 2])
        storage.set("b", "x")
        assert storage.get("a") == [1, 2]

        storage.remove("a")
        storage.remove("missing")
        assert storage.get("a") is None
        assert storage.get("b") == "x"

    def test_corrupt_file(self, storage):
        storage.path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageError):
            storage.get("shipments")


class TestSettings:
    def test_defaults(self, storage):
        assert get_api_key(storage) == DEFAULT_TRACKINGMORE_KEY
        assert get_backend_url(storage) == DEFAULT_BACKEND_URL

    def test_api_key_trimmed(self, storage):
        save_api_key(storage, "  my-key \n")
        assert get_api_key(storage) == "my-key"

    def test_backend_url_trailing_slash(self, storage):
        save_backend_url(storage, " https://proxy.example.com/api/track/ ")
        assert get_backend_url(storage) == "https://proxy.example.com/api/track"

    def test_empty_backend_url_restores_default(self, storage):
        save_backend_url(storage, "https://proxy.example.com/api/track")
        save_backend_url(storage, "   ")
        assert get_backend_url(storage) == DEFAULT_BACKEND_URL

    def test_relative_backend_url_ignored(self, storage):
        save_backend_url(storage, "/api/track")
        save_api_key(storage, "k")

        config = tracking_config(storage, timeout=3)

        assert config.backend_url == DEFAULT_BACKEND_URL
        assert config.api_key == "k"
        assert config.timeout == 3


class TestShipmentStore:
    @pytest.mark.asyncio
    async def test_add_then_list(self, storage, fake_client):
        store = ShipmentStore(storage, fake_client)

        shipment = await store.add("SF123", Courier.SF_EXPRESS)
        shipments = store.list()

        assert len(shipments) == 1
        assert shipments[0] == shipment
        assert shipment.tracking_code == "SF123"
        assert shipment.created_at == shipment.last_updated
        assert shipment.status == ShipmentStatus.DELIVERED
        assert fake_client.calls == [("SF123", Courier.SF_EXPRESS)]

    @pytest.mark.asyncio
    async def test_newest_first(self, storage, fake_client):
        store = ShipmentStore(storage, fake_client)
        await store.add("A1", Courier.YTO)
        await store.add("B2", Courier.STO)

        assert [s.tracking_code for s in store.list()] == ["B2", "A1"]

    @pytest.mark.asyncio
    async def test_add_rejects_blank_code(self, storage, fake_client):
        store = ShipmentStore(storage, fake_client)
        with pytest.raises(ValueError):
            await store.add("   ", Courier.YTO)
        assert fake_client.calls == []

    @pytest.mark.asyncio
    async def test_add_with_live_client(self, storage, proxy_stub, client_for):
        store = ShipmentStore(storage, client_for(proxy_stub.url))

        shipment = await store.add("ZT88", Courier.ZTO)

        assert shipment.status == ShipmentStatus.IN_TRANSIT
        assert shipment.summary == "Departed hub"
        assert len(proxy_stub.calls) == 1

    @pytest.mark.asyncio
    async def test_delete(self, storage, fake_client):
        store = ShipmentStore(storage, fake_client)
        keep = await store.add("A1", Courier.YTO)
        drop = await store.add("B2", Courier.YTO)

        store.delete(drop.id)
        store.delete("no-such-id")

        assert [s.id for s in store.list()] == [keep.id]

    @pytest.mark.asyncio
    async def test_refresh_all(self, storage, proxy_stub, client_for):
        store = ShipmentStore(storage, client_for(proxy_stub.url))
        for code in ("R1", "R2", "R3"):
            await store.add(code, Courier.SF_EXPRESS)
        before = {s.id: s.last_updated for s in store.list()}
        proxy_stub.calls.clear()
        proxy_stub.respond("R2", 200, '{"meta": {"code": 200}, "data": {"delivery_status": "delivered"}}')

        refreshed = await store.refresh_all()

        assert len(refreshed) == 3
        assert len(proxy_stub.calls) == 3
        assert store.list() == refreshed
        for shipment in refreshed:
            assert shipment.last_updated >= before[shipment.id]
        assert {s.tracking_code: s.status for s in refreshed}["R2"] == ShipmentStatus.DELIVERED

    @pytest.mark.asyncio
    async def test_refresh_failure_isolated(self, storage, proxy_stub, client_for):
        store = ShipmentStore(storage, client_for(proxy_stub.url))
        await store.add("OK7", Courier.SF_EXPRESS)
        await store.add("BAD0", Courier.SF_EXPRESS)
        proxy_stub.respond("BAD0", 502, '{"error": "upstream down"}')

        refreshed = {s.tracking_code: s for s in await store.refresh_all()}

        assert refreshed["OK7"].degraded is False
        assert refreshed["BAD0"].degraded is True
        assert refreshed["BAD0"].status == ShipmentStatus.EXCEPTION

    @pytest.mark.asyncio
    async def test_refresh_never_moves_last_updated_back(self, storage, fake_client):
        future = datetime.now(timezone.utc) + timedelta(days=1)
        shipment = Shipment(
            id="f1",
            tracking_code="F1",
            courier=Courier.YTO,
            status=ShipmentStatus.PENDING,
            last_updated=future,
            created_at=future,
        )
        storage.set("shipments", [shipment.model_dump(mode="json")])

        refreshed = await ShipmentStore(storage, fake_client).refresh_all()

        assert refreshed[0].last_updated == future

    @pytest.mark.asyncio
    async def test_add_many(self, storage, fake_client):
        store = ShipmentStore(storage, fake_client)
        await store.add("OLD1", Courier.YTO)

        created = await store.add_many([("N4", Courier.ZTO), ("N0", Courier.STO), ("  ", Courier.STO)])

        assert [s.status for s in created] == [ShipmentStatus.PENDING, ShipmentStatus.EXCEPTION]
        assert [s.tracking_code for s in store.list()] == ["N4", "N0", "OLD1"]

    def test_invalid_stored_list(self, storage, fake_client):
        storage.set("shipments", [{"id": "x"}])
        with pytest.raises(StorageError):
            ShipmentStore(storage, fake_client).list()


def test_sort_by_date():
    shipments = [
        make_shipment("old", ShipmentStatus.EXCEPTION, updated_minutes_ago=30),
        make_shipment("new", ShipmentStatus.DELIVERED, updated_minutes_ago=1),
    ]
    assert [s.id for s in sorted_shipments(shipments, "date")] == ["new", "old"]


def test_sort_by_status():
    shipments = [
        make_shipment("unknown", ShipmentStatus.UNKNOWN),
        make_shipment("delivered", ShipmentStatus.DELIVERED),
        make_shipment("pending", ShipmentStatus.PENDING),
        make_shipment("transit-old", ShipmentStatus.IN_TRANSIT, updated_minutes_ago=10),
        make_shipment("transit-new", ShipmentStatus.IN_TRANSIT),
        make_shipment("delivering", ShipmentStatus.DELIVERING),
        make_shipment("exception", ShipmentStatus.EXCEPTION),
    ]
    assert [s.id for s in sorted_shipments(shipments, "status")] == [
        "exception",
        "delivering",
        "transit-new",
        "transit-old",
        "pending",
        "delivered",
        "unknown",
    ]


def test_sort_by_unknown_key():
    with pytest.raises(ValueError):
        sorted_shipments([], "courier")


def test_status_counts():
    counts = status_counts([
        make_shipment("a", ShipmentStatus.DELIVERED),
        make_shipment("b", ShipmentStatus.DELIVERED),
        make_shipment("c", ShipmentStatus.EXCEPTION),
    ])
    assert counts[ShipmentStatus.DELIVERED] == 2
    assert counts[ShipmentStatus.EXCEPTION] == 1
    assert counts[ShipmentStatus.PENDING] == 0
    assert len(counts) == len(ShipmentStatus)


def test_last_updated_before_created_rejected():
    now = datetime.now(timezone.utc)
    with pytest.raises(ValueError):
        Shipment(
            id="x",
            tracking_code="X",
            courier=Courier.YTO,
            status=ShipmentStatus.PENDING,
            last_updated=now - timedelta(seconds=1),
            created_at=now,
        )
