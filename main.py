"""
Parcel Tracking Dashboard API
Tracking proxy for TrackingMore plus the shipment list behind the dashboard
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from config import DEFAULT_BACKEND_URL, LOG_FORMAT, LOG_LEVEL, STORAGE_FILE, STORAGE_KEY_BACKEND_URL
from couriers import Courier, courier_from_value, provider_code
from excel_processor import ExcelProcessor, shipments_to_excel
from models import Shipment
from shipment_store import (
    LocalStorage,
    ShipmentStore,
    StorageError,
    find_shipment,
    get_api_key,
    get_backend_url,
    save_api_key,
    save_backend_url,
    sorted_shipments,
    status_counts,
    tracking_config,
)
from track_proxy import MissingParametersError, forward_tracking_request, parse_track_request
from tracking_api import TrackingClient

# Set up logging
logging.basicConfig(
    level=LOG_LEVEL,
    format=LOG_FORMAT
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Parcel Tracking Dashboard",
    description="Track parcels across couriers through a TrackingMore proxy",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Sent with every proxy answer, preflight included
PROXY_CORS_HEADERS = {
    "Access-Control-Allow-Credentials": "true",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,OPTIONS,POST",
    "Access-Control-Allow-Headers": (
        "X-CSRF-Token, X-Requested-With, Accept, Accept-Version, Content-Length, "
        "Content-MD5, Content-Type, Date, X-Api-Version"
    ),
}

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class AddShipmentRequest(BaseModel):
    tracking_code: str
    courier: str


class ShipmentListResponse(BaseModel):
    """Response model for the dashboard list"""
    total: int
    counts: Dict[str, int]
    shipments: List[Shipment]


class SettingsUpdate(BaseModel):
    api_key: Optional[str] = None
    backend_url: Optional[str] = None


class SettingsResponse(BaseModel):
    api_key: str
    backend_url: str
    using_default_backend: bool


class ImportResponse(BaseModel):
    """Response model for spreadsheet import"""
    total_rows: int
    imported: int
    rejected: List[str]
    shipments: List[Shipment]


class CourierInfo(BaseModel):
    name: str
    label: str
    provider_code: Optional[str] = None
    supported: bool


def get_storage() -> LocalStorage:
    return LocalStorage(STORAGE_FILE)


def get_tracking_client(storage: LocalStorage = Depends(get_storage)) -> TrackingClient:
    # Built per request so saved settings apply immediately
    return TrackingClient(tracking_config(storage))


def get_store(
    storage: LocalStorage = Depends(get_storage),
    client: TrackingClient = Depends(get_tracking_client)
) -> ShipmentStore:
    return ShipmentStore(storage, client)


def _parse_courier(value: str) -> Courier:
    try:
        return courier_from_value(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"Storage error on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Parcel Tracking Dashboard",
        "version": app.version,
        "endpoints": {
            "POST /api/track": "Proxy a realtime lookup to TrackingMore",
            "GET /shipments": "List tracked shipments (sort_by=date|status)",
            "POST /shipments": "Register a tracking code",
            "POST /shipments/refresh": "Re-check every shipment",
            "POST /shipments/import": "Register codes from an Excel/CSV file",
            "GET /shipments/export": "Download shipments as Excel",
            "GET /settings": "Show API key and backend URL",
            "GET /docs": "API documentation"
        }
    }


# Tracking proxy

@app.options("/api/track")
async def track_preflight():
    return Response(status_code=200, headers=PROXY_CORS_HEADERS)


@app.post("/api/track")
async def track(request: Request):
    """
    Forward a realtime lookup to TrackingMore.

    Body: {"tracking_number", "courier_code", "api_key"}. The upstream
    JSON body and status code are returned as they are.
    """
    try:
        payload = await request.json()
    except ValueError:
        payload = None

    try:
        tracking_number, courier_code, api_key = parse_track_request(payload)
    except MissingParametersError as e:
        return JSONResponse(
            status_code=400,
            content={"error": "Missing parameters", "details": str(e)},
            headers=PROXY_CORS_HEADERS
        )

    try:
        status_code, data = await forward_tracking_request(tracking_number, courier_code, api_key)
    except Exception as e:
        logger.error(f"[Fatal Error] proxy lookup for {tracking_number}: {type(e).__name__} - {str(e)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "message": str(e) or type(e).__name__},
            headers=PROXY_CORS_HEADERS
        )

    return JSONResponse(status_code=status_code, content=data, headers=PROXY_CORS_HEADERS)


@app.api_route("/api/track", methods=["GET", "PUT", "PATCH", "DELETE"])
async def track_method_not_allowed():
    return JSONResponse(status_code=405, content={"error": "Method Not Allowed"}, headers=PROXY_CORS_HEADERS)


# Dashboard

@app.get("/couriers", response_model=List[CourierInfo])
async def list_couriers():
    return [
        CourierInfo(
            name=courier.name,
            label=courier.label,
            provider_code=provider_code(courier),
            supported=provider_code(courier) is not None
        )
        for courier in Courier
    ]


@app.get("/shipments", response_model=ShipmentListResponse)
async def list_shipments(sort_by: str = "date", store: ShipmentStore = Depends(get_store)):
    shipments = store.list()
    try:
        ordered = sorted_shipments(shipments, sort_by)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ShipmentListResponse(
        total=len(ordered),
        counts={status.value: count for status, count in status_counts(ordered).items()},
        shipments=ordered
    )


@app.post("/shipments", response_model=Shipment, status_code=201)
async def add_shipment(data: AddShipmentRequest, store: ShipmentStore = Depends(get_store)):
    courier = _parse_courier(data.courier)
    try:
        return await store.add(data.tracking_code, courier)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/shipments/refresh", response_model=ShipmentListResponse)
async def refresh_shipments(store: ShipmentStore = Depends(get_store)):
    shipments = await store.refresh_all()
    return ShipmentListResponse(
        total=len(shipments),
        counts={status.value: count for status, count in status_counts(shipments).items()},
        shipments=shipments
    )


@app.post("/shipments/import", response_model=ImportResponse)
async def import_shipments(
    file: UploadFile = File(..., description="Excel/CSV file with TrackingCode and Courier columns"),
    store: ShipmentStore = Depends(get_store)
):
    """
    Register every valid row of an uploaded spreadsheet

    Rows with an empty code or unknown courier are skipped and reported.
    """
    content = await file.read()
    processor = ExcelProcessor(content, file.filename or "")
    try:
        df = processor.load()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    entries, rejected = processor.get_entries()
    created = await store.add_many(entries)
    logger.info(f"Import of {file.filename}: {len(created)} added, {len(rejected)} rejected")

    return ImportResponse(
        total_rows=len(df),
        imported=len(created),
        rejected=rejected,
        shipments=created
    )


@app.get("/shipments/export")
async def export_shipments(sort_by: str = "date", store: ShipmentStore = Depends(get_store)):
    try:
        shipments = sorted_shipments(store.list(), sort_by)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return Response(
        content=shipments_to_excel(shipments),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="shipments_{timestamp}.xlsx"'}
    )


@app.get("/shipments/{shipment_id}", response_model=Shipment)
async def get_shipment(shipment_id: str, store: ShipmentStore = Depends(get_store)):
    shipment = find_shipment(store.list(), shipment_id)
    if shipment is None:
        raise HTTPException(status_code=404, detail="Shipment not found")
    return shipment


@app.delete("/shipments/{shipment_id}", status_code=204)
async def delete_shipment(shipment_id: str, store: ShipmentStore = Depends(get_store)):
    store.delete(shipment_id)
    return Response(status_code=204)


# Settings

def _settings_response(storage: LocalStorage) -> SettingsResponse:
    return SettingsResponse(
        api_key=get_api_key(storage),
        backend_url=get_backend_url(storage),
        using_default_backend=storage.get(STORAGE_KEY_BACKEND_URL) is None
    )


@app.get("/settings", response_model=SettingsResponse)
async def read_settings(storage: LocalStorage = Depends(get_storage)):
    return _settings_response(storage)


@app.put("/settings", response_model=SettingsResponse)
async def update_settings(data: SettingsUpdate, storage: LocalStorage = Depends(get_storage)):
    if data.api_key is not None:
        save_api_key(storage, data.api_key)
    if data.backend_url is not None:
        save_backend_url(storage, data.backend_url)
        logger.info(f"Backend URL set to {get_backend_url(storage)} (default {DEFAULT_BACKEND_URL})")
    return _settings_response(storage)


if __name__ == "__main__":
    import uvicorn

    STORAGE_FILE.parent.mkdir(parents=True, exist_ok=True)

    # Run the application
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
