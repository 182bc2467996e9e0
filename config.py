"""
Configuration settings for the Parcel Tracking Dashboard
"""
import os
from pathlib import Path

from pydantic import BaseModel, Field

# Base directory of the project
BASE_DIR = Path(__file__).resolve().parent

# Local key/value storage (shipment list, API key, backend URL)
STORAGE_FILE = Path(os.environ.get("STORAGE_FILE", BASE_DIR / "data" / "storage.json"))

# Storage keys
STORAGE_KEY_SHIPMENTS = "shipments"
STORAGE_KEY_API_KEY = "api_key"
STORAGE_KEY_BACKEND_URL = "backend_url"

# TrackingMore realtime API (called by the proxy only)
TRACKINGMORE_REALTIME_URL = os.environ.get(
    "TRACKINGMORE_REALTIME_URL",
    "https://api.trackingmore.com/v4/trackings/realtime"
)

# Default key for demo purposes
DEFAULT_TRACKINGMORE_KEY = os.environ.get("TRACKINGMORE_API_KEY", "u84jhs7u-c3em-42ro-4r72-63idxaxliyrg")

# Proxy endpoint used by the tracking client when the operator hasn't set one
DEFAULT_BACKEND_URL = os.environ.get("BACKEND_URL", "http://127.0.0.1:8000/api/track")

# Deadline for a single lookup through the proxy
TRACKING_API_TIMEOUT = float(os.environ.get("TRACKING_API_TIMEOUT", "15"))  # seconds

# Proxy gives up on the upstream before the client gives up on the proxy
TRACKINGMORE_TIMEOUT = max(TRACKING_API_TIMEOUT - 2, 1)  # seconds

# Public tracking pages
TRACKINGMORE_PUBLIC_URL = "https://www.trackingmore.com/track/en/{code}"
TRACKINGMORE_COURIER_URL = "https://www.trackingmore.com/track/en/{code}?express={slug}"
SEVENTEEN_TRACK_URL = "https://t.17track.net/en#nums={code}"

# Spreadsheet import columns
IMPORT_COLUMNS = {
    "TRACKING_CODE": "TrackingCode",
    "COURIER": "Courier",
}

# Tracking code validation
TRACKING_CODE_MAX_LENGTH = 64

# Logging settings
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class TrackingConfig(BaseModel):
    """Everything the tracking client needs to reach the proxy"""
    api_key: str = DEFAULT_TRACKINGMORE_KEY
    backend_url: str = DEFAULT_BACKEND_URL
    timeout: float = Field(default=TRACKING_API_TIMEOUT, gt=0)
