"""
Spreadsheet import of tracking codes and Excel export of the shipment list
"""
import io
import logging
from typing import List, Optional, Tuple

import pandas as pd

from config import IMPORT_COLUMNS, TRACKING_CODE_MAX_LENGTH
from couriers import Courier, courier_from_value
from models import Shipment

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "Tracking Code",
    "Courier",
    "Status",
    "Summary",
    "Simulated",
    "Last Updated",
    "Created At",
    "Source",
]


class ExcelProcessor:
    """Reads tracking codes from an uploaded Excel/CSV file"""

    def __init__(self, content: bytes, filename: str):
        """
        Initialize processor

        Args:
            content: raw file bytes
            filename: original file name, used to pick the reader
        """
        self.content = content
        self.filename = filename
        self.df: Optional[pd.DataFrame] = None

    def load(self) -> pd.DataFrame:
        """
        Load the file into a DataFrame

        Raises:
            ValueError: unsupported extension or missing columns
        """
        name = self.filename.lower()
        code_column = IMPORT_COLUMNS["TRACKING_CODE"]

        # Tracking codes read as str to avoid scientific notation
        if name.endswith((".xlsx", ".xls")):
            df = pd.read_excel(io.BytesIO(self.content), dtype={code_column: str})
        elif name.endswith(".csv"):
            df = pd.read_csv(io.BytesIO(self.content), dtype={code_column: str})
        else:
            raise ValueError("Unsupported file format. Please upload .xlsx, .xls, or .csv file")

        missing = [col for col in IMPORT_COLUMNS.values() if col not in df.columns]
        if missing:
            raise ValueError(f"Missing column(s): {', '.join(missing)}")

        logger.info(f"Loaded {len(df)} rows from {self.filename}")
        self.df = df
        return df

    def get_entries(self) -> Tuple[List[Tuple[str, Courier]], List[str]]:
        """
        Split rows into importable (code, courier) pairs and rejected rows

        Returns:
            (valid entries, human readable reasons for skipped rows)
        """
        if self.df is None:
            self.load()

        code_column = IMPORT_COLUMNS["TRACKING_CODE"]
        courier_column = IMPORT_COLUMNS["COURIER"]

        entries = []
        rejected = []
        seen = set()
        for index, row in self.df.iterrows():
            line = index + 2  # header row + 1-based
            code = row[code_column]
            if pd.isna(code) or not str(code).strip():
                rejected.append(f"Row {line}: empty tracking code")
                continue
            code = str(code).strip()
            if len(code) > TRACKING_CODE_MAX_LENGTH:
                rejected.append(f"Row {line}: tracking code too long")
                continue

            try:
                courier = courier_from_value("" if pd.isna(row[courier_column]) else row[courier_column])
            except ValueError as e:
                rejected.append(f"Row {line}: {e}")
                continue

            if (code, courier) in seen:
                rejected.append(f"Row {line}: duplicate of an earlier row")
                continue
            seen.add((code, courier))
            entries.append((code, courier))

        logger.info(f"{len(entries)} importable rows, {len(rejected)} rejected")
        return entries, rejected


def shipments_to_excel(shipments: List[Shipment]) -> bytes:
    """Render shipments as an .xlsx workbook"""
    rows = [
        {
            "Tracking Code": s.tracking_code,
            "Courier": s.courier.label,
            "Status": s.status.label,
            "Summary": s.summary,
            "Simulated": "yes" if s.degraded else "no",
            # Excel can't store timezone-aware datetimes
            "Last Updated": s.last_updated.replace(tzinfo=None),
            "Created At": s.created_at.replace(tzinfo=None),
            "Source": s.source_links[0].url if s.source_links else "",
        }
        for s in shipments
    ]
    df = pd.DataFrame(rows, columns=EXPORT_COLUMNS)

    buffer = io.BytesIO()
    df.to_excel(buffer, index=False, sheet_name="Shipments")
    return buffer.getvalue()
