"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the storage backend because:
1. The family can view (and fix) their data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (one family's farm is fine)
- No transactions (we handle this with careful ordering)
- Limited query capabilities (we filter in Python)

Each table is one worksheet. The header row is derived from the record
model's fields and columns are matched by name, so adding a field to a
model only appends a column to existing sheets.

Cell encoding: text fields are stored as-is; everything else is stored
as its JSON value (numbers, booleans, lists) or its ISO/str form
(dates, UUIDs, decimals, enums). Empty cells mean "not set".
"""

import json
from typing import Any, Optional, Type, get_args, get_origin
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic.fields import FieldInfo
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from farmbook.config import GoogleSheetsSettings, get_settings
from farmbook.models.audit import AUDIT_COLUMNS, AuditEvent
from farmbook.models.base import Record
from farmbook.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    RecordStorageInterface,
    StorageError,
    matches,
    model_for,
)


logger = structlog.get_logger(__name__)

# Retry transient Sheets failures, but never "not found" / "duplicate"
sheets_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_not_exception_type((NotFoundError, DuplicateError)),
    reraise=True,
)

_JSON_MARKERS = ("[", "{")
_JSON_LITERALS = ("true", "false", "null")


# =============================================================================
# ROW CODEC
# =============================================================================

def columns_for(model: Type[Record]) -> list[str]:
    """Header row for a record model (id first, then declared order)."""
    names = list(model.model_fields)
    names.remove("id")
    return ["id"] + names


def _is_text_field(field: FieldInfo) -> bool:
    """True for str / Optional[str] fields (but not str-based enums or lists)."""
    if get_origin(field.annotation) in (list, dict, set, tuple):
        return False
    candidates = get_args(field.annotation) or (field.annotation,)
    return any(c is str for c in candidates)


def encode_cell(value: Any) -> str:
    """Encode one JSON-mode value for a sheet cell."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def decode_cell(cell: str, field: FieldInfo) -> Any:
    """Inverse of encode_cell; returns the raw value for pydantic to coerce."""
    if _is_text_field(field):
        return cell
    stripped = cell.strip()
    if stripped.startswith(_JSON_MARKERS) or stripped.lower() in _JSON_LITERALS:
        return json.loads(stripped)
    return stripped


def record_to_row(record: Record, header: list[str]) -> list[str]:
    """Encode a record as a row matching the sheet header."""
    data = record.model_dump(mode="json")
    return [encode_cell(data.get(name)) for name in header]


def row_to_record(model: Type[Record], header: list[str], row: list[str]) -> Record:
    """Decode a sheet row into a record. Unknown columns are ignored."""
    fields = model.model_fields
    data = {}
    for name, cell in zip(header, row):
        if name not in fields or cell == "":
            continue
        data[name] = decode_cell(cell, fields[name])
    return model.model_validate(data)


# =============================================================================
# CLIENT
# =============================================================================

class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication, worksheet creation and header upkeep.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str]) -> gspread.Worksheet:
        """
        Get or create a worksheet whose header contains all given columns.

        Columns missing from an existing header are appended to it.
        """
        if title in self._worksheets:
            return self._worksheets[title]

        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=self._settings.sheet_rows,
                cols=len(columns),
            )
            sheet.append_row(columns, value_input_option="RAW")
            self._worksheets[title] = sheet
            return sheet

        header = sheet.row_values(1)
        missing = [c for c in columns if c not in header]
        if missing:
            new_header = header + missing
            if sheet.col_count < len(new_header):
                sheet.add_cols(len(new_header) - sheet.col_count)
            sheet.update(range_name="A1", values=[new_header], value_input_option="RAW")
            logger.info("sheet_header_extended", sheet=title, added=missing)

        self._worksheets[title] = sheet
        return sheet

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the audit log worksheet."""
        return self.get_worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS)


# =============================================================================
# RECORD STORAGE
# =============================================================================

class GoogleSheetsRecordStorage(RecordStorageInterface):
    """
    Google Sheets implementation of record storage.

    One worksheet per table, one record per row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self, table: str) -> tuple[gspread.Worksheet, Type[Record]]:
        model = model_for(table)
        return self._client.get_worksheet(table, columns_for(model)), model

    def _read(self, table: str) -> tuple[gspread.Worksheet, Type[Record], list[str], list[list[str]]]:
        sheet, model = self._sheet(table)
        values = sheet.get_all_values()
        header = values[0] if values else columns_for(model)
        return sheet, model, header, values[1:]

    @staticmethod
    def _row_index(header: list[str], rows: list[list[str]], record_id: UUID) -> Optional[int]:
        """1-based sheet row number holding record_id (header is row 1)."""
        id_col = header.index("id")
        target = str(record_id)
        for idx, row in enumerate(rows, start=2):
            if len(row) > id_col and row[id_col] == target:
                return idx
        return None

    @sheets_retry
    async def insert(self, table: str, record: Record) -> Record:
        """Append a record as a new row."""
        try:
            sheet, _, header, rows = self._read(table)
            if self._row_index(header, rows, record.id) is not None:
                raise DuplicateError(f"{table} already has a record with id {record.id}")
            sheet.append_row(record_to_row(record, header), value_input_option="RAW")
            return record
        except (DuplicateError, ConnectionError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert into {table}: {e}")

    async def get(self, table: str, record_id: UUID) -> Optional[Record]:
        try:
            _, model, header, rows = self._read(table)
            idx = self._row_index(header, rows, record_id)
            if idx is None:
                return None
            return row_to_record(model, header, rows[idx - 2])
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {table}: {e}")

    @sheets_retry
    async def update(self, table: str, record: Record) -> Record:
        """Overwrite the row holding this record."""
        try:
            sheet, _, header, rows = self._read(table)
            idx = self._row_index(header, rows, record.id)
            if idx is None:
                raise NotFoundError(f"{table} has no record with id {record.id}")
            sheet.update(
                range_name=f"A{idx}",
                values=[record_to_row(record, header)],
                value_input_option="RAW",
            )
            return record
        except (NotFoundError, ConnectionError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {table}: {e}")

    async def delete(self, table: str, record_id: UUID) -> bool:
        try:
            sheet, _, header, rows = self._read(table)
            idx = self._row_index(header, rows, record_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete from {table}: {e}")

    async def find(self, table: str, **filters: Any) -> list[Record]:
        try:
            _, model, header, rows = self._read(table)
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list {table}: {e}")

        records = []
        for row in rows:
            if not any(row):
                continue
            try:
                record = row_to_record(model, header, row)
            except Exception as e:
                # Someone edited the sheet by hand; skip the row, keep going
                logger.warning("sheet_row_skipped", table=table, error=str(e))
                continue
            if matches(record, filters):
                records.append(record)
        return records


# =============================================================================
# AUDIT STORAGE
# =============================================================================

class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _all_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(AuditEvent.from_sheets_row(row))
            except Exception as e:
                logger.warning("sheet_row_skipped", table="audit", error=str(e))
                continue
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. Failures are logged, never raised."""
        try:
            self._append(event)
            return True
        except Exception as e:
            logger.warning("audit_append_failed", error=str(e), event_id=str(event.event_id))
            return False

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append(self, event: AuditEvent) -> None:
        sheet = self._client.get_audit_sheet()
        sheet.append_row(event.to_sheets_row(), value_input_option="RAW")

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        try:
            events = [e for e in self._all_events() if e.correlation_id == correlation_id]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._all_events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        try:
            events = self._all_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        return sorted(events, key=lambda e: e.timestamp, reverse=True)[:limit]
