"""Services package."""

from farmbook.services.image import (
    CloudinaryPhotoService,
    InvalidPhotoError,
    PhotoTooLargeError,
    PhotoUploadError,
)
from farmbook.services.ocr import (
    AllModelsFailedError,
    GeminiReceiptService,
    ReceiptOCRError,
    ReceiptParseError,
)
from farmbook.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStorage,
    InMemoryAuditStorage,
    InMemoryRecordStorage,
    NotFoundError,
    RecordStorageInterface,
    StorageError,
)
from farmbook.services.weather import OpenMeteoClient

__all__ = [
    # Photo services
    "CloudinaryPhotoService",
    "InvalidPhotoError",
    "PhotoTooLargeError",
    "PhotoUploadError",
    # Receipt reading
    "AllModelsFailedError",
    "GeminiReceiptService",
    "ReceiptOCRError",
    "ReceiptParseError",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStorage",
    "InMemoryAuditStorage",
    "InMemoryRecordStorage",
    "NotFoundError",
    "RecordStorageInterface",
    "StorageError",
    # Weather
    "OpenMeteoClient",
]
