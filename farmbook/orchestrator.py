"""
Main Orchestrator for Farmbook

This module ties together all the components and defines the
end-to-end flows for:
1. Receipt entry (photo -> upload -> read -> validate -> confirm -> save)
2. Work log entry (online save, or offline queue and later replay)

DESIGN DECISION: The orchestrator enforces the boundaries:
- No transaction is saved from a receipt without human confirmation
- A work log recorded offline is never lost; it waits in the queue
- Every step is audited

It also owns create_app_components(), the single place where storage,
services and flows are wired together for the Streamlit app.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import NamedTuple, Optional, Union
from uuid import UUID

import structlog

from farmbook.audit import AuditLogger, configure_logging, create_correlation_id
from farmbook.board import BoardService
from farmbook.config import get_settings
from farmbook.ledger import LedgerService
from farmbook.models.audit import AuditEventBuilder
from farmbook.models.board import WorkLog
from farmbook.models.ledger import ReceiptData, Transaction, ValidationResult
from farmbook.notifications import PushNotifier
from farmbook.offline import OfflineSyncManager, OfflineWorkLogQueue, QueuedWorkLog
from farmbook.services.image import CloudinaryPhotoService, assess_photo_quality
from farmbook.services.ocr import AllModelsFailedError, GeminiReceiptService, should_proceed
from farmbook.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStorage,
    InMemoryRecordStorage,
    RecordStorageInterface,
)
from farmbook.services.weather import OpenMeteoClient
from farmbook.validation import ReceiptValidator


logger = structlog.get_logger(__name__)

RECEIPT_PHOTO_FOLDER = "receipts"


class ReceiptEntryFlow:
    """
    Orchestrates entering a transaction from a receipt photo.

    Flow:
    1. Check -> Quick photo quality heuristics (advisory only)
    2. Upload -> Store the photo, keep its URL
    3. Read -> Gemini proposes amount, date, category, text
    4. Validate -> Readability gate, then two-stage validation
    5. Review -> Present to user (PAUSE - require confirmation)
    6. Confirm -> User explicitly approves (and may edit)
    7. Save -> Persist as a Transaction

    Human confirmation (step 6) is MANDATORY.
    The system NEVER auto-saves.
    """

    def __init__(
        self,
        ledger: LedgerService,
        ocr_service: Optional[GeminiReceiptService] = None,
        photo_service: Optional[CloudinaryPhotoService] = None,
        validator: Optional[ReceiptValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._ledger = ledger
        self._ocr_service = ocr_service or GeminiReceiptService()
        self._photo_service = photo_service
        self._validator = validator or ReceiptValidator()
        self._audit_logger = audit_logger or AuditLogger()

    async def analyze_receipt(
        self,
        image_bytes: bytes,
        mime_type: str = "image/jpeg",
        correlation_id: Optional[UUID] = None,
    ) -> tuple[ReceiptData, ValidationResult, Optional[str], str]:
        """
        Upload and read a receipt photo.

        Returns:
            (receipt, validation_result, image_url, message_for_user)

        Raises:
            AllModelsFailedError: If no model could read the receipt
            PhotoUploadError: If the photo could not be stored
        """
        correlation_id = correlation_id or create_correlation_id()
        _, photo_issues = assess_photo_quality(image_bytes)

        image_url = None
        if self._photo_service is not None:
            try:
                image_url = await self._photo_service.upload(image_bytes, RECEIPT_PHOTO_FOLDER)
            except Exception as e:
                await self._audit_logger.log_external_service_error(
                    service="cloudinary",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
                raise

        try:
            receipt = await self._ocr_service.analyze(image_bytes, mime_type)
        except AllModelsFailedError as e:
            await self._audit_logger.log(AuditEventBuilder.receipt_analysis_failed(
                tried_models=e.tried_models,
                error_message=str(e),
                correlation_id=correlation_id,
            ))
            raise

        await self._audit_logger.log(AuditEventBuilder.receipt_analyzed(
            receipt.extraction_id,
            receipt.model_used,
            correlation_id,
        ))

        readable, read_note = should_proceed(receipt)
        result = await self._validator.validate(receipt)
        if not readable:
            result = result.model_copy(update={"can_proceed_with_review": False})
        if not result.is_valid:
            issues = [
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in result.issues
            ]
            stage = "schema" if not result.schema_valid else "semantic"
            await self._audit_logger.log(AuditEventBuilder.receipt_validation_failed(
                receipt.extraction_id, stage, issues, correlation_id,
            ))

        if readable:
            message = self._validator.get_user_friendly_summary(result)
            if read_note:
                message = f"{read_note}\n\n{message}"
        else:
            message = read_note
        if photo_issues:
            message += "\n\n📷 " + "\n📷 ".join(photo_issues)
        return receipt, result, image_url, message

    async def confirm_and_save(
        self,
        user_id: Optional[UUID],
        receipt: ReceiptData,
        amount: Decimal,
        entry_date: date,
        account_id: UUID,
        description: Optional[str] = None,
        image_url: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Save the reviewed receipt as a transaction.

        CRITICAL: This is called ONLY after explicit user confirmation.
        The values passed in are what the user confirmed, not what the
        reader proposed.
        """
        return await self._ledger.save_transaction(
            user_id,
            amount,
            entry_date,
            account_id,
            description=description,
            ocr_text=receipt.ocr_text,
            image_url=image_url,
            correlation_id=correlation_id,
        )


class WorkLogFlow:
    """
    Orchestrates recording work from the field.

    Online, the log is saved straight away. Offline, it goes into the
    local queue and is replayed by the sync manager on reconnect.
    """

    def __init__(
        self,
        board: BoardService,
        sync_manager: OfflineSyncManager,
    ):
        self._board = board
        self._sync_manager = sync_manager

    async def submit(
        self,
        task_id: UUID,
        user_id: Optional[UUID],
        notes: Optional[str] = None,
        photos: Optional[list[bytes]] = None,
        started_at: Optional[datetime] = None,
        ended_at: Optional[datetime] = None,
    ) -> Union[WorkLog, QueuedWorkLog]:
        if not self._sync_manager.is_online:
            return await self._sync_manager.record(task_id, user_id, notes, photos)
        return await self._board.log_work(
            task_id,
            user_id,
            started_at=started_at,
            ended_at=ended_at,
            notes=notes,
            photos=photos,
        )


class AppComponents(NamedTuple):
    """Everything the app needs, wired together."""

    storage: RecordStorageInterface
    audit_logger: AuditLogger
    board: BoardService
    ledger: LedgerService
    receipt_flow: Optional[ReceiptEntryFlow]
    work_log_flow: WorkLogFlow
    sync_manager: OfflineSyncManager
    notifier: Optional[PushNotifier]
    weather: OpenMeteoClient
    sheets_client: Optional[GoogleSheetsClient]


def _optional_service(name: str, factory):
    """Build a service whose settings may be missing; None if so."""
    try:
        return factory()
    except Exception as e:
        logger.warning("service_not_configured", service=name, error=str(e))
        return None


def create_app_components(
    use_storage: bool = True,
    offline_queue_path: Optional[str] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                     Without it, records live in memory for this run.
        offline_queue_path: Override for the offline queue file.
    """
    configure_logging(debug=get_settings().app.debug_mode)

    sheets_client = None
    storage: RecordStorageInterface
    audit_logger = AuditLogger()  # Local-only logging until storage is up

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            storage = GoogleSheetsRecordStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            storage = InMemoryRecordStorage()
    else:
        storage = InMemoryRecordStorage()

    photo_service = _optional_service("cloudinary", CloudinaryPhotoService)
    ocr_service = _optional_service("gemini", GeminiReceiptService)
    notifier = _optional_service(
        "web_push",
        lambda: PushNotifier(storage, audit_logger=audit_logger),
    )

    board = BoardService(
        storage,
        photo_service=photo_service,
        audit_logger=audit_logger,
        notifier=notifier,
    )
    ledger = LedgerService(storage, audit_logger=audit_logger)

    receipt_flow = None
    if ocr_service is not None:
        receipt_flow = ReceiptEntryFlow(
            ledger,
            ocr_service=ocr_service,
            photo_service=photo_service,
            validator=ReceiptValidator(storage),
            audit_logger=audit_logger,
        )

    sync_manager = OfflineSyncManager(
        OfflineWorkLogQueue(offline_queue_path),
        board,
        audit_logger=audit_logger,
    )

    return AppComponents(
        storage=storage,
        audit_logger=audit_logger,
        board=board,
        ledger=ledger,
        receipt_flow=receipt_flow,
        work_log_flow=WorkLogFlow(board, sync_manager),
        sync_manager=sync_manager,
        notifier=notifier,
        weather=OpenMeteoClient(),
        sheets_client=sheets_client,
    )
