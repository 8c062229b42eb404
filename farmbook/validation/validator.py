"""
Two-Stage Receipt Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence (amount, date)
- Amount must be positive
- This catches photos the reader could not make sense of

STAGE 2 - SEMANTIC VALIDATION:
- Future date detection
- Very old dates (usually a misread year)
- Implausibly large amounts
- Possible duplicates of an already saved transaction
- This catches misreads that are well-formed but wrong

Stage 2 only runs when stage 1 passes.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them for the user to correct on the confirm screen.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

import structlog

from farmbook.config import AppSettings, get_settings
from farmbook.models.base import local_today
from farmbook.models.ledger import ReceiptData, ValidationIssue, ValidationResult
from farmbook.services.storage import RecordStorageInterface, StorageError


logger = structlog.get_logger(__name__)

OLD_RECEIPT_DAYS = 365 * 2


class ReceiptValidator:
    """
    Validates a receipt proposal before it is shown for confirmation.

    Stage 1: Schema validation (no storage needed)
    Stage 2: Semantic validation (storage used for duplicate checks)
    """

    def __init__(
        self,
        storage: Optional[RecordStorageInterface] = None,
        settings: Optional[AppSettings] = None,
    ):
        """
        Args:
            storage: Record storage for duplicate checking.
                     If None, duplicate checking is skipped.
        """
        self._storage = storage
        self._settings = settings or get_settings().app

    def _validate_schema(
        self,
        receipt: ReceiptData,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if receipt.amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="The total amount could not be read",
                severity="error",
                suggested_fix="Make sure the total is clearly visible, or enter it manually",
            ))
        elif receipt.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="The amount must be greater than zero",
                severity="error",
                suggested_fix="Check if the amount was read correctly",
            ))

        if receipt.receipt_date is None:
            issues.append(ValidationIssue(
                field="receipt_date",
                issue_type="missing",
                message="The purchase date could not be read",
                severity="error",
                suggested_fix="Enter the date manually on the confirm screen",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_semantic(
        self,
        receipt: ReceiptData,
        today: date,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        max_future_date = today + timedelta(days=self._settings.future_date_tolerance_days)
        if receipt.receipt_date and receipt.receipt_date > max_future_date:
            issues.append(ValidationIssue(
                field="receipt_date",
                issue_type="future_date",
                message=f"Receipt date ({receipt.receipt_date}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        min_reasonable_date = today - timedelta(days=OLD_RECEIPT_DAYS)
        if receipt.receipt_date and receipt.receipt_date < min_reasonable_date:
            issues.append(ValidationIssue(
                field="receipt_date",
                issue_type="suspicious_date",
                message=f"Receipt date ({receipt.receipt_date}) seems unusually old",
                severity="warning",
                suggested_fix="Please verify the year was read correctly",
            ))

        max_amount = Decimal(str(self._settings.max_receipt_amount))
        if receipt.amount and receipt.amount > max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount (¥{receipt.amount:,.0f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    async def _check_duplicates(self, receipt: ReceiptData) -> list[ValidationIssue]:
        """Warn when a transaction with the same date and amount exists."""
        if self._storage is None or receipt.amount is None or receipt.receipt_date is None:
            return []

        try:
            existing = await self._storage.find(
                "transactions",
                date=receipt.receipt_date,
                amount=receipt.amount,
            )
        except StorageError as e:
            # Duplicate detection is advisory; validation continues without it
            logger.warning("duplicate_check_failed", error=str(e))
            return []

        if not existing:
            return []
        return [ValidationIssue(
            field="duplicate",
            issue_type="potential_duplicate",
            message=(
                f"A ¥{receipt.amount:,.0f} entry dated {receipt.receipt_date} "
                "may already exist"
            ),
            severity="warning",
            suggested_fix="Please check this receipt hasn't been entered already",
        )]

    async def validate(
        self,
        receipt: ReceiptData,
        check_duplicates: bool = True,
        today: Optional[date] = None,
    ) -> ValidationResult:
        """
        Run the full two-stage validation pipeline.

        Returns:
            ValidationResult with all issues found
        """
        today = today or local_today()
        all_issues = []

        schema_valid, schema_issues = self._validate_schema(receipt)
        all_issues.extend(schema_issues)

        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(receipt, today)
            all_issues.extend(semantic_issues)

            if check_duplicates:
                all_issues.extend(await self._check_duplicates(receipt))

        warnings = [issue.message for issue in all_issues if issue.severity == "warning"]

        # A missing date can be typed in on the confirm screen; a missing
        # amount means the photo is not worth reviewing
        can_proceed = (
            receipt.amount is not None
            and not any(
                issue.severity == "error" and issue.field != "receipt_date"
                for issue in all_issues
            )
        )

        return ValidationResult(
            extraction_id=receipt.extraction_id,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            can_proceed_with_review=can_proceed,
            issues=all_issues,
            warnings=warnings,
        )

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """Summary of validation results shown above the confirm form."""
        if result.is_valid and not result.warnings:
            return "✅ All checks passed! Please review the details below."

        lines = []

        if not result.schema_valid:
            lines.append("❌ Some required information could not be read:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        lines.append("")
        if result.can_proceed_with_review:
            lines.append("You can still proceed, but please review carefully.")
        else:
            lines.append("Please retake the photo or enter the entry manually.")

        return "\n".join(lines)
