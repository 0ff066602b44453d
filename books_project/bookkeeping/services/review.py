import datetime
import logging
from dataclasses import asdict, dataclass, replace
from typing import Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from ..models import (PENDING_COUNTERPARTY, AccountingEntry, ExpenseType,
                      InvoiceUpload, UploadReviewDraft)
from ..models.draft import MAX_BOOKING_TEXT_LENGTH, MAX_COUNTERPARTY_LENGTH
from .results import Reason, ServiceResult
from .uploads import get_upload_for_company
from .validation import (is_non_negative_int, is_positive_int, parse_date_only)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DraftValues:
    """Snapshot of the editable draft fields for one upload"""

    document_date: datetime.date
    counterparty_name: str
    booking_text: str
    amount_gross: int
    amount_net: Optional[int] = None
    amount_tax: Optional[int] = None
    payment_received_date: Optional[datetime.date] = None
    type_of_expense_id: Optional[int] = None


@dataclass(frozen=True)
class UploadReview:
    upload: InvoiceUpload
    draft: DraftValues
    review_status: str  # "pending_review" | "saved"


# API field name -> draft attribute
DRAFT_FIELDS = {
    "documentDate": "document_date",
    "counterpartyName": "counterparty_name",
    "bookingText": "booking_text",
    "amountGross": "amount_gross",
    "amountNet": "amount_net",
    "amountTax": "amount_tax",
    "paymentReceivedDate": "payment_received_date",
    "typeOfExpenseId": "type_of_expense_id",
}


def default_draft(upload):
    """What the review shows before extraction or the user wrote anything"""
    return DraftValues(
        document_date=timezone.localdate(upload.uploaded_at),
        counterparty_name=PENDING_COUNTERPARTY,
        booking_text="",
        amount_gross=0,
    )


def _draft_from_row(row):
    return DraftValues(
        document_date=row.document_date,
        counterparty_name=row.counterparty_name,
        booking_text=row.booking_text,
        amount_gross=row.amount_gross,
        amount_net=row.amount_net,
        amount_tax=row.amount_tax,
        payment_received_date=row.payment_received_date,
        type_of_expense_id=row.type_of_expense_id,
    )


def _review_status(upload):
    if AccountingEntry.objects.filter(upload_id=upload.pk).exists():
        return "saved"
    return "pending_review"


def _build_review(upload):
    row = UploadReviewDraft.objects.filter(upload_id=upload.pk).first()
    draft = _draft_from_row(row) if row else default_draft(upload)
    return UploadReview(upload=upload, draft=draft, review_status=_review_status(upload))


# ----------------------------
# Review draft store
# ----------------------------
def get_review(upload_id, company_id):
    upload = get_upload_for_company(upload_id, company_id)
    if upload is None:
        return None
    return _build_review(upload)


def patch_draft(upload_id, company_id, patch):
    """Overwrite only the supplied draft fields, creating the row on first write

    `patch` uses draft attribute names (see validate_draft_patch).
    Returns the full current review, or None when the upload is unknown.
    """
    expense_type_id = patch.get("type_of_expense_id")
    if expense_type_id is not None and not ExpenseType.objects.filter(pk=expense_type_id).exists():
        raise ValidationError({"typeOfExpenseId": "Referenced expense type was not found."})

    with transaction.atomic():
        upload = get_upload_for_company(upload_id, company_id)
        if upload is None:
            return None
        # lock the draft row (if any) so two patches do not interleave
        row = UploadReviewDraft.objects.select_for_update().filter(upload_id=upload.pk).first()
        current = _draft_from_row(row) if row else default_draft(upload)
        merged = replace(current, **patch)
        UploadReviewDraft.objects.update_or_create(upload_id=upload.pk, defaults=asdict(merged))

    return UploadReview(upload=upload, draft=merged, review_status=_review_status(upload))


def seed_from_extraction(upload_id, extracted):
    """Insert the extracted draft unless a draft row already exists

    First write wins: a draft the user (or an earlier run) already created
    is never overwritten. Returns True when a row was inserted.
    """
    upload = InvoiceUpload.objects.get(pk=upload_id)
    fallback = default_draft(upload)
    values = DraftValues(
        document_date=extracted.document_date or fallback.document_date,
        counterparty_name=extracted.counterparty_name or fallback.counterparty_name,
        booking_text=extracted.booking_text or fallback.booking_text,
        amount_gross=extracted.amount_gross,
        amount_net=extracted.amount_net,
        amount_tax=extracted.amount_tax,
        payment_received_date=extracted.payment_received_date,
    )
    fields = asdict(values)
    fields.pop("type_of_expense_id")
    _, created = UploadReviewDraft.objects.get_or_create(upload_id=upload.pk, defaults=fields)
    if not created:
        logger.info("Draft for upload %s already exists, extraction result not applied", upload.pk)
    return created


def validate_draft_patch(payload):
    """Check an API patch body, return ServiceResult with the translated patch

    Only known keys are accepted; each supplied key is validated on its own.
    """
    if not isinstance(payload, dict):
        return ServiceResult.failure(Reason.VALIDATION, "Request body must be a JSON object.")

    for key in payload:
        if key not in DRAFT_FIELDS:
            return ServiceResult.failure(Reason.VALIDATION, f"Unknown field: {key}.", field=key)

    patch = {}

    def fail(field, message):
        return ServiceResult.failure(Reason.VALIDATION, message, field=field)

    if "documentDate" in payload:
        parsed = parse_date_only(payload["documentDate"])
        if parsed is None:
            return fail("documentDate", "documentDate must be a valid YYYY-MM-DD string.")
        patch["document_date"] = parsed

    if "counterpartyName" in payload:
        value = payload["counterpartyName"]
        if not isinstance(value, str) or len(value) > MAX_COUNTERPARTY_LENGTH:
            return fail(
                "counterpartyName",
                f"counterpartyName must be a string with at most {MAX_COUNTERPARTY_LENGTH} characters.",
            )
        patch["counterparty_name"] = value

    if "bookingText" in payload:
        value = payload["bookingText"]
        if not isinstance(value, str) or len(value) > MAX_BOOKING_TEXT_LENGTH:
            return fail(
                "bookingText",
                f"bookingText must be a string with at most {MAX_BOOKING_TEXT_LENGTH} characters.",
            )
        patch["booking_text"] = value

    if "amountGross" in payload:
        if not is_non_negative_int(payload["amountGross"]):
            return fail("amountGross", "amountGross must be an integer >= 0.")
        patch["amount_gross"] = payload["amountGross"]

    for api_name in ("amountNet", "amountTax"):
        if api_name in payload:
            value = payload[api_name]
            if value is not None and not is_non_negative_int(value):
                return fail(api_name, f"{api_name} must be an integer >= 0 or null.")
            patch[DRAFT_FIELDS[api_name]] = value

    if "paymentReceivedDate" in payload:
        value = payload["paymentReceivedDate"]
        parsed = None
        if value is not None:
            parsed = parse_date_only(value)
            if parsed is None:
                return fail(
                    "paymentReceivedDate",
                    "paymentReceivedDate must be a valid YYYY-MM-DD string or null.",
                )
        patch["payment_received_date"] = parsed

    if "typeOfExpenseId" in payload:
        value = payload["typeOfExpenseId"]
        if value is not None and not is_positive_int(value):
            return fail("typeOfExpenseId", "typeOfExpenseId must be a positive integer or null.")
        patch["type_of_expense_id"] = value

    return ServiceResult.success(patch)
