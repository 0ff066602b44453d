import datetime
import logging
from dataclasses import dataclass, replace
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Max
from django.db.models.functions import Coalesce

from ..models import AccountingEntry, Company, ExpenseType, InvoiceUpload
from ..models.draft import MAX_BOOKING_TEXT_LENGTH, MAX_COUNTERPARTY_LENGTH
from .results import Reason, ServiceResult
from .review import get_review
from .validation import is_non_negative_int

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntrySummary:
    """Read-only view of one saved ledger row"""

    id: int
    company_id: int
    document_number: int
    entry_type: str
    document_date: datetime.date
    document_year: int
    counterparty_name: str
    booking_text: str
    amount_gross: int
    amount_net: Optional[int]
    amount_tax: Optional[int]
    payment_received_date: Optional[datetime.date]
    type_of_expense_id: Optional[int]
    expense_pl_category: Optional[str]
    upload_id: str
    source_original_filename: str
    extraction_status: str
    created_at: datetime.datetime

    @property
    def reference(self):
        return format_document_reference(self)


def format_document_reference(entry):
    """Human readable number: I-2025-7 for income, E-2025-7 for expenses"""
    prefix = "I" if entry.entry_type == "income" else "E"
    return f"{prefix}-{entry.document_year}-{entry.document_number}"


def _summarize(entry, original_filename):
    return EntrySummary(
        id=entry.pk,
        company_id=entry.company_id,
        document_number=entry.document_number,
        entry_type=entry.entry_type,
        document_date=entry.document_date,
        document_year=entry.document_year,
        counterparty_name=entry.counterparty_name,
        booking_text=entry.booking_text,
        amount_gross=entry.amount_gross,
        amount_net=entry.amount_net,
        amount_tax=entry.amount_tax,
        payment_received_date=entry.payment_received_date,
        type_of_expense_id=entry.type_of_expense_id,
        expense_pl_category=entry.expense_pl_category,
        upload_id=str(entry.upload_id),
        source_original_filename=original_filename,
        extraction_status=entry.extraction_status,
        created_at=entry.created_at,
    )


# ----------------------------
# Pre-commit validation
# ----------------------------
def validate_for_commit(entry_type, draft):
    """Field checks a draft must pass before it may become a ledger entry"""

    def fail(field, message):
        return ServiceResult.failure(Reason.VALIDATION, message, field=field)

    if not isinstance(draft.document_date, datetime.date):
        return fail("documentDate", "documentDate must be a valid YYYY-MM-DD date.")

    counterparty_name = (draft.counterparty_name or "").strip()
    if not counterparty_name or len(counterparty_name) > MAX_COUNTERPARTY_LENGTH:
        return fail(
            "counterpartyName",
            f"counterpartyName must be non-empty and at most {MAX_COUNTERPARTY_LENGTH} characters.",
        )

    booking_text = (draft.booking_text or "").strip()
    if not booking_text or len(booking_text) > MAX_BOOKING_TEXT_LENGTH:
        return fail(
            "bookingText",
            f"bookingText must be non-empty and at most {MAX_BOOKING_TEXT_LENGTH} characters.",
        )

    if not is_non_negative_int(draft.amount_gross):
        return fail("amountGross", "amountGross must be an integer >= 0.")
    for field, value in (("amountNet", draft.amount_net), ("amountTax", draft.amount_tax)):
        if value is not None and not is_non_negative_int(value):
            return fail(field, f"{field} must be an integer >= 0 or null.")

    if entry_type == "income":
        if not isinstance(draft.payment_received_date, datetime.date):
            return fail("paymentReceivedDate", "paymentReceivedDate is required for income entries.")
        if draft.type_of_expense_id is not None:
            return fail("typeOfExpenseId", "typeOfExpenseId must be null for income entries.")
    elif entry_type == "expense":
        if draft.payment_received_date is not None:
            return fail("paymentReceivedDate", "paymentReceivedDate must be null for expense entries.")
        if draft.type_of_expense_id is None:
            return fail("typeOfExpenseId", "typeOfExpenseId is required for expense entries.")
    else:
        return fail("entryType", "entryType must be income or expense.")

    return ServiceResult.success()


# ----------------------------
# Document numbering & commit
# ----------------------------
def _next_document_number(company_id, document_year, entry_type):
    # 1 + highest number in the bucket, 1 for an empty bucket
    return AccountingEntry.objects.for_bucket(company_id, document_year, entry_type).aggregate(
        next_number=Coalesce(Max("document_number"), 0) + 1
    )["next_number"]


def _already_saved():
    return ServiceResult.failure(
        Reason.ALREADY_SAVED, "Accounting entry for this upload already exists.")


def commit_entry(company_id, upload_id, entry_type, draft):
    """
    Copy a validated draft into the ledger under the next document number.

    Numbers are 1..N per (company, document year, entry type):
      - the company row is locked for the whole transaction, so commits of
        one company run one after another (PostgreSQL row lock)
      - MAX+1 is read and the row inserted inside that transaction
      - the unique (company, year, type, number) constraint is the backstop;
        a collision re-reads MAX and tries again, bounded by
        LEDGER_COMMIT_MAX_ATTEMPTS
    An upload becomes at most one entry: a second commit returns
    Reason.ALREADY_SAVED. Database errors propagate to the caller.
    """
    max_attempts = settings.LEDGER_COMMIT_MAX_ATTEMPTS

    with transaction.atomic():
        # Lock the company row to serialize numbering for this tenant
        company = Company.objects.select_for_update().get(pk=company_id)
        upload = InvoiceUpload.objects.for_company(company).get(pk=upload_id)

        # Reject dangling expense type references before any insert
        pl_category = None
        if draft.type_of_expense_id is not None:
            expense_type = ExpenseType.objects.filter(pk=draft.type_of_expense_id).first()
            if expense_type is None:
                return ServiceResult.failure(
                    Reason.EXPENSE_TYPE_NOT_FOUND, "Referenced expense type was not found.",
                    field="typeOfExpenseId",
                )
            # snapshot, later re-categorisation does not move booked amounts
            pl_category = expense_type.pl_category

        # Fast path for the common double-click / retry case
        if AccountingEntry.objects.filter(upload_id=upload.pk).exists():
            return _already_saved()

        document_year = draft.document_date.year
        for attempt in range(1, max_attempts + 1):
            document_number = _next_document_number(company.pk, document_year, entry_type)
            entry = AccountingEntry(
                company=company,
                document_number=document_number,
                entry_type=entry_type,
                document_date=draft.document_date,
                counterparty_name=draft.counterparty_name,
                booking_text=draft.booking_text,
                amount_gross=draft.amount_gross,
                amount_net=draft.amount_net,
                amount_tax=draft.amount_tax,
                payment_received_date=draft.payment_received_date,
                type_of_expense_id=draft.type_of_expense_id,
                expense_pl_category=pl_category,
                upload=upload,
                extraction_status=upload.extraction_status,
            )
            try:
                # savepoint: a failed insert must not poison the outer transaction
                with transaction.atomic():
                    entry.save()
            except IntegrityError:
                # Unique upload -> somebody else saved it meanwhile
                if AccountingEntry.objects.filter(upload_id=upload.pk).exists():
                    return _already_saved()
                # Otherwise the number was taken: re-read MAX and retry
                if attempt == max_attempts:
                    logger.error(
                        "Giving up on document number for company %s %s/%s after %d attempts",
                        company.pk, entry_type, document_year, attempt,
                    )
                    raise
                logger.warning(
                    "Document number %s already taken for company %s %s/%s, retrying",
                    document_number, company.pk, entry_type, document_year,
                )
                continue

            logger.info(
                "Committed %s for company %s from upload %s",
                format_document_reference(entry), company.pk, upload.pk,
            )
            return ServiceResult.success(_summarize(entry, upload.original_filename))


def save_entry_from_upload_review(upload_id, company_id):
    """Validate the current draft of an upload and commit it to the ledger"""
    review = get_review(upload_id, company_id)
    if review is None:
        return ServiceResult.failure(Reason.NOT_FOUND, "Upload not found.")

    upload = review.upload
    check = validate_for_commit(upload.entry_type, review.draft)
    if not check.ok:
        return check

    draft = replace(
        review.draft,
        counterparty_name=review.draft.counterparty_name.strip(),
        booking_text=review.draft.booking_text.strip(),
    )
    return commit_entry(company_id, upload.pk, upload.entry_type, draft)


def list_entries(company_id, year=None):
    """Ledger rows of a company, newest first"""
    entries = AccountingEntry.objects.for_company(company_id).select_related("upload")
    if year is not None:
        entries = entries.for_year(year)
    return [
        _summarize(entry, entry.upload.original_filename)
        for entry in entries.order_by("-created_at", "-id")
    ]
