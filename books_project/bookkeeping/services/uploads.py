import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from django.conf import settings
from django.core.files.storage import default_storage
from django.db import DatabaseError, transaction
from django.db.models import Exists, OuterRef
from django.utils import timezone

from ..models import ENTRY_TYPE_VALUES, AccountingEntry, InvoiceUpload
from ..models.upload import upload_storage_path
from .results import Reason, ServiceResult

logger = logging.getLogger(__name__)

PDF_SIGNATURE = b"%PDF-"
PDF_CONTENT_TYPE = "application/pdf"

QUEUE_STATUSES = ("pending_review", "saved", "all")


@dataclass(frozen=True)
class UploadQueueItem:
    id: uuid.UUID
    entry_type: str
    original_filename: str
    uploaded_at: datetime
    extraction_status: str
    extraction_error_code: Optional[str]
    extraction_error_message: Optional[str]
    extracted_at: Optional[datetime]
    review_status: str


def _as_uuid(value):
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def get_upload_for_company(upload_id, company_id):
    """Upload of the given company, or None (unknown id, foreign company, bad token)"""
    upload_uuid = _as_uuid(upload_id)
    if upload_uuid is None:
        return None
    return InvoiceUpload.objects.for_company(company_id).filter(pk=upload_uuid).first()


def _has_pdf_signature(uploaded_file):
    uploaded_file.seek(0)
    head = uploaded_file.read(len(PDF_SIGNATURE))
    uploaded_file.seek(0)
    return head == PDF_SIGNATURE


def validate_upload_file(entry_type, uploaded_file):
    if entry_type not in ENTRY_TYPE_VALUES:
        return ServiceResult.failure(
            Reason.INVALID_ENTRY_TYPE,
            "entryType must be income or expense.",
            field="entryType",
        )
    if uploaded_file is None:
        return ServiceResult.failure(Reason.MISSING_FILE, "file is required.", field="file")
    if not uploaded_file.size:
        return ServiceResult.failure(Reason.EMPTY_FILE, "file must not be empty.", field="file")

    max_bytes = settings.UPLOAD_MAX_BYTES
    if uploaded_file.size > max_bytes:
        return ServiceResult.failure(
            Reason.FILE_TOO_LARGE,
            f"File exceeds {max_bytes // (1024 * 1024)} MiB ({max_bytes:,} bytes) limit.",
            field="file",
        )

    # Either the browser says PDF or the name ends in .pdf, and the bytes must agree
    name = uploaded_file.name or ""
    looks_like_pdf = (
        getattr(uploaded_file, "content_type", None) == PDF_CONTENT_TYPE
        or name.lower().endswith(".pdf")
    )
    if not looks_like_pdf or not _has_pdf_signature(uploaded_file):
        return ServiceResult.failure(
            Reason.UNSUPPORTED_MEDIA_TYPE,
            "Uploaded file must be a valid PDF.",
            field="file",
        )
    return None


# ----------------------------
# Upload intake
# ----------------------------
def create_upload(company_id, entry_type, uploaded_file):
    """Store the PDF, record the upload and queue its extraction job"""
    error = validate_upload_file(entry_type, uploaded_file)
    if error:
        return error

    upload = InvoiceUpload(
        company_id=company_id,
        entry_type=entry_type,
        original_filename=os.path.basename(uploaded_file.name)[:255],
    )
    upload.stored_filename = f"{upload.id}.pdf"

    # 1) file first, so a row never points at a missing file
    try:
        stored_name = default_storage.save(
            upload_storage_path(upload, uploaded_file.name), uploaded_file
        )
    except OSError:
        logger.exception("Could not store uploaded file for company %s", company_id)
        return ServiceResult.failure(
            Reason.UPLOAD_PERSISTENCE_FAILED, "Could not persist uploaded file.")
    upload.stored_file.name = stored_name

    # 2) metadata row, the extraction job is queued only once it is committed
    # lazy import to avoid circular import (tasks -> services -> tasks)
    from ..tasks import run_upload_extraction

    try:
        with transaction.atomic():
            upload.save(force_insert=True)
            upload_id = str(upload.pk)
            transaction.on_commit(lambda: run_upload_extraction.delay(upload_id))
    except DatabaseError:
        logger.exception("Could not persist upload metadata for %s", stored_name)
        default_storage.delete(stored_name)
        return ServiceResult.failure(
            Reason.UPLOAD_PERSISTENCE_FAILED, "Could not persist upload metadata.")

    logger.info(
        "Stored upload %s (%s) for company %s", upload.pk, upload.entry_type, company_id
    )
    return ServiceResult.success(upload)


def list_upload_queue(company_id, status="pending_review"):
    """Uploads of a company, newest first, filtered by whether they were saved"""
    if status not in QUEUE_STATUSES:
        raise ValueError(f"Unknown upload queue status: {status}")

    uploads = InvoiceUpload.objects.for_company(company_id).annotate(
        is_saved=Exists(AccountingEntry.objects.filter(upload=OuterRef("pk")))
    )
    if status == "pending_review":
        uploads = uploads.filter(is_saved=False)
    elif status == "saved":
        uploads = uploads.filter(is_saved=True)

    return [
        UploadQueueItem(
            id=upload.pk,
            entry_type=upload.entry_type,
            original_filename=upload.original_filename,
            uploaded_at=upload.uploaded_at,
            extraction_status=upload.extraction_status,
            extraction_error_code=upload.extraction_error_code,
            extraction_error_message=upload.extraction_error_message,
            extracted_at=upload.extracted_at,
            review_status="saved" if upload.is_saved else "pending_review",
        )
        for upload in uploads.order_by("-uploaded_at", "-pk")
    ]


def open_upload_file(upload):
    """Open the stored PDF for reading, None when the file is gone"""
    name = upload.stored_file.name
    if not name or not default_storage.exists(name):
        return None
    return default_storage.open(name, "rb")


# ----------------------------
# Extraction status bookkeeping
# ----------------------------
def mark_extraction_succeeded(upload_id):
    InvoiceUpload.objects.filter(pk=upload_id).update(
        extraction_status="succeeded",
        extraction_error_code=None,
        extraction_error_message=None,
        extracted_at=timezone.now(),
    )


def mark_extraction_failed(upload_id, code, message):
    InvoiceUpload.objects.filter(pk=upload_id).update(
        extraction_status="failed",
        extraction_error_code=code,
        extraction_error_message=message,
        extracted_at=None,
    )


def requeue_failed_extractions(uploads):
    """Reset failed uploads to pending and queue a fresh extraction job for each"""
    from ..tasks import run_upload_extraction

    upload_ids = [
        str(pk) for pk in uploads.filter(extraction_status="failed").values_list("pk", flat=True)
    ]
    with transaction.atomic():
        InvoiceUpload.objects.filter(pk__in=upload_ids).update(
            extraction_status="pending",
            extraction_error_code=None,
            extraction_error_message=None,
        )
        for upload_id in upload_ids:
            transaction.on_commit(
                lambda upload_id=upload_id: run_upload_extraction.delay(upload_id))

    logger.info("Re-queued extraction for %d upload(s)", len(upload_ids))
    return len(upload_ids)
