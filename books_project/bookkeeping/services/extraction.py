"""
Invoice extraction through the OpenAI Responses API.

Flow: the Celery task run_upload_extraction() calls process_upload_extraction(),
which reads the stored PDF, asks the model for the draft fields (strict JSON
schema), seeds the review draft (insert-if-absent) and records the outcome on
the upload. Failures are terminal: the upload is marked failed with one of the
EXTRACTION_* codes and the user enters the draft by hand.
"""
import base64
import datetime
import json
import logging
import os
from dataclasses import dataclass
from typing import Optional

import requests
from django.conf import settings
from django.core.files.storage import default_storage
from django.db import DatabaseError

from ..exceptions import InvoiceExtractionError
from ..models import InvoiceUpload
from ..models.draft import MAX_BOOKING_TEXT_LENGTH, MAX_COUNTERPARTY_LENGTH
from .review import seed_from_extraction
from .uploads import PDF_SIGNATURE, mark_extraction_failed, mark_extraction_succeeded
from .validation import is_non_negative_int, parse_date_only

logger = logging.getLogger(__name__)

EXTRACTION_CONFIG_MISSING = "EXTRACTION_CONFIG_MISSING"
EXTRACTION_TIMEOUT = "EXTRACTION_TIMEOUT"
EXTRACTION_PROVIDER_ERROR = "EXTRACTION_PROVIDER_ERROR"
EXTRACTION_INVALID_OUTPUT = "EXTRACTION_INVALID_OUTPUT"
EXTRACTION_PERSISTENCE_FAILED = "EXTRACTION_PERSISTENCE_FAILED"

# What the upload records for the user, whatever the underlying detail was
FAILURE_MESSAGES = {
    EXTRACTION_PROVIDER_ERROR: "Extraction provider request failed.",
    EXTRACTION_TIMEOUT: "Extraction request timed out.",
    EXTRACTION_INVALID_OUTPUT: "Extraction output could not be validated.",
    EXTRACTION_CONFIG_MISSING: "Extraction configuration is missing.",
    EXTRACTION_PERSISTENCE_FAILED: "Extraction output could not be persisted.",
}


@dataclass(frozen=True)
class ExtractedInvoiceDraft:
    document_date: Optional[datetime.date]
    counterparty_name: Optional[str]
    booking_text: Optional[str]
    amount_gross: int
    amount_net: Optional[int]
    amount_tax: Optional[int]
    payment_received_date: Optional[datetime.date]


def build_prompt(entry_type):
    return "\n".join(
        [
            "You extract bookkeeping fields from a single invoice PDF.",
            "",
            "Return ONLY JSON matching the provided schema.",
            "",
            "Rules:",
            "- Do not guess. If a field is missing or unclear, return null.",
            "- Use date format YYYY-MM-DD.",
            "- Amount fields must be integer cents, non-negative.",
            "- Parse common number formats (apostrophe/comma/dot/space thousands separators).",
            "- amountGross is required by schema; if missing, return 0.",
            "- amountNet and amountTax are optional; return null when not confidently present.",
            "- Keep text fields concise and source-faithful.",
            "- paymentReceivedDate is only for income documents; otherwise return null.",
            "- Never output markdown or extra keys.",
            "",
            f"Document entryType context: {entry_type}.",
        ]
    )


def extraction_schema():
    date_field = {"type": ["string", "null"], "pattern": r"^\d{4}-\d{2}-\d{2}$"}
    properties = {
        "documentDate": date_field,
        "counterpartyName": {"type": ["string", "null"]},
        "bookingText": {"type": ["string", "null"]},
        "amountGross": {"type": "integer", "minimum": 0},
        "amountNet": {"type": ["integer", "null"], "minimum": 0},
        "amountTax": {"type": ["integer", "null"], "minimum": 0},
        "paymentReceivedDate": date_field,
    }
    return {
        "type": "object",
        "additionalProperties": False,
        "properties": properties,
        "required": list(properties),
    }


# ----------------------------
# Output normalisation
# ----------------------------
def _invalid(message):
    return InvoiceExtractionError(EXTRACTION_INVALID_OUTPUT, message)


def _normalize_text(value, max_length):
    if value is None:
        return None
    if not isinstance(value, str):
        raise _invalid("Model returned invalid text field type.")
    trimmed = value.strip()
    return trimmed[:max_length] if trimmed else None


def _normalize_date(value):
    if value is None:
        return None
    parsed = parse_date_only(value)
    if parsed is None:
        raise _invalid("Model returned invalid date field format.")
    return parsed


def _normalize_amount(value, required):
    if value is None:
        if required:
            raise _invalid("Model did not return a required amount field.")
        return None
    if not is_non_negative_int(value):
        raise _invalid("Model returned invalid amount field value.")
    return value


def normalize_extraction_payload(payload, entry_type):
    if not isinstance(payload, dict):
        raise _invalid("Model output was not a JSON object.")

    amount_gross = _normalize_amount(payload.get("amountGross"), required=True)
    payment_received_date = _normalize_date(payload.get("paymentReceivedDate"))
    return ExtractedInvoiceDraft(
        document_date=_normalize_date(payload.get("documentDate")),
        counterparty_name=_normalize_text(payload.get("counterpartyName"), MAX_COUNTERPARTY_LENGTH),
        booking_text=_normalize_text(payload.get("bookingText"), MAX_BOOKING_TEXT_LENGTH),
        amount_gross=amount_gross,
        amount_net=_normalize_amount(payload.get("amountNet"), required=False),
        amount_tax=_normalize_amount(payload.get("amountTax"), required=False),
        # expenses never carry a payment date
        payment_received_date=payment_received_date if entry_type == "income" else None,
    )


def _output_text(response_json):
    """Pull the JSON text out of a Responses API body"""
    if not isinstance(response_json, dict):
        return None
    output_text = response_json.get("output_text")
    if isinstance(output_text, str) and output_text.strip():
        return output_text
    for item in response_json.get("output") or []:
        if not isinstance(item, dict):
            continue
        for content in item.get("content") or []:
            if (
                isinstance(content, dict)
                and content.get("type") == "output_text"
                and isinstance(content.get("text"), str)
            ):
                return content["text"]
    return None


# ----------------------------
# Provider call
# ----------------------------
def _read_pdf(stored_name):
    try:
        with default_storage.open(stored_name, "rb") as fh:
            pdf_bytes = fh.read()
    except OSError as exc:
        raise InvoiceExtractionError(
            EXTRACTION_PROVIDER_ERROR, "Stored upload file could not be read.") from exc
    if not pdf_bytes.startswith(PDF_SIGNATURE):
        raise _invalid("Stored upload file is not a valid PDF.")
    return pdf_bytes


def extract_invoice_draft(stored_name, entry_type):
    """Ask the model for the draft fields of one stored PDF"""
    api_key = settings.OPENAI_API_KEY
    if not api_key:
        raise InvoiceExtractionError(
            EXTRACTION_CONFIG_MISSING, "Missing OpenAI API key configuration.")

    pdf_bytes = _read_pdf(stored_name)
    model = settings.OPENAI_EXTRACTION_MODEL
    timeout = settings.OPENAI_EXTRACTION_TIMEOUT_SECONDS
    body = {
        "model": model,
        "input": [
            {
                "role": "user",
                "content": [
                    {
                        "type": "input_file",
                        "filename": os.path.basename(stored_name),
                        "file_data": "data:application/pdf;base64,"
                        + base64.b64encode(pdf_bytes).decode("ascii"),
                    },
                    {"type": "input_text", "text": build_prompt(entry_type)},
                ],
            }
        ],
        "text": {
            "format": {
                "type": "json_schema",
                "name": "invoice_extraction",
                "strict": True,
                "schema": extraction_schema(),
            }
        },
    }

    logger.info("Requesting extraction for %s (model=%s)", stored_name, model)
    try:
        response = requests.post(
            f"{settings.OPENAI_API_BASE}/responses",
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            json=body,
            timeout=timeout,
        )
    except requests.exceptions.Timeout as exc:
        logger.warning("Extraction request for %s timed out after %ss", stored_name, timeout)
        raise InvoiceExtractionError(EXTRACTION_TIMEOUT, "Model request timed out.") from exc
    except requests.exceptions.RequestException as exc:
        logger.warning("Extraction request for %s failed: %s", stored_name, exc)
        raise InvoiceExtractionError(
            EXTRACTION_PROVIDER_ERROR, "Model request failed before response.") from exc

    if not response.ok:
        logger.warning(
            "Extraction provider answered %s for %s", response.status_code, stored_name)
        raise InvoiceExtractionError(
            EXTRACTION_PROVIDER_ERROR, "Model request returned an error response.")

    try:
        response_json = response.json()
    except ValueError as exc:
        raise _invalid("Model response was not valid JSON.") from exc

    json_text = _output_text(response_json)
    if not json_text:
        raise _invalid("Model response did not include extraction output.")
    try:
        parsed = json.loads(json_text)
    except ValueError as exc:
        raise _invalid("Model response was not valid JSON.") from exc

    return normalize_extraction_payload(parsed, entry_type)


# ----------------------------
# Job body
# ----------------------------
def process_upload_extraction(upload_id):
    """Run extraction for one upload and record the outcome, returns the new status"""
    upload = InvoiceUpload.objects.filter(pk=upload_id).first()
    if upload is None:
        logger.warning("Extraction skipped, upload %s does not exist", upload_id)
        return None
    if upload.extraction_status != "pending":
        logger.info(
            "Extraction skipped, upload %s is already %s", upload_id, upload.extraction_status)
        return upload.extraction_status

    try:
        extracted = extract_invoice_draft(upload.stored_file.name, upload.entry_type)
    except InvoiceExtractionError as exc:
        logger.warning("Extraction failed for upload %s: %s (%s)", upload_id, exc.code, exc.message)
        message = FAILURE_MESSAGES.get(exc.code, exc.message)
        mark_extraction_failed(upload.pk, exc.code, message)
        return "failed"

    try:
        seed_from_extraction(upload.pk, extracted)
    except DatabaseError:
        logger.exception("Could not store extracted draft for upload %s", upload_id)
        mark_extraction_failed(
            upload.pk,
            EXTRACTION_PERSISTENCE_FAILED,
            FAILURE_MESSAGES[EXTRACTION_PERSISTENCE_FAILED],
        )
        return "failed"

    mark_extraction_succeeded(upload.pk)
    logger.info("Extraction succeeded for upload %s", upload_id)
    return "succeeded"
