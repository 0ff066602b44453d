import json
import logging
from functools import wraps

from django.core.exceptions import ValidationError
from django.http import FileResponse, HttpResponse, JsonResponse
from django.middleware.csrf import get_token
from django.utils import timezone
from django.views.decorators.csrf import ensure_csrf_cookie
from django.views.decorators.http import require_http_methods

from .middleware import ACTIVE_COMPANY_SESSION_KEY
from .serializers import (camelize, serialize_company, serialize_entry,
                          serialize_expense_type, serialize_review,
                          serialize_upload)
from .services import companies as company_service
from .services import expense_types as expense_type_service
from .services import ledger, reports, review, uploads
from .services.results import Reason
from .services.validation import is_positive_int, parse_positive_int

logger = logging.getLogger(__name__)


# ----------------------------
# Response helpers
# ----------------------------
def error_response(status, code, message, field=None):
    error = {"code": code, "message": message}
    if field:
        error["field"] = field
    return JsonResponse({"error": error}, status=status)


def result_error(result, mapping, default=(400, "VALIDATION_ERROR")):
    # mapping: Reason -> (HTTP status, error code)
    status, code = mapping.get(result.reason, default)
    return error_response(status, code, result.message, result.field)


def read_json(request):
    """Decoded JSON body, or raises ValueError for a malformed one"""
    return json.loads(request.body.decode("utf-8") or "null")


def invalid_json(field=None):
    return error_response(400, "INVALID_JSON", "Request body must be valid JSON.", field)


def company_required(view):
    """Company-scoped endpoints need a valid active company in the session"""

    @wraps(view)
    def wrapper(request, *args, **kwargs):
        if getattr(request, "company", None) is None:
            return error_response(
                409, "INVALID_ACTIVE_COMPANY", "Missing or invalid active company context.")
        return view(request, *args, **kwargs)

    return wrapper


def _year_param(request):
    """?year=YYYY, defaulting to the current year; None when malformed"""
    raw = request.GET.get("year")
    if raw is None or raw == "":
        return timezone.localdate().year
    year = parse_positive_int(raw)
    if year is None or not 1900 <= year <= 9999:
        return None
    return year


# ----------------------------
# CSRF
# ----------------------------
@require_http_methods(["GET"])
@ensure_csrf_cookie
def csrf_token(request):
    """Hand the SPA a CSRF token (also set as the csrftoken cookie)

    Unsafe methods must echo it back in the X-CSRFToken header.
    """
    return JsonResponse({"csrfToken": get_token(request)})


# ----------------------------
# Companies
# ----------------------------
@require_http_methods(["GET", "POST"])
def companies(request):
    if request.method == "GET":
        return JsonResponse(
            [serialize_company(c) for c in company_service.list_companies()], safe=False)

    try:
        body = read_json(request)
    except ValueError:
        return invalid_json("name")
    if not isinstance(body, dict) or not isinstance(body.get("name"), str):
        return error_response(400, "VALIDATION_ERROR", "name must be a string.", "name")

    result = company_service.create_company(body["name"])
    if not result.ok:
        return result_error(result, {Reason.DUPLICATE: (409, "DUPLICATE_COMPANY")})
    return JsonResponse(serialize_company(result.value), status=201)


@require_http_methods(["DELETE"])
def company_detail(request, company_id):
    result = company_service.delete_company(company_id)
    if not result.ok:
        return result_error(
            result,
            {
                Reason.NOT_FOUND: (404, "NOT_FOUND"),
                Reason.CONFLICT: (409, "COMPANY_IN_USE"),
            },
        )
    # forget the selection when the active company goes away
    if request.session.get(ACTIVE_COMPANY_SESSION_KEY) == company_id:
        del request.session[ACTIVE_COMPANY_SESSION_KEY]
    return HttpResponse(status=204)


@require_http_methods(["POST"])
def activate_company(request, company_id):
    company = company_service.get_company(company_id)
    if company is None:
        return error_response(404, "NOT_FOUND", "Company not found.", "id")
    request.session[ACTIVE_COMPANY_SESSION_KEY] = company.pk
    return JsonResponse(serialize_company(company))


# ----------------------------
# Expense types
# ----------------------------
EXPENSE_TYPE_ERRORS = {
    Reason.NOT_FOUND: (404, "NOT_FOUND"),
    Reason.DUPLICATE: (409, "DUPLICATE_EXPENSE_TYPE"),
    Reason.CONFLICT: (409, "EXPENSE_TYPE_IN_USE"),
}


@require_http_methods(["GET", "POST"])
def expense_types(request):
    if request.method == "GET":
        return JsonResponse(
            [serialize_expense_type(t) for t in expense_type_service.list_expense_types()],
            safe=False,
        )

    try:
        body = read_json(request)
    except ValueError:
        return invalid_json("expenseTypeText")
    if not isinstance(body, dict) or not isinstance(body.get("expenseTypeText"), str):
        return error_response(
            400, "VALIDATION_ERROR", "expenseTypeText must be a string.", "expenseTypeText")

    result = expense_type_service.create_expense_type(
        body["expenseTypeText"], body.get("plCategory", "operating_expense"))
    if not result.ok:
        return result_error(result, EXPENSE_TYPE_ERRORS)
    return JsonResponse(serialize_expense_type(result.value), status=201)


@require_http_methods(["PATCH", "DELETE"])
def expense_type_detail(request, expense_type_id):
    if request.method == "DELETE":
        result = expense_type_service.delete_expense_type(expense_type_id)
        if not result.ok:
            return result_error(result, EXPENSE_TYPE_ERRORS)
        return HttpResponse(status=204)

    try:
        body = read_json(request)
    except ValueError:
        return invalid_json()
    if not isinstance(body, dict):
        return error_response(400, "VALIDATION_ERROR", "Request body must be a JSON object.")
    text = body.get("expenseTypeText")
    if text is not None and not isinstance(text, str):
        return error_response(
            400, "VALIDATION_ERROR", "expenseTypeText must be a string.", "expenseTypeText")

    result = expense_type_service.update_expense_type(
        expense_type_id, raw_text=text, pl_category=body.get("plCategory"))
    if not result.ok:
        return result_error(result, EXPENSE_TYPE_ERRORS)
    return JsonResponse(serialize_expense_type(result.value))


@require_http_methods(["PATCH"])
def reorder_expense_types(request):
    field = "orderedExpenseTypeIds"
    try:
        body = read_json(request)
    except ValueError:
        return invalid_json(field)
    ordered_ids = body.get(field) if isinstance(body, dict) else None
    if not isinstance(ordered_ids, list) or not all(is_positive_int(i) for i in ordered_ids):
        return error_response(
            400, "VALIDATION_ERROR",
            "orderedExpenseTypeIds must be an array of positive integers.", field)

    result = expense_type_service.reorder_expense_types(ordered_ids)
    if not result.ok:
        return result_error(result, {})
    return HttpResponse(status=204)


# ----------------------------
# Uploads & review
# ----------------------------
UPLOAD_ERRORS = {
    Reason.INVALID_ENTRY_TYPE: (400, "INVALID_ENTRY_TYPE"),
    Reason.MISSING_FILE: (400, "MISSING_FILE"),
    Reason.EMPTY_FILE: (400, "EMPTY_FILE"),
    Reason.FILE_TOO_LARGE: (413, "FILE_TOO_LARGE"),
    Reason.UNSUPPORTED_MEDIA_TYPE: (415, "UNSUPPORTED_MEDIA_TYPE"),
    Reason.UPLOAD_PERSISTENCE_FAILED: (500, "UPLOAD_PERSISTENCE_FAILED"),
}


@require_http_methods(["GET", "POST"])
@company_required
def uploads_collection(request):
    if request.method == "GET":
        status = request.GET.get("status") or "pending_review"
        if status not in uploads.QUEUE_STATUSES:
            return error_response(
                400, "VALIDATION_ERROR",
                "status must be one of pending_review, saved, or all.", "status")
        items = uploads.list_upload_queue(request.company.pk, status)
        return JsonResponse({"items": camelize(items)})

    result = uploads.create_upload(
        request.company.pk, request.POST.get("entryType"), request.FILES.get("file"))
    if not result.ok:
        return result_error(result, UPLOAD_ERRORS)
    return JsonResponse(serialize_upload(result.value), status=201)


@require_http_methods(["GET", "PUT"])
@company_required
def upload_review(request, upload_id):
    if request.method == "GET":
        current = review.get_review(upload_id, request.company.pk)
        if current is None:
            return error_response(404, "UPLOAD_NOT_FOUND", "Upload not found.")
        return JsonResponse(serialize_review(current))

    try:
        body = read_json(request)
    except ValueError:
        return invalid_json()
    checked = review.validate_draft_patch(body)
    if not checked.ok:
        return result_error(checked, {})

    try:
        updated = review.patch_draft(upload_id, request.company.pk, checked.value)
    except ValidationError as exc:
        field, messages = next(iter(exc.message_dict.items()))
        return error_response(400, "VALIDATION_ERROR", messages[0], field)
    except Exception:
        logger.exception("Could not persist review draft for upload %s", upload_id)
        return error_response(500, "DRAFT_PERSISTENCE_FAILED", "Could not persist review draft.")
    if updated is None:
        return error_response(404, "UPLOAD_NOT_FOUND", "Upload not found.")
    return JsonResponse(serialize_review(updated))


@require_http_methods(["POST"])
@company_required
def save_upload(request, upload_id):
    try:
        result = ledger.save_entry_from_upload_review(upload_id, request.company.pk)
    except Exception:
        logger.exception("Could not persist accounting entry for upload %s", upload_id)
        return error_response(
            500, "ACCOUNTING_ENTRY_PERSISTENCE_FAILED", "Could not persist accounting entry.")

    if not result.ok:
        return result_error(
            result,
            {
                Reason.NOT_FOUND: (404, "UPLOAD_NOT_FOUND"),
                Reason.EXPENSE_TYPE_NOT_FOUND: (400, "EXPENSE_TYPE_NOT_FOUND"),
                Reason.ALREADY_SAVED: (409, "ALREADY_SAVED"),
            },
        )
    return JsonResponse({"entry": serialize_entry(result.value)}, status=201)


@require_http_methods(["GET"])
@company_required
def upload_file(request, upload_id):
    upload = uploads.get_upload_for_company(upload_id, request.company.pk)
    if upload is None:
        return error_response(404, "UPLOAD_NOT_FOUND", "Upload not found.")
    handle = uploads.open_upload_file(upload)
    if handle is None:
        return error_response(404, "FILE_NOT_FOUND", "Uploaded file is missing.")

    response = FileResponse(
        handle,
        as_attachment=request.GET.get("download") == "1",
        filename=upload.original_filename,
        content_type="application/pdf",
    )
    response["Cache-Control"] = "private, max-age=120"
    response["Vary"] = "Cookie"
    return response


# ----------------------------
# Ledger & reports
# ----------------------------
@require_http_methods(["GET"])
@company_required
def accounting_entries(request):
    year = None
    if request.GET.get("year"):
        year = _year_param(request)
        if year is None:
            return error_response(400, "VALIDATION_ERROR", "year must be a valid year.", "year")
    entries = ledger.list_entries(request.company.pk, year)
    return JsonResponse([serialize_entry(e) for e in entries], safe=False)


@require_http_methods(["GET"])
@company_required
def yearly_overview(request):
    year = _year_param(request)
    if year is None:
        return error_response(400, "VALIDATION_ERROR", "year must be a valid year.", "year")
    entry_type = request.GET.get("entryType") or "all"
    if entry_type not in reports.ENTRY_TYPE_FILTERS:
        return error_response(
            400, "VALIDATION_ERROR", "entryType must be one of all, income, or expense.",
            "entryType")
    sort = request.GET.get("sort") or "documentDateDesc"
    if sort not in reports.OVERVIEW_SORTS:
        return error_response(
            400, "VALIDATION_ERROR",
            "sort must be one of " + ", ".join(reports.OVERVIEW_SORTS) + ".", "sort")

    rows = reports.load_ledger_rows(request.company.pk)
    overview = reports.build_yearly_overview(rows, year, entry_type, sort)
    return JsonResponse(camelize(overview))


@require_http_methods(["GET"])
@company_required
def annual_pl(request):
    year = _year_param(request)
    if year is None:
        return error_response(400, "VALIDATION_ERROR", "year must be a valid year.", "year")

    report = reports.build_annual_pl(reports.load_ledger_rows(request.company.pk), year)
    data = camelize(report)
    # derived subtotals are properties, asdict() leaves them out
    for key, totals in (("totals", report.totals), ("priorTotals", report.prior_totals)):
        data[key].update(
            grossProfit=totals.gross_profit,
            operatingResult=totals.operating_result,
            netResult=totals.net_result,
        )
    return JsonResponse(data)
