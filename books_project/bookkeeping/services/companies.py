import logging

from django.db import IntegrityError, transaction

from ..models import AccountingEntry, Company, InvoiceUpload
from ..models.company import MAX_COMPANY_NAME_LENGTH, normalize_company_name
from .results import Reason, ServiceResult

logger = logging.getLogger(__name__)


# ----------------------------
# Company registry
# ----------------------------
def list_companies():
    return list(Company.objects.order_by("created_at", "id"))


def get_company(company_id):
    if company_id is None:
        return None
    return Company.objects.filter(pk=company_id).first()


def create_company(raw_name):
    name = (raw_name or "").strip()
    if not name:
        return ServiceResult.failure(
            Reason.VALIDATION, "Company name is required.", field="name")
    if len(name) > MAX_COMPANY_NAME_LENGTH:
        return ServiceResult.failure(
            Reason.VALIDATION,
            f"Company name must be at most {MAX_COMPANY_NAME_LENGTH} characters.",
            field="name",
        )

    duplicate = ServiceResult.failure(
        Reason.DUPLICATE,
        "Company name must be unique (case-insensitive, trimmed).",
        field="name",
    )
    if Company.objects.filter(normalized_name=normalize_company_name(name)).exists():
        return duplicate

    # The unique index on normalized_name settles concurrent creates
    try:
        with transaction.atomic():
            company = Company.objects.create(name=name)
    except IntegrityError:
        return duplicate

    logger.info("Created company %s (%s)", company.pk, company.name)
    return ServiceResult.success(company)


def delete_company(company_id):
    with transaction.atomic():
        company = Company.objects.select_for_update().filter(pk=company_id).first()
        if company is None:
            return ServiceResult.failure(Reason.NOT_FOUND, "Company not found.")

        in_use = (
            AccountingEntry.objects.for_company(company).exists()
            or InvoiceUpload.objects.for_company(company).exists()
        )
        if in_use:
            return ServiceResult.failure(
                Reason.CONFLICT,
                "Company is referenced by domain records and cannot be deleted.",
            )
        company.delete()

    logger.info("Deleted company %s", company_id)
    return ServiceResult.success()
