import logging

from django.db import IntegrityError, models, transaction

from ..models import PL_CATEGORY_VALUES, AccountingEntry, ExpenseType, UploadReviewDraft
from ..models.expense_type import (MAX_EXPENSE_TYPE_TEXT_LENGTH,
                                   normalize_expense_type_text)
from .results import Reason, ServiceResult

logger = logging.getLogger(__name__)

TEXT_FIELD = "expenseTypeText"
CATEGORY_FIELD = "plCategory"


def _validate_text(raw_text):
    text = (raw_text or "").strip()
    if not text:
        return text, ServiceResult.failure(
            Reason.VALIDATION, "Expense type text is required.", field=TEXT_FIELD)
    if len(text) > MAX_EXPENSE_TYPE_TEXT_LENGTH:
        return text, ServiceResult.failure(
            Reason.VALIDATION,
            f"Expense type text must be at most {MAX_EXPENSE_TYPE_TEXT_LENGTH} characters.",
            field=TEXT_FIELD,
        )
    return text, None


def _validate_category(pl_category):
    if pl_category not in PL_CATEGORY_VALUES:
        return ServiceResult.failure(
            Reason.VALIDATION,
            "plCategory must be one of " + ", ".join(PL_CATEGORY_VALUES) + ".",
            field=CATEGORY_FIELD,
        )
    return None


def _duplicate():
    return ServiceResult.failure(
        Reason.DUPLICATE,
        "Expense type must be unique (case-insensitive, trimmed).",
        field=TEXT_FIELD,
    )


def _resequence(ordered_ids):
    # Rewrite sort_order as a dense 1..N run in the given order
    for position, expense_type_id in enumerate(ordered_ids, start=1):
        ExpenseType.objects.filter(pk=expense_type_id).update(sort_order=position)


# ----------------------------
# Expense type registry
# ----------------------------
def list_expense_types():
    return list(ExpenseType.objects.order_by("sort_order", "id"))


def create_expense_type(raw_text, pl_category="operating_expense"):
    text, error = _validate_text(raw_text)
    if error:
        return error
    error = _validate_category(pl_category)
    if error:
        return error

    try:
        with transaction.atomic():
            if ExpenseType.objects.filter(
                normalized_text=normalize_expense_type_text(text)
            ).exists():
                return _duplicate()
            # new types go to the end of the list
            last = ExpenseType.objects.aggregate(last=models.Max("sort_order"))["last"] or 0
            expense_type = ExpenseType.objects.create(
                text=text, pl_category=pl_category, sort_order=last + 1
            )
    except IntegrityError:
        return _duplicate()

    logger.info("Created expense type %s (%s)", expense_type.pk, expense_type.text)
    return ServiceResult.success(expense_type)


def update_expense_type(expense_type_id, raw_text=None, pl_category=None):
    """Change label and/or P&L category, omitted arguments stay as they are"""
    if raw_text is None and pl_category is None:
        return ServiceResult.failure(
            Reason.VALIDATION,
            "Provide expenseTypeText and/or plCategory.",
            field=TEXT_FIELD,
        )
    if raw_text is not None:
        text, error = _validate_text(raw_text)
        if error:
            return error
    if pl_category is not None:
        error = _validate_category(pl_category)
        if error:
            return error

    try:
        with transaction.atomic():
            expense_type = (
                ExpenseType.objects.select_for_update().filter(pk=expense_type_id).first()
            )
            if expense_type is None:
                return ServiceResult.failure(Reason.NOT_FOUND, "Expense type not found.")
            if raw_text is not None:
                clash = ExpenseType.objects.filter(
                    normalized_text=normalize_expense_type_text(text)
                ).exclude(pk=expense_type.pk)
                if clash.exists():
                    return _duplicate()
                expense_type.text = text
            if pl_category is not None:
                # saved entries keep the category they were booked with
                expense_type.pl_category = pl_category
            expense_type.save()
    except IntegrityError:
        return _duplicate()

    return ServiceResult.success(expense_type)


def delete_expense_type(expense_type_id):
    with transaction.atomic():
        expense_type = (
            ExpenseType.objects.select_for_update().filter(pk=expense_type_id).first()
        )
        if expense_type is None:
            return ServiceResult.failure(Reason.NOT_FOUND, "Expense type not found.")

        if AccountingEntry.objects.filter(type_of_expense=expense_type).exists():
            return ServiceResult.failure(
                Reason.CONFLICT,
                "Expense type is referenced by accounting entries and cannot be deleted.",
            )
        if UploadReviewDraft.objects.filter(type_of_expense=expense_type).exists():
            return ServiceResult.failure(
                Reason.CONFLICT,
                "Expense type is referenced by review drafts and cannot be deleted.",
            )

        expense_type.delete()
        remaining = ExpenseType.objects.order_by("sort_order", "id").values_list("pk", flat=True)
        _resequence(list(remaining))

    logger.info("Deleted expense type %s", expense_type_id)
    return ServiceResult.success()


def reorder_expense_types(ordered_ids):
    """Apply a new order, ordered_ids must list every expense type exactly once"""
    field = "orderedExpenseTypeIds"
    with transaction.atomic():
        existing = set(
            ExpenseType.objects.select_for_update().values_list("pk", flat=True)
        )
        if len(ordered_ids) != len(set(ordered_ids)):
            return ServiceResult.failure(
                Reason.VALIDATION,
                "orderedExpenseTypeIds must not contain duplicates.",
                field=field,
            )
        if set(ordered_ids) != existing:
            return ServiceResult.failure(
                Reason.VALIDATION,
                "orderedExpenseTypeIds must contain every expense type id exactly once.",
                field=field,
            )
        _resequence(ordered_ids)

    return ServiceResult.success(list_expense_types())
