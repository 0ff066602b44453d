from django.core.exceptions import ValidationError
from django.db import models

from ..exceptions import ImmutableEntryError
from ..managers import AccountingEntryManager
from .choices import ENTRY_TYPES, EXTRACTION_STATUSES, PL_CATEGORIES
from .company import Company
from .draft import MAX_BOOKING_TEXT_LENGTH, MAX_COUNTERPARTY_LENGTH
from .expense_type import ExpenseType
from .upload import InvoiceUpload


# ---------- Accounting entry (ledger row, append-only) ----------
class AccountingEntry(models.Model):
    """Confirmed booking copied from a review draft

    Rows are numbered 1..N per (company, document year, entry type) at
    commit time and never change afterwards.
    """

    # Multi-tenant: every entry belongs to a company
    # PROTECT: never lose ledger history by deleting a company
    company = models.ForeignKey(
        Company, on_delete=models.PROTECT, related_name="entries"
    )
    # Sequential number inside the (company, year, entry type) bucket
    document_number = models.PositiveIntegerField()
    entry_type = models.CharField(max_length=10, choices=ENTRY_TYPES)
    document_date = models.DateField()
    # Derived from document_date in save()
    document_year = models.PositiveSmallIntegerField(editable=False)

    counterparty_name = models.CharField(max_length=MAX_COUNTERPARTY_LENGTH)
    booking_text = models.CharField(max_length=MAX_BOOKING_TEXT_LENGTH, blank=True)

    # Minor currency units (cents)
    amount_gross = models.BigIntegerField()
    amount_net = models.BigIntegerField(null=True, blank=True)
    amount_tax = models.BigIntegerField(null=True, blank=True)

    # Income only
    payment_received_date = models.DateField(null=True, blank=True)
    # Expense only
    type_of_expense = models.ForeignKey(
        ExpenseType,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="entries",
    )
    # Category of type_of_expense when the entry was committed
    # later re-categorisation of the type does not move old entries
    expense_pl_category = models.CharField(
        max_length=20, choices=PL_CATEGORIES, null=True, blank=True
    )

    # Source upload, confirmed at most once
    upload = models.OneToOneField(
        InvoiceUpload,
        on_delete=models.PROTECT,
        related_name="accounting_entry",
    )
    # Extraction state of the upload at commit time
    extraction_status = models.CharField(max_length=10, choices=EXTRACTION_STATUSES)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = AccountingEntryManager()

    class Meta:
        verbose_name_plural = "accounting entries"
        ordering = ("-document_date", "-id")
        indexes = [
            # yearly overview and annual P&L read one company-year at a time
            models.Index(fields=["company", "document_year"], name="entry_company_year_idx"),
        ]
        constraints = [
            # Sequential numbering: one number per bucket
            models.UniqueConstraint(
                fields=["company", "document_year", "entry_type", "document_number"],
                name="uq_entry_company_year_type_number",
            ),
            models.CheckConstraint(
                condition=models.Q(document_number__gte=1),
                name="entry_document_number_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(amount_gross__gte=0)
                & (models.Q(amount_net__isnull=True) | models.Q(amount_net__gte=0))
                & (models.Q(amount_tax__isnull=True) | models.Q(amount_tax__gte=0)),
                name="entry_non_negative_amounts",
            ),
            # income: paid date set, no expense type
            # expense: expense type + category set, no paid date
            models.CheckConstraint(
                condition=(
                    models.Q(
                        entry_type="income",
                        payment_received_date__isnull=False,
                        type_of_expense__isnull=True,
                        expense_pl_category__isnull=True,
                    )
                    | models.Q(
                        entry_type="expense",
                        payment_received_date__isnull=True,
                        type_of_expense__isnull=False,
                        expense_pl_category__isnull=False,
                    )
                ),
                name="entry_type_fields_consistent",
            ),
        ]

    def __str__(self):
        return f"{self.reference} {self.document_date} {self.counterparty_name}"

    @property
    def reference(self):
        prefix = "I" if self.entry_type == "income" else "E"
        return f"{prefix}-{self.document_year}-{self.document_number}"

    def clean(self):
        """Enforce the income / expense field rules before hitting the DB"""
        errors = {}
        if self.entry_type == "income":
            if self.payment_received_date is None:
                errors["payment_received_date"] = "Income entries require a payment received date."
            if self.type_of_expense_id is not None:
                errors["type_of_expense"] = "Income entries cannot have an expense type."
        elif self.entry_type == "expense":
            if self.type_of_expense_id is None:
                errors["type_of_expense"] = "Expense entries require an expense type."
            if self.payment_received_date is not None:
                errors["payment_received_date"] = "Expense entries cannot have a payment received date."
        if self.amount_gross is not None and self.amount_gross < 0:
            errors["amount_gross"] = "Amounts must be non-negative."
        if errors:
            raise ValidationError(errors)

    def save(self, *args, **kwargs):
        if self.pk:  # Does this row already exist in DB?
            raise ImmutableEntryError("Accounting entries are immutable once saved.")
        if self.document_date is not None:
            self.document_year = self.document_date.year
        # Enforce model validation (skip the unique checks, the DB owns those)
        self.full_clean(validate_unique=False, validate_constraints=False)
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableEntryError("Accounting entries cannot be deleted.")
