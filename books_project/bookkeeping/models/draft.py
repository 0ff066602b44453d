from django.db import models

from .expense_type import ExpenseType
from .upload import InvoiceUpload

MAX_COUNTERPARTY_LENGTH = 200
MAX_BOOKING_TEXT_LENGTH = 500

# Shown until extraction (or the user) fills in a counterparty
PENDING_COUNTERPARTY = "Pending extraction"


# ---------- Review draft (mutable, pre-confirmation) ----------
class UploadReviewDraft(models.Model):
    """Editable staging values for one upload, copied into the ledger on save"""

    # One draft per upload, sharing its primary key
    upload = models.OneToOneField(
        InvoiceUpload,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="review_draft",
    )
    document_date = models.DateField()
    counterparty_name = models.CharField(max_length=MAX_COUNTERPARTY_LENGTH)
    booking_text = models.CharField(max_length=MAX_BOOKING_TEXT_LENGTH, blank=True)

    # Minor currency units (cents)
    amount_gross = models.PositiveBigIntegerField(default=0)
    amount_net = models.PositiveBigIntegerField(null=True, blank=True)
    amount_tax = models.PositiveBigIntegerField(null=True, blank=True)

    payment_received_date = models.DateField(null=True, blank=True)
    # PROTECT: an expense type picked in a draft cannot be removed
    type_of_expense = models.ForeignKey(
        ExpenseType,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="drafts",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Draft for {self.upload_id}: {self.counterparty_name} {self.amount_gross}"
