from django.core.exceptions import ValidationError
from django.db import models

from .choices import PL_CATEGORIES

# Longest expense type label accepted by the registry
MAX_EXPENSE_TYPE_TEXT_LENGTH = 100


def normalize_expense_type_text(value):
    return value.strip().lower()


# ---------- Expense types (shared across companies) ----------
class ExpenseType(models.Model):
    """Label chosen on expense entries, mapped onto one P&L category"""

    text = models.CharField(max_length=MAX_EXPENSE_TYPE_TEXT_LENGTH)
    normalized_text = models.CharField(max_length=MAX_EXPENSE_TYPE_TEXT_LENGTH, unique=True)

    # Where amounts of this type land in the annual P&L
    pl_category = models.CharField(
        max_length=20,
        choices=PL_CATEGORIES,
        default="operating_expense",
    )

    # Dense 1..N position in pick lists, maintained by the registry service
    sort_order = models.PositiveIntegerField()

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("sort_order", "id")
        constraints = [
            models.CheckConstraint(
                condition=models.Q(
                    pl_category__in=[
                        "direct_cost", "operating_expense", "financial_other", "tax"
                    ]
                ),
                name="expense_type_pl_category_valid",
            ),
            models.CheckConstraint(
                condition=models.Q(sort_order__gte=1),
                name="expense_type_sort_order_positive",
            ),
        ]

    def __str__(self):
        return f"{self.sort_order}. {self.text} ({self.pl_category})"

    def clean(self):
        if not (self.text or "").strip():
            raise ValidationError({"text": "Expense type text is required."})

    def save(self, *args, **kwargs):
        self.text = (self.text or "").strip()
        self.normalized_text = normalize_expense_type_text(self.text)
        return super().save(*args, **kwargs)
