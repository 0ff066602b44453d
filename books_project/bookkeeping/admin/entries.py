from django.contrib import admin

from ..models import AccountingEntry
from .mixins import TenantAdminMixin
from .ReadOnly import ReadOnlyAdmin


# Ledger rows are append-only: listed and viewed, never edited here
@admin.register(AccountingEntry)
class AccountingEntryAdmin(TenantAdminMixin, ReadOnlyAdmin):
    list_display = (
        "reference",
        "company",
        "document_date",
        "counterparty_name",
        "amount_gross",
        "type_of_expense",
        "expense_pl_category",
    )
    list_filter = ("company", "entry_type", "document_year", "expense_pl_category")
    search_fields = ("counterparty_name", "booking_text")
    ordering = ("-document_date", "-id")
    list_select_related = ("company", "type_of_expense")

    @admin.display(description="Document", ordering="document_number")
    def reference(self, obj):
        return obj.reference
