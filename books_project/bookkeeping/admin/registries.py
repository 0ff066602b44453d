from django.contrib import admin

from ..models import Company, ExpenseType


@admin.register(Company)
class CompanyAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "created_at", "updated_at")
    search_fields = ("name",)
    readonly_fields = ("normalized_name", "created_at", "updated_at")


@admin.register(ExpenseType)
class ExpenseTypeAdmin(admin.ModelAdmin):
    list_display = ("sort_order", "text", "pl_category", "updated_at")
    list_display_links = ("text",)
    list_filter = ("pl_category",)
    search_fields = ("text",)
    ordering = ("sort_order", "id")
    # sort_order is kept dense by the registry service
    readonly_fields = ("normalized_text", "sort_order", "created_at", "updated_at")

    def save_model(self, request, obj, form, change):
        if not change:
            last = ExpenseType.objects.order_by("-sort_order").first()
            obj.sort_order = (last.sort_order if last else 0) + 1
        super().save_model(request, obj, form, change)
