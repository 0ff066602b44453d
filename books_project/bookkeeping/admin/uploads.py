from django.contrib import admin

from ..models import InvoiceUpload, UploadReviewDraft
from .actions import requeue_extraction
from .mixins import TenantAdminMixin


class UploadReviewDraftInline(admin.StackedInline):
    model = UploadReviewDraft
    extra = 0
    can_delete = False
    readonly_fields = ("created_at", "updated_at")


# Register `InvoiceUpload` model
@admin.register(InvoiceUpload)
class InvoiceUploadAdmin(TenantAdminMixin, admin.ModelAdmin):
    list_display = (
        "id",
        "company",
        "entry_type",
        "original_filename",
        "uploaded_at",
        "extraction_status",
        "extraction_error_code",
    )
    list_filter = ("company", "entry_type", "extraction_status")
    search_fields = ("original_filename", "id")
    # the file and the extraction outcome are written by the pipeline only
    readonly_fields = (
        "stored_filename",
        "stored_file",
        "uploaded_at",
        "extraction_status",
        "extraction_error_code",
        "extraction_error_message",
        "extracted_at",
    )
    inlines = [UploadReviewDraftInline]
    actions = [requeue_extraction]

    def has_add_permission(self, request):
        # uploads come in through the API (validation + storage + job)
        return False
