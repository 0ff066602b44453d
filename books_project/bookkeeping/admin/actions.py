from django.contrib import admin, messages
from django.utils.translation import gettext_lazy as _

from ..services.uploads import requeue_failed_extractions

# ---------- Admin actions ----------


@admin.action(description="Re-queue extraction for failed uploads")
def requeue_extraction(
    modeladmin,  # `ModelAdmin` class for InvoiceUpload
    request,  # HTTP request object
    queryset,  # uploads the admin selected in the list view
):
    """
    Reset selected *failed* uploads to pending and queue a new extraction job.
    Uploads in any other state are left alone.
    """
    selected = queryset.count()
    queued = requeue_failed_extractions(queryset)
    skipped = selected - queued

    modeladmin.message_user(
        request,
        _("Queued extraction for %(queued)d of %(selected)d uploads. %(skipped)d skipped.") % {
            "queued": queued,
            "selected": selected,
            "skipped": skipped,
        },
        level=messages.SUCCESS if skipped == 0 else messages.WARNING,
    )
