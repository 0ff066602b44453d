import uuid

from django.db import models

from ..managers import TenantManager
from .choices import ENTRY_TYPES, EXTRACTION_STATUSES
from .company import Company


def upload_storage_path(instance, filename):
    # stored name never derives from the client's filename
    return f"uploads/{instance.stored_filename}"


# ---------- Invoice uploads ----------
class InvoiceUpload(models.Model):
    """One uploaded invoice PDF plus the state of its extraction job"""

    # Opaque token used in URLs and as the stored file name
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Multi-tenant: every upload belongs to a company
    # PROTECT: a company with uploads cannot be removed
    company = models.ForeignKey(
        Company, on_delete=models.PROTECT, related_name="uploads"
    )
    entry_type = models.CharField(max_length=10, choices=ENTRY_TYPES)

    # Name as sent by the browser (display only)
    original_filename = models.CharField(max_length=255)
    # "<id>.pdf", unique across the store
    stored_filename = models.CharField(max_length=64, unique=True)
    stored_file = models.FileField(upload_to=upload_storage_path, max_length=255)
    uploaded_at = models.DateTimeField(auto_now_add=True)

    # Written once by the extraction task
    extraction_status = models.CharField(
        max_length=10, choices=EXTRACTION_STATUSES, default="pending"
    )
    extraction_error_code = models.CharField(max_length=64, null=True, blank=True)
    extraction_error_message = models.TextField(null=True, blank=True)
    extracted_at = models.DateTimeField(null=True, blank=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        ordering = ("-uploaded_at",)
        indexes = [
            # upload queue: newest uploads of one company first
            models.Index(fields=["company", "uploaded_at"], name="upload_company_uploaded_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(entry_type__in=["income", "expense"]),
                name="upload_entry_type_valid",
            ),
            models.CheckConstraint(
                condition=models.Q(
                    extraction_status__in=["pending", "succeeded", "failed"]
                ),
                name="upload_extraction_status_valid",
            ),
        ]

    def __str__(self):
        return f"{self.original_filename} ({self.entry_type}, {self.extraction_status})"

    def save(self, *args, **kwargs):
        if not self.stored_filename:
            self.stored_filename = f"{self.id}.pdf"
        return super().save(*args, **kwargs)
