from django.db import models

# Longest company name accepted by the registry
MAX_COMPANY_NAME_LENGTH = 100


def normalize_company_name(value):
    # uniqueness is case-insensitive and ignores surrounding whitespace
    return value.strip().lower()


# ---------- Tenant / Company ----------
class Company(models.Model):
    """Tenant: every upload, draft and ledger entry belongs to one company"""

    # Store company’s display name (trimmed)
    name = models.CharField(max_length=MAX_COMPANY_NAME_LENGTH)

    # Lower-cased, trimmed name, no two companies can share it
    normalized_name = models.CharField(max_length=MAX_COMPANY_NAME_LENGTH, unique=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "companies"
        # registry lists companies in creation order
        ordering = ("created_at", "id")

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        # keep the normalized column in sync with the display name
        self.name = (self.name or "").strip()
        self.normalized_name = normalize_company_name(self.name)
        return super().save(*args, **kwargs)
