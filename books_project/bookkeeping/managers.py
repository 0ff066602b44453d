from django.db import models

# -----------------------------------------
# Enforce tenant scoping across all models
# that belong to a company
# -----------------------------------------
# Define subclass of Django’s QuerySet
class TenantQuerySet(models.QuerySet):
    def for_company(self, company):         # Add queryset helper
        # accept either a Company instance or its primary key
        company_id = getattr(company, "pk", company)
        return self.filter(company_id=company_id) # Apply filter

    # Enables query:
    # AccountingEntry.objects.for_company(request.company)


# Attach TenantQuerySet to .objects
class TenantManager(models.Manager):

    def get_queryset(self): # ensure every model gets TenantQuerySet(so .for_company() is always available)
        return TenantQuerySet(self.model, using=self._db)

    def for_company(self, company): # can call for_company() directly on objects
        return self.get_queryset().for_company(company)


# Ledger-specific helpers on top of tenant scoping
class AccountingEntryQuerySet(TenantQuerySet):
    def for_bucket(self, company, document_year, entry_type):
        # One numbering bucket = (company, year, entry type)
        return self.for_company(company).filter(
            document_year=document_year,
            entry_type=entry_type,
        )

    def for_year(self, year):
        return self.filter(document_year=year)


class AccountingEntryManager(TenantManager):
    def get_queryset(self):
        return AccountingEntryQuerySet(self.model, using=self._db)

    def for_bucket(self, company, document_year, entry_type):
        return self.get_queryset().for_bucket(company, document_year, entry_type)
