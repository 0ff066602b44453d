import logging

from django.core.files.storage import default_storage
from django.db import transaction
from django.db.models.signals import post_delete, pre_delete
from django.dispatch import receiver

from .exceptions import ImmutableEntryError
from .models import AccountingEntry, InvoiceUpload

logger = logging.getLogger(__name__)

""" Block ledger deletes that bypass AccountingEntry.delete (queryset deletes)."""


# pre_delete signal auto-fires just before Django deletes a model instance,
# also for each row of a QuerySet.delete()
@receiver(pre_delete, sender=AccountingEntry)
def prevent_delete_accounting_entry(sender, instance, **kwargs):
    raise ImmutableEntryError("Accounting entries cannot be deleted.")


"""Remove the stored PDF once its upload row is gone."""


@receiver(post_delete, sender=InvoiceUpload)
def delete_stored_upload_file(sender, instance, **kwargs):
    name = instance.stored_file.name
    if not name:
        return

    def _delete_file():
        default_storage.delete(name)
        logger.info("Deleted stored file %s of upload %s", name, instance.pk)

    # a rolled back delete keeps its file
    transaction.on_commit(_delete_file)
