import datetime
import shutil
import tempfile

from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.test import override_settings

from ..models import Company, ExpenseType, InvoiceUpload
from ..models.upload import upload_storage_path
from ..services.review import DraftValues

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\n%%EOF\n"


class TempMediaMixin:
    """Point MEDIA_ROOT at a throwaway directory for the whole test class"""

    @classmethod
    def setUpClass(cls):
        cls._media_root = tempfile.mkdtemp(prefix="bookkeeping-tests-")
        cls._media_override = override_settings(MEDIA_ROOT=cls._media_root)
        cls._media_override.enable()
        super().setUpClass()

    @classmethod
    def tearDownClass(cls):
        super().tearDownClass()
        cls._media_override.disable()
        shutil.rmtree(cls._media_root, ignore_errors=True)


def make_company(name="Test Co"):
    return Company.objects.create(name=name)


def make_expense_type(text="Rent", pl_category="operating_expense", sort_order=None):
    if sort_order is None:
        sort_order = ExpenseType.objects.count() + 1
    return ExpenseType.objects.create(text=text, pl_category=pl_category, sort_order=sort_order)


def make_upload(company, entry_type="expense", original_filename="invoice.pdf", content=PDF_BYTES):
    """Upload row plus stored file, without queueing an extraction job"""
    upload = InvoiceUpload(
        company=company, entry_type=entry_type, original_filename=original_filename)
    upload.stored_filename = f"{upload.id}.pdf"
    upload.stored_file.name = default_storage.save(
        upload_storage_path(upload, original_filename), ContentFile(content))
    upload.save(force_insert=True)
    return upload


def income_draft(document_date=datetime.date(2025, 3, 1), amount_gross=100000, **overrides):
    values = dict(
        document_date=document_date,
        counterparty_name="Acme",
        booking_text="Consulting",
        amount_gross=amount_gross,
        payment_received_date=document_date,
    )
    values.update(overrides)
    return DraftValues(**values)


def expense_draft(expense_type, document_date=datetime.date(2025, 3, 1), amount_gross=40000, **overrides):
    values = dict(
        document_date=document_date,
        counterparty_name="Supplier AG",
        booking_text="Office supplies",
        amount_gross=amount_gross,
        type_of_expense_id=expense_type.pk,
    )
    values.update(overrides)
    return DraftValues(**values)
