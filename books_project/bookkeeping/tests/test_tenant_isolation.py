import json

import pytest
from django.test import RequestFactory, TestCase

from ..models import AccountingEntry, InvoiceUpload
from ..services.ledger import commit_entry
from ..views import accounting_entries, uploads_collection
from .helpers import TempMediaMixin, income_draft, make_company, make_upload


class TenantIsolationManagerTests(TempMediaMixin, TestCase):
    def setUp(self):
        self.company_a = make_company("Company A")
        self.company_b = make_company("Company B")

        # one upload per company
        self.upload_a = make_upload(self.company_a, "income")
        self.upload_b = make_upload(self.company_b, "income")

    def test_for_company_returns_only_that_company_objects(self):
        """Compare upload primary keys"""
        self.assertListEqual(
            list(InvoiceUpload.objects.for_company(self.company_a).values_list("pk", flat=True)),
            [self.upload_a.pk],
        )
        # a bare primary key works too
        self.assertListEqual(
            list(InvoiceUpload.objects.for_company(self.company_b.pk).values_list("pk", flat=True)),
            [self.upload_b.pk],
        )

    def test_get_other_company_object_raises_does_not_exist(self):
        with self.assertRaises(InvoiceUpload.DoesNotExist):
            InvoiceUpload.objects.for_company(self.company_a).get(pk=self.upload_b.pk)

    def test_commit_for_other_company_upload_raises_does_not_exist(self):
        # the upload lookup inside the commit is tenant scoped
        with self.assertRaises(InvoiceUpload.DoesNotExist):
            commit_entry(self.company_a.pk, self.upload_b.pk, "income", income_draft())
        self.assertFalse(AccountingEntry.objects.exists())

    def test_bucket_is_scoped_to_company(self):
        commit_entry(self.company_a.pk, self.upload_a.pk, "income", income_draft())

        self.assertFalse(AccountingEntry.objects.for_bucket(self.company_b, 2025, "income").exists())
        self.assertTrue(AccountingEntry.objects.for_bucket(self.company_a, 2025, "income").exists())


@pytest.mark.django_db
def test_upload_queue_returns_only_tenant_data(settings, tmp_path):
    settings.MEDIA_ROOT = str(tmp_path)
    c1 = make_company("Company A")
    c2 = make_company("Company B")
    make_upload(c1, "income", original_filename="c1.pdf")
    make_upload(c2, "income", original_filename="c2.pdf")

    request = RequestFactory().get("/api/uploads")
    # attach company to request before hitting view
    request.company = c1  # manually simulate middleware

    response = uploads_collection(request)
    filenames = [item["originalFilename"] for item in json.loads(response.content)["items"]]

    assert filenames == ["c1.pdf"]


@pytest.mark.django_db
def test_entry_list_returns_only_tenant_data(settings, tmp_path):
    settings.MEDIA_ROOT = str(tmp_path)
    c1 = make_company("Company A")
    c2 = make_company("Company B")
    commit_entry(c1.pk, make_upload(c1, "income").pk, "income", income_draft(counterparty_name="C1"))
    commit_entry(c2.pk, make_upload(c2, "income").pk, "income", income_draft(counterparty_name="C2"))

    request = RequestFactory().get("/api/accounting-entries")
    request.company = c2

    data = json.loads(accounting_entries(request).content)

    assert [row["counterpartyName"] for row in data] == ["C2"]
    assert data[0]["documentNumber"] == 1
