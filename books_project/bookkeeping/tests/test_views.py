import datetime
import json
from unittest import mock

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import Client, SimpleTestCase, TestCase, override_settings

from ..middleware import ACTIVE_COMPANY_SESSION_KEY
from ..models import AccountingEntry, Company, InvoiceUpload
from ..services.extraction import ExtractedInvoiceDraft
from ..services.ledger import commit_entry
from ..services.review import patch_draft, seed_from_extraction
from ..views import company_required
from .helpers import (PDF_BYTES, TempMediaMixin, expense_draft, income_draft,
                      make_company, make_expense_type, make_upload)


class ApiTestCase(TempMediaMixin, TestCase):
    """Client with an active company in the session"""

    def setUp(self):
        self.company = make_company("Active Co")
        self.activate(self.company)

    def activate(self, company):
        response = self.client.post(f"/api/companies/{company.pk}/activate")
        self.assertEqual(response.status_code, 200)

    def send_json(self, method, url, payload):
        return getattr(self.client, method)(
            url, data=json.dumps(payload), content_type="application/json")

    def upload(self, entry_type="income", name="invoice.pdf", content=PDF_BYTES,
               content_type="application/pdf"):
        data = {"entryType": entry_type, "file": SimpleUploadedFile(name, content, content_type)}
        with mock.patch("bookkeeping.tasks.run_upload_extraction.delay") as delay:
            with self.captureOnCommitCallbacks(execute=True):
                response = self.client.post("/api/uploads", data)
        return response, delay

    def assertError(self, response, status, code, field=None):
        self.assertEqual(response.status_code, status)
        error = response.json()["error"]
        self.assertEqual(error["code"], code)
        if field is not None:
            self.assertEqual(error["field"], field)


class ActiveCompanyTests(TempMediaMixin, TestCase):

    def test_company_scoped_endpoints_need_an_active_company(self):
        for url in ("/api/uploads", "/api/accounting-entries", "/api/reports/annual-pl"):
            response = self.client.get(url)
            self.assertEqual(response.status_code, 409)
            self.assertEqual(response.json()["error"]["code"], "INVALID_ACTIVE_COMPANY")

    def test_stale_session_company_is_rejected(self):
        session = self.client.session
        session[ACTIVE_COMPANY_SESSION_KEY] = 424242
        session.save()

        response = self.client.get("/api/uploads")

        self.assertEqual(response.status_code, 409)

    def test_activate_unknown_company(self):
        self.assertEqual(self.client.post("/api/companies/424242/activate").status_code, 404)


""" Upload -> extraction seed -> review -> save, through the HTTP API """
class UploadToLedgerFlowTests(ApiTestCase):

    def test_full_flow(self):
        response, delay = self.upload("income")
        self.assertEqual(response.status_code, 201)
        upload_id = response.json()["id"]
        self.assertEqual(response.json()["extractionStatus"], "pending")
        self.assertEqual(response.json()["storedFilename"], f"{upload_id}.pdf")
        # extraction job queued once the upload row was committed
        delay.assert_called_once_with(upload_id)

        seed_from_extraction(upload_id, ExtractedInvoiceDraft(
            document_date=datetime.date(2025, 5, 2),
            counterparty_name="Acme",
            booking_text=None,
            amount_gross=5000,
            amount_net=None,
            amount_tax=None,
            payment_received_date=datetime.date(2025, 5, 20),
        ))

        response = self.send_json(
            "put", f"/api/uploads/{upload_id}/review", {"bookingText": "Consulting May"})
        self.assertEqual(response.status_code, 200)
        draft = response.json()["draft"]
        self.assertEqual(draft["counterpartyName"], "Acme")
        self.assertEqual(draft["bookingText"], "Consulting May")
        self.assertEqual(draft["documentDate"], "2025-05-02")

        response = self.client.post(f"/api/uploads/{upload_id}/save")
        self.assertEqual(response.status_code, 201)
        entry = response.json()["entry"]
        self.assertEqual(entry["documentNumber"], 1)
        self.assertEqual(entry["documentReference"], "I-2025-1")
        self.assertEqual(entry["amountGross"], 5000)
        self.assertEqual(entry["uploadId"], upload_id)

        response = self.client.post(f"/api/uploads/{upload_id}/save")
        self.assertError(response, 409, "ALREADY_SAVED")
        self.assertEqual(AccountingEntry.objects.count(), 1)

        review = self.client.get(f"/api/uploads/{upload_id}/review").json()
        self.assertEqual(review["reviewStatus"], "saved")

        queue = self.client.get("/api/uploads?status=saved").json()["items"]
        self.assertEqual([item["id"] for item in queue], [upload_id])
        self.assertEqual(self.client.get("/api/uploads").json()["items"], [])

        entries = self.client.get("/api/accounting-entries?year=2025").json()
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0]["sourceOriginalFilename"], "invoice.pdf")

    def test_save_default_draft_is_a_validation_error(self):
        response, _ = self.upload("income")

        response = self.client.post(f"/api/uploads/{response.json()['id']}/save")

        self.assertError(response, 400, "VALIDATION_ERROR", "bookingText")

    def test_save_unknown_upload(self):
        response = self.client.post("/api/uploads/not-a-uuid/save")

        self.assertError(response, 404, "UPLOAD_NOT_FOUND")


class UploadIntakeTests(ApiTestCase):

    def test_non_pdf_is_rejected(self):
        response, delay = self.upload(name="notes.txt", content=b"hello", content_type="text/plain")

        self.assertError(response, 415, "UNSUPPORTED_MEDIA_TYPE", "file")
        delay.assert_not_called()
        self.assertFalse(InvoiceUpload.objects.exists())

    def test_pdf_name_without_pdf_bytes_is_rejected(self):
        response, _ = self.upload(name="fake.pdf", content=b"hello")

        self.assertError(response, 415, "UNSUPPORTED_MEDIA_TYPE")

    def test_empty_file(self):
        response, _ = self.upload(content=b"")

        self.assertError(response, 400, "EMPTY_FILE")

    @override_settings(UPLOAD_MAX_BYTES=16)
    def test_file_too_large(self):
        response, _ = self.upload()

        self.assertError(response, 413, "FILE_TOO_LARGE")

    def test_invalid_entry_type_and_missing_file(self):
        response, _ = self.upload(entry_type="transfer")
        self.assertError(response, 400, "INVALID_ENTRY_TYPE", "entryType")

        response = self.client.post("/api/uploads", {"entryType": "expense"})
        self.assertError(response, 400, "MISSING_FILE", "file")

    def test_unknown_queue_status(self):
        response = self.client.get("/api/uploads?status=archived")

        self.assertError(response, 400, "VALIDATION_ERROR", "status")


class ReviewEndpointTests(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.stored = make_upload(self.company, "expense")
        self.url = f"/api/uploads/{self.stored.pk}/review"

    def test_get_returns_default_draft(self):
        body = self.client.get(self.url).json()

        self.assertEqual(body["reviewStatus"], "pending_review")
        self.assertEqual(body["draft"]["counterpartyName"], "Pending extraction")
        self.assertEqual(body["upload"]["id"], str(self.stored.pk))

    def test_malformed_json(self):
        response = self.client.put(self.url, data="{oops", content_type="application/json")

        self.assertError(response, 400, "INVALID_JSON")

    def test_unknown_field(self):
        response = self.send_json("put", self.url, {"documentNumber": 3})

        self.assertError(response, 400, "VALIDATION_ERROR", "documentNumber")

    def test_unknown_expense_type(self):
        response = self.send_json("put", self.url, {"typeOfExpenseId": 999999})

        self.assertError(response, 400, "VALIDATION_ERROR", "typeOfExpenseId")

    def test_other_companys_upload_is_not_found(self):
        foreign = make_upload(make_company("Other Co"), "expense")

        response = self.client.get(f"/api/uploads/{foreign.pk}/review")

        self.assertError(response, 404, "UPLOAD_NOT_FOUND")
        self.assertEqual(self.client.get(f"/api/uploads/{foreign.pk}/file").status_code, 404)

    def test_file_download(self):
        response = self.client.get(f"/api/uploads/{self.stored.pk}/file?download=1")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Content-Type"], "application/pdf")
        self.assertTrue(response["Content-Disposition"].startswith("attachment"))
        self.assertIn("invoice.pdf", response["Content-Disposition"])
        self.assertEqual(b"".join(response.streaming_content), PDF_BYTES)
        response.close()

    def test_file_inline(self):
        response = self.client.get(f"/api/uploads/{self.stored.pk}/file")

        self.assertTrue(response["Content-Disposition"].startswith("inline"))
        response.close()


class RegistryEndpointTests(ApiTestCase):

    def test_create_and_list_companies(self):
        response = self.send_json("post", "/api/companies", {"name": "  New Co "})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["name"], "New Co")

        names = [c["name"] for c in self.client.get("/api/companies").json()]
        self.assertEqual(names, ["Active Co", "New Co"])

    def test_duplicate_company(self):
        response = self.send_json("post", "/api/companies", {"name": "ACTIVE co"})

        self.assertError(response, 409, "DUPLICATE_COMPANY", "name")

    def test_company_in_use_cannot_be_deleted(self):
        make_upload(self.company)

        response = self.client.delete(f"/api/companies/{self.company.pk}")

        self.assertError(response, 409, "COMPANY_IN_USE")

    def test_deleting_active_company_clears_session(self):
        response = self.client.delete(f"/api/companies/{self.company.pk}")

        self.assertEqual(response.status_code, 204)
        self.assertFalse(Company.objects.exists())
        self.assertNotIn(ACTIVE_COMPANY_SESSION_KEY, self.client.session)

    def test_expense_type_lifecycle(self):
        response = self.send_json(
            "post", "/api/expense-types", {"expenseTypeText": "Goods", "plCategory": "direct_cost"})
        self.assertEqual(response.status_code, 201)
        goods_id = response.json()["id"]
        rent_id = self.send_json(
            "post", "/api/expense-types", {"expenseTypeText": "Rent"}).json()["id"]

        response = self.send_json(
            "patch", "/api/expense-types/reorder", {"orderedExpenseTypeIds": [rent_id, goods_id]})
        self.assertEqual(response.status_code, 204)
        listed = self.client.get("/api/expense-types").json()
        self.assertEqual([(t["id"], t["sortOrder"]) for t in listed], [(rent_id, 1), (goods_id, 2)])

        response = self.send_json(
            "patch", f"/api/expense-types/{rent_id}", {"plCategory": "tax"})
        self.assertEqual(response.json()["plCategory"], "tax")

        self.assertEqual(self.client.delete(f"/api/expense-types/{goods_id}").status_code, 204)

    def test_expense_type_errors(self):
        rent = make_expense_type("Rent")
        upload = make_upload(self.company, "expense")
        patch_draft(upload.pk, self.company.pk, {"type_of_expense_id": rent.pk})

        self.assertError(
            self.send_json("post", "/api/expense-types", {"expenseTypeText": " rent"}),
            409, "DUPLICATE_EXPENSE_TYPE")
        self.assertError(
            self.send_json("post", "/api/expense-types", {"expenseTypeText": "X", "plCategory": "capex"}),
            400, "VALIDATION_ERROR", "plCategory")
        self.assertError(self.client.delete(f"/api/expense-types/{rent.pk}"), 409, "EXPENSE_TYPE_IN_USE")
        self.assertError(
            self.send_json("patch", "/api/expense-types/reorder", {"orderedExpenseTypeIds": []}),
            400, "VALIDATION_ERROR", "orderedExpenseTypeIds")


class ReportEndpointTests(ApiTestCase):

    def setUp(self):
        super().setUp()
        goods = make_expense_type("Goods", "direct_cost")
        rent = make_expense_type("Rent")
        for entry_type, draft in (
            ("income", income_draft(amount_gross=1000)),
            ("expense", expense_draft(goods, amount_gross=400)),
            ("expense", expense_draft(rent, amount_gross=200)),
        ):
            upload = make_upload(self.company, entry_type)
            commit_entry(self.company.pk, upload.pk, entry_type, draft)

    def test_yearly_overview(self):
        body = self.client.get(
            "/api/reports/yearly-overview?year=2025&entryType=expense&sort=amountAsc").json()

        self.assertEqual([e["amountGross"] for e in body["entries"]], [200, 400])
        self.assertEqual(body["incomeTotal"], 0)
        self.assertEqual(body["expenseTotal"], 600)
        self.assertEqual(body["result"], -600)
        self.assertEqual(body["availableYears"], [2025])

    def test_annual_pl(self):
        body = self.client.get("/api/reports/annual-pl?year=2025").json()

        self.assertEqual(body["totals"]["grossProfit"], 600)
        self.assertEqual(body["totals"]["netResult"], 400)
        self.assertEqual(body["priorTotals"]["netResult"], 0)
        opex = next(line for line in body["lines"] if line["key"] == "operating_expenses")
        self.assertEqual(opex["currentShare"], "20.00")
        self.assertIsNone(opex["deltaPercent"])

    def test_invalid_parameters(self):
        self.assertError(
            self.client.get("/api/reports/annual-pl?year=abc"), 400, "VALIDATION_ERROR", "year")
        self.assertError(
            self.client.get("/api/reports/yearly-overview?sort=nameAsc"), 400, "VALIDATION_ERROR", "sort")
        self.assertError(
            self.client.get("/api/reports/yearly-overview?entryType=x"), 400, "VALIDATION_ERROR",
            "entryType")


""" Unsafe methods need the token handed out by /api/csrf """
class CsrfTests(TempMediaMixin, TestCase):

    def setUp(self):
        self.client = Client(enforce_csrf_checks=True)

    def test_post_without_token_is_forbidden(self):
        response = self.client.post(
            "/api/companies", data=json.dumps({"name": "New Co"}), content_type="application/json")

        self.assertEqual(response.status_code, 403)
        self.assertFalse(Company.objects.exists())

    def test_post_with_token_from_csrf_endpoint(self):
        response = self.client.get("/api/csrf")
        self.assertEqual(response.status_code, 200)
        token = response.json()["csrfToken"]
        self.assertIn("csrftoken", response.cookies)

        response = self.client.post(
            "/api/companies",
            data=json.dumps({"name": "New Co"}),
            content_type="application/json",
            HTTP_X_CSRFTOKEN=token,
        )

        self.assertEqual(response.status_code, 201)
        self.assertTrue(Company.objects.filter(name="New Co").exists())


class CompanyRequiredTests(SimpleTestCase):

    def test_wrapped_view_keeps_its_identity(self):
        def entry_list(request):
            """Entries of the active company"""

        wrapped = company_required(entry_list)

        self.assertIs(wrapped.__wrapped__, entry_list)
        self.assertEqual(wrapped.__name__, "entry_list")
        self.assertEqual(wrapped.__doc__, "Entries of the active company")
