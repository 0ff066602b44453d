import datetime
import uuid

from django.core.exceptions import ValidationError
from django.test import TestCase
from django.utils import timezone

from ..models import PENDING_COUNTERPARTY, UploadReviewDraft
from ..services.extraction import ExtractedInvoiceDraft
from ..services.ledger import commit_entry
from ..services.results import Reason
from ..services.review import (get_review, patch_draft, seed_from_extraction,
                               validate_draft_patch)
from .helpers import (TempMediaMixin, income_draft, make_company,
                      make_expense_type, make_upload)


class ReviewDraftStoreTests(TempMediaMixin, TestCase):

    def setUp(self):
        self.company = make_company()
        self.upload = make_upload(self.company, "expense")

    """ Before anything is written the review shows the default draft """
    def test_review_without_row_shows_default_draft(self):
        review = get_review(self.upload.pk, self.company.pk)

        self.assertEqual(review.review_status, "pending_review")
        self.assertEqual(review.draft.counterparty_name, PENDING_COUNTERPARTY)
        self.assertEqual(review.draft.booking_text, "")
        self.assertEqual(review.draft.amount_gross, 0)
        self.assertIsNone(review.draft.amount_net)
        self.assertIsNone(review.draft.type_of_expense_id)
        self.assertEqual(review.draft.document_date, timezone.localdate(self.upload.uploaded_at))
        # reading alone does not create a row
        self.assertFalse(UploadReviewDraft.objects.exists())

    def test_patch_overwrites_only_supplied_fields(self):
        patch_draft(self.upload.pk, self.company.pk, {"counterparty_name": "Supplier AG"})
        review = patch_draft(self.upload.pk, self.company.pk, {"amount_gross": 1250})

        self.assertEqual(review.draft.counterparty_name, "Supplier AG")
        self.assertEqual(review.draft.amount_gross, 1250)
        self.assertEqual(UploadReviewDraft.objects.count(), 1)

        stored = get_review(self.upload.pk, self.company.pk).draft
        self.assertEqual(stored, review.draft)

    def test_patch_can_clear_nullable_fields(self):
        rent = make_expense_type("Rent")
        patch_draft(self.upload.pk, self.company.pk, {"type_of_expense_id": rent.pk, "amount_tax": 77})
        review = patch_draft(
            self.upload.pk, self.company.pk, {"type_of_expense_id": None, "amount_tax": None})

        self.assertIsNone(review.draft.type_of_expense_id)
        self.assertIsNone(review.draft.amount_tax)

    def test_patch_with_unknown_expense_type_raises(self):
        with self.assertRaises(ValidationError) as ctx:
            patch_draft(self.upload.pk, self.company.pk, {"type_of_expense_id": 999999})

        self.assertIn("typeOfExpenseId", ctx.exception.message_dict)
        self.assertFalse(UploadReviewDraft.objects.exists())

    def test_foreign_or_malformed_upload_is_not_found(self):
        other = make_company("Other Co")

        self.assertIsNone(get_review(self.upload.pk, other.pk))
        self.assertIsNone(get_review("not-a-uuid", self.company.pk))
        self.assertIsNone(get_review(uuid.uuid4(), self.company.pk))
        self.assertIsNone(patch_draft(self.upload.pk, other.pk, {"booking_text": "x"}))

    def test_review_status_flips_once_saved(self):
        upload = make_upload(self.company, "income")
        commit_entry(self.company.pk, upload.pk, "income", income_draft())

        self.assertEqual(get_review(upload.pk, self.company.pk).review_status, "saved")


""" Extraction results seed a draft exactly once """
class SeedFromExtractionTests(TempMediaMixin, TestCase):

    def setUp(self):
        self.company = make_company()
        self.upload = make_upload(self.company, "income")
        self.extracted = ExtractedInvoiceDraft(
            document_date=datetime.date(2025, 5, 2),
            counterparty_name="Acme",
            booking_text="Consulting May",
            amount_gross=5000,
            amount_net=4630,
            amount_tax=370,
            payment_received_date=datetime.date(2025, 5, 20),
        )

    def test_seed_inserts_when_no_draft_exists(self):
        self.assertTrue(seed_from_extraction(self.upload.pk, self.extracted))

        draft = get_review(self.upload.pk, self.company.pk).draft
        self.assertEqual(draft.counterparty_name, "Acme")
        self.assertEqual(draft.amount_gross, 5000)
        self.assertEqual(draft.payment_received_date, datetime.date(2025, 5, 20))

    def test_user_edits_win_over_late_extraction(self):
        patch_draft(self.upload.pk, self.company.pk, {"counterparty_name": "Typed by hand"})

        self.assertFalse(seed_from_extraction(self.upload.pk, self.extracted))

        draft = get_review(self.upload.pk, self.company.pk).draft
        self.assertEqual(draft.counterparty_name, "Typed by hand")
        self.assertEqual(draft.amount_gross, 0)

    def test_missing_extracted_fields_fall_back_to_defaults(self):
        sparse = ExtractedInvoiceDraft(
            document_date=None,
            counterparty_name=None,
            booking_text=None,
            amount_gross=0,
            amount_net=None,
            amount_tax=None,
            payment_received_date=None,
        )

        seed_from_extraction(self.upload.pk, sparse)

        draft = get_review(self.upload.pk, self.company.pk).draft
        self.assertEqual(draft.counterparty_name, PENDING_COUNTERPARTY)
        self.assertEqual(draft.booking_text, "")
        self.assertEqual(draft.document_date, timezone.localdate(self.upload.uploaded_at))


class ValidateDraftPatchTests(TestCase):

    def test_translates_api_names(self):
        result = validate_draft_patch({
            "documentDate": "2025-02-28",
            "bookingText": "Rent February",
            "amountGross": 0,
            "paymentReceivedDate": None,
        })

        self.assertTrue(result.ok)
        self.assertEqual(result.value, {
            "document_date": datetime.date(2025, 2, 28),
            "booking_text": "Rent February",
            "amount_gross": 0,
            "payment_received_date": None,
        })

    def test_empty_patch_is_accepted(self):
        self.assertEqual(validate_draft_patch({}).value, {})

    def test_unknown_key_is_rejected(self):
        result = validate_draft_patch({"documentNumber": 5})

        self.assertEqual(result.reason, Reason.VALIDATION)
        self.assertEqual(result.field, "documentNumber")

    def test_impossible_calendar_date_is_rejected(self):
        self.assertEqual(validate_draft_patch({"documentDate": "2025-02-30"}).field, "documentDate")
        self.assertEqual(
            validate_draft_patch({"documentDate": "2025-02-28T10:00:00"}).field, "documentDate")
        self.assertEqual(validate_draft_patch({"documentDate": None}).field, "documentDate")

    def test_amounts_must_be_non_negative_integers(self):
        self.assertEqual(validate_draft_patch({"amountGross": -1}).field, "amountGross")
        self.assertEqual(validate_draft_patch({"amountGross": True}).field, "amountGross")
        self.assertEqual(validate_draft_patch({"amountGross": 12.5}).field, "amountGross")
        self.assertEqual(validate_draft_patch({"amountGross": None}).field, "amountGross")
        self.assertEqual(validate_draft_patch({"amountNet": "10"}).field, "amountNet")
        self.assertTrue(validate_draft_patch({"amountTax": None}).ok)

    def test_expense_type_id_must_be_positive(self):
        self.assertEqual(validate_draft_patch({"typeOfExpenseId": 0}).field, "typeOfExpenseId")
        self.assertTrue(validate_draft_patch({"typeOfExpenseId": None}).ok)

    def test_text_fields_enforce_length(self):
        self.assertEqual(
            validate_draft_patch({"counterpartyName": "x" * 201}).field, "counterpartyName")
        self.assertEqual(validate_draft_patch({"bookingText": "x" * 501}).field, "bookingText")
        self.assertTrue(validate_draft_patch({"bookingText": ""}).ok)

    def test_non_object_body_is_rejected(self):
        self.assertFalse(validate_draft_patch(["bookingText"]).ok)
