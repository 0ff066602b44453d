from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils import timezone

from bookkeeping.models import Company, ExpenseType, InvoiceUpload
from bookkeeping.models.company import normalize_company_name
from bookkeeping.models.upload import upload_storage_path
from bookkeeping.services.companies import create_company
from bookkeeping.services.expense_types import create_expense_type
from bookkeeping.services.ledger import format_document_reference, save_entry_from_upload_review
from bookkeeping.services.results import Reason
from bookkeeping.services.review import patch_draft

# (label, P&L category) created when missing
DEFAULT_EXPENSE_TYPES = [
    ("Materials", "direct_cost"),
    ("Subcontractors", "direct_cost"),
    ("Rent", "operating_expense"),
    ("Software & subscriptions", "operating_expense"),
    ("Travel", "operating_expense"),
    ("Bank fees", "financial_other"),
    ("Income tax", "tax"),
]

# Smallest byte string the upload checks accept as a PDF
DEMO_PDF = b"%PDF-1.4\n% demo invoice\n%%EOF\n"


class Command(BaseCommand):
    help = "Create a demo company, the default expense types and (optionally) sample entries."

    # Define command-line arguments
    def add_arguments(self, parser):
        parser.add_argument(
            "--company-name",  # Define flag
            default="Demo Company",
            help="Name of the demo company to create.",
        )
        parser.add_argument(
            "--with-entries",
            action="store_true",
            help="Also book one income and one expense entry for the company.",
        )

    def handle(self, *args, **options):
        company_name = options["company_name"]

        # 1. Company (reuse it when it already exists)
        result = create_company(company_name)
        if result.ok:
            company = result.value
            self.stdout.write(self.style.SUCCESS(f"Created company: {company}"))
        elif result.reason == Reason.DUPLICATE:
            company = Company.objects.get(normalized_name=normalize_company_name(company_name))
            self.stdout.write(self.style.NOTICE(f"Using existing company: {company}"))
        else:
            raise CommandError(result.message)

        # 2. Expense types shared by all companies
        created = 0
        for text, category in DEFAULT_EXPENSE_TYPES:
            if create_expense_type(text, category).ok:
                created += 1
        self.stdout.write(self.style.SUCCESS(f"Created {created} expense type(s)"))

        # 3. Sample ledger entries
        if options["with_entries"]:
            self._book_samples(company)

        self.stdout.write(self.style.SUCCESS("Demo company setup complete!"))

    def _book_samples(self, company):
        today = timezone.localdate()
        rent = ExpenseType.objects.filter(normalized_text="rent").first()
        samples = [
            (
                "income",
                {
                    "document_date": today,
                    "counterparty_name": "Acme Corp",
                    "booking_text": "Consulting, demo invoice",
                    "amount_gross": 250000,
                    "payment_received_date": today,
                },
            ),
            (
                "expense",
                {
                    "document_date": today,
                    "counterparty_name": "Landlord Ltd",
                    "booking_text": "Office rent, demo invoice",
                    "amount_gross": 120000,
                    "type_of_expense_id": rent.pk if rent else None,
                },
            ),
        ]
        for entry_type, draft in samples:
            upload = self._store_demo_upload(company, entry_type)
            patch_draft(upload.pk, company.pk, draft)
            result = save_entry_from_upload_review(upload.pk, company.pk)
            if not result.ok:
                raise CommandError(f"Could not book demo {entry_type}: {result.message}")
            self.stdout.write(
                self.style.SUCCESS(f"Booked {format_document_reference(result.value)}"))

    @transaction.atomic
    def _store_demo_upload(self, company, entry_type):
        # bypass the extraction queue: demo drafts are written directly
        upload = InvoiceUpload(
            company=company,
            entry_type=entry_type,
            original_filename=f"demo-{entry_type}.pdf",
            extraction_status="failed",
            extraction_error_code="EXTRACTION_CONFIG_MISSING",
            extraction_error_message="Demo upload, entered by hand.",
        )
        upload.stored_filename = f"{upload.id}.pdf"
        upload.stored_file.name = default_storage.save(
            upload_storage_path(upload, upload.stored_filename), ContentFile(DEMO_PDF))
        upload.save(force_insert=True)
        return upload
