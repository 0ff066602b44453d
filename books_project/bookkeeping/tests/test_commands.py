from io import StringIO

from django.core.management import call_command
from django.test import TestCase

from ..models import AccountingEntry, Company, ExpenseType
from .helpers import TempMediaMixin


class DemoCommandTests(TempMediaMixin, TestCase):

    def test_create_demo_company_is_repeatable(self):
        call_command("create_demo_company", company_name="Demo AG", stdout=StringIO())
        call_command("create_demo_company", company_name=" demo ag ", stdout=StringIO())

        self.assertEqual(Company.objects.count(), 1)
        self.assertEqual(ExpenseType.objects.count(), 7)
        self.assertEqual(
            list(ExpenseType.objects.values_list("sort_order", flat=True)), [1, 2, 3, 4, 5, 6, 7])
        self.assertFalse(AccountingEntry.objects.exists())

    """ seed_demo books one income and one expense entry """
    def test_seed_demo_books_entries(self):
        out = StringIO()
        call_command("seed_demo", company="Demo Ltd", stdout=out)

        company = Company.objects.get(name="Demo Ltd")
        entries = AccountingEntry.objects.filter(company=company)
        self.assertEqual(
            sorted(entries.values_list("entry_type", "document_number")),
            [("expense", 1), ("income", 1)],
        )
        self.assertEqual(entries.get(entry_type="expense").expense_pl_category, "operating_expense")
        self.assertIn("Demo data seeded successfully!", out.getvalue())
