from .choices import (ENTRY_TYPE_VALUES, ENTRY_TYPES, EXTRACTION_STATUSES,
                      PL_CATEGORIES, PL_CATEGORY_VALUES)
from .company import Company
from .draft import PENDING_COUNTERPARTY, UploadReviewDraft
from .entry import AccountingEntry
from .expense_type import ExpenseType
from .upload import InvoiceUpload
