# Shared choice lists for uploads, drafts and ledger entries

ENTRY_TYPES = [
    ("income", "Income"),    # money received (sales invoices)
    ("expense", "Expense"),  # money spent (supplier invoices)
]

PL_CATEGORIES = [
    ("direct_cost", "Direct cost"),              # subtracted before gross profit
    ("operating_expense", "Operating expense"),  # subtracted before operating result
    ("financial_other", "Financial / other"),
    ("tax", "Tax"),
]

EXTRACTION_STATUSES = [
    ("pending", "Pending"),      # extraction job queued or running
    ("succeeded", "Succeeded"),  # draft seeded from model output
    ("failed", "Failed"),        # terminal, manual entry required
]

ENTRY_TYPE_VALUES = [value for value, _ in ENTRY_TYPES]
PL_CATEGORY_VALUES = [value for value, _ in PL_CATEGORIES]
