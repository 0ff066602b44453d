from .actions import requeue_extraction
from .entries import AccountingEntryAdmin
from .mixins import TenantAdminMixin
from .ReadOnly import ReadOnlyAdmin
from .registries import CompanyAdmin, ExpenseTypeAdmin
from .uploads import InvoiceUploadAdmin, UploadReviewDraftInline
