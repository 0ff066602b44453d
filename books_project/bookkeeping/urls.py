from django.urls import path

from . import views

app_name = "bookkeeping"

urlpatterns = [
    path("csrf", views.csrf_token, name="csrf"),
    # registries
    path("companies", views.companies, name="companies"),
    path("companies/<int:company_id>", views.company_detail, name="company-detail"),
    path("companies/<int:company_id>/activate", views.activate_company, name="company-activate"),
    path("expense-types", views.expense_types, name="expense-types"),
    # "reorder" must win over the <int:...> route below
    path("expense-types/reorder", views.reorder_expense_types, name="expense-types-reorder"),
    path("expense-types/<int:expense_type_id>", views.expense_type_detail, name="expense-type-detail"),
    # uploads -> review -> ledger
    path("uploads", views.uploads_collection, name="uploads"),
    path("uploads/<str:upload_id>/review", views.upload_review, name="upload-review"),
    path("uploads/<str:upload_id>/save", views.save_upload, name="upload-save"),
    path("uploads/<str:upload_id>/file", views.upload_file, name="upload-file"),
    # read side
    path("accounting-entries", views.accounting_entries, name="accounting-entries"),
    path("reports/yearly-overview", views.yearly_overview, name="yearly-overview"),
    path("reports/annual-pl", views.annual_pl, name="annual-pl"),
]
