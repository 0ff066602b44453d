from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    # JSON API for uploads, review drafts, ledger and reports
    path("api/", include("bookkeeping.urls")),
]
