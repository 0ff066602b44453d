import uuid

import django.db.models.deletion
from django.db import migrations, models

import bookkeeping.models.upload


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Company",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=100)),
                ("normalized_name", models.CharField(max_length=100, unique=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name_plural": "companies",
                "ordering": ("created_at", "id"),
            },
        ),
        migrations.CreateModel(
            name="ExpenseType",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("text", models.CharField(max_length=100)),
                ("normalized_text", models.CharField(max_length=100, unique=True)),
                (
                    "pl_category",
                    models.CharField(
                        choices=[
                            ("direct_cost", "Direct cost"),
                            ("operating_expense", "Operating expense"),
                            ("financial_other", "Financial / other"),
                            ("tax", "Tax"),
                        ],
                        default="operating_expense",
                        max_length=20,
                    ),
                ),
                ("sort_order", models.PositiveIntegerField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ("sort_order", "id"),
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            pl_category__in=[
                                "direct_cost", "operating_expense", "financial_other", "tax"
                            ]
                        ),
                        name="expense_type_pl_category_valid",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(sort_order__gte=1),
                        name="expense_type_sort_order_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="InvoiceUpload",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("entry_type", models.CharField(choices=[("income", "Income"), ("expense", "Expense")], max_length=10)),
                ("original_filename", models.CharField(max_length=255)),
                ("stored_filename", models.CharField(max_length=64, unique=True)),
                ("stored_file", models.FileField(max_length=255, upload_to=bookkeeping.models.upload.upload_storage_path)),
                ("uploaded_at", models.DateTimeField(auto_now_add=True)),
                (
                    "extraction_status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("succeeded", "Succeeded"), ("failed", "Failed")],
                        default="pending",
                        max_length=10,
                    ),
                ),
                ("extraction_error_code", models.CharField(blank=True, max_length=64, null=True)),
                ("extraction_error_message", models.TextField(blank=True, null=True)),
                ("extracted_at", models.DateTimeField(blank=True, null=True)),
                (
                    "company",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="uploads",
                        to="bookkeeping.company",
                    ),
                ),
            ],
            options={
                "ordering": ("-uploaded_at",),
                "indexes": [
                    models.Index(fields=["company", "uploaded_at"], name="upload_company_uploaded_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(entry_type__in=["income", "expense"]),
                        name="upload_entry_type_valid",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            extraction_status__in=["pending", "succeeded", "failed"]
                        ),
                        name="upload_extraction_status_valid",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="UploadReviewDraft",
            fields=[
                (
                    "upload",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        primary_key=True,
                        related_name="review_draft",
                        serialize=False,
                        to="bookkeeping.invoiceupload",
                    ),
                ),
                ("document_date", models.DateField()),
                ("counterparty_name", models.CharField(max_length=200)),
                ("booking_text", models.CharField(blank=True, max_length=500)),
                ("amount_gross", models.PositiveBigIntegerField(default=0)),
                ("amount_net", models.PositiveBigIntegerField(blank=True, null=True)),
                ("amount_tax", models.PositiveBigIntegerField(blank=True, null=True)),
                ("payment_received_date", models.DateField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "type_of_expense",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="drafts",
                        to="bookkeeping.expensetype",
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="AccountingEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("document_number", models.PositiveIntegerField()),
                ("entry_type", models.CharField(choices=[("income", "Income"), ("expense", "Expense")], max_length=10)),
                ("document_date", models.DateField()),
                ("document_year", models.PositiveSmallIntegerField(editable=False)),
                ("counterparty_name", models.CharField(max_length=200)),
                ("booking_text", models.CharField(blank=True, max_length=500)),
                ("amount_gross", models.BigIntegerField()),
                ("amount_net", models.BigIntegerField(blank=True, null=True)),
                ("amount_tax", models.BigIntegerField(blank=True, null=True)),
                ("payment_received_date", models.DateField(blank=True, null=True)),
                (
                    "expense_pl_category",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("direct_cost", "Direct cost"),
                            ("operating_expense", "Operating expense"),
                            ("financial_other", "Financial / other"),
                            ("tax", "Tax"),
                        ],
                        max_length=20,
                        null=True,
                    ),
                ),
                (
                    "extraction_status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("succeeded", "Succeeded"), ("failed", "Failed")],
                        max_length=10,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "company",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="entries",
                        to="bookkeeping.company",
                    ),
                ),
                (
                    "type_of_expense",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="entries",
                        to="bookkeeping.expensetype",
                    ),
                ),
                (
                    "upload",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="accounting_entry",
                        to="bookkeeping.invoiceupload",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "accounting entries",
                "ordering": ("-document_date", "-id"),
                "indexes": [
                    models.Index(fields=["company", "document_year"], name="entry_company_year_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=["company", "document_year", "entry_type", "document_number"],
                        name="uq_entry_company_year_type_number",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(document_number__gte=1),
                        name="entry_document_number_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(amount_gross__gte=0)
                        & (models.Q(amount_net__isnull=True) | models.Q(amount_net__gte=0))
                        & (models.Q(amount_tax__isnull=True) | models.Q(amount_tax__gte=0)),
                        name="entry_non_negative_amounts",
                    ),
                    models.CheckConstraint(
                        condition=(
                            models.Q(
                                entry_type="income",
                                payment_received_date__isnull=False,
                                type_of_expense__isnull=True,
                                expense_pl_category__isnull=True,
                            )
                            | models.Q(
                                entry_type="expense",
                                payment_received_date__isnull=True,
                                type_of_expense__isnull=False,
                                expense_pl_category__isnull=False,
                            )
                        ),
                        name="entry_type_fields_consistent",
                    ),
                ],
            },
        ),
    ]
