from dataclasses import asdict, is_dataclass


# snake_case -> camelCase for JSON keys on the wire
def to_camel(name):
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def camelize(value):
    """Recursively camelCase dict keys (dataclasses are converted first)"""
    if is_dataclass(value) and not isinstance(value, type):
        value = asdict(value)
    if isinstance(value, dict):
        return {to_camel(str(key)): camelize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [camelize(item) for item in value]
    return value


def serialize_company(company):
    return {
        "id": company.pk,
        "name": company.name,
        "createdAt": company.created_at,
        "updatedAt": company.updated_at,
    }


def serialize_expense_type(expense_type):
    return {
        "id": expense_type.pk,
        "expenseTypeText": expense_type.text,
        "plCategory": expense_type.pl_category,
        "sortOrder": expense_type.sort_order,
        "createdAt": expense_type.created_at,
        "updatedAt": expense_type.updated_at,
    }


def serialize_upload(upload):
    return {
        "id": str(upload.pk),
        "companyId": upload.company_id,
        "entryType": upload.entry_type,
        "originalFilename": upload.original_filename,
        "storedFilename": upload.stored_filename,
        "uploadedAt": upload.uploaded_at,
        "extractionStatus": upload.extraction_status,
        "extractionErrorCode": upload.extraction_error_code,
        "extractionErrorMessage": upload.extraction_error_message,
        "extractedAt": upload.extracted_at,
    }


def serialize_review(review):
    return {
        "upload": serialize_upload(review.upload),
        "draft": camelize(review.draft),
        "reviewStatus": review.review_status,
    }


def serialize_entry(summary):
    data = camelize(summary)
    data["documentReference"] = summary.reference
    return data
