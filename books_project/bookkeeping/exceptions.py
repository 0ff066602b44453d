from django.core.exceptions import ValidationError


class ImmutableEntryError(ValidationError):
    """Raised when something tries to change or delete a saved AccountingEntry."""
    pass


class InvoiceExtractionError(Exception):
    """Raised when the extraction provider call or its output is unusable.

    `code` is one of the EXTRACTION_* codes persisted on the upload.
    """

    def __init__(self, code, message):
        super().__init__(message)
        self.code = code
        self.message = message
