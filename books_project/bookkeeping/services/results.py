from dataclasses import dataclass
from typing import Any, Optional


class Reason:
    """Failure reasons a service can hand back to its caller"""

    VALIDATION = "validation"
    DUPLICATE = "duplicate"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    ALREADY_SAVED = "already_saved"
    EXPENSE_TYPE_NOT_FOUND = "expense_type_not_found"
    # upload intake
    INVALID_ENTRY_TYPE = "invalid_entry_type"
    MISSING_FILE = "missing_file"
    EMPTY_FILE = "empty_file"
    FILE_TOO_LARGE = "file_too_large"
    UNSUPPORTED_MEDIA_TYPE = "unsupported_media_type"
    UPLOAD_PERSISTENCE_FAILED = "upload_persistence_failed"


# Discriminated outcome: ok + value, or a reason the caller can branch on
@dataclass(frozen=True)
class ServiceResult:
    ok: bool
    value: Any = None
    reason: Optional[str] = None
    field: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def success(cls, value=None):
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, reason, message, field=None):
        return cls(ok=False, reason=reason, field=field, message=message)
