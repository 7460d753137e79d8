"""
Storage error taxonomy.

Every condition here is expected and recoverable by the caller; the API layer
renders each kind with its own status code so clients can show an actionable
message. Anything not derived from StorageError is an internal failure.
"""

from typing import Any, Dict, Optional

from personal_cloud.utils.formatting import format_size


class StorageError(Exception):
    status_code = 400
    code = "storage_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def detail(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.detail, "code": self.code}


class ForbiddenFileType(StorageError):
    status_code = 415
    code = "forbidden_file_type"

    def __init__(self, extension: str):
        super().__init__(f"File type '{extension}' is not allowed for security reasons.")
        self.extension = extension


class QuotaExceeded(StorageError):
    status_code = 413
    code = "quota_exceeded"

    def __init__(self, used_bytes: int, ceiling_bytes: int, requested_bytes: int):
        super().__init__(
            f"Storage limit exceeded. {format_size(used_bytes)} of {format_size(ceiling_bytes)} used; "
            f"the upload needs {format_size(requested_bytes)}."
        )
        self.used_bytes = used_bytes
        self.ceiling_bytes = ceiling_bytes
        self.requested_bytes = requested_bytes

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["usage"] = {
            "used_bytes": self.used_bytes,
            "max_bytes": self.ceiling_bytes,
            "requested_bytes": self.requested_bytes,
        }
        return out


class InvalidName(StorageError):
    status_code = 422
    code = "invalid_name"

    def __init__(self, message: str = "Invalid file name."):
        super().__init__(message)


class InvalidPath(StorageError):
    status_code = 422
    code = "invalid_path"

    def __init__(self, message: str = "Invalid folder path."):
        super().__init__(message)


class NotFound(StorageError):
    status_code = 404
    code = "not_found"

    def __init__(self, message: str = "Document not found"):
        super().__init__(message)


class AccountNotFound(NotFound):
    code = "account_not_found"

    def __init__(self, message: str = "Account not found"):
        super().__init__(message)


class PathTraversal(StorageError):
    status_code = 403
    code = "path_traversal"

    def __init__(self, message: str = "Attempted path traversal detected."):
        super().__init__(message)

    @property
    def detail(self) -> str:
        # Never echo the offending path back to the client.
        return "Forbidden"


class CapacityUnavailable(StorageError):
    status_code = 409
    code = "capacity_unavailable"

    def __init__(self, snapshot: Optional[Any] = None):
        super().__init__("No premium slots available. Insufficient disk space, please try again later.")
        self.snapshot = snapshot

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        if self.snapshot is not None:
            out["capacity"] = {
                "max_premium_users": self.snapshot.max_premium_users,
                "current_premium_users": self.snapshot.current_premium_users,
                "available_premium_slots": self.snapshot.available_slots,
            }
        return out
