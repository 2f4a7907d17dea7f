"""
Custom exception classes for the catalog importer.

Pipeline-fatal errors abort an import before any row is processed.
Row-local errors are caught at the row boundary and reported as skipped rows.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Root of every importer error.

    Attributes:
        code: Stable machine-readable code (e.g., "UNSUPPORTED_FORMAT"),
            reported as error_type for skipped rows
        message: Human-readable message
        status_code: Status hint for whatever layer surfaces the error
        details: Extra context (row, field, url, ...)
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Error payload for the calling layer."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class ValidationError(AppError):
    """Input rejected (422)."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR", details: Optional[dict] = None):
        super().__init__(code=code, message=message, status_code=422, details=details)


class ConflictError(AppError):
    """Write collides with an existing record (409)."""

    def __init__(self, message: str, code: str = "CONFLICT", details: Optional[dict] = None):
        super().__init__(code=code, message=message, status_code=409, details=details)


class ExternalServiceError(AppError):
    """A remote dependency failed (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code or f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Catalog store operation failed (500)."""

    def __init__(self, operation: str, message: str, details: Optional[dict] = None):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# PRODUCT ERRORS
# ===================

class ProductPartNumberExistsError(ConflictError):
    """Part number (or supplied id) already belongs to another record."""

    def __init__(self, part_number: str):
        super().__init__(
            code="PRODUCT_PART_NUMBER_EXISTS",
            message="Product with this part_number already exists",
            details={"part_number": part_number}
        )


# ===================
# FILE ERRORS (pipeline-fatal)
# ===================

class UnsupportedFormatError(ValidationError):
    """File extension is not one of the supported formats."""

    def __init__(self, file_format: str, supported: list[str]):
        super().__init__(
            code="UNSUPPORTED_FORMAT",
            message=f"Unsupported file format: {file_format or '(none)'}",
            details={"provided": file_format, "valid": supported}
        )


class EmptyFileError(ValidationError):
    """Decoded file has no rows."""

    def __init__(self, file_name: Optional[str] = None):
        super().__init__(
            code="EMPTY_FILE",
            message="File is empty or contains no data",
            details={"file_name": file_name}
        )


class FileDecodeError(ValidationError):
    """File bytes could not be decoded as the declared format."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="FILE_DECODE_ERROR",
            message=message,
            details=details
        )


class FileTooLargeError(ValidationError):
    """Upload exceeds the configured size limit."""

    def __init__(self, size: int, max_size: int):
        super().__init__(
            code="FILE_TOO_LARGE",
            message=f"File too large. Maximum size is {max_size / 1024 / 1024:.0f}MB.",
            details={"size": size, "max_size": max_size}
        )


class MissingColumnsError(ValidationError):
    """Required columns could not be matched in the header row."""

    def __init__(self, missing: list[str], headers: list[str]):
        super().__init__(
            code="MISSING_COLUMNS",
            message=f"Missing required columns: {', '.join(missing)}",
            details={"missing": missing, "headers": headers}
        )


# ===================
# ROW ERRORS (row-local)
# ===================

class MissingRequiredFieldError(ValidationError):
    """A required field is empty in one data row."""

    def __init__(self, field: str, row: int):
        super().__init__(
            code="MISSING_REQUIRED_FIELD",
            message=f"Missing required field: {field}",
            details={"field": field, "row": row}
        )


class ImageExtractionError(AppError):
    """An embedded image could not be read from the archive."""

    def __init__(self, source: str, message: str, row: Optional[int] = None):
        super().__init__(
            code="IMAGE_EXTRACTION_FAILED",
            message=f"Failed to extract image {source}: {message}",
            status_code=422,
            details={"source": source, "row": row}
        )


class DownloadFailureError(ExternalServiceError):
    """An image URL could not be downloaded."""

    def __init__(self, url: str, message: str, status: Optional[int] = None):
        super().__init__(
            service="image_download",
            code="DOWNLOAD_FAILED",
            message=f"Failed to download image: {message}",
            details={"url": url, "status": status}
        )
