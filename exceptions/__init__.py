"""
Custom exceptions module.

Exports the AppError hierarchy used across the import pipeline.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    ValidationError,
    ConflictError,
    ExternalServiceError,
    DatabaseError,

    # Product-specific
    ProductPartNumberExistsError,

    # File (pipeline-fatal)
    UnsupportedFormatError,
    EmptyFileError,
    FileDecodeError,
    FileTooLargeError,
    MissingColumnsError,

    # Row-local
    MissingRequiredFieldError,
    ImageExtractionError,
    DownloadFailureError,
)

__all__ = [
    # Base
    "AppError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",
    "DatabaseError",

    # Product
    "ProductPartNumberExistsError",

    # File
    "UnsupportedFormatError",
    "EmptyFileError",
    "FileDecodeError",
    "FileTooLargeError",
    "MissingColumnsError",

    # Row
    "MissingRequiredFieldError",
    "ImageExtractionError",
    "DownloadFailureError",
]
