"""Roster import/export exception classes."""


class RosterImportError(Exception):
    """Base class for CSV import failures."""


class InvalidFileType(RosterImportError):
    """Raised when an upload is not a CSV file (extension or content type)."""


class CSVParseError(RosterImportError):
    """Raised when an upload cannot be decoded or parsed as CSV.

    Parse-level errors abort the whole import before any write.
    """


class RowValidationError(RosterImportError):
    """Raised when a row lacks required fields or carries a bad enumerated value."""


class DuplicateSkip(RosterImportError):
    """Raised when a row's relation already exists; a no-op, not a failure."""


class WriteFailure(RosterImportError):
    """Raised when an underlying create/attach call fails or returns a falsy result."""


class ExportError(ValueError):
    """Raised when an export request cannot be built (nothing selected)."""


__all__ = [
    "RosterImportError",
    "InvalidFileType",
    "CSVParseError",
    "RowValidationError",
    "DuplicateSkip",
    "WriteFailure",
    "ExportError",
]
