"""CSV import errors."""

from __future__ import annotations


class CsvImportError(RuntimeError):
    pass


class CsvValidationError(CsvImportError, ValueError):
    """The file as a whole cannot be imported."""


class ImportStateError(CsvImportError):
    """The session cannot perform the requested step in its current state."""


class ImportCommitError(CsvImportError):
    """Writing a confirmed preview to the catalog failed."""
