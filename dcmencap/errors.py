from __future__ import annotations

from pathlib import Path
from typing import Optional


class EncapsulationError(Exception):
    """Base class for every failure that aborts an encapsulation run."""

    exit_code = 1


class MalformedPathError(EncapsulationError):
    """An override key could not be parsed as a tag, keyword or path."""

    exit_code = 2

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Malformed attribute path '{path}': {reason}")


class UnknownDictionaryNameError(EncapsulationError):
    exit_code = 2

    def __init__(self, name: str, path: Optional[str] = None):
        self.name = name
        self.path = path
        where = f" in '{path}'" if path and path != name else ""
        super().__init__(f"Unknown DICOM dictionary name '{name}'{where}")


class InvalidDocumentError(EncapsulationError):
    """The input document does not match the selected document class."""

    exit_code = 3

    def __init__(self, path: Path | str | None, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid input document {path or '<memory>'}: {reason}")


class ReferenceRecordError(EncapsulationError):
    exit_code = 3

    def __init__(self, path: Path | str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read reference record {path}: {reason}")


class MissingRequiredFieldError(EncapsulationError):
    exit_code = 4

    def __init__(self, field):
        self.field = field
        super().__init__(f"Required field '{getattr(field, 'value', field)}' not found in source document")


class MetadataConflictError(EncapsulationError):
    """Document and reference record disagree and the user did not settle it."""

    exit_code = 5

    def __init__(self, field, document_value: str, reference_value: str):
        self.field = field
        self.document_value = document_value
        self.reference_value = reference_value
        super().__init__(
            f"Conflicting values for '{getattr(field, 'value', field)}': "
            f"document has '{document_value}', reference record has '{reference_value}'"
        )


class HeaderWriteError(EncapsulationError):
    exit_code = 6

    def __init__(self, field: str, value: object = None, reason: str = ""):
        self.field = field
        self.value = value
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Cannot write {field}={value!r}{detail}")


class IdentifierCollisionError(EncapsulationError):
    """A freshly generated UID was already consumed in this run."""

    exit_code = 7

    def __init__(self, uid: str):
        self.uid = uid
        super().__init__(f"UID generator returned an already consumed identifier: {uid}")


__all__ = [
    "EncapsulationError",
    "MalformedPathError",
    "UnknownDictionaryNameError",
    "InvalidDocumentError",
    "ReferenceRecordError",
    "MissingRequiredFieldError",
    "MetadataConflictError",
    "HeaderWriteError",
    "IdentifierCollisionError",
]
