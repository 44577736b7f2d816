from __future__ import annotations

from enum import Enum
from typing import Dict, Iterator, Mapping, Optional, Tuple

# Separator used when several source values collapse into one multi-valued field.
MULTI_VALUE_SEPARATOR = "\\\\"


class Field(str, Enum):
    PATIENT_NAME = "PatientName"
    PATIENT_ID = "PatientID"
    PATIENT_BIRTH_DATE = "PatientBirthDate"
    PATIENT_SEX = "PatientSex"
    CONCEPT_CODE_VALUE = "CodeValue"
    CONCEPT_CODING_SCHEME = "CodingSchemeDesignator"
    CONCEPT_CODE_MEANING = "CodeMeaning"
    DOCUMENT_TITLE = "DocumentTitle"
    STUDY_INSTANCE_UID = "StudyInstanceUID"
    SERIES_INSTANCE_UID = "SeriesInstanceUID"
    MEDIA_TYPES = "ListOfMIMETypes"
    HL7_INSTANCE_IDENTIFIER = "HL7InstanceIdentifier"


class FieldSet:
    """Optional string value per :class:`Field`.

    A field is either unset or holds a non-empty string. Assigning ``None``, an
    empty string or whitespace unsets the field.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[Field, Optional[str]] | None = None, **kwargs: Optional[str]):
        self._values: Dict[Field, str] = {}
        for key, value in (values or {}).items():
            self.set(key, value)
        for key, value in kwargs.items():
            self.set(Field[key.upper()], value)

    def set(self, field: Field, value: Optional[str]) -> None:
        field = Field(field)
        text = None if value is None else str(value).strip()
        if text:
            self._values[field] = text
        else:
            self._values.pop(field, None)

    def get(self, field: Field, default: Optional[str] = None) -> Optional[str]:
        return self._values.get(Field(field), default)

    def is_set(self, field: Field) -> bool:
        return Field(field) in self._values

    def items(self) -> Iterator[Tuple[Field, str]]:
        # enum order, not insertion order
        for field in Field:
            if field in self._values:
                yield field, self._values[field]

    def copy(self) -> "FieldSet":
        return FieldSet(dict(self._values))

    def __getitem__(self, field: Field) -> Optional[str]:
        return self.get(field)

    def __setitem__(self, field: Field, value: Optional[str]) -> None:
        self.set(field, value)

    def __contains__(self, field: object) -> bool:
        try:
            return Field(field) in self._values
        except ValueError:
            return False

    def __len__(self) -> int:
        return len(self._values)

    def __bool__(self) -> bool:
        return bool(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FieldSet):
            return NotImplemented
        return self._values == other._values

    def __repr__(self) -> str:
        inner = ", ".join(f"{f.name}={v!r}" for f, v in self.items())
        return f"FieldSet({inner})"


def split_multi_value(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(MULTI_VALUE_SEPARATOR) if part.strip()]


__all__ = ["Field", "FieldSet", "MULTI_VALUE_SEPARATOR", "split_multi_value"]
