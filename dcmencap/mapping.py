from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .errors import MissingRequiredFieldError
from .fields import MULTI_VALUE_SEPARATOR, Field, FieldSet
from .source_tree import SourceNode, extract_all, find_all

logger = logging.getLogger(__name__)

Composer = Callable[[Sequence[List[str]]], str]


def joined(hits: Sequence[List[str]]) -> str:
    """Multi-value join of every hit of every attribute id."""
    return MULTI_VALUE_SEPARATOR.join(v for values in hits for v in values if v)


def dicom_date(hits: Sequence[List[str]]) -> str:
    """``YYYYMMDD`` from the first HL7 timestamp; empty when it is less precise than a day."""
    for values in hits:
        for v in values:
            if not v:
                continue
            date = v[:8]
            try:
                # strptime alone would accept single-digit month or day
                if len(date) != 8 or not date.isdigit():
                    raise ValueError(date)
                datetime.datetime.strptime(date, "%Y%m%d")
            except ValueError:
                logger.warning("Timestamp '%s' does not give a full date; field left unset", v)
                return ""
            return date
    return ""


def caret_joined(hits: Sequence[List[str]]) -> str:
    """First value of each attribute id joined with ``^``; trailing empties dropped."""
    parts = [next((v for v in values if v), "") for values in hits]
    return "^".join(parts).rstrip("^")


def person_name(hits: Sequence[List[str]]) -> str:
    """DICOM PN from (family, given, prefix, suffix) hits.

    The first given name is the given name component, any further given names form
    the middle name component.
    """
    family, given, prefix, suffix = (list(filter(None, values)) for values in hits)
    parts = [
        " ".join(family),
        given[0] if given else "",
        " ".join(given[1:]),
        " ".join(prefix),
        " ".join(suffix),
    ]
    return "^".join(parts).rstrip("^")


@dataclass(frozen=True)
class FieldRule:
    field: Field
    attribute_ids: Tuple[str, ...]
    compose: Composer = joined
    # when set, attribute ids are resolved inside one node chosen by this id
    scope: Optional[str] = None


_CDA_NAME = "recordTarget/patientRole/patient/name"
_CDA_PATIENT = "recordTarget/patientRole/patient"
_LEGAL_NAME_USE = "L"


def _pick_scope(root: SourceNode, scope: str) -> Optional[SourceNode]:
    """First node matching ``scope``, preferring one marked as the legal name."""
    candidates = find_all(root, scope)
    if not candidates:
        return None
    for node in candidates:
        uses = " ".join(extract_all(node, "/@use")).split()
        if _LEGAL_NAME_USE in uses:
            return node
    if len(candidates) > 1:
        logger.warning("%d nodes match %s; using the first", len(candidates), scope)
    return candidates[0]


# CDA header to DICOM attribute mapping, DICOM PS3.20 Annex A.8
CDA_SCHEMA: Tuple[FieldRule, ...] = (
    FieldRule(Field.PATIENT_NAME, ("/family", "/given", "/prefix", "/suffix"), person_name, scope=_CDA_NAME),
    FieldRule(Field.PATIENT_ID, ("recordTarget/patientRole/id/@extension",)),
    FieldRule(Field.PATIENT_BIRTH_DATE, (f"{_CDA_PATIENT}/birthTime/@value",), dicom_date),
    FieldRule(Field.PATIENT_SEX, (f"{_CDA_PATIENT}/administrativeGenderCode/@code",)),
    FieldRule(Field.DOCUMENT_TITLE, ("/title",)),
    FieldRule(Field.CONCEPT_CODE_VALUE, ("/code/@code",)),
    FieldRule(Field.CONCEPT_CODING_SCHEME, ("/code/@codeSystemName",)),
    FieldRule(Field.CONCEPT_CODE_MEANING, ("/code/@displayName",)),
    FieldRule(Field.HL7_INSTANCE_IDENTIFIER, ("/id/@root", "/id/@extension"), caret_joined),
    FieldRule(Field.MEDIA_TYPES, ("@mediaType",)),
)

# PDF and STL carry nothing the mapper can read
PDF_SCHEMA: Tuple[FieldRule, ...] = ()
STL_SCHEMA: Tuple[FieldRule, ...] = ()


def map_fields(
    root: SourceNode | None,
    schema: Sequence[FieldRule],
    required: Iterable[Field] = (),
) -> FieldSet:
    """Build a FieldSet from ``root`` by applying each rule of ``schema``."""
    fields = FieldSet()
    if root is not None:
        for rule in schema:
            node = _pick_scope(root, rule.scope) if rule.scope else root
            if node is None:
                continue
            hits = [extract_all(node, attribute_id) for attribute_id in rule.attribute_ids]
            fields.set(rule.field, rule.compose(hits))
    for field in required:
        if not fields.is_set(field):
            raise MissingRequiredFieldError(Field(field))
    logger.debug("Mapped %d field(s) from source document", len(fields))
    return fields


__all__ = [
    "FieldRule",
    "CDA_SCHEMA",
    "PDF_SCHEMA",
    "STL_SCHEMA",
    "map_fields",
    "joined",
    "caret_joined",
    "person_name",
    "dicom_date",
]
