"""Document classes that can be encapsulated and how their payload is inserted."""
from __future__ import annotations

import logging
import os
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

from pydicom.dataset import Dataset

from .errors import InvalidDocumentError
from .mapping import CDA_SCHEMA, PDF_SCHEMA, STL_SCHEMA, FieldRule
from .source_tree import SourceNode, parse_xml
from .tags import set_element

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentProfile:
    name: str
    sop_class_uid: str
    mime_type: str
    modality: str
    schema: Tuple[FieldRule, ...] = ()
    burned_in_annotation: bool = False
    needs_frame_of_reference: bool = False
    structured: bool = False


CDA = DocumentProfile(
    name="cda",
    sop_class_uid="1.2.840.10008.5.1.4.1.1.104.2",  # Encapsulated CDA Storage
    mime_type="text/XML",
    modality="DOC",
    schema=CDA_SCHEMA,
    structured=True,
)
PDF = DocumentProfile(
    name="pdf",
    sop_class_uid="1.2.840.10008.5.1.4.1.1.104.1",  # Encapsulated PDF Storage
    mime_type="application/pdf",
    modality="DOC",
    schema=PDF_SCHEMA,
    burned_in_annotation=True,
)
STL = DocumentProfile(
    name="stl",
    sop_class_uid="1.2.840.10008.5.1.4.1.1.104.3",  # Encapsulated STL Storage
    mime_type="model/stl",
    modality="M3D",
    schema=STL_SCHEMA,
    needs_frame_of_reference=True,
)

PROFILES: Dict[str, DocumentProfile] = {p.name: p for p in (CDA, PDF, STL)}


def get_profile(name: str) -> DocumentProfile:
    try:
        return PROFILES[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown document class '{name}' (expected one of {', '.join(PROFILES)})") from None


def _check_pdf(data: bytes, path: object) -> None:
    # some writers put junk before the header; readers accept it within 1024 bytes
    pos = data.find(b"%PDF-", 0, 1024)
    if pos < 0:
        raise InvalidDocumentError(path, "no %PDF- header found")
    if pos:
        logger.warning("%s: %d byte(s) precede the PDF header", path, pos)


def _check_cda(data: bytes, path: object) -> SourceNode:
    root = parse_xml(data, path)
    if root.tag_name != "ClinicalDocument":
        raise InvalidDocumentError(path, f"root element is <{root.tag_name}>, expected <ClinicalDocument>")
    return root


def _check_stl(data: bytes, path: object) -> None:
    if len(data) >= 84:
        (triangles,) = struct.unpack_from("<I", data, 80)
        if len(data) == 84 + 50 * triangles:
            logger.debug("%s: binary STL with %d triangle(s)", path, triangles)
            return
    head = data[:1024].lstrip()
    if head[:5].lower() == b"solid" and b"endsolid" in data[-1024:].lower():
        logger.debug("%s: ASCII STL", path)
        return
    raise InvalidDocumentError(path, "neither a binary STL of consistent size nor an ASCII STL")


def check_document(profile: DocumentProfile, data: bytes, path: object = None) -> Optional[SourceNode]:
    """Validate ``data`` for ``profile``; returns the source tree for structured classes."""
    if not data:
        raise InvalidDocumentError(path, "file is empty")
    if profile.structured:
        return _check_cda(data, path)
    if profile.name == "pdf":
        _check_pdf(data, path)
    elif profile.name == "stl":
        _check_stl(data, path)
    return None


def load_document(profile: DocumentProfile, path: str | os.PathLike) -> tuple[bytes, Optional[SourceNode]]:
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise InvalidDocumentError(path, str(exc)) from exc
    tree = check_document(profile, data, path)
    logger.info("Loaded %s document %s (%d bytes)", profile.name.upper(), path, len(data))
    return data, tree


def insert_document(ds: Dataset, profile: DocumentProfile, data: bytes) -> None:
    """Store ``data`` as EncapsulatedDocument, padded to an even length."""
    length = len(data)
    payload = data + b"\x00" if length % 2 else data
    set_element(ds, "MIMETypeOfEncapsulatedDocument", profile.mime_type)
    set_element(ds, "EncapsulatedDocumentLength", length)
    set_element(ds, "EncapsulatedDocument", payload)


__all__ = [
    "DocumentProfile",
    "CDA",
    "PDF",
    "STL",
    "PROFILES",
    "get_profile",
    "check_document",
    "load_document",
    "insert_document",
]
