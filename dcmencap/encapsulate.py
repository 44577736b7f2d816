"""End-to-end encapsulation of one document into one DICOM file.

Stages run strictly in order: load and check the document, map its fields,
reconcile with the reference record and the user's values, resolve identifiers,
write the header and payload, and finally apply override keys. Nothing touches
the output path until the complete dataset has been serialized in memory.
"""
from __future__ import annotations

import io
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from pydicom.dataset import Dataset, FileMetaDataset
from pydicom.uid import (
    PYDICOM_IMPLEMENTATION_UID,
    ExplicitVRBigEndian,
    ExplicitVRLittleEndian,
    ImplicitVRLittleEndian,
)

from .config import EncapsulationConfig
from .documents import DocumentProfile, get_profile, insert_document, load_document
from .fields import Field, FieldSet, split_multi_value
from .header import assemble, write_document_header
from .identifiers import IdentifierManager, Identifiers, ReferenceRecord, read_reference_record
from .mapping import map_fields
from .override_keys import apply_all
from .reconcile import resolve
from .utils import ensure_dir

logger = logging.getLogger(__name__)

_TRANSFER_SYNTAX_UIDS = {
    "little": ExplicitVRLittleEndian,
    "implicit": ImplicitVRLittleEndian,
    "big": ExplicitVRBigEndian,
}


@dataclass
class EncapsulationResult:
    dataset: Dataset
    fields: FieldSet
    identifiers: Identifiers
    profile: DocumentProfile
    output_path: Optional[Path] = None


def _unique(values: List[str]) -> List[str]:
    seen: set[str] = set()
    out: List[str] = []
    for v in values:
        if v not in seen:
            seen.add(v)
            out.append(v)
    return out


def encapsulate(config: EncapsulationConfig, manager: Optional[IdentifierManager] = None) -> EncapsulationResult:
    """Build the complete dataset for ``config`` without writing anything."""
    profile = get_profile(config.document_class)
    data, tree = load_document(profile, config.input_path)
    document_fields = map_fields(tree, profile.schema, config.required_fields)

    reference: Optional[ReferenceRecord] = None
    if config.series_file is not None:
        reference = read_reference_record(config.series_file, config.read_series_info)

    fields = resolve(
        document_fields,
        reference.fields if reference is not None else None,
        config.user_fields,
    )

    manager = manager or IdentifierManager(prefix=config.uid_prefix)
    # reconciled study/series values stand in for the reference's own
    joined = ReferenceRecord(
        path=reference.path if reference is not None else None,
        fields=fields,
        instance_number=reference.instance_number if reference is not None else None,
    )
    identifiers = manager.resolve_identifiers(
        joined,
        auto_increment=config.auto_increment,
        instance_number=config.instance_number,
        frame_of_reference=profile.needs_frame_of_reference,
    )

    ds = Dataset()
    write_document_header(ds, profile, config)
    assemble(ds, fields, identifiers, _unique(split_multi_value(fields.get(Field.MEDIA_TYPES))))
    insert_document(ds, profile, data)
    apply_all(ds, config.override_keys)

    return EncapsulationResult(dataset=ds, fields=fields, identifiers=identifiers, profile=profile)


def _file_meta(ds: Dataset, transfer_syntax: str) -> FileMetaDataset:
    meta = FileMetaDataset()
    meta.MediaStorageSOPClassUID = ds.SOPClassUID
    meta.MediaStorageSOPInstanceUID = ds.SOPInstanceUID
    meta.TransferSyntaxUID = _TRANSFER_SYNTAX_UIDS[transfer_syntax]
    meta.ImplementationClassUID = PYDICOM_IMPLEMENTATION_UID
    return meta


def _serialize(ds: Dataset) -> bytes:
    buffer = io.BytesIO()
    ds.save_as(buffer, enforce_file_format=True)
    return buffer.getvalue()


def encode_dataset(ds: Dataset, transfer_syntax: str = "little", file_padding: int = 0) -> bytes:
    """Serialize ``ds`` as a DICOM file, optionally padded with DataSetTrailingPadding."""
    ds.file_meta = _file_meta(ds, transfer_syntax)
    if "DataSetTrailingPadding" in ds:
        del ds.DataSetTrailingPadding
    encoded = _serialize(ds)
    if file_padding:
        # tag + length, plus VR and reserved bytes when explicit
        header = 8 if transfer_syntax == "implicit" else 12
        pad = -(len(encoded) + header) % file_padding
        ds.DataSetTrailingPadding = b"\x00" * pad
        encoded = _serialize(ds)
    return encoded


def write_dataset(
    ds: Dataset,
    path: str | os.PathLike,
    transfer_syntax: str = "little",
    file_padding: int = 0,
) -> Path:
    path = Path(path)
    encoded = encode_dataset(ds, transfer_syntax, file_padding)
    ensure_dir(path.parent)
    tmp = path.with_name(path.name + ".part")
    try:
        tmp.write_bytes(encoded)
        os.replace(tmp, path)
    finally:
        if tmp.exists():
            tmp.unlink()
    logger.info("Wrote %s (%d bytes)", path, len(encoded))
    return path


def run(config: EncapsulationConfig, manager: Optional[IdentifierManager] = None) -> EncapsulationResult:
    result = encapsulate(config, manager)
    result.output_path = write_dataset(
        result.dataset,
        config.output_path,
        transfer_syntax=config.transfer_syntax,
        file_padding=config.file_padding,
    )
    return result


__all__ = ["EncapsulationResult", "encapsulate", "encode_dataset", "write_dataset", "run"]
