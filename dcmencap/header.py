from __future__ import annotations

import datetime
import logging
from typing import TYPE_CHECKING, Iterable, Optional

from pydicom.dataset import Dataset
from pydicom.sequence import Sequence

from .errors import HeaderWriteError
from .fields import MULTI_VALUE_SEPARATOR, Field, FieldSet
from .identifiers import Identifiers
from .tags import set_element

if TYPE_CHECKING:
    from .config import EncapsulationConfig
    from .documents import DocumentProfile

logger = logging.getLogger(__name__)

# fields written as top-level attributes of the same keyword
_DIRECT_FIELDS = (
    Field.PATIENT_NAME,
    Field.PATIENT_ID,
    Field.PATIENT_BIRTH_DATE,
    Field.PATIENT_SEX,
    Field.DOCUMENT_TITLE,
    Field.HL7_INSTANCE_IDENTIFIER,
)

_TYPE2_EMPTY = (
    "PatientName",
    "PatientID",
    "PatientBirthDate",
    "PatientSex",
    "StudyDate",
    "StudyTime",
    "ReferringPhysicianName",
    "StudyID",
    "AccessionNumber",
    "DocumentTitle",
)


def _dicom_value(value: str) -> str:
    return value.replace(MULTI_VALUE_SEPARATOR, "\\")


def _code_item(code_value: str, scheme: Optional[str], meaning: Optional[str]) -> Dataset:
    item = Dataset()
    set_element(item, "CodeValue", code_value)
    set_element(item, "CodingSchemeDesignator", scheme or "")
    set_element(item, "CodeMeaning", meaning or "")
    return item


def write_document_header(
    ds: Dataset,
    profile: "DocumentProfile",
    config: "EncapsulationConfig",
    now: Optional[datetime.datetime] = None,
) -> None:
    """Write the class-specific module attributes every encapsulated record carries."""
    now = now or datetime.datetime.now()
    date, time = now.strftime("%Y%m%d"), now.strftime("%H%M%S")

    set_element(ds, "SpecificCharacterSet", "ISO_IR 192")
    set_element(ds, "InstanceCreationDate", date)
    set_element(ds, "InstanceCreationTime", time)
    set_element(ds, "SOPClassUID", profile.sop_class_uid)
    set_element(ds, "Modality", profile.modality)
    set_element(ds, "ContentDate", date)
    set_element(ds, "ContentTime", time)
    set_element(ds, "AcquisitionDateTime", date + time)
    set_element(ds, "SeriesNumber", "1")
    for keyword in _TYPE2_EMPTY:
        set_element(ds, keyword, "")
    set_element(ds, "ConceptNameCodeSequence", Sequence())

    if profile.modality == "DOC":
        set_element(ds, "ConversionType", "WSD")
    if profile.burned_in_annotation:
        set_element(ds, "BurnedInAnnotation", "YES" if config.annotation else "NO")
    if profile.needs_frame_of_reference:
        set_element(ds, "Manufacturer", config.manufacturer)
        set_element(ds, "ManufacturerModelName", config.manufacturer_model)
        set_element(ds, "DeviceSerialNumber", config.device_serial)
        set_element(ds, "SoftwareVersions", config.software_versions)
        set_element(ds, "PositionReferenceIndicator", "")
        value, scheme, meaning = config.measurement_units
        set_element(ds, "MeasurementUnitsCodeSequence", Sequence([_code_item(value, scheme, meaning)]))


def assemble(
    ds: Dataset,
    fields: FieldSet,
    identifiers: Identifiers,
    media_types: Iterable[str] = (),
) -> None:
    """Write reconciled fields, identifiers and media types into ``ds``.

    Values are validated by pydicom while being written; a rejected value raises
    :class:`HeaderWriteError` naming the attribute.
    """
    for field in _DIRECT_FIELDS:
        value = fields.get(field)
        if value is not None:
            set_element(ds, field.value, _dicom_value(value))

    code_value = fields.get(Field.CONCEPT_CODE_VALUE)
    if code_value:
        try:
            item = _code_item(
                code_value,
                fields.get(Field.CONCEPT_CODING_SCHEME),
                fields.get(Field.CONCEPT_CODE_MEANING),
            )
        except HeaderWriteError as exc:
            raise HeaderWriteError(f"ConceptNameCodeSequence/{exc.field}", exc.value, exc.reason) from exc
        set_element(ds, "ConceptNameCodeSequence", Sequence([item]))
    elif fields.is_set(Field.CONCEPT_CODE_MEANING) or fields.is_set(Field.CONCEPT_CODING_SCHEME):
        logger.warning("Concept name given without code value; ConceptNameCodeSequence left empty")

    set_element(ds, "StudyInstanceUID", identifiers.study_instance_uid)
    set_element(ds, "SeriesInstanceUID", identifiers.series_instance_uid)
    set_element(ds, "SOPInstanceUID", identifiers.sop_instance_uid)
    set_element(ds, "InstanceNumber", str(identifiers.instance_number))
    if identifiers.frame_of_reference_uid:
        set_element(ds, "FrameOfReferenceUID", identifiers.frame_of_reference_uid)

    media = [m for m in media_types if m]
    if media:
        set_element(ds, "ListOfMIMETypes", media)
    logger.debug("Header assembled for SOP Instance %s", identifiers.sop_instance_uid)


__all__ = ["assemble", "write_document_header"]
