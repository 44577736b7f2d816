"""Study/Series/SOP Instance UID resolution for one encapsulation run."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Set

from pydicom.uid import generate_uid

from .errors import IdentifierCollisionError, ReferenceRecordError
from .fields import Field, FieldSet
from .utils import get, get_text, read_dicom

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identifiers:
    study_instance_uid: str
    series_instance_uid: str
    sop_instance_uid: str
    instance_number: int = 1
    frame_of_reference_uid: Optional[str] = None


@dataclass
class ReferenceRecord:
    """Patient/study/series data of an existing record the new one joins."""
    path: Optional[Path] = None
    fields: FieldSet = field(default_factory=FieldSet)
    instance_number: Optional[int] = None


_REFERENCE_PATIENT_FIELDS = (
    Field.PATIENT_NAME,
    Field.PATIENT_ID,
    Field.PATIENT_BIRTH_DATE,
    Field.PATIENT_SEX,
)


def read_reference_record(path: str | os.PathLike, read_series_info: bool = True) -> ReferenceRecord:
    """Load patient, study and (optionally) series data from an existing DICOM file.

    With ``read_series_info`` False only patient and study data are taken, so the
    new record starts a fresh series inside the referenced study.
    """
    path = Path(path)
    if not path.exists():
        raise ReferenceRecordError(path, "file does not exist")
    ds = read_dicom(path, force=False)
    if ds is None:
        raise ReferenceRecordError(path, "not a readable DICOM file")

    fields = FieldSet()
    for f in _REFERENCE_PATIENT_FIELDS:
        fields.set(f, get_text(ds, f.value))
    fields.set(Field.STUDY_INSTANCE_UID, get_text(ds, "StudyInstanceUID"))

    instance_number: Optional[int] = None
    if read_series_info:
        fields.set(Field.SERIES_INSTANCE_UID, get_text(ds, "SeriesInstanceUID"))
        raw = get(ds, "InstanceNumber")
        if raw is not None and str(raw).strip():
            try:
                instance_number = int(raw)
            except (TypeError, ValueError):
                logger.warning("Ignoring non-numeric InstanceNumber %r in %s", raw, path)

    logger.info(
        "Read %s data from %s", "series" if read_series_info else "study", path
    )
    return ReferenceRecord(path=path, fields=fields, instance_number=instance_number)


class IdentifierManager:
    """Hands out UIDs and remembers every UID consumed during one run.

    The generator itself is pluggable (``uid_factory``); by default pydicom's
    ``generate_uid`` under ``prefix`` is used. A generated value that was already
    consumed raises :class:`IdentifierCollisionError`.
    """

    def __init__(self, uid_factory: Optional[Callable[[], str]] = None, prefix: Optional[str] = None):
        if uid_factory is None:
            if prefix:
                uid_factory = lambda: str(generate_uid(prefix=prefix))
            else:
                uid_factory = lambda: str(generate_uid())
        self._uid_factory = uid_factory
        self._consumed: Set[str] = set()

    @property
    def consumed(self) -> frozenset[str]:
        return frozenset(self._consumed)

    def new_uid(self) -> str:
        uid = str(self._uid_factory())
        if uid in self._consumed:
            raise IdentifierCollisionError(uid)
        self._consumed.add(uid)
        return uid

    def reuse(self, uid: str) -> str:
        # shared study/series UIDs may be reused; they only block fresh generation
        self._consumed.add(uid)
        return uid

    def resolve_identifiers(
        self,
        reference: Optional[ReferenceRecord] = None,
        auto_increment: bool = False,
        instance_number: Optional[int] = None,
        frame_of_reference: bool = False,
    ) -> Identifiers:
        ref_fields = reference.fields if reference is not None else FieldSet()

        study_uid = ref_fields.get(Field.STUDY_INSTANCE_UID)
        if study_uid:
            logger.info("Reusing Study Instance UID %s from reference record", study_uid)
            study_uid = self.reuse(study_uid)
        else:
            study_uid = self.new_uid()
            logger.debug("Generated Study Instance UID %s", study_uid)

        series_uid = ref_fields.get(Field.SERIES_INSTANCE_UID)
        if series_uid:
            logger.info("Reusing Series Instance UID %s from reference record", series_uid)
            series_uid = self.reuse(series_uid)
        else:
            series_uid = self.new_uid()
            logger.debug("Generated Series Instance UID %s", series_uid)

        sop_uid = self.new_uid()
        frame_uid = self.new_uid() if frame_of_reference else None

        number = instance_number if instance_number is not None else 1
        if auto_increment:
            prior = reference.instance_number if reference is not None else None
            if prior is not None:
                if instance_number is not None:
                    logger.warning(
                        "Instance number %d replaced by auto-increment of reference instance %d",
                        instance_number,
                        prior,
                    )
                number = prior + 1
            else:
                logger.warning("Auto-increment requested but reference record has no instance number; using %d", number)

        return Identifiers(
            study_instance_uid=study_uid,
            series_instance_uid=series_uid,
            sop_instance_uid=sop_uid,
            instance_number=number,
            frame_of_reference_uid=frame_uid,
        )


__all__ = ["Identifiers", "IdentifierManager", "ReferenceRecord", "read_reference_record"]
