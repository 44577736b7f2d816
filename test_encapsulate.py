"""End-to-end tests for the encapsulation pipeline."""
from __future__ import annotations

from pathlib import Path

import pydicom
import pytest
from pydicom.uid import ExplicitVRLittleEndian, ImplicitVRLittleEndian

from conftest import PDF_DOCUMENT, write_reference
from dcmencap.config import build_config
from dcmencap.documents import CDA, STL
from dcmencap.encapsulate import encapsulate, encode_dataset, run, write_dataset
from dcmencap.errors import HeaderWriteError, MetadataConflictError, MissingRequiredFieldError


def _cfg(document_class: str, input_path: Path, output_path: Path, **values):
    return build_config({
        "document_class": document_class,
        "input_path": input_path,
        "output_path": output_path,
        **values,
    })


def test_minimal_cda_with_override(minimal_cda_file, tmp_path):
    out = tmp_path / "out.dcm"
    result = run(_cfg("cda", minimal_cda_file, out, override_keys=["StudyDescription=Encapsulated Test"]))
    assert result.output_path == out
    ds = pydicom.dcmread(out)
    assert ds.SOPClassUID == CDA.sop_class_uid
    assert ds.StudyDescription == "Encapsulated Test"
    assert ds.PatientName == "Doe^John"
    assert ds.MIMETypeOfEncapsulatedDocument == "text/XML"
    assert ds.InstanceNumber == 1
    uids = {ds.StudyInstanceUID, ds.SeriesInstanceUID, ds.SOPInstanceUID}
    assert len(uids) == 3
    assert ds.file_meta.MediaStorageSOPInstanceUID == ds.SOPInstanceUID
    assert ds.file_meta.TransferSyntaxUID == ExplicitVRLittleEndian


def test_cda_fields_and_media_types(cda_file, tmp_path):
    result = encapsulate(_cfg("cda", cda_file, tmp_path / "out.dcm"))
    ds = result.dataset
    assert ds.DocumentTitle == "Good Health Clinic Consultation Note"
    assert ds.ConceptNameCodeSequence[0].CodeValue == "11488-4"
    assert ds.HL7InstanceIdentifier == "2.16.840.1.113883.19.5^c266"
    assert list(ds.ListOfMIMETypes) == ["image/png", "image/jpeg"]
    assert ds.EncapsulatedDocumentLength == cda_file.stat().st_size


def test_series_reuse_with_auto_increment(cda_file, reference_file, tmp_path):
    result = encapsulate(_cfg("cda", cda_file, tmp_path / "out.dcm", series_file=reference_file, auto_increment=True))
    ds = result.dataset
    assert ds.StudyInstanceUID == "1.2.826.0.1.3680043.2.1125.1"
    assert ds.SeriesInstanceUID == "1.2.826.0.1.3680043.2.1125.2"
    assert ds.InstanceNumber == 4
    assert ds.PatientName == "Doe^John^Quincy"


def test_study_only_reference_starts_new_series(pdf_file, reference_file, tmp_path):
    result = encapsulate(_cfg("pdf", pdf_file, tmp_path / "out.dcm", series_file=reference_file, read_series_info=False))
    ds = result.dataset
    assert ds.StudyInstanceUID == "1.2.826.0.1.3680043.2.1125.1"
    assert ds.SeriesInstanceUID != "1.2.826.0.1.3680043.2.1125.2"
    assert ds.PatientID == "12345"
    assert ds.BurnedInAnnotation == "YES"


def test_conflict_aborts_without_output(cda_file, tmp_path):
    reference = write_reference(tmp_path / "ref.dcm", PatientName="Roe^Jane", StudyInstanceUID="1.2.3")
    out = tmp_path / "out.dcm"
    with pytest.raises(MetadataConflictError):
        run(_cfg("cda", cda_file, out, series_file=reference))
    assert not out.exists()


def test_user_value_resolves_conflict(cda_file, tmp_path):
    reference = write_reference(tmp_path / "ref.dcm", PatientName="Roe^Jane", StudyInstanceUID="1.2.3")
    result = encapsulate(_cfg(
        "cda", cda_file, tmp_path / "out.dcm", series_file=reference, user_fields={"PatientName": "Poe^Edgar"},
    ))
    assert result.dataset.PatientName == "Poe^Edgar"


def test_required_field_missing(minimal_cda_file, tmp_path):
    out = tmp_path / "out.dcm"
    with pytest.raises(MissingRequiredFieldError):
        run(_cfg("cda", minimal_cda_file, out, required_fields=["DocumentTitle"]))
    assert not out.exists()


def test_invalid_user_value_aborts(pdf_file, tmp_path):
    out = tmp_path / "out.dcm"
    with pytest.raises(HeaderWriteError):
        run(_cfg("pdf", pdf_file, out, user_fields={"PatientSex": "not a code!"}))
    assert not out.exists()


def test_override_wins_over_header_value(pdf_file, tmp_path):
    result = encapsulate(_cfg(
        "pdf", pdf_file, tmp_path / "out.dcm",
        user_fields={"DocumentTitle": "Report"},
        override_keys=["DocumentTitle=Replaced", "0008,0060=OT"],
    ))
    assert result.dataset.DocumentTitle == "Replaced"
    assert result.dataset.Modality == "OT"


def test_stl_gets_frame_of_reference(stl_file, tmp_path):
    result = encapsulate(_cfg("stl", stl_file, tmp_path / "out.dcm", manufacturer="ACME"))
    ds = result.dataset
    assert ds.SOPClassUID == STL.sop_class_uid
    assert ds.Modality == "M3D"
    assert ds.FrameOfReferenceUID == result.identifiers.frame_of_reference_uid
    assert ds.FrameOfReferenceUID not in (ds.StudyInstanceUID, ds.SeriesInstanceUID, ds.SOPInstanceUID)
    assert ds.Manufacturer == "ACME"


@pytest.mark.parametrize("syntax, uid", [("little", ExplicitVRLittleEndian), ("implicit", ImplicitVRLittleEndian)])
def test_write_dataset_transfer_syntax(pdf_file, tmp_path, syntax, uid):
    result = encapsulate(_cfg("pdf", pdf_file, tmp_path / "unused.dcm"))
    out = write_dataset(result.dataset, tmp_path / "nested" / "out.dcm", transfer_syntax=syntax)
    ds = pydicom.dcmread(out)
    assert ds.file_meta.TransferSyntaxUID == uid
    assert ds.EncapsulatedDocument[: len(PDF_DOCUMENT)] == PDF_DOCUMENT
    assert not (tmp_path / "nested" / "out.dcm.part").exists()


@pytest.mark.parametrize("syntax", ["little", "implicit"])
def test_file_padding(pdf_file, tmp_path, syntax):
    result = run(_cfg("pdf", pdf_file, tmp_path / "out.dcm", transfer_syntax=syntax, file_padding=256))
    assert result.output_path.stat().st_size % 256 == 0
    assert "DataSetTrailingPadding" in pydicom.dcmread(result.output_path)


def test_encode_without_padding_has_no_trailing_element(pdf_file, tmp_path):
    result = encapsulate(_cfg("pdf", pdf_file, tmp_path / "out.dcm"))
    encode_dataset(result.dataset, "little", 128)
    encode_dataset(result.dataset, "little", 0)
    assert "DataSetTrailingPadding" not in result.dataset


def test_year_only_birth_time_does_not_abort(tmp_path):
    source = tmp_path / "year.xml"
    source.write_bytes(b"""<ClinicalDocument xmlns="urn:hl7-org:v3"><recordTarget><patientRole><patient>
      <name><given>John</given><family>Doe</family></name><birthTime value="1954"/>
      </patient></patientRole></recordTarget></ClinicalDocument>""")
    result = run(_cfg("cda", source, tmp_path / "out.dcm"))
    ds = pydicom.dcmread(result.output_path)
    assert ds.PatientName == "Doe^John"
    assert ds.PatientBirthDate == ""
