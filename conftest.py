"""Shared fixtures: small CDA/PDF/STL inputs and reference DICOM records."""
from __future__ import annotations

import struct
from pathlib import Path

import pytest
from pydicom.dataset import Dataset, FileMetaDataset
from pydicom.uid import ExplicitVRLittleEndian, generate_uid

CDA_DOCUMENT = b"""<?xml version="1.0" encoding="UTF-8"?>
<ClinicalDocument xmlns="urn:hl7-org:v3" xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">
  <id root="2.16.840.1.113883.19.5" extension="c266"/>
  <code code="11488-4" codeSystem="2.16.840.1.113883.6.1" codeSystemName="LOINC" displayName="Consultation note"/>
  <title>Good Health Clinic Consultation Note</title>
  <recordTarget>
    <patientRole>
      <id extension="12345" root="2.16.840.1.113883.19.5"/>
      <patient>
        <name><given>John</given><given>Quincy</given><family>Doe</family></name>
        <administrativeGenderCode code="M" codeSystem="2.16.840.1.113883.5.1"/>
        <birthTime value="19541125"/>
      </patient>
    </patientRole>
  </recordTarget>
  <author>
    <assignedAuthor>
      <assignedPerson><name><given>Robert</given><family>Dolin</family></name></assignedPerson>
    </assignedAuthor>
  </author>
  <component>
    <structuredBody>
      <component>
        <section>
          <title>History of Present Illness</title>
          <entry><observationMedia><value mediaType="image/png" representation="B64">iVBO</value></observationMedia></entry>
          <entry><observationMedia><value mediaType="image/jpeg" representation="B64">/9j/</value></observationMedia></entry>
          <entry><observationMedia><value mediaType="image/png" representation="B64">iVBO</value></observationMedia></entry>
        </section>
      </component>
    </structuredBody>
  </component>
</ClinicalDocument>
"""

MINIMAL_CDA = b"""<ClinicalDocument xmlns="urn:hl7-org:v3">
  <recordTarget><patientRole><patient>
    <name><given>John</given><family>Doe</family></name>
  </patient></patientRole></recordTarget>
</ClinicalDocument>
"""

PDF_DOCUMENT = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n"

ASCII_STL = b"""solid cube
  facet normal 0 0 1
    outer loop
      vertex 0 0 0
      vertex 1 0 0
      vertex 0 1 0
    endloop
  endfacet
endsolid cube
"""


def binary_stl(triangles: int = 2) -> bytes:
    header = b"binary stl".ljust(80, b" ")
    facet = struct.pack("<12fH", *([0.0] * 12), 0)
    return header + struct.pack("<I", triangles) + facet * triangles


def write_reference(path: Path, **attrs) -> Path:
    ds = Dataset()
    ds.SOPClassUID = "1.2.840.10008.5.1.4.1.1.104.1"
    ds.SOPInstanceUID = generate_uid()
    ds.Modality = "DOC"
    for keyword, value in attrs.items():
        setattr(ds, keyword, value)
    ds.file_meta = FileMetaDataset()
    ds.file_meta.MediaStorageSOPClassUID = ds.SOPClassUID
    ds.file_meta.MediaStorageSOPInstanceUID = ds.SOPInstanceUID
    ds.file_meta.TransferSyntaxUID = ExplicitVRLittleEndian
    ds.save_as(path, enforce_file_format=True)
    return path


@pytest.fixture
def cda_file(tmp_path: Path) -> Path:
    path = tmp_path / "note.xml"
    path.write_bytes(CDA_DOCUMENT)
    return path


@pytest.fixture
def minimal_cda_file(tmp_path: Path) -> Path:
    path = tmp_path / "minimal.xml"
    path.write_bytes(MINIMAL_CDA)
    return path


@pytest.fixture
def pdf_file(tmp_path: Path) -> Path:
    path = tmp_path / "report.pdf"
    path.write_bytes(PDF_DOCUMENT)
    return path


@pytest.fixture
def stl_file(tmp_path: Path) -> Path:
    path = tmp_path / "model.stl"
    path.write_bytes(binary_stl())
    return path


@pytest.fixture
def reference_file(tmp_path: Path) -> Path:
    return write_reference(
        tmp_path / "reference.dcm",
        PatientName="Doe^John^Quincy",
        PatientID="12345",
        PatientBirthDate="19541125",
        PatientSex="M",
        StudyInstanceUID="1.2.826.0.1.3680043.2.1125.1",
        SeriesInstanceUID="1.2.826.0.1.3680043.2.1125.2",
        InstanceNumber=3,
    )
