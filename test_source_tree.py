"""Tests for walking source document trees."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

import pytest

from conftest import CDA_DOCUMENT
from dcmencap.errors import InvalidDocumentError
from dcmencap.source_tree import extract_all, extract_single, parse_xml


@dataclass
class Node:
    tag_name: str
    text: str = ""
    children: List["Node"] = field(default_factory=list)


def _tree() -> Node:
    return Node("root", children=[
        Node("a", "first", children=[Node("b", "nested")]),
        Node("c", children=[Node("a", "second")]),
        Node("b", "top-level"),
    ])


def test_absent_attribute_gives_empty_result():
    root = _tree()
    assert extract_all(root, "missing") == []
    assert extract_single(root, "missing") == ""


def test_single_occurrence():
    root = Node("root", children=[Node("x", children=[Node("title", "Report")])])
    assert extract_single(root, "title") == "Report"


def test_repeated_values_joined_in_document_order():
    root = _tree()
    assert extract_all(root, "a") == ["first", "second"]
    assert extract_single(root, "a") == "first" + "\\\\" + "second"
    assert extract_all(root, "b") == ["nested", "top-level"]


def test_root_itself_is_not_matched():
    root = Node("a", "root text", children=[Node("a", "child")])
    assert extract_all(root, "a") == ["child"]


def test_anchored_path_only_matches_from_root():
    root = _tree()
    assert extract_all(root, "/b") == ["top-level"]
    assert extract_all(root, "a/b") == ["nested"]
    assert extract_all(root, "c/a") == ["second"]
    assert extract_all(root, "b/a") == []


def test_xml_attributes_are_addressable():
    root = parse_xml(CDA_DOCUMENT)
    assert root.tag_name == "ClinicalDocument"
    assert extract_all(root, "@mediaType") == ["image/png", "image/jpeg", "image/png"]
    assert extract_single(root, "/code/@codeSystemName") == "LOINC"


def test_xml_anchored_title_ignores_section_titles():
    root = parse_xml(CDA_DOCUMENT)
    assert extract_all(root, "title") == ["Good Health Clinic Consultation Note", "History of Present Illness"]
    assert extract_single(root, "/title") == "Good Health Clinic Consultation Note"


def test_extraction_is_stable_across_parses():
    first = extract_single(parse_xml(CDA_DOCUMENT), "given")
    second = extract_single(parse_xml(CDA_DOCUMENT), "given")
    assert first == second == "John\\\\Quincy\\\\Robert"


def test_comments_are_skipped():
    root = parse_xml(b"<doc><!-- note --><item>1</item><?pi x?><item>2</item></doc>")
    assert extract_all(root, "item") == ["1", "2"]


def test_malformed_xml_raises():
    with pytest.raises(InvalidDocumentError):
        parse_xml(b"<ClinicalDocument><title>unclosed</ClinicalDocument>")


def test_mixed_content_text_is_joined():
    root = parse_xml(b"<doc><title>Good <b>Health</b> Note</title></doc>")
    assert extract_single(root, "/title") == "Good Health Note"
