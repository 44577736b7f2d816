"""DICOM data dictionary lookups and element construction.

All header and override writes go through :func:`set_element`, which resolves
the VR from the dictionary, coerces the value to what pydicom can encode and
builds the element under an explicit validation mode.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Optional

from pydicom import config as pydicom_config
from pydicom.datadict import dictionary_VR, keyword_for_tag, tag_for_keyword
from pydicom.dataelem import DataElement
from pydicom.dataset import Dataset
from pydicom.sequence import Sequence
from pydicom.tag import BaseTag, Tag

from .errors import HeaderWriteError, UnknownDictionaryNameError

logger = logging.getLogger(__name__)

VALIDATE = pydicom_config.RAISE
UNCHECKED = pydicom_config.IGNORE

_INT_VRS = {"US", "SS", "UL", "SL", "UV", "SV"}
_FLOAT_VRS = {"FL", "FD"}
_BYTES_VRS = {"OB", "OD", "OF", "OL", "OV", "OW", "UN"}
_AT_VALUE = re.compile(r"^\(?\s*([0-9A-Fa-f]{4})\s*,\s*([0-9A-Fa-f]{4})\s*\)?$")


def resolve_name(name: str, path: Optional[str] = None) -> BaseTag:
    tag = tag_for_keyword(name)
    if tag is None:
        raise UnknownDictionaryNameError(name, path)
    return Tag(tag)


def vr_for(tag: BaseTag) -> Optional[str]:
    """Dictionary VR of ``tag`` (first choice for ambiguous VRs), ``None`` if unknown."""
    try:
        vr = dictionary_VR(tag)
    except KeyError:
        return None
    return vr.split(" or ")[0]


def describe(tag: BaseTag) -> str:
    return keyword_for_tag(tag) or f"({tag.group:04X},{tag.element:04X})"


def _coerce(vr: str, value: Any) -> Any:
    if value is None:
        if vr == "SQ":
            return Sequence()
        return b"" if vr in _BYTES_VRS else ""
    if vr == "SQ":
        if isinstance(value, Sequence):
            return value
        raise ValueError("a sequence cannot take a literal value")
    if not isinstance(value, str):
        return value
    if vr in _INT_VRS:
        parts = [int(p) for p in value.split("\\") if p.strip()]
        return parts[0] if len(parts) == 1 else parts
    if vr in _FLOAT_VRS:
        parts = [float(p) for p in value.split("\\") if p.strip()]
        return parts[0] if len(parts) == 1 else parts
    if vr in _BYTES_VRS:
        return value.encode("utf-8")
    if vr == "AT":
        tags = [_attribute_tag(p) for p in value.split("\\") if p.strip()]
        return tags[0] if len(tags) == 1 else tags
    return value


def _attribute_tag(text: str) -> BaseTag:
    """``gggg,eeee``, ``(gggg,eeee)`` or a dictionary keyword as a tag value."""
    text = text.strip()
    match = _AT_VALUE.match(text)
    if match:
        return Tag(int(match.group(1), 16), int(match.group(2), 16))
    tag = tag_for_keyword(text)
    if tag is None:
        raise ValueError(f"'{text}' is not an attribute tag")
    return Tag(tag)


def make_element(tag: BaseTag, value: Any, validation_mode: int = VALIDATE) -> DataElement:
    vr = vr_for(tag) or "UN"
    try:
        return DataElement(tag, vr, _coerce(vr, value), validation_mode=validation_mode)
    except (ValueError, TypeError, OverflowError) as exc:
        raise HeaderWriteError(describe(tag), value, str(exc)) from exc


def set_element(
    ds: Dataset,
    tag: BaseTag | int | str,
    value: Any,
    validation_mode: int = VALIDATE,
) -> DataElement:
    """Create or replace ``tag`` in ``ds``; ``tag`` may be a keyword."""
    if isinstance(tag, str):
        tag = resolve_name(tag)
    else:
        tag = Tag(tag)
    elem = make_element(tag, value, validation_mode)
    ds[tag] = elem
    return elem


__all__ = [
    "VALIDATE",
    "UNCHECKED",
    "resolve_name",
    "vr_for",
    "describe",
    "make_element",
    "set_element",
]
