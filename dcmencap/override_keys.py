"""Override keys: user supplied attributes written after everything else.

A key is ``gggg,eeee``, a dictionary keyword, or a path such as
``ConceptNameCodeSequence[0].CodeMeaning`` (``.`` or ``/`` between steps), with an
optional ``=value``. Keys are resolved to numeric tag paths when parsed and are
applied last, in order, without validating the values written.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from pydicom.dataelem import DataElement
from pydicom.dataset import Dataset
from pydicom.sequence import Sequence
from pydicom.tag import BaseTag, Tag

from .errors import HeaderWriteError, MalformedPathError
from .tags import UNCHECKED, describe, make_element, resolve_name, vr_for

logger = logging.getLogger(__name__)

_HEX_PAIR = re.compile(r"^\(?\s*([0-9A-Fa-f]{4})\s*,\s*([0-9A-Fa-f]{4})\s*\)?$")
_KEYWORD = re.compile(r"^[A-Za-z][A-Za-z0-9]*$")
_STEP = re.compile(r"^(?P<name>[^\[\]]+?)(?:\[(?P<index>[^\[\]]*)\])?$")
_DELIMITERS = re.compile(r"[./]")


class KeyForm(Enum):
    BY_NUMBER = "number"
    BY_NAME = "name"
    BY_PATH = "path"


@dataclass(frozen=True)
class PathStep:
    tag: BaseTag
    item: Optional[int] = None

    def __str__(self) -> str:
        suffix = f"[{self.item}]" if self.item is not None else ""
        return describe(self.tag) + suffix


@dataclass(frozen=True)
class OverrideKey:
    raw: str
    form: KeyForm
    steps: Tuple[PathStep, ...]
    value: Optional[str] = None

    @property
    def tag(self) -> BaseTag:
        return self.steps[-1].tag

    @property
    def path(self) -> str:
        return ".".join(str(s) for s in self.steps)


def _resolve_tag(token: str, raw: str) -> BaseTag:
    token = token.strip()
    match = _HEX_PAIR.match(token)
    if match:
        return Tag(int(match.group(1), 16), int(match.group(2), 16))
    if not _KEYWORD.match(token):
        raise MalformedPathError(raw, f"'{token}' is neither a tag number nor a dictionary name")
    return resolve_name(token, raw)


def _parse_step(token: str, raw: str) -> PathStep:
    match = _STEP.match(token.strip())
    if not match:
        raise MalformedPathError(raw, f"cannot parse path step '{token}'")
    index = match.group("index")
    item: Optional[int] = None
    if index is not None:
        if not index.strip().isdigit():
            raise MalformedPathError(raw, f"item index '{index}' is not a non-negative integer")
        item = int(index)
    return PathStep(_resolve_tag(match.group("name"), raw), item)


def parse_override_key(text: str) -> OverrideKey:
    raw = text
    value: Optional[str] = None
    if "=" in text:
        text, value = text.split("=", 1)
    key = text.strip()
    if not key:
        raise MalformedPathError(raw, "empty attribute key")

    tokens = _DELIMITERS.split(key)
    if any(not t.strip() for t in tokens):
        raise MalformedPathError(raw, "empty path step")

    if len(tokens) == 1 and "[" not in key:
        form = KeyForm.BY_NUMBER if _HEX_PAIR.match(key) else KeyForm.BY_NAME
        return OverrideKey(raw=raw, form=form, steps=(PathStep(_resolve_tag(key, raw)),), value=value)

    steps = tuple(_parse_step(t, raw) for t in tokens)
    for step in steps[:-1]:
        if step.item is None:
            raise MalformedPathError(raw, f"sequence step '{describe(step.tag)}' needs an item index")
        vr = vr_for(step.tag)
        if vr is not None and vr != "SQ":
            raise MalformedPathError(raw, f"'{describe(step.tag)}' is not a sequence")
    if steps[-1].item is not None:
        raise MalformedPathError(raw, "path must end at an attribute, not an item")
    return OverrideKey(raw=raw, form=KeyForm.BY_PATH, steps=steps, value=value)


def parse_override_keys(texts: Iterable[str]) -> List[OverrideKey]:
    return [parse_override_key(t) for t in texts]


def _descend(ds: Dataset, step: PathStep, create: bool) -> Optional[Dataset]:
    elem = ds.get(step.tag)
    if elem is None or elem.VR != "SQ":
        if not create:
            return None
        elem = DataElement(step.tag, "SQ", Sequence())
        ds[step.tag] = elem
    seq = elem.value
    if len(seq) <= step.item:
        if not create:
            return None
        while len(seq) <= step.item:
            seq.append(Dataset())
    return seq[step.item]


def apply_key(ds: Dataset, key: OverrideKey) -> None:
    create = key.value is not None
    target: Optional[Dataset] = ds
    for step in key.steps[:-1]:
        target = _descend(target, step, create)
        if target is None:
            logger.debug("Override %s: nothing to clear at %s", key.raw, key.path)
            return

    tag = key.tag
    if key.value is None and tag not in target:
        logger.debug("Override %s: %s absent, nothing to clear", key.raw, key.path)
        return
    try:
        target[tag] = make_element(tag, key.value, UNCHECKED)
    except HeaderWriteError as exc:
        raise HeaderWriteError(key.raw, key.value, exc.reason) from exc
    logger.debug("Override %s applied to %s", key.raw, key.path)


def apply_all(ds: Dataset, keys: Iterable[OverrideKey]) -> None:
    """Apply ``keys`` in order; later keys overwrite earlier ones.

    Values are not validated. Anything established by earlier, validated writes may
    no longer hold afterwards.
    """
    count = 0
    for key in keys:
        apply_key(ds, key)
        count += 1
    if count:
        logger.info("Applied %d override key(s)", count)


__all__ = [
    "KeyForm",
    "PathStep",
    "OverrideKey",
    "parse_override_key",
    "parse_override_keys",
    "apply_key",
    "apply_all",
]
