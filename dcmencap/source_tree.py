"""Read-only walking of the source document tree.

The extractor works against anything that offers ``tag_name``, ``children`` and
``text``; :class:`XmlNode` adapts an lxml element to that shape and exposes XML
attributes as ``@name`` leaf children so they can be addressed like elements.
"""
from __future__ import annotations

import logging
from typing import Iterator, List, Optional, Protocol, Sequence

from lxml import etree

from .errors import InvalidDocumentError
from .fields import MULTI_VALUE_SEPARATOR

logger = logging.getLogger(__name__)

ATTRIBUTE_PREFIX = "@"


class SourceNode(Protocol):
    @property
    def tag_name(self) -> str: ...

    @property
    def children(self) -> Sequence["SourceNode"]: ...

    @property
    def text(self) -> str: ...


class AttributeNode:
    __slots__ = ("tag_name", "text")

    def __init__(self, name: str, value: str):
        self.tag_name = ATTRIBUTE_PREFIX + name
        self.text = value

    @property
    def children(self) -> Sequence[SourceNode]:
        return ()

    def __repr__(self) -> str:
        return f"AttributeNode({self.tag_name}={self.text!r})"


class XmlNode:
    """SourceNode view of an lxml element (namespaces stripped from names)."""

    __slots__ = ("_element", "_children")

    def __init__(self, element: etree._Element):
        self._element = element
        self._children: Optional[List[SourceNode]] = None

    @property
    def tag_name(self) -> str:
        return etree.QName(self._element).localname

    @property
    def children(self) -> Sequence[SourceNode]:
        if self._children is None:
            kids: List[SourceNode] = [
                AttributeNode(etree.QName(name).localname, value)
                for name, value in self._element.attrib.items()
            ]
            for child in self._element:
                # comments and processing instructions have a non-string tag
                if isinstance(child.tag, str):
                    kids.append(XmlNode(child))
            self._children = kids
        return self._children

    @property
    def text(self) -> str:
        # mixed content: text of inline children and their tails included
        return "".join(self._element.itertext()).strip()

    def __repr__(self) -> str:
        return f"XmlNode(<{self.tag_name}>)"


def parse_xml(data: bytes, source: object = None) -> XmlNode:
    """Parse XML bytes into a :class:`XmlNode` tree."""
    parser = etree.XMLParser(resolve_entities=False, no_network=True, remove_comments=True, huge_tree=False)
    try:
        root = etree.fromstring(data, parser)
    except etree.XMLSyntaxError as exc:
        raise InvalidDocumentError(source, f"malformed XML ({exc})") from exc
    return XmlNode(root)


def _split_attribute_id(attribute_id: str) -> tuple[bool, list[str]]:
    anchored = "/" in attribute_id
    steps = [s for s in attribute_id.strip("/").split("/") if s]
    return anchored, steps


def _walk(node: SourceNode, depth_path: tuple[str, ...]) -> Iterator[tuple[SourceNode, tuple[str, ...]]]:
    for child in node.children:
        path = depth_path + (child.tag_name,)
        yield child, path
        yield from _walk(child, path)


def find_all(root: SourceNode, attribute_id: str) -> List[SourceNode]:
    """Return every descendant of ``root`` matching ``attribute_id``, in document order.

    A plain name matches any descendant with exactly that tag name. A name containing
    ``/`` is a path anchored at ``root``.
    """
    anchored, steps = _split_attribute_id(attribute_id)
    if not steps:
        return []
    target = tuple(steps)
    found: List[SourceNode] = []
    for node, path in _walk(root, ()):
        if anchored:
            if path == target:
                found.append(node)
        elif node.tag_name == attribute_id:
            found.append(node)
    return found


def extract_all(root: SourceNode, attribute_id: str) -> List[str]:
    """Text of every node :func:`find_all` matches; no match gives an empty list."""
    return [node.text for node in find_all(root, attribute_id)]


def extract_single(root: SourceNode, attribute_id: str) -> str:
    values = [v for v in extract_all(root, attribute_id) if v]
    if len(values) > 1:
        logger.debug("%s occurs %d times; joining as multi-value", attribute_id, len(values))
    return MULTI_VALUE_SEPARATOR.join(values)


__all__ = [
    "SourceNode",
    "XmlNode",
    "AttributeNode",
    "parse_xml",
    "find_all",
    "extract_all",
    "extract_single",
    "ATTRIBUTE_PREFIX",
]
