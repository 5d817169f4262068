from __future__ import annotations

"""Simple reusable lxml helpers.

These helpers are side-effect-free and contain no archive I/O. All lookups
compare *local* names so that documents written with a default namespace
resolve exactly like un-namespaced ones.
"""

import logging
from typing import Iterable, Iterator, Optional

from lxml import etree as ET

__all__ = [
    "parse_xml",
    "local_name",
    "qualified_name",
    "element_text",
    "iter_elements",
    "iter_descendants",
    "find_child",
    "find_children",
    "find_descendant",
    "get_attribute",
    "has_attribute",
]

logger = logging.getLogger(__name__)


def _make_parser() -> ET.XMLParser:
    # Security: no entity expansion, no network; recover from sloppy exporters
    return ET.XMLParser(resolve_entities=False, no_network=True, recover=True,
                        remove_comments=True, remove_pis=True, huge_tree=False)


def parse_xml(text: str | bytes, source: str = "<memory>") -> Optional[ET._Element]:
    """Parse *text* and return the root element, or ``None`` when unusable.

    Authoring tools occasionally emit a BOM, stray bytes or a wrong encoding
    declaration; parsing from bytes lets lxml honour the declaration and the
    recovering parser salvages what it can.
    """
    if isinstance(text, str):
        data = text.lstrip("\ufeff").encode("utf-8")
        # A declared non-UTF-8 encoding would now be a lie
        if data.lstrip().startswith(b"<?xml"):
            end = data.find(b"?>")
            if end != -1:
                data = data[end + 2:]
    else:
        data = text
    if not data or not data.strip():
        logger.debug("Empty XML document: %s", source)
        return None
    try:
        root = ET.fromstring(data, _make_parser())
    except ET.XMLSyntaxError as exc:
        logger.warning("XML syntax error in %s: %s", source, exc)
        return None
    if root is None:
        logger.warning("XML document %s has no root element", source)
    return root


def local_name(element: ET._Element) -> str:
    """Return the tag of *element* without its namespace ('' for non-elements)."""
    tag = element.tag
    if not isinstance(tag, str):
        return ""
    return ET.QName(tag).localname


def qualified_name(element: ET._Element) -> str:
    """Return ``prefix:local`` for prefixed elements, the local name otherwise."""
    name = local_name(element)
    prefix = element.prefix
    return f"{prefix}:{name}" if prefix else name


def element_text(element: Optional[ET._Element]) -> str:
    """Return the trimmed text content of *element*, including descendants."""
    if element is None:
        return ""
    return "".join(element.itertext()).strip()


def iter_elements(root: ET._Element) -> Iterator[ET._Element]:
    """Yield *root* and every descendant element in document order."""
    for element in root.iter():
        if isinstance(element.tag, str):
            yield element


def iter_descendants(scope: ET._Element, names: Iterable[str] | None = None,
                     exclude: Iterable[str] = ()) -> Iterator[ET._Element]:
    """Yield descendants of *scope* (not *scope* itself) in document order.

    *names* restricts the yielded elements by local name. Subtrees rooted at
    an element whose local name is in *exclude* are skipped entirely.
    """
    wanted = set(names) if names is not None else None
    pruned = set(exclude)

    def _walk(parent: ET._Element) -> Iterator[ET._Element]:
        for child in parent:
            if not isinstance(child.tag, str):
                continue
            name = local_name(child)
            if name in pruned:
                continue
            if wanted is None or name in wanted:
                yield child
            yield from _walk(child)

    yield from _walk(scope)


def find_child(scope: ET._Element, name: str) -> Optional[ET._Element]:
    """Return the first immediate child of *scope* with local name *name*."""
    for child in scope:
        if local_name(child) == name:
            return child
    return None


def find_children(scope: ET._Element, name: str) -> list[ET._Element]:
    return [child for child in scope if local_name(child) == name]


def find_descendant(scope: ET._Element, name: str,
                    exclude: Iterable[str] = ()) -> Optional[ET._Element]:
    """Return the first descendant of *scope* named *name*, or ``None``."""
    return next(iter_descendants(scope, (name,), exclude), None)


def get_attribute(element: Optional[ET._Element], name: str) -> str:
    """Return the trimmed value of attribute *name*, ignoring its namespace."""
    if element is None:
        return ""
    value = element.get(name)
    if value is None:
        for key, candidate in element.attrib.items():
            if ET.QName(key).localname == name:
                value = candidate
                break
    return value.strip() if value else ""


def has_attribute(element: Optional[ET._Element], name: str) -> bool:
    if element is None:
        return False
    if name in element.attrib:
        return True
    return any(ET.QName(key).localname == name for key in element.attrib)
