#!/usr/bin/env python3
"""Element arena for XML documents.

Every element of a parsed document is stored once, in document order, and
addressed by its integer index. Parents, children and depths are kept in
parallel lists so the walker and the steps never need identity-keyed lookups.
"""
import logging
import re
from dataclasses import dataclass, field

# Use defusedxml for secure XML parsing (prevents XXE attacks)
import defusedxml.ElementTree as ET
from defusedxml import DefusedXmlException

# Serialization and type hints come from the standard library
from xml.etree.ElementTree import Element, ParseError, tostring

logger = logging.getLogger(__name__)

XML_NS = "http://www.w3.org/XML/1998/namespace"

NO_PARENT = -1


def parse_ns(xml_text: str) -> dict[str, str]:
    """Parse namespace declarations from XML text.

    Args:
        xml_text: XML document content

    Returns:
        Dictionary mapping namespace prefixes to URIs ("" for the default namespace)
    """
    ns_map = dict(re.findall(r'xmlns:([A-Za-z0-9_.-]+)\s*=\s*["\']([^"\']+)["\']', xml_text))
    match = re.search(r'xmlns\s*=\s*["\']([^"\']+)["\']', xml_text)
    if match:
        ns_map[""] = match.group(1)
    ns_map["xml"] = XML_NS
    return ns_map


def qname_from_tag(tag: str, ns_map: dict[str, str]) -> str:
    """Convert an ElementTree tag or attribute key to its prefixed name.

    Names in the default namespace, or in a namespace with no declared
    prefix, come back as the bare local name.

    Args:
        tag: Tag or attribute key, possibly in ``{uri}local`` form
        ns_map: Namespace prefix to URI mapping

    Returns:
        ``prefix:local`` or ``local``
    """
    if tag.startswith("{"):
        uri, local = tag[1:].split("}", 1)
        for prefix, namespace_uri in ns_map.items():
            if namespace_uri == uri and prefix != "":
                return f"{prefix}:{local}"
        return local
    return tag


def local_from_qname(qn: str) -> str:
    return qn.split(":")[-1]


@dataclass
class ElementArena:
    """Parsed document addressed by element index (0 is the document root)."""

    elements: list[Element] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)         # Prefixed tag name, original case
    parents: list[int] = field(default_factory=list)      # NO_PARENT for the root
    children: list[list[int]] = field(default_factory=list)
    depths: list[int] = field(default_factory=list)
    ns_map: dict[str, str] = field(default_factory=dict)
    attrs: list[dict[str, str]] = field(default_factory=list)  # Prefixed attribute names, per element
    ids: dict[str, int] = field(default_factory=dict)          # xml:id / id value -> first element carrying it

    @classmethod
    def from_root(cls, root: Element, ns_map: dict[str, str]) -> "ElementArena":
        arena = cls(ns_map=ns_map)
        stack: list[tuple[Element, int, int]] = [(root, NO_PARENT, 0)]
        while stack:
            element, parent, depth = stack.pop()
            index = len(arena.elements)
            arena.elements.append(element)
            arena.tags.append(qname_from_tag(element.tag, ns_map))
            arena.parents.append(parent)
            arena.children.append([])
            arena.depths.append(depth)
            attributes = {qname_from_tag(key, ns_map): value for key, value in element.attrib.items()}
            arena.attrs.append(attributes)
            element_id = attributes.get("xml:id") or attributes.get("id")
            if element_id:
                arena.ids.setdefault(element_id, index)
            if parent != NO_PARENT:
                arena.children[parent].append(index)
            # Reversed so the first child is popped (and numbered) first
            for child in reversed([c for c in element if isinstance(c.tag, str)]):
                stack.append((child, index, depth + 1))
        return arena

    def __len__(self) -> int:
        return len(self.elements)

    def tag_key(self, index: int) -> str:
        """Lower-cased prefixed tag name, the key used against the label map."""
        return self.tags[index].lower()

    def local_name(self, index: int) -> str:
        """Lower-cased local name."""
        return local_from_qname(self.tags[index]).lower()

    def attributes(self, index: int) -> dict[str, str]:
        """Attributes keyed by prefixed name (``xml:id``, ``lemma``)."""
        return dict(self.attrs[index])

    def get_attribute(self, index: int, name: str | None) -> str | None:
        if not name:
            return None
        return self.attrs[index].get(name)

    def has_attribute(self, index: int, name: str | None) -> bool:
        return self.get_attribute(index, name) is not None

    def text_content(self, index: int) -> str:
        """Concatenated text of the element and all descendants."""
        return "".join(self.elements[index].itertext())

    def outer_xml(self, index: int) -> str:
        element = self.elements[index]
        # tostring() appends the tail text of the element; drop it
        tail, element.tail = element.tail, None
        try:
            return tostring(element, encoding="unicode")
        finally:
            element.tail = tail

    def inner_xml(self, index: int) -> str:
        element = self.elements[index]
        parts = [element.text or ""]
        for child in self.children[index]:
            parts.append(self.outer_xml(child))
            parts.append(self.elements[child].tail or "")
        return "".join(parts)

    def parent(self, index: int) -> int:
        return self.parents[index]

    def ancestors(self, index: int) -> list[int]:
        """Ancestors from the parent up to the root."""
        result = []
        current = self.parents[index]
        while current != NO_PARENT:
            result.append(current)
            current = self.parents[current]
        return result

    def siblings(self, index: int) -> list[int]:
        parent = self.parents[index]
        if parent == NO_PARENT:
            return []
        return [i for i in self.children[parent] if i != index]

    def element_id(self, index: int) -> str | None:
        """``xml:id`` or ``id`` of an element."""
        attributes = self.attrs[index]
        return attributes.get("xml:id") or attributes.get("id")

    def find_by_id(self, target_id: str | None) -> int | None:
        """First element whose ``xml:id`` or ``id`` equals ``target_id``.

        A leading ``#`` (TEI pointer syntax) is ignored.
        """
        if not target_id:
            return None
        wanted = target_id[1:] if target_id.startswith("#") else target_id
        return self.ids.get(wanted)

    def find_by_local_name(self, name: str) -> int | None:
        """First element in document order whose lower-cased local name equals ``name``."""
        wanted = name.lower()
        for index in range(len(self.elements)):
            if self.local_name(index) == wanted:
                return index
        return None


def parse_document(xml_content: str) -> ElementArena | None:
    """Parse XML text into an arena.

    Returns:
        The arena, or None when the text is not well-formed XML
    """
    if not xml_content or not xml_content.strip():
        logger.warning("Empty XML content, nothing to walk")
        return None
    try:
        root = ET.fromstring(xml_content)
    except ParseError as e:
        logger.warning(f"Could not parse XML document: {e}")
        return None
    except DefusedXmlException as e:
        logger.warning(f"Refusing unsafe XML document: {e}")
        return None
    arena = ElementArena.from_root(root, parse_ns(xml_content))
    logger.debug(f"Parsed XML document with {len(arena)} elements")
    return arena
