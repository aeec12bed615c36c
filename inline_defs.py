"""Resolve ``<use href="#id">`` references into the geometry they point at.

Font compilers and sprite packers only see the shapes that are written out
directly, so a document that draws through ``<use>`` loses those shapes. This
stage copies the referenced element to each use site instead.

The input tree is read once into a ``DefinitionIndex`` and never modified; the
result is a freshly built tree, so every use site owns its own copy of the
referenced element.
"""

import copy
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import List, Mapping, Optional, Set, Tuple, Union

from lxml import etree

XLINK_NS = "http://www.w3.org/1999/xlink"
XLINK_HREF = f"{{{XLINK_NS}}}href"

# Positional attributes become a transform, href is spent by the inlining.
NOT_MERGED = frozenset({"x", "y", "href", XLINK_HREF})


class InlineMode(Enum):
    # Inline single-use definitions only; shared ones stay referenced.
    UNIQUE_ONLY = "unique"
    # Inline everything, duplicating shared definitions at every use site.
    FLATTEN_SHARED = "flatten"

    @classmethod
    def parse(cls, value: Union[str, "InlineMode"]) -> "InlineMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            choices = ", ".join(m.value for m in cls)
            raise ValueError(f"Unknown inline mode {value!r} (expected one of {choices})") from None


def local_name(el) -> Optional[str]:
    if not isinstance(el.tag, str):
        return None
    return etree.QName(el).localname


def get_href(el) -> Optional[str]:
    return el.get(XLINK_HREF) or el.get("href")


def translate_for(x: Optional[str], y: Optional[str]) -> Optional[str]:
    if x is not None and y is not None:
        return f"translate({x}, {y})"
    if x is not None:
        return f"translate({x})"
    return None


def _in_defs(el) -> bool:
    return any(local_name(a) == "defs" for a in el.iterancestors())


@dataclass(frozen=True)
class DefinitionIndex:
    """Read-only view of the references in one document."""

    uses: Tuple[Tuple[etree._Element, etree._Element], ...]
    counts: Mapping[str, int]
    targets: Mapping[str, etree._Element]

    def count(self, fragment: str) -> int:
        return self.counts.get(fragment, 0)

    def fragment_of(self, el) -> Optional[str]:
        """The fragment el is registered under, if it is a referenced definition."""
        el_id = el.get("id") if isinstance(el.tag, str) else None
        if el_id is None:
            return None
        fragment = f"#{el_id}"
        return fragment if self.targets.get(fragment) is el else None


def build_index(root: etree._Element) -> DefinitionIndex:
    uses: List[Tuple[etree._Element, etree._Element]] = []
    counts = {}
    for el in root.iterdescendants():
        if local_name(el) != "use":
            continue
        uses.append((el, el.getparent()))
        href = get_href(el)
        if href:
            counts[href] = counts.get(href, 0) + 1

    targets = {}
    for el in root.iterdescendants():
        if not isinstance(el.tag, str):
            continue
        el_id = el.get("id")
        if el_id is None:
            continue
        fragment = f"#{el_id}"
        if fragment not in counts or fragment in targets:
            continue
        # An element that contains its own use can never be inlined.
        if any(get_href(u) == fragment for u in el.iterdescendants() if local_name(u) == "use"):
            continue
        targets[fragment] = el

    # A use that is itself a target is copied verbatim, so whatever it points
    # at has to stay where it is.
    pinned = {get_href(el) for el in targets.values() if local_name(el) == "use"}
    targets = {f: el for f, el in targets.items() if f not in pinned}

    return DefinitionIndex(
        uses=tuple(uses),
        counts=MappingProxyType(counts),
        targets=MappingProxyType(targets),
    )


def _sub_element(parent_out, el):
    # Only redeclare namespaces the new parent does not already provide.
    nsmap = {p: uri for p, uri in el.nsmap.items() if parent_out.nsmap.get(p) != uri}
    out = etree.SubElement(parent_out, el.tag, attrib=dict(el.attrib), nsmap=nsmap or None)
    out.text = el.text
    return out


class _Inliner:
    def __init__(self, index: DefinitionIndex, mode: InlineMode):
        self.index = index
        self.mode = mode
        self._expanding: Set[str] = set()
        # Copies made while expanding a shared target repeat per use site.
        self._shared_depth = 0

    def build(self, root):
        out = etree.Element(root.tag, attrib=dict(root.attrib), nsmap=root.nsmap)
        out.text = root.text
        for child in root:
            self.emit(out, child)
        return out

    def emit(self, parent_out, el):
        """Append the rewritten form of el to parent_out."""
        if not isinstance(el.tag, str):
            parent_out.append(copy.deepcopy(el))
            return

        fragment = self.index.fragment_of(el)
        drop_id = self._shared_depth > 0
        if fragment is not None:
            count = self.index.count(fragment)
            if count == 1:
                # Relocated to its only use site.
                return
            if self.mode is InlineMode.FLATTEN_SHARED:
                if _in_defs(el):
                    return
                drop_id = True

        if local_name(el) == "use":
            out = self.emit_use(parent_out, el)
        else:
            out = _sub_element(parent_out, el)
            out.tail = el.tail
            for child in el:
                self.emit(out, child)
        if drop_id and "id" in out.attrib:
            del out.attrib["id"]

        if local_name(el) == "defs" and not any(isinstance(c.tag, str) for c in out):
            parent_out.remove(out)

    def emit_use(self, parent_out, use):
        href = get_href(use)
        target = self.index.targets.get(href) if href else None
        shared = href is not None and self.index.count(href) > 1
        if (
            target is None
            or href in self._expanding
            or (self.mode is InlineMode.UNIQUE_ONLY and shared)
        ):
            out = copy.deepcopy(use)
            parent_out.append(out)
            return out

        holder = parent_out
        transform = translate_for(use.get("x"), use.get("y"))
        if transform is not None:
            ns = etree.QName(use).namespace
            holder = etree.SubElement(parent_out, f"{{{ns}}}g" if ns else "g")
            holder.set("transform", transform)
            holder.tail = use.tail

        keep_id = not (shared or self._shared_depth)
        self._expanding.add(href)
        self._shared_depth += shared
        try:
            out = self.emit_copy(holder, target, keep_id=keep_id)
        finally:
            self._expanding.discard(href)
            self._shared_depth -= shared

        for name, value in use.attrib.items():
            if name not in NOT_MERGED:
                out.set(name, value)
        out.tail = None if transform is not None else use.tail
        return out

    def emit_copy(self, parent_out, target, keep_id: bool):
        if local_name(target) == "use":
            # One level only: a use pointing at a use is copied, not followed.
            out = copy.deepcopy(target)
            parent_out.append(out)
        else:
            out = _sub_element(parent_out, target)
            for child in target:
                self.emit(out, child)
        if not keep_id and "id" in out.attrib:
            del out.attrib["id"]
        return out


def inline_defs(root, mode: Union[InlineMode, str] = InlineMode.UNIQUE_ONLY):
    """
    Return a copy of the document with ``use`` references replaced by their targets.

    UNIQUE_ONLY: a definition used exactly once moves to its use site; shared
    definitions and their uses are left alone.
    FLATTEN_SHARED: every resolvable use gets its own copy of the target, shared
    definitions lose their id and disappear from ``defs``.

    In both modes the use's attributes other than x, y and href are merged onto
    the copy (the use wins), x/y become a ``translate`` on a wrapping ``g``,
    unresolved references are kept as they are, and ``defs`` left empty are
    removed.
    """
    mode = InlineMode.parse(mode)
    if isinstance(root, etree._ElementTree):
        root = root.getroot()
    index = build_index(root)
    return _Inliner(index, mode).build(root)
