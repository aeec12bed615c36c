import inspect
import logging
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Sequence, Tuple, Union

from lxml import etree

from inline_defs import XLINK_NS, inline_defs

SVG_NS = "http://www.w3.org/2000/svg"
TRANSLATE_RE = re.compile(r"^\s*translate\(\s*([^,\s]+)\s*[,\s]\s*([^)]+)\s*\)\s*$")
NUMBER_RE = re.compile(r"^\s*(-?[\d.]+(?:e-?\d+)?)\s*(px)?\s*$")

# Editor and export noise that never matters for an icon.
NOISE_ATTRS = [
    "clip-rule",
    "data-name",
    "data-*",
    "sketch:*",
    "version",
    "baseProfile",
    "enable-background",
    "xml:space",
]

Stage = Callable[..., etree._Element]
StageSpec = Union[str, Tuple[str, Mapping[str, Any]]]


class OptimizeError(Exception):
    pass


def strip_comments(root):
    for comment in root.xpath("//comment()"):  # type: ignore
        parent = comment.getparent()
        if parent is not None:
            # Comments own their tail text, hand it to the previous node.
            if comment.tail:
                prev = comment.getprevious()
                if prev is not None:
                    prev.tail = (prev.tail or "") + comment.tail
                else:
                    parent.text = (parent.text or "") + comment.tail
            parent.remove(comment)
    return root


def strip_foreign(root):
    """Drop elements and attributes from editor namespaces (Inkscape, Sketch, ...)."""
    for elem in root.xpath(".//*"):  # type: ignore
        namespace = etree.QName(elem).namespace
        if namespace is not None and namespace != SVG_NS:
            parent = elem.getparent()
            if parent is not None:
                parent.remove(elem)

    for elem in root.xpath(".|.//*"):  # type: ignore
        for attr_name in list(elem.attrib.keys()):
            # xlink:href is still needed by uses that stayed referenced
            namespace = etree.QName(attr_name).namespace
            if (namespace and namespace != XLINK_NS) or attr_name.startswith("-inkscape"):
                del elem.attrib[attr_name]

        # Clean up -inkscape CSS properties from style attribute
        if "style" in elem.attrib:
            style_parts = [
                part.strip()
                for part in elem.attrib["style"].split(";")
                if part.strip() and not part.strip().startswith("-inkscape")
            ]
            if style_parts:
                elem.attrib["style"] = "; ".join(style_parts)
            else:
                del elem.attrib["style"]

    etree.cleanup_namespaces(root)
    return root


def _attr_matcher(patterns: Sequence[str]) -> Callable[[str], bool]:
    regexes = [
        re.compile("^" + re.escape(p).replace(r"\*", ".*") + "$")
        for p in patterns
    ]

    def matches(name: str) -> bool:
        return any(r.match(name) for r in regexes)

    return matches


def _prefixed_name(elem, attr_name: str) -> str:
    qname = etree.QName(attr_name)
    if not qname.namespace:
        return attr_name
    if qname.namespace == "http://www.w3.org/XML/1998/namespace":
        return f"xml:{qname.localname}"
    for prefix, uri in elem.nsmap.items():
        if uri == qname.namespace and prefix:
            return f"{prefix}:{qname.localname}"
    return attr_name


def remove_attrs(root, attrs: Sequence[str] = tuple(NOISE_ATTRS)):
    """Remove attributes by name; '*' is a wildcard (``data-*``, ``stroke*``)."""
    matches = _attr_matcher(attrs)
    for elem in root.xpath(".|.//*"):  # type: ignore
        for attr_name in list(elem.attrib.keys()):
            if matches(_prefixed_name(elem, attr_name)):
                del elem.attrib[attr_name]
    return root


def current_color(root):
    """Single-colour icons: drop explicit paint and let the root inherit currentColor."""
    remove_attrs(root, ["fill", "stroke*"])
    root.set("fill", "currentColor")
    return root


def normalize_viewbox(root):
    """Make sure the icon has a viewBox and no fixed size."""
    width = root.get("width")
    height = root.get("height")
    view_box = root.get("viewBox")

    if not (width and height):
        if not view_box:
            raise OptimizeError("Neither viewBox nor size attributes found")
        # viewBox set, but not root size: nothing to do
        return root

    if not view_box:
        # Root size set, but not viewBox: derive viewBox from the size
        w, h = NUMBER_RE.match(width), NUMBER_RE.match(height)
        if not (w and h):
            raise OptimizeError(f"Could not parse width/height ({width}, {height})")
        root.set("viewBox", f"0 0 {float(w.group(1)):g} {float(h.group(1)):g}")

    del root.attrib["width"]
    del root.attrib["height"]
    return root


def absorb_translate(root):
    """
    Absorb a lone top-level translate into the viewBox origin.

    Editors like to wrap all content in <g transform="translate(tx, ty)">.
    Shifting the viewBox origin by (-tx, -ty) removes the transform while
    preserving rendering.
    """
    vb = root.get("viewBox")
    if not vb:
        return root
    children = [c for c in root if isinstance(c.tag, str)]
    if len(children) != 1 or etree.QName(children[0]).localname != "g":
        return root
    g = children[0]
    m = TRANSLATE_RE.match(g.get("transform", ""))
    if not m:
        return root
    try:
        tx, ty = float(m.group(1)), float(m.group(2))
    except ValueError:
        return root
    parts = vb.replace(",", " ").split()
    if len(parts) == 4:
        min_x, min_y, vw, vh = (float(p) for p in parts)
        root.set("viewBox", f"{min_x - tx:g} {min_y - ty:g} {vw:g} {vh:g}")
        del g.attrib["transform"]
    return root


STAGES: Dict[str, Stage] = {
    "strip_comments": strip_comments,
    "inline_defs": inline_defs,
    "strip_foreign": strip_foreign,
    "remove_attrs": remove_attrs,
    "normalize_viewbox": normalize_viewbox,
    "absorb_translate": absorb_translate,
    "current_color": current_color,
}

PRESETS: Dict[str, List[StageSpec]] = {
    "default": [
        "strip_comments",
        ("inline_defs", {"mode": "unique"}),
        "strip_foreign",
        "remove_attrs",
        "normalize_viewbox",
    ],
    "basic": [
        "strip_comments",
        "strip_foreign",
        "normalize_viewbox",
        "current_color",
    ],
    "icon_font": [
        "strip_comments",
        ("inline_defs", {"mode": "flatten"}),
        "strip_foreign",
        "remove_attrs",
        "normalize_viewbox",
        "absorb_translate",
    ],
    # Keeps width and height for documents shown standalone.
    "web": [
        "strip_comments",
        ("inline_defs", {"mode": "unique"}),
        "strip_foreign",
        "remove_attrs",
    ],
}


def resolve_stages(stages: Sequence[StageSpec]) -> List[Tuple[str, Stage, Dict[str, Any]]]:
    resolved = []
    for spec in stages:
        if isinstance(spec, str):
            name, params = spec, {}
        else:
            name, params = spec[0], dict(spec[1])
        if name not in STAGES:
            raise OptimizeError(f"Unknown optimizer stage {name!r}")
        try:
            inspect.signature(STAGES[name]).bind(None, **params)
        except TypeError as e:
            raise OptimizeError(f"Invalid parameters for stage {name!r}: {e}") from None
        resolved.append((name, STAGES[name], params))
    return resolved


def preset_stages(preset: str) -> List[StageSpec]:
    if preset not in PRESETS:
        raise OptimizeError(f"Unknown optimizer preset {preset!r}")
    return list(PRESETS[preset])


def optimize_svg(root, stages: Sequence[StageSpec]):
    """Run the stages in order. A stage may return a new root."""
    if isinstance(root, etree._ElementTree):
        root = root.getroot()
    for name, stage, params in resolve_stages(stages):
        root = stage(root, **params)
        logging.debug(f"Stage {name} done")
    return root


def ensure_svg_namespace(root):
    """Move a document written without xmlns into the SVG namespace."""
    if etree.QName(root).namespace is not None:
        return root
    nsmap = {prefix: uri for prefix, uri in root.nsmap.items() if prefix}
    nsmap[None] = SVG_NS
    new_root = etree.Element(f"{{{SVG_NS}}}{root.tag}", attrib=dict(root.attrib), nsmap=nsmap)
    new_root.text = root.text
    for child in list(root):
        new_root.append(child)
    for elem in new_root.iterdescendants():
        if isinstance(elem.tag, str) and etree.QName(elem).namespace is None:
            elem.tag = f"{{{SVG_NS}}}{elem.tag}"
    return new_root


def parse_svg(path: Path):
    parser = etree.XMLParser(remove_blank_text=True, resolve_entities=False)
    try:
        root = etree.parse(str(path), parser).getroot()
    except (etree.XMLSyntaxError, OSError) as e:
        raise OptimizeError(f"could not parse SVG: {e}") from e
    return ensure_svg_namespace(root)


def serialize_svg(root) -> bytes:
    return etree.tostring(root, xml_declaration=False, encoding="UTF-8")


def optimize_file(path: Path, output: Path, stages: Sequence[StageSpec]) -> Tuple[int, int]:
    """Optimize one file into output; returns (original size, optimized size)."""
    original = Path(path).read_bytes()
    try:
        root = optimize_svg(parse_svg(path), stages)
    except OptimizeError as e:
        raise OptimizeError(f"{path}: {e}") from e
    data = serialize_svg(root)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(data)
    return len(original), len(data)
