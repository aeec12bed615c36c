"""Compile a directory of icon SVGs into an icon font and its style sheet.

Every icon becomes one glyph in the Private Use Area, scaled into the em box
(``font_height`` units, ``ascent`` above the baseline). The fonts are written
as ``{font_name}.{ext}`` next to ``{font_name}.css``; naming them by content
hash is left to the caller.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from fontTools.fontBuilder import FontBuilder
from fontTools.misc.transform import Transform
from fontTools.pens.cu2quPen import Cu2QuPen
from fontTools.pens.svgPathPen import SVGPathPen
from fontTools.pens.transformPen import TransformPen
from fontTools.pens.ttGlyphPen import TTGlyphPen
from fontTools.svgLib.path import parse_path
from fontTools.svgLib.path.shapes import PathBuilder
from fontTools.ttLib import TTFont
from lxml import etree

from inline_defs import local_name
from revision import find_svg_files
from svg import SVG_NS, parse_svg
from utils import BuildError, icon_name

FORMATS = ("ttf", "woff", "woff2", "svg")
CSS_FORMATS = {"woff2": "woff2", "woff": "woff", "ttf": "truetype", "svg": "svg"}

SHAPES = {"path", "rect", "circle", "ellipse", "line", "polyline", "polygon"}
# Content of these is only drawn when referenced, never on its own.
NOT_RENDERED = {"defs", "clipPath", "mask", "symbol", "pattern", "marker", "title", "desc", "metadata"}

TRANSFORM_RE = re.compile(r"(matrix|translate|scale|rotate|skewX|skewY)\s*\(([^)]*)\)")
ARGS_RE = re.compile(r"[\s,]+")


class FontError(BuildError):
    pass


@dataclass(frozen=True)
class FontMetrics:
    font_height: int = 1000
    ascent: int = 800
    descent: int = 200
    normalize: bool = True
    center_horizontally: bool = True
    fixed_width: bool = True
    start_codepoint: int = 0xEA01


@dataclass(frozen=True)
class Glyph:
    name: str
    codepoint: int
    source: Path

    @property
    def css_code(self) -> str:
        return f"\\{self.codepoint:x}"


@dataclass
class CompiledFont:
    font_name: str
    css: Path
    files: Dict[str, Path] = field(default_factory=dict)
    glyphs: List[Glyph] = field(default_factory=list)


def parse_transform(value: str) -> Transform:
    """SVG transform list to a single matrix; the leftmost function applies last."""
    t = Transform()
    for op, raw_args in TRANSFORM_RE.findall(value or ""):
        args = [float(a) for a in ARGS_RE.split(raw_args.strip()) if a]
        if op == "matrix" and len(args) == 6:
            t = t.transform(args)
        elif op == "translate" and args:
            t = t.translate(args[0], args[1] if len(args) > 1 else 0)
        elif op == "scale" and args:
            t = t.scale(args[0], args[1] if len(args) > 1 else args[0])
        elif op == "rotate" and args:
            cx, cy = (args[1], args[2]) if len(args) == 3 else (0, 0)
            t = t.translate(cx, cy).rotate(math.radians(args[0])).translate(-cx, -cy)
        elif op == "skewX" and args:
            t = t.skew(math.radians(args[0]), 0)
        elif op == "skewY" and args:
            t = t.skew(0, math.radians(args[0]))
        else:
            raise FontError(f"Malformed transform {value!r}")
    return t


def view_box(root) -> Tuple[float, float, float, float]:
    vb = root.get("viewBox")
    if vb:
        parts = [float(p) for p in ARGS_RE.split(vb.strip()) if p]
        if len(parts) == 4 and parts[2] > 0 and parts[3] > 0:
            return parts[0], parts[1], parts[2], parts[3]
    try:
        return 0.0, 0.0, float(root.get("width", "")), float(root.get("height", ""))
    except ValueError:
        raise FontError("Icon has neither a usable viewBox nor width/height") from None


def shape_path(el) -> Optional[str]:
    if local_name(el) == "path":
        return el.get("d")
    # PathBuilder knows the basic shapes; transforms are applied by the caller.
    attrib = {k: v for k, v in el.attrib.items() if k != "transform"}
    builder = PathBuilder()
    builder.add_path_from_element(etree.Element(local_name(el), attrib))
    return builder.paths[-1] if builder.paths else None


def draw_icon(root, pen, placement: Transform):
    def walk(el, current: Transform):
        if not isinstance(el.tag, str):
            return
        name = local_name(el)
        if name in NOT_RENDERED or el.get("display") == "none":
            return
        if el is not root and el.get("transform"):
            current = current.transform(parse_transform(el.get("transform")))
        if name in SHAPES:
            d = shape_path(el)
            if d:
                parse_path(d, TransformPen(pen, placement.transform(current)))
        for child in el:
            walk(child, current)

    walk(root, Transform())


def build_glyph(root, metrics: FontMetrics):
    """Draw one icon into a TrueType glyph; returns (glyph, advance width)."""
    min_x, min_y, width, height = view_box(root)
    if metrics.normalize:
        scale = metrics.font_height / max(width, height)
    else:
        scale = metrics.font_height / height
    advance = metrics.font_height if metrics.fixed_width else round(width * scale)
    dx = (advance - width * scale) / 2 if metrics.center_horizontally else 0
    # SVG is y-down, fonts are y-up; the viewBox top lands on the ascent line.
    placement = Transform(scale, 0, 0, -scale, dx - min_x * scale, metrics.ascent + min_y * scale)

    tt_pen = TTGlyphPen(None)
    # Flipping y reverses contour direction, reverse it back for TrueType.
    draw_icon(root, Cu2QuPen(tt_pen, max_err=1.0, reverse_direction=True), placement)
    return tt_pen.glyph(), advance


def notdef_glyph(metrics: FontMetrics):
    pen = TTGlyphPen(None)
    inset = metrics.font_height // 10
    top = metrics.ascent - inset
    bottom = -metrics.descent + inset
    right = metrics.font_height - inset
    pen.moveTo((inset, bottom))
    pen.lineTo((inset, top))
    pen.lineTo((right, top))
    pen.lineTo((right, bottom))
    pen.closePath()
    return pen.glyph()


def build_ttf(glyphs: Sequence[Glyph], font_name: str, metrics: FontMetrics, output: Path):
    glyph_order = [".notdef"]
    outlines = {".notdef": notdef_glyph(metrics)}
    advances = {".notdef": metrics.font_height}
    cmap = {}

    for glyph in glyphs:
        try:
            outline, advance = build_glyph(parse_svg(glyph.source), metrics)
        except Exception as e:
            raise FontError(f"{glyph.source}: could not convert to a glyph: {e}") from e
        glyph_order.append(glyph.name)
        outlines[glyph.name] = outline
        advances[glyph.name] = advance
        cmap[glyph.codepoint] = glyph.name

    fb = FontBuilder(metrics.font_height, isTTF=True)
    fb.setupGlyphOrder(glyph_order)
    fb.setupCharacterMap(cmap)
    fb.setupGlyf(outlines)

    glyf = fb.font["glyf"]
    h_metrics = {}
    for name in glyph_order:
        glyf[name].recalcBounds(glyf)
        h_metrics[name] = (advances[name], getattr(glyf[name], "xMin", 0))
    fb.setupHorizontalMetrics(h_metrics)
    fb.setupHorizontalHeader(ascent=metrics.ascent, descent=-metrics.descent)
    fb.setupOS2(
        sTypoAscender=metrics.ascent,
        sTypoDescender=-metrics.descent,
        sTypoLineGap=0,
        usWinAscent=metrics.ascent,
        usWinDescent=metrics.descent,
    )
    fb.setupNameTable(
        {
            "familyName": font_name,
            "styleName": "Regular",
            "uniqueFontIdentifier": f"{font_name}-Regular",
            "fullName": f"{font_name} Regular",
            "psName": f"{font_name}-Regular",
            "version": "Version 1.0",
        }
    )
    fb.setupPost()
    fb.setupMaxp()
    fb.save(str(output))


def build_svg_font(ttf: Path, glyphs: Sequence[Glyph], font_name: str, metrics: FontMetrics, output: Path):
    font = TTFont(str(ttf))
    glyph_set = font.getGlyphSet()
    hmtx = font["hmtx"]

    root = etree.Element(f"{{{SVG_NS}}}svg", nsmap={None: SVG_NS})
    defs = etree.SubElement(root, f"{{{SVG_NS}}}defs")
    font_el = etree.SubElement(defs, f"{{{SVG_NS}}}font", id=font_name)
    font_el.set("horiz-adv-x", str(metrics.font_height))
    face = etree.SubElement(font_el, f"{{{SVG_NS}}}font-face")
    face.set("font-family", font_name)
    face.set("units-per-em", str(metrics.font_height))
    face.set("ascent", str(metrics.ascent))
    face.set("descent", str(-metrics.descent))
    missing = etree.SubElement(font_el, f"{{{SVG_NS}}}missing-glyph")
    missing.set("horiz-adv-x", "0")

    for glyph in glyphs:
        pen = SVGPathPen(glyph_set)
        glyph_set[glyph.name].draw(pen)
        el = etree.SubElement(font_el, f"{{{SVG_NS}}}glyph")
        el.set("glyph-name", glyph.name)
        el.set("unicode", chr(glyph.codepoint))
        el.set("horiz-adv-x", str(hmtx[glyph.name][0]))
        el.set("d", pen.getCommands())

    output.write_bytes(etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=True))


def build_css(glyphs: Sequence[Glyph], font_name: str, css_prefix: str, formats: Sequence[str], cache_token: str = "") -> str:
    query = f"?t={cache_token}" if cache_token else ""
    sources = []
    for ext in ("woff2", "woff", "ttf", "svg"):
        if ext not in formats:
            continue
        fragment = f"#{font_name}" if ext == "svg" else ""
        sources.append(f'url("{font_name}.{ext}{query}{fragment}") format("{CSS_FORMATS[ext]}")')

    lines = [
        "@font-face {",
        f'  font-family: "{font_name}";',
        "  src: " + ",\n       ".join(sources) + ";",
        "  font-weight: normal;",
        "  font-style: normal;",
        "  font-display: block;",
        "}",
        "",
        f'[class^="{css_prefix}-"], [class*=" {css_prefix}-"] {{',
        f'  font-family: "{font_name}" !important;',
        "  font-style: normal;",
        "  font-weight: normal;",
        "  line-height: 1;",
        "  -webkit-font-smoothing: antialiased;",
        "  -moz-osx-font-smoothing: grayscale;",
        "}",
        "",
    ]
    for glyph in glyphs:
        lines.append(f'.{css_prefix}-{glyph.name}:before {{ content: "{glyph.css_code}"; }}')
    return "\n".join(lines) + "\n"


def assign_codepoints(svg_dir: Path, start: int) -> List[Glyph]:
    glyphs = []
    seen = {}
    for offset, path in enumerate(find_svg_files(svg_dir)):
        name = icon_name(path, svg_dir)
        if name in seen:
            raise FontError(f"{path}: glyph name {name!r} is already used by {seen[name]}")
        seen[name] = path
        glyphs.append(Glyph(name=name, codepoint=start + offset, source=path))
    return glyphs


def compile_font(
    svg_dir: Path,
    out_dir: Path,
    font_name: str,
    css_prefix: str,
    metrics: FontMetrics = FontMetrics(),
    formats: Sequence[str] = FORMATS,
    cache_token: str = "",
) -> CompiledFont:
    unknown = [f for f in formats if f not in FORMATS]
    if unknown:
        raise FontError(f"Unsupported font formats: {', '.join(unknown)}")

    glyphs = assign_codepoints(svg_dir, metrics.start_codepoint)
    if not glyphs:
        raise FontError(f"No SVG files found in {svg_dir}")

    out_dir.mkdir(parents=True, exist_ok=True)
    ttf = out_dir / f"{font_name}.ttf"
    build_ttf(glyphs, font_name, metrics, ttf)

    result = CompiledFont(font_name=font_name, css=out_dir / f"{font_name}.css", glyphs=glyphs)
    result.files["ttf"] = ttf
    for flavor in ("woff", "woff2"):
        if flavor in formats:
            font = TTFont(str(ttf))
            font.flavor = flavor
            path = out_dir / f"{font_name}.{flavor}"
            font.save(str(path))
            result.files[flavor] = path
    if "svg" in formats:
        path = out_dir / f"{font_name}.svg"
        build_svg_font(ttf, glyphs, font_name, metrics, path)
        result.files["svg"] = path
    if "ttf" not in formats:
        ttf.unlink()
        del result.files["ttf"]

    result.css.write_text(build_css(glyphs, font_name, css_prefix, formats, cache_token), encoding="utf-8")
    logging.debug(f"Compiled {len(glyphs)} glyphs into {', '.join(sorted(result.files))}")
    return result
