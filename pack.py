#!python3
"""Pack icon SVGs into a single sprite sheet of addressable <symbol> elements."""

import argparse
import logging
from pathlib import Path
from typing import Dict, Sequence

from lxml import etree
from tqdm import tqdm

from inline_defs import XLINK_NS
from revision import find_svg_files
from svg import SVG_NS, OptimizeError, StageSpec, optimize_svg, parse_svg, preset_stages, serialize_svg
from utils import BuildError, icon_name, setup_logging

# Attributes of an icon's root that still mean something on its symbol.
SYMBOL_ATTRS = ("viewBox", "preserveAspectRatio")


class PackError(BuildError):
    pass


def sprite_id(path: Path, src: Path) -> str:
    """Symbol id for an icon: its directories below src and its stem, joined by '-'."""
    return icon_name(Path(path), Path(src))


def add_symbol(sprite, root, symbol_id: str):
    symbol = etree.SubElement(sprite, f"{{{SVG_NS}}}symbol")
    symbol.set("id", symbol_id)
    for attr in SYMBOL_ATTRS:
        if root.get(attr) is not None:
            symbol.set(attr, root.get(attr))
    for child in list(root):
        symbol.append(child)
    return symbol


def pack_sprite(files: Sequence[Path], src: Path, stages: Sequence[StageSpec], progress: bool = True):
    sprite = etree.Element(f"{{{SVG_NS}}}svg", nsmap={None: SVG_NS, "xlink": XLINK_NS})
    seen: Dict[str, Path] = {}

    for path in tqdm(files, desc="Packing sprite", unit=" files", disable=not progress):
        symbol_id = sprite_id(path, src)
        if symbol_id in seen:
            raise PackError(f"{path}: symbol id {symbol_id!r} is already used by {seen[symbol_id]}")
        seen[symbol_id] = path

        try:
            root = optimize_svg(parse_svg(path), stages)
        except OptimizeError as e:
            raise PackError(f"{path}: {e}") from e
        add_symbol(sprite, root, symbol_id)

    return sprite


def pack(svg_dir: Path, output: Path, preset: str = "default"):
    files = find_svg_files(svg_dir)
    if not files:
        raise FileNotFoundError(f"No SVG files found in {svg_dir}")

    sprite = pack_sprite(files, svg_dir, preset_stages(preset))
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(serialize_svg(sprite))
    logging.info(f"Wrote {len(files)} icons to {output}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Pack SVGs into one symbol sprite, without revisioning")
    parser.add_argument(
        "svg_dir",
        type=Path,
        help="Directory containing the icon SVGs",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("sprite.svg"),
        help="Output sprite file",
    )
    parser.add_argument(
        "--preset",
        default="default",
        help="Optimizer preset applied to every icon",
    )
    args = parser.parse_args()

    setup_logging()
    pack(args.svg_dir, args.output, args.preset)
