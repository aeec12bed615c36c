#!python3
"""Build revisioned icon fonts and SVG sprites from directories of icon SVGs."""

import argparse
import dataclasses
import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from tqdm import tqdm

from config import CONFIG_NAME, KINDS, BatchConfig, ConfigError, IconSetConfig, load_config, parse_icon_set
from font import FORMATS, compile_font
from manifest import write_manifest
from pack import pack_sprite
from revision import Revisioner, content_hash, destination_lock, find_svg_files
from svg import OptimizeError, optimize_file, serialize_svg
from utils import BuildError, setup_logging


@dataclass
class BuildResult:
    name: str
    kind: str
    success: bool
    content_hash: str = ""
    files: Dict[str, str] = field(default_factory=dict)
    icons: List[str] = field(default_factory=list)
    url: str = ""
    error: str = ""


def source_files(cfg: IconSetConfig) -> List[Path]:
    files = find_svg_files(cfg.src)
    if not files:
        raise BuildError(f"No SVG files found in {cfg.src}")
    logging.info(f"[{cfg.name}] Found {len(files)} SVG files in {cfg.src}")
    return files


def revision_hash(cfg: IconSetConfig, files: Sequence[Path]) -> str:
    if not cfg.enable_hash_revving:
        return ""
    digest = content_hash(files, cfg.hash_length)
    logging.info(f"[{cfg.name}] Content hash: {digest}")
    return digest


def build_sprite(cfg: IconSetConfig, progress: bool = True) -> BuildResult:
    files = source_files(cfg)
    digest = revision_hash(cfg, files)

    sprite = pack_sprite(files, cfg.src, cfg.optimizer_stages(), progress=progress)
    data = serialize_svg(sprite)

    revisioner = Revisioner(cfg.sprite_name, ["svg"], digest, cfg.separator, cfg.hash_length)
    written = revisioner.revise(cfg.dist, {"svg": data}, cfg.reference_files)
    sprite_file = written["svg"].name
    url = f"{cfg.href_base_path}{sprite_file}"

    logging.info(f"[{cfg.name}] Wrote {sprite_file} ({len(files)} icons, {len(data)} bytes)")
    return BuildResult(
        name=cfg.name,
        kind=cfg.kind,
        success=True,
        content_hash=digest,
        files={"svg": sprite_file},
        icons=[symbol.get("id") for symbol in sprite],
        url=url,
    )


def preprocess(cfg: IconSetConfig, files: Sequence[Path], output: Path, progress: bool = True):
    """Optimize every icon into output, keeping its path below src."""
    stages = cfg.optimizer_stages()
    total_before = total_after = 0
    for path in tqdm(files, desc="Optimizing SVGs", unit=" files", disable=not progress):
        try:
            before, after = optimize_file(path, output / path.relative_to(cfg.src), stages)
        except OptimizeError as e:
            raise BuildError(str(e)) from e
        total_before += before
        total_after += after
    logging.debug(f"[{cfg.name}] Optimized {total_before}B -> {total_after}B")


def build_font(cfg: IconSetConfig, progress: bool = True) -> BuildResult:
    files = source_files(cfg)
    digest = revision_hash(cfg, files)
    # Purge every format, so a format dropped from the config does not linger.
    revisioner = Revisioner(cfg.font_name, [*FORMATS, "css"], digest, cfg.separator, cfg.hash_length)

    with tempfile.TemporaryDirectory(prefix=f"{cfg.font_name}-") as tmp:
        processed = Path(tmp) / "svg"
        staging = Path(tmp) / "out"
        preprocess(cfg, files, processed, progress)
        compiled = compile_font(
            processed,
            staging,
            cfg.font_name,
            cfg.css_prefix,
            metrics=cfg.metrics,
            formats=cfg.formats,
            cache_token=digest,
        )

        icons = [glyph.name for glyph in compiled.glyphs]
        with destination_lock(cfg.dist):
            revisioner.purge(cfg.dist)
            published = revisioner.publish(staging, cfg.dist)
            revisioner.rewrite_references([published["css"], *cfg.reference_files])
            fonts = {ext: published[ext].name for ext in cfg.formats}
            if digest:
                write_manifest(
                    cfg.dist,
                    digest,
                    cfg.font_name,
                    css=published["css"].name,
                    fonts=fonts,
                    icons=icons,
                )
            else:
                logging.debug(f"[{cfg.name}] Hash revving disabled, no manifest written")

    logging.info(f"[{cfg.name}] Wrote {len(icons)} glyphs: {', '.join(sorted(fonts.values()))}")
    return BuildResult(
        name=cfg.name,
        kind=cfg.kind,
        success=True,
        content_hash=digest,
        files={**fonts, "css": published["css"].name},
        icons=icons,
    )


BUILDERS = {
    "sprite": build_sprite,
    "font": build_font,
}


def build_all(configs: Sequence[IconSetConfig], progress: bool = True) -> List[BuildResult]:
    """Build every icon set; a failing set is recorded and the others still run."""
    results = []
    for cfg in configs:
        logging.info(f"[{cfg.name}] Building {cfg.kind} from {cfg.src} into {cfg.dist}")
        try:
            result = BUILDERS[cfg.kind](cfg, progress=progress)
        except (BuildError, OSError, ValueError) as e:
            logging.error(f"[{cfg.name}] Failed: {e}")
            result = BuildResult(name=cfg.name, kind=cfg.kind, success=False, error=str(e))
        results.append(result)

    succeeded = sum(r.success for r in results)
    logging.info(f"Built {succeeded}/{len(results)} icon sets")
    return results


def batch_from_args(args) -> BatchConfig:
    if args.src is not None:
        if args.dist is None:
            raise ConfigError("--dist is required together with --src")
        raw = {
            "name": args.name[0] if args.name else args.kind,
            "kind": args.kind,
            "src": str(args.src),
            "dist": str(args.dist),
        }
        return BatchConfig(configurations=[parse_icon_set(raw, Path.cwd())])
    return load_config(args.config)


def apply_overrides(configs: List[IconSetConfig], args) -> List[IconSetConfig]:
    overrides = {}
    if args.hash_length is not None:
        overrides["hash_length"] = args.hash_length
    if args.no_hash_revving:
        overrides["enable_hash_revving"] = False
    if not overrides:
        return configs
    return [dataclasses.replace(cfg, **overrides) for cfg in configs]


def main(args, progress: bool = True) -> int:
    try:
        batch = batch_from_args(args)
        configs = batch.select(args.name if args.src is None else None)
        configs = apply_overrides(configs, args)
    except ConfigError as e:
        logging.error(str(e))
        return 1

    if args.list:
        for cfg in configs:
            print(f"{cfg.name}\t{cfg.kind}\t{cfg.src}\t{cfg.dist}\t{cfg.base_name}")
        return 0

    results = build_all(configs, progress=progress)
    return 0 if all(r.success for r in results) else 1


def parse_args(argv: Optional[Sequence[str]] = None):
    parser = argparse.ArgumentParser(
        description="Build icon fonts and SVG sprites with content-hashed filenames."
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=Path(CONFIG_NAME),
        help="Batch configuration file (searched in parent directories too)",
    )
    parser.add_argument(
        "--name",
        action="append",
        help="Only build the named configuration (repeatable)",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List the configurations and exit",
    )
    parser.add_argument(
        "--src",
        type=Path,
        help="Build a single icon set from this directory instead of a config file",
    )
    parser.add_argument(
        "--dist",
        type=Path,
        help="Output directory for --src",
    )
    parser.add_argument(
        "--kind",
        choices=KINDS,
        default="sprite",
        help="What to build for --src",
    )
    parser.add_argument(
        "--hash-length",
        type=int,
        help="Number of hex characters of the content hash in filenames",
    )
    parser.add_argument(
        "--no-hash-revving",
        action="store_true",
        help="Write plain filenames without a content hash",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def cli(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(args.debug)
    return main(args)


if __name__ == "__main__":
    raise SystemExit(cli())
