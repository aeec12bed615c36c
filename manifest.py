import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

from utils import BuildError

MANIFEST_NAME = "manifest.json"
MANIFEST_VERSION = "1.0.0"


def format_size(size: int) -> str:
    if size < 1024:
        return f"{size}B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f}KB"
    return f"{size / (1024 * 1024):.1f}MB"


def collect_sizes(dest: Path, filenames: Iterable[str]):
    """Sizes of the files that exist in dest; absent ones are left out."""
    sizes: Dict[str, int] = {}
    for name in filenames:
        path = Path(dest) / name
        if not path.is_file():
            logging.debug(f"{name} not found, leaving it out of the manifest")
            continue
        sizes[name] = path.stat().st_size
    return sizes


def write_manifest(
    dest: Path,
    content_hash: str,
    base_name: str,
    css: str,
    fonts: Mapping[str, str],
    icons: List[str],
    extra_files: Iterable[str] = (),
    generated_at: Optional[datetime] = None,
) -> Path:
    """
    Write manifest.json describing the current revision of base_name in dest.

    The whole document is regenerated; nothing from a previous manifest survives.
    """
    if generated_at is None:
        generated_at = datetime.now(timezone.utc)

    expected = [css, *fonts.values(), *extra_files]
    sizes = collect_sizes(dest, dict.fromkeys(expected))

    manifest = {
        "version": MANIFEST_VERSION,
        "name": base_name,
        "hash": content_hash,
        "generatedAt": generated_at.isoformat().replace("+00:00", "Z"),
        "css": css,
        "fonts": dict(fonts),
        "icons": list(icons),
        "totalSize": sum(sizes.values()),
        "fileSizes": {name: format_size(size) for name, size in sizes.items()},
    }

    path = Path(dest) / MANIFEST_NAME
    try:
        path.write_text(json.dumps(manifest, indent=2) + "\n", encoding="utf-8")
    except OSError as e:
        raise BuildError(f"Could not write manifest {path}: {e}") from e
    logging.debug(f"Wrote manifest {path}")
    return path
