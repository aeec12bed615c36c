from __future__ import annotations

from pathlib import Path

import pytest

SVG_HEADER = '<svg xmlns="http://www.w3.org/2000/svg" xmlns:xlink="http://www.w3.org/1999/xlink"'

SQUARE = f'{SVG_HEADER} viewBox="0 0 24 24"><path d="M4 4h16v16H4z"/></svg>'
CIRCLE = f'{SVG_HEADER} viewBox="0 0 24 24"><circle cx="12" cy="12" r="8"/></svg>'
TRIANGLE = f'{SVG_HEADER} width="24" height="24"><polygon points="12,2 22,22 2,22"/></svg>'


def write_icon(root: Path, relative: str, content: str) -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def icon_dir(tmp_path: Path) -> Path:
    """A small source tree: two top-level icons and one nested one."""
    src = tmp_path / "icons"
    write_icon(src, "square.svg", SQUARE)
    write_icon(src, "circle.svg", CIRCLE)
    write_icon(src, "shapes/Big Triangle.svg", TRIANGLE)
    return src
