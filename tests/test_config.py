"""Tests for loading the batch configuration."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from config import CONFIG_NAME, ConfigError, find_config, load_config, parse_icon_set
from font import FORMATS


def write_config(directory: Path, data: dict) -> Path:
    path = directory / CONFIG_NAME
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_defaults_are_merged_and_paths_resolved(tmp_path: Path) -> None:
    write_config(
        tmp_path,
        {
            "defaults": {"hash_length": 8, "href_base_path": "/static/"},
            "configurations": [
                {"name": "app", "src": "icons/app", "dist": "public/sprite", "reference_files": ["src/sprite.ts"]},
                {"name": "font", "kind": "font", "src": "icons/font", "dist": "public/fonts", "hash_length": 12},
            ],
        },
    )

    batch = load_config(Path(CONFIG_NAME), cwd=tmp_path)
    app, font = batch.configurations

    assert batch.names() == ["app", "font"]
    assert app.hash_length == 8
    assert app.href_base_path == "/static/"
    assert app.src == (tmp_path / "icons" / "app").resolve()
    assert app.reference_files == ((tmp_path / "src" / "sprite.ts").resolve(),)
    assert font.hash_length == 12
    assert font.formats == FORMATS


def test_kind_dependent_defaults(tmp_path: Path) -> None:
    sprite = parse_icon_set({"name": "s", "src": "a", "dist": "b"}, tmp_path)
    font = parse_icon_set({"name": "f", "kind": "font", "src": "a", "dist": "b"}, tmp_path)

    assert (sprite.kind, sprite.separator, sprite.optimizer, sprite.base_name) == ("sprite", "-", "default", "icon-sprite")
    assert (font.separator, font.optimizer, font.base_name) == (".", "icon_font", "icons")


def test_inline_mode_overrides_preset(tmp_path: Path) -> None:
    cfg = parse_icon_set({"name": "s", "src": "a", "dist": "b", "inline_mode": "flatten"}, tmp_path)
    assert ("inline_defs", {"mode": "flatten"}) in cfg.optimizer_stages()
    assert ("inline_defs", {"mode": "unique"}) not in cfg.optimizer_stages()


def test_custom_stages(tmp_path: Path) -> None:
    cfg = parse_icon_set(
        {
            "name": "s",
            "src": "a",
            "dist": "b",
            "optimizer": "custom",
            "stages": ["strip_comments", {"name": "remove_attrs", "params": {"attrs": ["fill"]}}],
        },
        tmp_path,
    )
    assert cfg.optimizer_stages() == ["strip_comments", ("remove_attrs", {"attrs": ["fill"]})]


def test_metrics(tmp_path: Path) -> None:
    cfg = parse_icon_set(
        {"name": "f", "kind": "font", "src": "a", "dist": "b", "metrics": {"font_height": 512, "ascent": 448, "descent": 64}},
        tmp_path,
    )
    assert cfg.metrics.font_height == 512
    assert cfg.metrics.start_codepoint == 0xEA01


@pytest.mark.parametrize(
    "raw, message",
    [
        ({"name": "x", "src": "a", "dist": "b", "colour": "red"}, "Unknown configuration keys"),
        ({"name": "x", "dist": "b"}, "missing 'src'"),
        ({"name": "x", "src": "a", "dist": "b", "kind": "png"}, "kind must be one of"),
        ({"name": "x", "src": "a", "dist": "b", "hash_length": 0}, "hash_length"),
        ({"name": "x", "src": "a", "dist": "b", "hash_separator": "_"}, "hash_separator"),
        ({"name": "x", "src": "a", "dist": "b", "optimizer": "extreme"}, "unknown optimizer preset"),
        ({"name": "x", "src": "a", "dist": "b", "optimizer": "custom"}, "needs a list of stages"),
        ({"name": "x", "src": "a", "dist": "b", "inline_mode": "sometimes"}, "Unknown inline mode"),
        ({"name": "x", "src": "a", "dist": "b", "formats": ["eot"]}, "unsupported font formats"),
        ({"name": "x", "src": "a", "dist": "b", "metrics": {"size": 3}}, "invalid font metrics"),
    ],
)
def test_invalid_configurations(tmp_path: Path, raw: dict, message: str) -> None:
    with pytest.raises(ConfigError, match=message):
        parse_icon_set(raw, tmp_path)


def test_config_found_in_parent_directory(tmp_path: Path) -> None:
    path = write_config(tmp_path, {"configurations": []})
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)

    assert find_config(Path(CONFIG_NAME), cwd=nested) == path.resolve()
    assert find_config(Path("other.json"), cwd=nested) is None


def test_missing_config(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / CONFIG_NAME)


def test_invalid_json(tmp_path: Path) -> None:
    (tmp_path / CONFIG_NAME).write_text("{", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid JSON"):
        load_config(tmp_path / CONFIG_NAME)


def test_duplicate_names(tmp_path: Path) -> None:
    entry = {"name": "app", "src": "a", "dist": "b"}
    write_config(tmp_path, {"configurations": [entry, entry]})
    with pytest.raises(ConfigError, match="duplicate configuration names: app"):
        load_config(tmp_path / CONFIG_NAME)


def test_select(tmp_path: Path) -> None:
    write_config(
        tmp_path,
        {"configurations": [{"name": "a", "src": "a", "dist": "a"}, {"name": "b", "src": "b", "dist": "b"}]},
    )
    batch = load_config(tmp_path / CONFIG_NAME)

    assert [c.name for c in batch.select(None)] == ["a", "b"]
    assert [c.name for c in batch.select(["b"])] == ["b"]
    with pytest.raises(ConfigError, match="Configuration not found: c"):
        batch.select(["c"])
