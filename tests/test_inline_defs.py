"""Tests for inlining use references."""

from __future__ import annotations

import pytest
from lxml import etree

from inline_defs import XLINK_HREF, InlineMode, build_index, inline_defs, local_name

HEADER = '<svg xmlns="http://www.w3.org/2000/svg" xmlns:xlink="http://www.w3.org/1999/xlink">'


def doc(body: str):
    return etree.fromstring(f"{HEADER}{body}</svg>")


def find_all(root, name: str):
    return root.xpath(f"//*[local-name()='{name}']")


def test_single_use_definition_moves_to_use_site() -> None:
    root = doc('<defs><path id="a" d="M0 0h10v10z"/></defs><use xlink:href="#a"/>')
    out = inline_defs(root)

    assert [local_name(c) for c in out] == ["path"]
    assert out[0].get("id") == "a"
    assert out[0].get("d") == "M0 0h10v10z"
    assert find_all(out, "use") == []
    assert find_all(out, "defs") == []


def test_use_position_becomes_translate_wrapper() -> None:
    root = doc('<defs><path id="a" d="M0 0z"/></defs><use xlink:href="#a" x="10" y="5"/>')
    out = inline_defs(root)

    g = out[0]
    assert local_name(g) == "g"
    assert dict(g.attrib) == {"transform": "translate(10, 5)"}
    assert [local_name(c) for c in g] == ["path"]
    assert g[0].get("x") is None


def test_use_with_only_x_translates_horizontally() -> None:
    root = doc('<defs><path id="a" d="M0 0z"/></defs><use xlink:href="#a" x="7"/>')
    out = inline_defs(root)

    assert local_name(out[0]) == "g"
    assert out[0].get("transform") == "translate(7)"


def test_use_without_position_is_not_wrapped() -> None:
    root = doc('<defs><path id="a" d="M0 0z"/></defs><use xlink:href="#a"/>')
    out = inline_defs(root)

    assert local_name(out[0]) == "path"
    assert find_all(out, "g") == []


def test_use_attributes_win_over_target() -> None:
    root = doc('<defs><path id="a" d="M0 0z" fill="red"/></defs><use xlink:href="#a" fill="blue" class="x"/>')
    out = inline_defs(root)

    path = out[0]
    assert path.get("fill") == "blue"
    assert path.get("class") == "x"
    assert path.get(XLINK_HREF) is None
    assert path.get("href") is None


def test_shared_definition_kept_in_unique_mode() -> None:
    root = doc('<defs><path id="a" d="M0 0z"/></defs><use xlink:href="#a"/><use xlink:href="#a" x="3"/>')
    out = inline_defs(root, InlineMode.UNIQUE_ONLY)

    paths = find_all(out, "path")
    assert len(paths) == 1
    assert paths[0].get("id") == "a"
    assert local_name(paths[0].getparent()) == "defs"
    uses = find_all(out, "use")
    assert [u.get(XLINK_HREF) for u in uses] == ["#a", "#a"]
    assert uses[1].get("x") == "3"


def test_flatten_duplicates_shared_definition_per_use() -> None:
    root = doc('<defs><path id="a" d="M0 0z"/></defs><use xlink:href="#a"/><use xlink:href="#a" x="3"/>')
    out = inline_defs(root, "flatten")

    assert find_all(out, "use") == []
    assert find_all(out, "defs") == []
    paths = find_all(out, "path")
    assert len(paths) == 2
    assert all(p.get("id") is None for p in paths)
    assert paths[0] is not paths[1]
    assert local_name(paths[1].getparent()) == "g"


def test_flatten_keeps_unreferenced_definitions() -> None:
    root = doc(
        '<defs><linearGradient id="grad"/><path id="a" d="M0 0z"/></defs>'
        '<use xlink:href="#a"/><use xlink:href="#a"/>'
    )
    out = inline_defs(root, InlineMode.FLATTEN_SHARED)

    gradients = find_all(out, "linearGradient")
    assert len(gradients) == 1
    assert gradients[0].get("id") == "grad"


def test_unresolved_reference_left_as_is() -> None:
    root = doc('<use xlink:href="#missing" x="1"/>')
    out = inline_defs(root)

    uses = find_all(out, "use")
    assert len(uses) == 1
    assert uses[0].get(XLINK_HREF) == "#missing"
    assert uses[0].get("x") == "1"


def test_use_without_reference_left_as_is() -> None:
    root = doc('<path id="a" d="M0 0z"/><use width="3"/>')
    index = build_index(root)
    out = inline_defs(root)

    assert dict(index.counts) == {}
    assert [local_name(c) for c in out] == ["path", "use"]
    assert out[1].get("width") == "3"


def test_plain_href_is_understood() -> None:
    root = doc('<defs><circle id="c" r="4"/></defs><use href="#c"/>')
    out = inline_defs(root)

    assert [local_name(c) for c in out] == ["circle"]
    assert out[0].get("r") == "4"


def test_input_tree_is_not_modified() -> None:
    root = doc('<defs><path id="a" d="M0 0z"/></defs><use xlink:href="#a" x="1" y="2"/>')
    before = etree.tostring(root)
    inline_defs(root)
    inline_defs(root, InlineMode.FLATTEN_SHARED)
    assert etree.tostring(root) == before


def test_accepts_element_tree() -> None:
    tree = etree.ElementTree(doc('<defs><path id="a" d="M0 0z"/></defs><use xlink:href="#a"/>'))
    out = inline_defs(tree)
    assert local_name(out[0]) == "path"


def test_self_containing_target_is_not_expanded() -> None:
    root = doc('<g id="loop"><use xlink:href="#loop"/></g><use xlink:href="#loop"/>')
    out = inline_defs(root, InlineMode.FLATTEN_SHARED)

    assert len(find_all(out, "use")) == 2
    assert out[0].get("id") == "loop"


def test_chained_use_copied_one_level() -> None:
    root = doc(
        '<defs><path id="p" d="M0 0z"/><use id="u" xlink:href="#p"/></defs>'
        '<use xlink:href="#u"/>'
    )
    out = inline_defs(root)

    # The outer use resolves to a copy of the inner use, whose target stays put.
    paths = find_all(out, "path")
    assert len(paths) == 1
    assert paths[0].get("id") == "p"
    uses = find_all(out, "use")
    assert len(uses) == 1
    assert uses[0].get(XLINK_HREF) == "#p"
    assert local_name(uses[0].getparent()) == "svg"


def test_unknown_mode_rejected() -> None:
    with pytest.raises(ValueError, match="Unknown inline mode"):
        inline_defs(doc(""), "sometimes")


def test_flatten_copies_inside_shared_target_have_no_ids() -> None:
    root = doc(
        '<defs><g id="s"><use href="#p"/></g><path id="p" d="M0 0z"/></defs>'
        '<use href="#s"/><use href="#s"/>'
    )
    out = inline_defs(root, InlineMode.FLATTEN_SHARED)

    assert [local_name(c) for c in out] == ["g", "g"]
    assert len(find_all(out, "path")) == 2
    assert out.xpath("//@id") == []
