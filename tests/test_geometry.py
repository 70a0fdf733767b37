from __future__ import annotations

import math

import pytest

from conftest import make_svg
from svg_visual_compare import svg_geometry
from svg_visual_compare.backend import parse_svg


@pytest.mark.parametrize(
    "value, expected",
    [
        ("100", 100.0),
        ("100px", 100.0),
        (" 2.5e1 ", 25.0),
        ("1in", 96.0),
        ("72pt", 96.0),
        ("25.4mm", 96.0),
        ("2.54cm", 96.0),
    ],
)
def test_parse_length_absolute_units(value, expected):
    assert svg_geometry.parse_length(value) == pytest.approx(expected)


@pytest.mark.parametrize("value", ["100%", "50 %", "", "abc", "10em", None])
def test_parse_length_rejects_relative_and_garbage(value):
    assert svg_geometry.parse_length(value) is None


def test_parse_view_box_accepts_commas_and_rejects_degenerate():
    assert svg_geometry.parse_view_box("0,0, 100 50") == (0.0, 0.0, 100.0, 50.0)
    assert svg_geometry.parse_view_box("0 0 0 50") is None
    assert svg_geometry.parse_view_box("0 0 100") is None
    assert svg_geometry.parse_view_box("a b c d") is None


def test_parse_transform_composes_left_to_right():
    m = svg_geometry.parse_transform("translate(10 20) scale(2)")
    assert svg_geometry.apply(m, (1.0, 1.0)) == pytest.approx((12.0, 22.0))

    rot = svg_geometry.parse_transform("rotate(90 5 5)")
    assert svg_geometry.apply(rot, (10.0, 5.0)) == pytest.approx((5.0, 10.0))


def test_path_points_relative_and_closepath():
    pts = svg_geometry.path_points("m 10 10 h 20 v 5 z l 1 1")
    assert pts[:3] == [(10.0, 10.0), (30.0, 10.0), (30.0, 15.0)]
    # after z the current point is the subpath start
    assert pts[-1] == (11.0, 11.0)


def test_path_points_arc_bulges_outside_chord():
    pts = svg_geometry.path_points("M 0 0 A 10 10 0 0 1 20 0")
    ys = [y for _, y in pts]
    assert min(ys) == pytest.approx(-10.0, abs=0.05)
    assert pts[-1] == (20.0, 0.0)


def test_tokenize_path_splits_packed_arc_flags():
    assert svg_geometry.tokenize_path("M0 0a10 10 0 0120 0") == [
        "M", "0", "0", "a", "10", "10", "0", "0", "1", "20", "0",
    ]
    # repeated implicit arcs keep flag positions
    tokens = svg_geometry.tokenize_path("a1 1 0 001 1 1 1 0 10.5.5")
    assert tokens[4:6] == ["0", "0"]
    assert tokens[11:] == ["1", "0", ".5", ".5"]


def test_path_points_minified_arc_matches_spaced_form():
    packed = svg_geometry.path_points("M0 0a10 10 0 0120 0")
    spaced = svg_geometry.path_points("M 0 0 a 10 10 0 0 1 20 0")
    assert packed == spaced
    assert min(y for _, y in packed) == pytest.approx(-10.0, abs=0.05)


def test_minified_icon_has_bounds():
    root = parse_svg(make_svg('<path d="M0 0h10a5 5 0 0110 0v10H0z"/>'))
    bounds = svg_geometry.bbox(root)
    assert bounds is not None
    assert (bounds.min_x, bounds.max_x, bounds.max_y) == pytest.approx((0.0, 20.0, 10.0))
    assert bounds.min_y == pytest.approx(-5.0, abs=0.05)


def test_path_with_garbage_is_ignored_with_warning(caplog):
    root = parse_svg(make_svg('<path id="bad" d="M0 0 L 10 # 10"/><rect width="1" height="1"/>'))
    bounds = svg_geometry.bbox(root)
    assert (bounds.max_x, bounds.max_y) == (1.0, 1.0)
    assert any("bad" in record.getMessage() for record in caplog.records)


def test_text_anchor_uses_first_position():
    root = parse_svg(
        make_svg('<text id="t"><tspan x="4 8" y="9">ab</tspan></text><rect id="r" width="1" height="1"/>')
    )
    assert svg_geometry.text_anchor(svg_geometry.find_by_id(root, "t")) == (4.0, 9.0)
    assert svg_geometry.text_anchor(svg_geometry.find_by_id(root, "r")) is None


def test_path_points_malformed_raises():
    with pytest.raises(ValueError):
        svg_geometry.path_points("10 10 L 5")


def test_bbox_group_applies_child_transforms_but_not_own():
    root = parse_svg(
        make_svg(
            '<g id="grp" transform="translate(100 100)">'
            '<rect x="0" y="0" width="10" height="10" transform="translate(5 0)"/>'
            '<circle cx="40" cy="40" r="5"/>'
            "</g>"
        )
    )
    group = svg_geometry.find_by_id(root, "grp")
    bounds = svg_geometry.bbox(group)
    assert (bounds.min_x, bounds.min_y, bounds.max_x, bounds.max_y) == pytest.approx((5, 0, 45, 45))


def test_bbox_ignores_defs_and_nested_svg_maps_viewbox():
    root = parse_svg(
        make_svg(
            '<defs><rect width="1000" height="1000"/></defs>'
            '<svg x="10" y="10" width="20" height="20" viewBox="0 0 10 10">'
            '<rect width="10" height="10"/>'
            "</svg>"
        )
    )
    bounds = svg_geometry.bbox(root)
    assert (bounds.min_x, bounds.min_y, bounds.width, bounds.height) == pytest.approx((10, 10, 20, 20))


def test_rotated_ellipse_bounds_are_sampled():
    root = parse_svg(make_svg('<g><ellipse cx="0" cy="0" rx="10" ry="5" transform="rotate(90)"/></g>'))
    bounds = svg_geometry.bbox(root)
    assert bounds.width == pytest.approx(10.0, abs=0.05)
    assert bounds.height == pytest.approx(20.0, abs=0.05)


def test_find_root_svg_inside_foreign_wrapper():
    root = parse_svg(f'<html><body>{make_svg(width="5", height="5")}</body></html>')
    svg = svg_geometry.find_root_svg(root)
    assert svg is not None
    assert svg.get("width") == "5"
    assert svg_geometry.find_by_id(root, "missing") is None


def test_bounds_center():
    b = svg_geometry.Bounds(0.0, 0.0, 10.0, 4.0)
    assert b.center == (5.0, 2.0)
    assert math.isclose(b.width * b.height, 40.0)
