from __future__ import annotations

import pytest

from svg_visual_compare.errors import AlignmentError, PlanError, ValidationError
from svg_visual_compare.planner import fit_instruction, plan_render
from svg_visual_compare.types import (
    Alignment,
    AlignmentMode,
    GeometryInfo,
    Point,
    ResolutionMode,
    ViewBox,
)


A = GeometryInfo(view_box=ViewBox(0, 0, 200, 100), width=200.0, height=100.0)
B = GeometryInfo(view_box=ViewBox(0, 0, 100, 100), width=100.0, height=100.0)


def _sizes(plan):
    return (plan.doc1.width, plan.doc1.height), (plan.doc2.width, plan.doc2.height)


@pytest.mark.parametrize("mode", [ResolutionMode.SCALE, ResolutionMode.STRETCH])
def test_scale_and_stretch_use_elementwise_max(mode):
    plan = plan_render(A, B, resolution=mode, scale=1)
    assert _sizes(plan) == ((200, 100), (200, 100))
    assert (plan.canvas_width, plan.canvas_height) == (200, 100)


def test_clip_uses_elementwise_min():
    plan = plan_render(A, B, resolution=ResolutionMode.CLIP, scale=1)
    assert _sizes(plan) == ((100, 100), (100, 100))


def test_fit_instructions_per_mode():
    assert plan_render(A, B, resolution="scale", scale=1, meet_rule="xMinYMax").fit == "xMinYMax meet"
    assert plan_render(A, B, resolution="stretch", scale=1).fit == "none"
    assert plan_render(A, B, resolution="clip", scale=1, slice_rule="xMaxYMin").fit == "xMaxYMin slice"
    for mode in ("nominal", "viewbox", "full"):
        assert fit_instruction(ResolutionMode(mode)) is None


def test_viewbox_mode_prefers_attributes_over_viewbox():
    info = GeometryInfo(view_box=ViewBox(0, 0, 100, 100), width=300.0, height=150.0)
    plan = plan_render(info, info, resolution="viewbox", scale=1)
    assert _sizes(plan)[0] == (300, 150)
    full = plan_render(info, info, resolution="full", scale=1)
    assert _sizes(full) == _sizes(plan)


def test_viewbox_mode_falls_back_to_viewbox_then_default():
    vb_only = GeometryInfo(view_box=ViewBox(5, 5, 40, 30))
    plan = plan_render(vb_only, GeometryInfo(), resolution="viewbox", scale=1)
    assert _sizes(plan) == ((40, 30), (800, 600))


def test_nominal_mode_ignores_viewbox():
    vb_only = GeometryInfo(view_box=ViewBox(0, 0, 40, 30))
    plan = plan_render(vb_only, GeometryInfo(width=10.0), resolution="nominal", scale=1)
    assert _sizes(plan) == ((800, 600), (10, 600))


def test_scale_multiplies_and_rounds_up():
    info = GeometryInfo(width=10.5, height=3.2)
    plan = plan_render(info, B, scale=4)
    assert _sizes(plan)[0] == (42, 13)
    assert _sizes(plan)[1] == (400, 400)
    assert (plan.canvas_width, plan.canvas_height) == (400, 400)

    default = plan_render(B, B)
    assert _sizes(default)[0] == (400, 400)


def test_scale_below_one_rejected():
    with pytest.raises(ValidationError):
        plan_render(A, B, scale=0.5)


def test_non_positive_dimensions_fail():
    with pytest.raises(PlanError):
        plan_render(GeometryInfo(width=0.0, height=10.0), B, scale=1)


def test_origin_alignment_has_zero_offset():
    plan = plan_render(A, B, scale=1)
    assert (plan.offset_x, plan.offset_y) == (0.0, 0.0)


def test_viewbox_alignments():
    a = GeometryInfo(view_box=ViewBox(10, 20, 100, 100))
    b = GeometryInfo(view_box=ViewBox(0, 0, 50, 50))
    topleft = plan_render(a, b, alignment=Alignment.parse("viewbox-topleft"), scale=1)
    assert (topleft.offset_x, topleft.offset_y) == (10.0, 20.0)
    center = plan_render(a, b, alignment=Alignment.parse("viewbox-center"), scale=1)
    assert (center.offset_x, center.offset_y) == (35.0, 45.0)
    assert center.to_dict()["svg2"]["offsetX"] == 0.0


def test_viewbox_alignment_without_viewbox_uses_origin():
    a = GeometryInfo(view_box=ViewBox(10, 20, 100, 100))
    plan = plan_render(a, GeometryInfo(width=5.0, height=5.0), alignment="viewbox-topleft", scale=1)
    assert (plan.offset_x, plan.offset_y) == (10.0, 20.0)


def test_custom_alignment_cancels_out():
    plan = plan_render(A, B, alignment=Alignment.parse("custom:12.5,-3"), scale=1)
    assert plan.anchor1 == plan.anchor2 == Point(12.5, -3.0)
    assert (plan.offset_x, plan.offset_y) == (0.0, 0.0)


def test_object_alignment_uses_resolved_centroids():
    alignment = Alignment.parse("object:logo")
    assert alignment.mode is AlignmentMode.OBJECT
    plan = plan_render(A, B, alignment=alignment, scale=1, centroids=(Point(30, 40), Point(10, 10)))
    assert (plan.offset_x, plan.offset_y) == (20.0, 30.0)


def test_object_alignment_missing_element_fails():
    alignment = Alignment.parse("object:logo")
    with pytest.raises(AlignmentError, match="document 2"):
        plan_render(A, B, alignment=alignment, scale=1, centroids=(Point(1, 1), None))
    with pytest.raises(AlignmentError, match="document 1"):
        plan_render(A, B, alignment=alignment, scale=1)


@pytest.mark.parametrize("text", ["object:", "custom:1", "custom:a,b", "object", "centre", "custom:inf,0"])
def test_bad_alignment_syntax(text):
    with pytest.raises(ValidationError):
        Alignment.parse(text)


def test_unknown_resolution_and_rule_rejected():
    with pytest.raises(ValidationError):
        plan_render(A, B, resolution="huge")
    with pytest.raises(ValidationError):
        plan_render(A, B, meet_rule="middle")


def test_plan_is_deterministic():
    kwargs = dict(alignment=Alignment.parse("viewbox-center"), resolution="scale", scale=2.5)
    assert plan_render(A, B, **kwargs) == plan_render(A, B, **kwargs)
