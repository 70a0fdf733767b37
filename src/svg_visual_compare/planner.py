"""Render planning: pixel sizes, canvas and alignment offsets for a pair.

Everything here is pure.  Element centroids for ``object:<id>`` alignment are
resolved by the caller through the rendering backend and passed in.
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Tuple

from .errors import AlignmentError, PlanError, ValidationError
from .types import (
    Alignment,
    AlignmentMode,
    GeometryInfo,
    Point,
    RenderPlan,
    RenderSize,
    ResolutionMode,
)


log = logging.getLogger(__name__)

DEFAULT_WIDTH = 800.0
DEFAULT_HEIGHT = 600.0
DEFAULT_SCALE = 4.0

ALIGN_RULES = frozenset(f"x{h}Y{v}" for h in ("Min", "Mid", "Max") for v in ("Min", "Mid", "Max"))

Size = Tuple[float, float]


def validate_align_rule(rule: str, *, name: str = "rule") -> str:
    if rule not in ALIGN_RULES:
        allowed = ", ".join(sorted(ALIGN_RULES))
        raise ValidationError(f"invalid {name} {rule!r} (expected one of: {allowed})")
    return rule


def _nominal_size(info: GeometryInfo) -> Size:
    return (
        info.width if info.width is not None else DEFAULT_WIDTH,
        info.height if info.height is not None else DEFAULT_HEIGHT,
    )


def _viewbox_size(info: GeometryInfo) -> Size:
    # attributes first: they define the intended rendered size
    vb = info.view_box
    width = info.width if info.width is not None else (vb.width if vb else DEFAULT_WIDTH)
    height = info.height if info.height is not None else (vb.height if vb else DEFAULT_HEIGHT)
    return width, height


def base_sizes(
    info1: GeometryInfo, info2: GeometryInfo, resolution: ResolutionMode
) -> Tuple[Size, Size]:
    """Unscaled ``(w, h)`` for each document under ``resolution``."""

    if resolution is ResolutionMode.NOMINAL:
        return _nominal_size(info1), _nominal_size(info2)
    if resolution in (ResolutionMode.VIEWBOX, ResolutionMode.FULL):
        return _viewbox_size(info1), _viewbox_size(info2)
    if resolution in (ResolutionMode.SCALE, ResolutionMode.STRETCH):
        (w1, h1), (w2, h2) = _viewbox_size(info1), _viewbox_size(info2)
        shared = (max(w1, w2), max(h1, h2))
        return shared, shared
    if resolution is ResolutionMode.CLIP:
        (w1, h1), (w2, h2) = _viewbox_size(info1), _viewbox_size(info2)
        shared = (min(w1, w2), min(h1, h2))
        return shared, shared
    raise PlanError(f"unhandled resolution mode: {resolution!r}")


def fit_instruction(
    resolution: ResolutionMode, *, meet_rule: str = "xMidYMid", slice_rule: str = "xMidYMid"
) -> Optional[str]:
    """``preserveAspectRatio`` value the rasterizer should force, if any."""

    if resolution is ResolutionMode.SCALE:
        return f"{meet_rule} meet"
    if resolution is ResolutionMode.STRETCH:
        return "none"
    if resolution is ResolutionMode.CLIP:
        return f"{slice_rule} slice"
    if resolution in (ResolutionMode.NOMINAL, ResolutionMode.VIEWBOX, ResolutionMode.FULL):
        return None
    raise PlanError(f"unhandled resolution mode: {resolution!r}")


def anchor_for(
    info: GeometryInfo, alignment: Alignment, centroid: Optional[Point] = None
) -> Point:
    mode = alignment.mode
    if mode is AlignmentMode.ORIGIN:
        return Point(0.0, 0.0)
    if mode is AlignmentMode.VIEWBOX_TOPLEFT:
        return info.view_box.top_left if info.view_box else Point(0.0, 0.0)
    if mode is AlignmentMode.VIEWBOX_CENTER:
        return info.view_box.center if info.view_box else Point(0.0, 0.0)
    if mode is AlignmentMode.OBJECT:
        if centroid is None:
            raise AlignmentError(f"element #{alignment.object_id} not found")
        return centroid
    if mode is AlignmentMode.CUSTOM:
        if alignment.point is None:
            raise AlignmentError("custom alignment without a point")
        return alignment.point
    raise AlignmentError(f"unhandled alignment mode: {mode!r}")


def _pixels(value: float, scale: float, what: str) -> int:
    scaled = value * scale
    if not math.isfinite(scaled) or scaled <= 0:
        raise PlanError(f"computed {what} is not positive: {scaled!r}")
    # round first so 0.1 * 3 does not ceil to an extra pixel
    return int(math.ceil(round(scaled, 6)))


def plan_render(
    info1: GeometryInfo,
    info2: GeometryInfo,
    *,
    alignment: Alignment = Alignment(),
    resolution: ResolutionMode = ResolutionMode.VIEWBOX,
    scale: float = DEFAULT_SCALE,
    meet_rule: str = "xMidYMid",
    slice_rule: str = "xMidYMid",
    centroids: Tuple[Optional[Point], Optional[Point]] = (None, None),
) -> RenderPlan:
    """Compute the :class:`RenderPlan` for a pair.

    Offsets are in user units: ``anchor1 - anchor2``, carried by document 1.
    """

    if not math.isfinite(scale) or scale < 1:
        raise ValidationError(f"scale must be >= 1, got {scale!r}")
    resolution = ResolutionMode.parse(resolution)
    alignment = Alignment.parse(alignment)
    validate_align_rule(meet_rule, name="meet rule")
    validate_align_rule(slice_rule, name="slice rule")

    anchors = []
    for which, (info, centroid) in enumerate(((info1, centroids[0]), (info2, centroids[1])), start=1):
        try:
            anchors.append(anchor_for(info, alignment, centroid))
        except AlignmentError as exc:
            raise AlignmentError(f"{exc.message} in document {which}") from None
    anchor1, anchor2 = anchors

    (w1, h1), (w2, h2) = base_sizes(info1, info2, resolution)
    doc1 = RenderSize(_pixels(w1, scale, "width of document 1"), _pixels(h1, scale, "height of document 1"))
    doc2 = RenderSize(_pixels(w2, scale, "width of document 2"), _pixels(h2, scale, "height of document 2"))

    plan = RenderPlan(
        doc1=doc1,
        doc2=doc2,
        offset_x=anchor1.x - anchor2.x,
        offset_y=anchor1.y - anchor2.y,
        canvas_width=max(doc1.width, doc2.width),
        canvas_height=max(doc1.height, doc2.height),
        resolution=resolution,
        alignment=alignment,
        scale=float(scale),
        fit=fit_instruction(resolution, meet_rule=meet_rule, slice_rule=slice_rule),
        anchor1=anchor1,
        anchor2=anchor2,
    )
    log.debug(
        "Plan: %dx%d vs %dx%d on %dx%d canvas, offset (%g, %g)",
        doc1.width, doc1.height, doc2.width, doc2.height,
        plan.canvas_width, plan.canvas_height, plan.offset_x, plan.offset_y,
    )
    return plan


__all__ = [
    "ALIGN_RULES",
    "anchor_for",
    "base_sizes",
    "fit_instruction",
    "plan_render",
    "validate_align_rule",
]
