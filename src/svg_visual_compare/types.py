from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple

import numpy as np

from .errors import CompareError, ValidationError


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class ViewBox:
    x: float; y: float; width: float; height: float

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2.0, self.y + self.height / 2.0)

    @property
    def top_left(self) -> Point:
        return Point(self.x, self.y)

    def __str__(self) -> str:
        return f"{self.x:g} {self.y:g} {self.width:g} {self.height:g}"


RatioSource = Literal["viewBox", "attributes", "regenerated"]


@dataclass(frozen=True)
class GeometryInfo:
    """Intrinsic geometry of one document's root ``<svg>``.

    ``width``/``height`` are user pixels; percentage-valued attributes are
    recorded as absent.
    """

    view_box: Optional[ViewBox] = None
    width: Optional[float] = None
    height: Optional[float] = None
    preserve_aspect_ratio: Optional[str] = None

    @property
    def has_attributes(self) -> bool:
        return self.width is not None and self.height is not None

    @property
    def aspect_ratio(self) -> Optional[float]:
        if self.view_box is not None:
            return self.view_box.width / self.view_box.height
        if self.has_attributes:
            return self.width / self.height  # type: ignore[operator]
        return None

    @property
    def ratio_source(self) -> Optional[RatioSource]:
        if self.view_box is not None:
            return "viewBox"
        if self.has_attributes:
            return "attributes"
        return None

    def to_dict(self) -> Dict[str, Any]:
        vb = self.view_box
        return {
            "viewBox": None
            if vb is None
            else {"x": vb.x, "y": vb.y, "width": vb.width, "height": vb.height},
            "width": self.width,
            "height": self.height,
            "preserveAspectRatio": self.preserve_aspect_ratio,
        }


class ResolutionMode(str, Enum):
    NOMINAL = "nominal"
    VIEWBOX = "viewbox"
    FULL = "full"
    SCALE = "scale"
    STRETCH = "stretch"
    CLIP = "clip"

    @classmethod
    def parse(cls, value: "str | ResolutionMode") -> "ResolutionMode":
        if isinstance(value, ResolutionMode):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(mode.value for mode in cls)
            raise ValidationError(
                f"Unknown resolution mode {value!r} (expected one of: {allowed})"
            ) from None


class AlignmentMode(str, Enum):
    ORIGIN = "origin"
    VIEWBOX_TOPLEFT = "viewbox-topleft"
    VIEWBOX_CENTER = "viewbox-center"
    OBJECT = "object"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Alignment:
    mode: AlignmentMode = AlignmentMode.ORIGIN
    object_id: Optional[str] = None
    point: Optional[Point] = None

    @classmethod
    def parse(cls, value: "str | Alignment") -> "Alignment":
        """Parse ``origin``, ``viewbox-center``, ``object:<id>``, ``custom:<x>,<y>``..."""

        if isinstance(value, Alignment):
            return value
        text = str(value).strip()
        if text.startswith("object:"):
            object_id = text[len("object:"):].strip()
            if not object_id:
                raise ValidationError("object alignment requires an element id (object:<id>)")
            return cls(AlignmentMode.OBJECT, object_id=object_id)
        if text.startswith("custom:"):
            coords = text[len("custom:"):].split(",")
            if len(coords) != 2:
                raise ValidationError("custom alignment requires x,y coordinates (custom:<x>,<y>)")
            try:
                x, y = (float(part) for part in coords)
            except ValueError:
                raise ValidationError(f"custom alignment coordinates are not numbers: {text!r}") from None
            if not (math.isfinite(x) and math.isfinite(y)):
                raise ValidationError(f"custom alignment coordinates must be finite: {text!r}")
            return cls(AlignmentMode.CUSTOM, point=Point(x, y))
        try:
            mode = AlignmentMode(text.lower())
        except ValueError:
            mode = None
        if mode is None or mode in (AlignmentMode.OBJECT, AlignmentMode.CUSTOM):
            raise ValidationError(
                f"Unknown alignment mode {text!r} "
                "(expected origin, viewbox-topleft, viewbox-center, object:<id> or custom:<x>,<y>)"
            )
        return cls(mode)

    def __str__(self) -> str:
        if self.mode is AlignmentMode.OBJECT:
            return f"object:{self.object_id}"
        if self.mode is AlignmentMode.CUSTOM and self.point is not None:
            return f"custom:{self.point.x:g},{self.point.y:g}"
        return self.mode.value


@dataclass(frozen=True)
class RenderSize:
    width: int
    height: int


@dataclass(frozen=True)
class RenderPlan:
    """Device-pixel render sizes for both documents plus the alignment offset.

    The offset belongs to document 1; document 2 is the reference frame.
    """

    doc1: RenderSize
    doc2: RenderSize
    offset_x: float
    offset_y: float
    canvas_width: int
    canvas_height: int
    resolution: ResolutionMode = ResolutionMode.VIEWBOX
    alignment: Alignment = field(default_factory=Alignment)
    scale: float = 4.0
    fit: Optional[str] = None
    anchor1: Point = Point(0.0, 0.0)
    anchor2: Point = Point(0.0, 0.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "svg1": {"width": self.doc1.width, "height": self.doc1.height,
                     "offsetX": self.offset_x, "offsetY": self.offset_y},
            "svg2": {"width": self.doc2.width, "height": self.doc2.height,
                     "offsetX": 0.0, "offsetY": 0.0},
            "canvasWidth": self.canvas_width,
            "canvasHeight": self.canvas_height,
            "resolution": self.resolution.value,
            "alignment": str(self.alignment),
            "scale": self.scale,
            "fit": self.fit,
        }


@dataclass(frozen=True)
class ComparisonResult:
    total_pixels: int
    different_pixels: int
    diff_percentage: float
    diff_image: Optional[np.ndarray]
    threshold: int
    aspect_ratio_mismatch: bool = False
    svg1: Optional[str] = None
    svg2: Optional[str] = None
    aspect_ratio1: Optional[float] = None
    aspect_ratio2: Optional[float] = None
    aspect_ratio_diff: Optional[float] = None
    plan: Optional[RenderPlan] = None
    warnings: Tuple[str, ...] = ()
    timings: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.diff_image is not None:
            self.diff_image.flags.writeable = False

    @property
    def rounded_percentage(self) -> float:
        return round(self.diff_percentage, 2)

    def to_dict(self, *, diff_image_path: Optional[str] = None) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "svg1": self.svg1,
            "svg2": self.svg2,
            "totalPixels": self.total_pixels,
            "differentPixels": self.different_pixels,
            "diffPercentage": self.rounded_percentage,
            "threshold": self.threshold,
            "aspectRatioMismatch": self.aspect_ratio_mismatch,
        }
        if self.aspect_ratio1 is not None:
            out["aspectRatio1"] = self.aspect_ratio1
        if self.aspect_ratio2 is not None:
            out["aspectRatio2"] = self.aspect_ratio2
        if self.aspect_ratio_diff is not None:
            out["aspectRatioDiff"] = self.aspect_ratio_diff
        if self.plan is not None:
            out["renderPlan"] = self.plan.to_dict()
        if self.warnings:
            out["warnings"] = list(self.warnings)
        if diff_image_path is not None:
            out["diffImage"] = diff_image_path
        return out


ItemStatus = Literal["pending", "succeeded", "failed"]


@dataclass
class BatchItem:
    svg1_path: str
    svg2_path: str
    status: ItemStatus = "pending"
    result: Optional[ComparisonResult] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    diff_image_path: Optional[str] = None

    def _require_pending(self) -> None:
        if self.status != "pending":
            raise RuntimeError(
                f"batch item {self.svg1_path} vs {self.svg2_path} already {self.status}"
            )

    def mark_succeeded(self, result: ComparisonResult) -> None:
        self._require_pending()
        self.result = result
        self.status = "succeeded"

    def mark_failed(self, exc: BaseException) -> None:
        self._require_pending()
        self.error = str(exc) or type(exc).__name__
        self.error_kind = exc.kind if isinstance(exc, CompareError) else type(exc).__name__
        self.status = "failed"

    def to_dict(self) -> Dict[str, Any]:
        if self.status == "succeeded" and self.result is not None:
            record = self.result.to_dict(diff_image_path=self.diff_image_path)
            record["svg1"] = self.svg1_path
            record["svg2"] = self.svg2_path
            return record
        return {
            "svg1": self.svg1_path,
            "svg2": self.svg2_path,
            "error": self.error,
            "errorKind": self.error_kind,
            "failed": self.status == "failed",
        }


@dataclass
class BatchReport:
    items: List[BatchItem] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def successful(self) -> int:
        return sum(1 for item in self.items if item.status == "succeeded")

    @property
    def failed(self) -> int:
        return sum(1 for item in self.items if item.status == "failed")

    def to_dict(self, *, batch_file: Optional[str] = None) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if batch_file is not None:
            out["batchFile"] = batch_file
        out.update(
            {
                "totalComparisons": self.total,
                "successful": self.successful,
                "failed": self.failed,
                "results": [item.to_dict() for item in self.items],
            }
        )
        return out
