"""Geometric measurements on parsed SVG trees.

Everything here works on the element tree only; no rendering is involved.
Bounds are geometric (fill area), the same quantity DOM ``getBBox()`` reports:
stroke width, markers, filters and text glyph extents are not included.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from lxml import etree


log = logging.getLogger(__name__)

Matrix = Tuple[float, float, float, float, float, float]
Pt = Tuple[float, float]

IDENTITY: Matrix = (1.0, 0.0, 0.0, 1.0, 0.0, 0.0)

# samples per curve segment when flattening
CURVE_SAMPLES = 32

_CONTAINERS = {"svg", "g", "a", "switch"}
_TEXT_TAGS = {"text", "tspan"}
_NOT_RENDERED = {
    "defs", "clipPath", "mask", "marker", "pattern", "symbol", "metadata",
    "title", "desc", "style", "script", "linearGradient", "radialGradient", "filter",
}

_LENGTH_RE = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)\s*([a-zA-Z%]*)\s*$")
_PX_PER_UNIT = {
    "": 1.0,
    "px": 1.0,
    "pt": 96.0 / 72.0,
    "pc": 16.0,
    "in": 96.0,
    "cm": 96.0 / 2.54,
    "mm": 96.0 / 25.4,
    "q": 96.0 / 101.6,
}
_NUMBER_RE = re.compile(r"[-+]?(?:\d*\.\d+|\d+\.?)(?:[eE][-+]?\d+)?")
_TRANSFORM_RE = re.compile(r"([a-zA-Z]+)\s*\(([^)]*)\)")
_PATH_SEP_RE = re.compile(r"[\s,]*")
_PATH_COMMAND_RE = re.compile(r"[MmZzLlHhVvCcSsQqTtAa]")
_PATH_FLAG_RE = re.compile(r"[01]")
_PATH_ARITY = {"m": 2, "l": 2, "h": 1, "v": 1, "c": 6, "s": 4, "q": 4, "t": 2, "a": 7}


@dataclass(frozen=True)
class Bounds:
    min_x: float; min_y: float; max_x: float; max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def center(self) -> Pt:
        return (self.min_x + self.max_x) / 2.0, (self.min_y + self.max_y) / 2.0

    def union(self, other: Optional["Bounds"]) -> "Bounds":
        if other is None:
            return self
        return Bounds(
            min(self.min_x, other.min_x),
            min(self.min_y, other.min_y),
            max(self.max_x, other.max_x),
            max(self.max_y, other.max_y),
        )

    @classmethod
    def of_points(cls, points: Iterable[Pt]) -> Optional["Bounds"]:
        xs: List[float] = []
        ys: List[float] = []
        for x, y in points:
            xs.append(x)
            ys.append(y)
        if not xs:
            return None
        return cls(min(xs), min(ys), max(xs), max(ys))


def _union_all(items: Iterable[Optional[Bounds]]) -> Optional[Bounds]:
    total: Optional[Bounds] = None
    for item in items:
        if item is None:
            continue
        total = item if total is None else total.union(item)
    return total


# ---------------------------------------------------------------------------
# Attribute parsing


def local_name(node: etree._Element) -> str:
    tag = node.tag
    if not isinstance(tag, str):  # comments, processing instructions
        return ""
    return etree.QName(tag).localname


def parse_length(value: Optional[str]) -> Optional[float]:
    """Convert an absolute SVG length to user pixels.

    Percentages, unknown units, empty and non-numeric values yield ``None``.
    """

    if value is None:
        return None
    match = _LENGTH_RE.match(value)
    if not match:
        return None
    unit = match.group(2).lower()
    if unit not in _PX_PER_UNIT:
        return None
    number = float(match.group(1))
    if not math.isfinite(number):
        return None
    return number * _PX_PER_UNIT[unit]


def parse_view_box(value: Optional[str]) -> Optional[Tuple[float, float, float, float]]:
    """Parse ``min-x min-y width height``; invalid or degenerate boxes yield ``None``."""

    if not value:
        return None
    parts = [p for p in re.split(r"[\s,]+", value.strip()) if p]
    if len(parts) != 4:
        return None
    try:
        x, y, w, h = (float(p) for p in parts)
    except ValueError:
        return None
    if not all(math.isfinite(v) for v in (x, y, w, h)) or w <= 0 or h <= 0:
        return None
    return x, y, w, h


def _float_attr(node: etree._Element, name: str, default: float = 0.0) -> float:
    length = parse_length(node.get(name))
    return default if length is None else length


# ---------------------------------------------------------------------------
# Affine matrices, stored as SVG's (a, b, c, d, e, f)


def multiply(m: Matrix, n: Matrix) -> Matrix:
    a, b, c, d, e, f = m
    a2, b2, c2, d2, e2, f2 = n
    return (
        a * a2 + c * b2,
        b * a2 + d * b2,
        a * c2 + c * d2,
        b * c2 + d * d2,
        a * e2 + c * f2 + e,
        b * e2 + d * f2 + f,
    )


def apply(m: Matrix, point: Pt) -> Pt:
    a, b, c, d, e, f = m
    x, y = point
    return a * x + c * y + e, b * x + d * y + f


def translation(tx: float, ty: float) -> Matrix:
    return (1.0, 0.0, 0.0, 1.0, tx, ty)


def scaling(sx: float, sy: float) -> Matrix:
    return (sx, 0.0, 0.0, sy, 0.0, 0.0)


def _transform_item(name: str, args: Sequence[float]) -> Optional[Matrix]:
    if name == "matrix" and len(args) == 6:
        return tuple(args)  # type: ignore[return-value]
    if name == "translate" and args:
        return translation(args[0], args[1] if len(args) > 1 else 0.0)
    if name == "scale" and args:
        return scaling(args[0], args[1] if len(args) > 1 else args[0])
    if name == "rotate" and len(args) in (1, 3):
        theta = math.radians(args[0])
        rot = (math.cos(theta), math.sin(theta), -math.sin(theta), math.cos(theta), 0.0, 0.0)
        if len(args) == 3:
            cx, cy = args[1], args[2]
            return multiply(multiply(translation(cx, cy), rot), translation(-cx, -cy))
        return rot
    if name == "skewx" and args:
        return (1.0, 0.0, math.tan(math.radians(args[0])), 1.0, 0.0, 0.0)
    if name == "skewy" and args:
        return (1.0, math.tan(math.radians(args[0])), 0.0, 1.0, 0.0, 0.0)
    return None


def parse_transform(value: Optional[str]) -> Matrix:
    result = IDENTITY
    if not value:
        return result
    for match in _TRANSFORM_RE.finditer(value):
        args = [float(v) for v in _NUMBER_RE.findall(match.group(2))]
        item = _transform_item(match.group(1).lower(), args)
        if item is not None:
            result = multiply(result, item)
    return result


def viewport_matrix(node: etree._Element) -> Matrix:
    """Map a nested ``<svg>``'s user space into its parent's user space."""

    matrix = translation(_float_attr(node, "x"), _float_attr(node, "y"))
    vb = parse_view_box(node.get("viewBox"))
    if vb is None:
        return matrix
    min_x, min_y, vb_w, vb_h = vb
    width = parse_length(node.get("width")) or vb_w
    height = parse_length(node.get("height")) or vb_h
    sx = width / vb_w
    sy = height / vb_h

    preserve = (node.get("preserveAspectRatio") or "xMidYMid meet").split()
    align = preserve[0] if preserve else "xMidYMid"
    if align == "none":
        return multiply(multiply(matrix, scaling(sx, sy)), translation(-min_x, -min_y))

    slice_mode = len(preserve) > 1 and preserve[1] == "slice"
    scale = max(sx, sy) if slice_mode else min(sx, sy)
    extra_x = width - vb_w * scale
    extra_y = height - vb_h * scale
    align_x = extra_x / 2.0 if "xMid" in align else (extra_x if "xMax" in align else 0.0)
    align_y = extra_y / 2.0 if "YMid" in align else (extra_y if "YMax" in align else 0.0)
    matrix = multiply(matrix, translation(align_x, align_y))
    matrix = multiply(matrix, scaling(scale, scale))
    return multiply(matrix, translation(-min_x, -min_y))


# ---------------------------------------------------------------------------
# Path flattening


def _cubic_points(p0: Pt, p1: Pt, p2: Pt, p3: Pt, samples: int) -> List[Pt]:
    out: List[Pt] = []
    for i in range(1, samples + 1):
        t = i / samples
        mt = 1.0 - t
        w0, w1, w2, w3 = mt ** 3, 3 * mt * mt * t, 3 * mt * t * t, t ** 3
        out.append(
            (
                w0 * p0[0] + w1 * p1[0] + w2 * p2[0] + w3 * p3[0],
                w0 * p0[1] + w1 * p1[1] + w2 * p2[1] + w3 * p3[1],
            )
        )
    return out


def _quadratic_points(p0: Pt, p1: Pt, p2: Pt, samples: int) -> List[Pt]:
    out: List[Pt] = []
    for i in range(1, samples + 1):
        t = i / samples
        mt = 1.0 - t
        out.append(
            (
                mt * mt * p0[0] + 2 * mt * t * p1[0] + t * t * p2[0],
                mt * mt * p0[1] + 2 * mt * t * p1[1] + t * t * p2[1],
            )
        )
    return out


def _arc_points(
    p0: Pt, rx: float, ry: float, phi_deg: float, large_arc: bool, sweep: bool, p1: Pt, samples: int
) -> List[Pt]:
    if p0 == p1:
        return []
    rx, ry = abs(rx), abs(ry)
    if rx == 0.0 or ry == 0.0:
        return [p1]

    phi = math.radians(phi_deg % 360.0)
    cos_p, sin_p = math.cos(phi), math.sin(phi)
    dx = (p0[0] - p1[0]) / 2.0
    dy = (p0[1] - p1[1]) / 2.0
    x1p = cos_p * dx + sin_p * dy
    y1p = -sin_p * dx + cos_p * dy

    lam = (x1p / rx) ** 2 + (y1p / ry) ** 2
    if lam > 1.0:
        rx *= math.sqrt(lam)
        ry *= math.sqrt(lam)

    num = rx * rx * ry * ry - rx * rx * y1p * y1p - ry * ry * x1p * x1p
    den = rx * rx * y1p * y1p + ry * ry * x1p * x1p
    coef = math.sqrt(max(0.0, num / den)) if den else 0.0
    if large_arc == sweep:
        coef = -coef
    cxp = coef * rx * y1p / ry
    cyp = -coef * ry * x1p / rx
    cx = cos_p * cxp - sin_p * cyp + (p0[0] + p1[0]) / 2.0
    cy = sin_p * cxp + cos_p * cyp + (p0[1] + p1[1]) / 2.0

    theta1 = math.atan2((y1p - cyp) / ry, (x1p - cxp) / rx)
    theta2 = math.atan2((-y1p - cyp) / ry, (-x1p - cxp) / rx)
    delta = theta2 - theta1
    if sweep and delta < 0:
        delta += 2 * math.pi
    elif not sweep and delta > 0:
        delta -= 2 * math.pi

    out: List[Pt] = []
    for i in range(1, samples + 1):
        t = theta1 + delta * i / samples
        out.append(
            (
                cx + rx * math.cos(t) * cos_p - ry * math.sin(t) * sin_p,
                cy + rx * math.cos(t) * sin_p + ry * math.sin(t) * cos_p,
            )
        )
    out[-1] = p1
    return out


def tokenize_path(d: str) -> List[str]:
    """Split path data into command letters and numbers.

    Arc flags are single ``0``/``1`` characters, so minified data such as
    ``a10 10 0 0120 0`` splits into ``0 1 20 0`` after the rotation.
    """

    tokens: List[str] = []
    pos = 0
    command = ""
    arg_index = 0
    while True:
        pos = _PATH_SEP_RE.match(d, pos).end()
        if pos >= len(d):
            return tokens
        match = _PATH_COMMAND_RE.match(d, pos)
        if match:
            command = match.group()
            arg_index = 0
        else:
            in_flag = command in ("a", "A") and arg_index % 7 in (3, 4)
            match = (_PATH_FLAG_RE if in_flag else _NUMBER_RE).match(d, pos)
            if match is None:
                raise ValueError(f"unexpected path data at offset {pos}: {d[pos:pos + 12]!r}")
            arg_index += 1
        tokens.append(match.group())
        pos = match.end()


def path_points(d: str, samples: int = CURVE_SAMPLES) -> List[Pt]:
    """Flatten path data into absolute points (curves sampled, arcs resolved).

    Raises ``ValueError`` on malformed data.
    """

    tokens = tokenize_path(d or "")
    points: List[Pt] = []
    idx = 0
    command: Optional[str] = None
    current: Pt = (0.0, 0.0)
    start: Pt = (0.0, 0.0)
    last_ctrl: Optional[Pt] = None
    prev = ""

    while idx < len(tokens):
        token = tokens[idx]
        if token.isalpha():
            command = token
            idx += 1
            if command in "Zz":
                current = start
                last_ctrl = None
                prev = "z"
                continue
        elif command is None or command in "Zz":
            raise ValueError(f"path data has a number without a command: {token!r}")

        op = command.lower()
        arity = _PATH_ARITY[op]
        chunk = tokens[idx: idx + arity]
        if len(chunk) < arity or any(t.isalpha() for t in chunk):
            raise ValueError(f"path command {command!r} is missing parameters")
        args = [float(t) for t in chunk]
        idx += arity
        ox, oy = current if command.islower() else (0.0, 0.0)

        if op == "m":
            current = (ox + args[0], oy + args[1])
            start = current
            points.append(current)
            # further coordinate pairs are implicit lineto commands
            command = "l" if command.islower() else "L"
            last_ctrl = None
        elif op == "l":
            current = (ox + args[0], oy + args[1])
            points.append(current)
            last_ctrl = None
        elif op == "h":
            current = (ox + args[0], current[1])
            points.append(current)
            last_ctrl = None
        elif op == "v":
            current = (current[0], oy + args[0])
            points.append(current)
            last_ctrl = None
        elif op in ("c", "s"):
            if op == "c":
                c1 = (ox + args[0], oy + args[1])
                rest = args[2:]
            else:
                if prev in ("c", "s") and last_ctrl is not None:
                    c1 = (2 * current[0] - last_ctrl[0], 2 * current[1] - last_ctrl[1])
                else:
                    c1 = current
                rest = args
            c2 = (ox + rest[0], oy + rest[1])
            end = (ox + rest[2], oy + rest[3])
            points.extend(_cubic_points(current, c1, c2, end, samples))
            current, last_ctrl = end, c2
        elif op in ("q", "t"):
            if op == "q":
                ctrl = (ox + args[0], oy + args[1])
                end = (ox + args[2], oy + args[3])
            else:
                if prev in ("q", "t") and last_ctrl is not None:
                    ctrl = (2 * current[0] - last_ctrl[0], 2 * current[1] - last_ctrl[1])
                else:
                    ctrl = current
                end = (ox + args[0], oy + args[1])
            points.extend(_quadratic_points(current, ctrl, end, samples))
            current, last_ctrl = end, ctrl
        elif op == "a":
            end = (ox + args[5], oy + args[6])
            points.extend(
                _arc_points(current, args[0], args[1], args[2], bool(args[3]), bool(args[4]), end, samples)
            )
            current = end
            last_ctrl = None
        prev = op

    return points


# ---------------------------------------------------------------------------
# Shape bounds


def _ellipse_points(cx: float, cy: float, rx: float, ry: float) -> List[Pt]:
    steps = 4 * CURVE_SAMPLES
    return [
        (cx + rx * math.cos(2 * math.pi * i / steps), cy + ry * math.sin(2 * math.pi * i / steps))
        for i in range(steps)
    ]


def _box_points(x: float, y: float, w: float, h: float) -> List[Pt]:
    return [(x, y), (x + w, y), (x + w, y + h), (x, y + h)]


def _shape_points(node: etree._Element, tag: str, matrix: Matrix) -> List[Pt]:
    if tag in ("rect", "image"):
        w = _float_attr(node, "width")
        h = _float_attr(node, "height")
        if w <= 0 or h <= 0:
            return []
        return _box_points(_float_attr(node, "x"), _float_attr(node, "y"), w, h)
    if tag in ("circle", "ellipse"):
        cx = _float_attr(node, "cx")
        cy = _float_attr(node, "cy")
        if tag == "circle":
            rx = ry = _float_attr(node, "r")
        else:
            rx = _float_attr(node, "rx")
            ry = _float_attr(node, "ry")
        if rx <= 0 or ry <= 0:
            return []
        axis_aligned = matrix[1] == 0.0 and matrix[2] == 0.0
        if axis_aligned:
            return _box_points(cx - rx, cy - ry, 2 * rx, 2 * ry)
        return _ellipse_points(cx, cy, rx, ry)
    if tag == "line":
        return [
            (_float_attr(node, "x1"), _float_attr(node, "y1")),
            (_float_attr(node, "x2"), _float_attr(node, "y2")),
        ]
    if tag in ("polyline", "polygon"):
        values = [float(v) for v in _NUMBER_RE.findall(node.get("points") or "")]
        return list(zip(values[0::2], values[1::2]))
    if tag == "path":
        try:
            return path_points(node.get("d") or "")
        except ValueError as exc:
            log.warning("Ignoring <path id=%r> with malformed data: %s", node.get("id"), exc)
            return []
    return []


def element_bounds(node: etree._Element, matrix: Matrix = IDENTITY) -> Optional[Bounds]:
    """Bounds of ``node`` (own transform included) mapped through ``matrix``."""

    tag = local_name(node)
    if not tag or tag in _NOT_RENDERED:
        return None
    combined = multiply(matrix, parse_transform(node.get("transform")))
    if tag in _CONTAINERS:
        if tag == "svg":
            combined = multiply(combined, viewport_matrix(node))
        return _union_all(element_bounds(child, combined) for child in node)
    points = _shape_points(node, tag, combined)
    return Bounds.of_points(apply(combined, pt) for pt in points)


def bbox(node: etree._Element) -> Optional[Bounds]:
    """Geometric bounds in ``node``'s own user space (``getBBox()`` semantics)."""

    tag = local_name(node)
    if not tag or tag in _NOT_RENDERED:
        return None
    if tag in _CONTAINERS:
        return _union_all(element_bounds(child) for child in node)
    return Bounds.of_points(_shape_points(node, tag, IDENTITY))


def find_root_svg(root: etree._Element) -> Optional[etree._Element]:
    if local_name(root) == "svg":
        return root
    for node in root.iter():
        if local_name(node) == "svg":
            return node
    return None


def find_by_id(root: etree._Element, element_id: str) -> Optional[etree._Element]:
    for node in root.iter():
        if isinstance(node.tag, str) and node.get("id") == element_id:
            return node
    return None


def text_anchor(node: etree._Element) -> Optional[Pt]:
    """First ``x``/``y`` position of a text element or of its first positioned ``<tspan>``.

    Glyph extents need font metrics, so this is the closest estimate of a
    text element's box that the tree alone gives.  ``None`` when ``node``
    holds no text.
    """

    found = False
    for item in node.iter():
        if local_name(item) not in _TEXT_TAGS:
            continue
        found = True
        xs = _NUMBER_RE.findall(item.get("x") or "")
        ys = _NUMBER_RE.findall(item.get("y") or "")
        if xs or ys:
            return (float(xs[0]) if xs else 0.0, float(ys[0]) if ys else 0.0)
    return (0.0, 0.0) if found else None
