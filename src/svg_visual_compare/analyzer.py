from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from .backend import RenderingBackend
from .errors import AnalysisError
from .svg_geometry import parse_length, parse_view_box
from .types import GeometryInfo, ViewBox


log = logging.getLogger(__name__)


def _positive_length(value: Optional[str]) -> Optional[float]:
    # "100%" is a layout hint, never a pixel count
    if value is None or "%" in value:
        return None
    length = parse_length(value)
    if length is None or length <= 0:
        return None
    return length


def analyze(markup: str, backend: RenderingBackend) -> GeometryInfo:
    """Extract viewBox, width/height and preserveAspectRatio of one document.

    The markup is only read. Raises ``AnalysisError`` when the backend finds
    no root ``<svg>`` element.
    """

    raw = backend.query_geometry(markup)
    if raw is None:
        raise AnalysisError("no <svg> root element found")

    vb = parse_view_box(raw.view_box)
    if raw.view_box and vb is None:
        log.debug("Ignoring unusable viewBox %r", raw.view_box)
    preserve = (raw.preserve_aspect_ratio or "").strip() or None
    info = GeometryInfo(
        view_box=ViewBox(*vb) if vb is not None else None,
        width=_positive_length(raw.width),
        height=_positive_length(raw.height),
        preserve_aspect_ratio=preserve,
    )
    log.debug("Geometry: %s", info)
    return info


def read_document(path: Union[str, Path]) -> str:
    """Read an SVG file as text; I/O failures become ``AnalysisError``."""

    p = Path(path)
    try:
        return p.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise AnalysisError("SVG file not found", path=p) from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise AnalysisError(f"cannot read SVG file: {exc}", path=p) from exc


__all__ = ["analyze", "read_document"]
