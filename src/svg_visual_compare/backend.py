"""Rendering backend seam and the cairosvg implementation."""

from __future__ import annotations

import abc
import io
import logging
from dataclasses import dataclass
from typing import Optional

import cairosvg
import numpy as np
from lxml import etree
from PIL import Image

from . import svg_geometry
from .errors import AlignmentError, AnalysisError, RasterizationError
from .types import Point


log = logging.getLogger(__name__)

_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, remove_comments=False)


@dataclass(frozen=True)
class RawGeometry:
    """Unparsed geometry attributes of a document's root ``<svg>``."""

    view_box: Optional[str] = None
    width: Optional[str] = None
    height: Optional[str] = None
    preserve_aspect_ratio: Optional[str] = None


def parse_svg(markup: str) -> etree._Element:
    """Parse markup into an element tree, raising ``AnalysisError`` when malformed."""

    data = markup.encode("utf-8") if isinstance(markup, str) else markup
    try:
        return etree.fromstring(data, parser=_PARSER)
    except etree.XMLSyntaxError as exc:
        raise AnalysisError(f"SVG is not well-formed XML: {exc}") from exc


class RenderingBackend(abc.ABC):
    """What the engine needs from a renderer; anything else stays inside it."""

    @abc.abstractmethod
    def rasterize(self, markup: str, width: int, height: int) -> np.ndarray:
        """Render to an ``(height, width, 4)`` uint8 RGBA array on a transparent background."""

    @abc.abstractmethod
    def query_geometry(self, markup: str) -> Optional[RawGeometry]:
        """Return the root ``<svg>`` attributes, or ``None`` when there is no ``<svg>``."""

    @abc.abstractmethod
    def resolve_element_centroid(self, markup: str, element_id: str) -> Optional[Point]:
        """Centre of the element's bounds in its user space.

        ``None`` when no element has that id; an element that exists but has
        no measurable geometry raises ``AlignmentError``.
        """


class CairoSvgBackend(RenderingBackend):
    """In-process renderer built on cairosvg; deterministic for a given markup."""

    def __init__(self, *, unsafe: bool = False) -> None:
        self.unsafe = unsafe

    def rasterize(self, markup: str, width: int, height: int) -> np.ndarray:
        try:
            png_bytes = cairosvg.svg2png(
                bytestring=markup.encode("utf-8"),
                output_width=int(width),
                output_height=int(height),
                background_color=None,
                unsafe=self.unsafe,
            )
            with Image.open(io.BytesIO(png_bytes)) as image:
                rgba = np.array(image.convert("RGBA"), dtype=np.uint8)
        except Exception as exc:  # noqa: BLE001 - cairosvg raises a wide range of types
            raise RasterizationError(f"cairosvg failed to render: {exc}") from exc
        log.debug("Rendered %dx%d RGBA raster", rgba.shape[1], rgba.shape[0])
        return rgba

    def query_geometry(self, markup: str) -> Optional[RawGeometry]:
        svg = svg_geometry.find_root_svg(parse_svg(markup))
        if svg is None:
            return None
        return RawGeometry(
            view_box=svg.get("viewBox"),
            width=svg.get("width"),
            height=svg.get("height"),
            preserve_aspect_ratio=svg.get("preserveAspectRatio"),
        )

    def resolve_element_centroid(self, markup: str, element_id: str) -> Optional[Point]:
        node = svg_geometry.find_by_id(parse_svg(markup), element_id)
        if node is None:
            return None
        bounds = svg_geometry.bbox(node)
        if bounds is not None:
            cx, cy = bounds.center
            return Point(cx, cy)
        anchor = svg_geometry.text_anchor(node)
        if anchor is not None:
            log.debug("Element #%s is text; using its x/y anchor as the centroid", element_id)
            return Point(*anchor)
        raise AlignmentError(
            f"element #{element_id} exists but has no measurable geometry "
            f"(<{svg_geometry.local_name(node)}>)"
        )


__all__ = ["CairoSvgBackend", "RawGeometry", "RenderingBackend", "parse_svg"]
