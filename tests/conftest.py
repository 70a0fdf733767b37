from __future__ import annotations

import logging
import sys
import time
from pathlib import Path
from typing import List, Tuple

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

import numpy as np
import pytest

from svg_visual_compare import svg_geometry
from svg_visual_compare.backend import CairoSvgBackend, parse_svg


SVG_NS = "http://www.w3.org/2000/svg"


def make_svg(body: str = "", **attrs: str) -> str:
    """Build a minimal SVG document; ``view_box`` maps to ``viewBox``."""

    parts = [f'xmlns="{SVG_NS}"']
    for key, value in attrs.items():
        name = {"view_box": "viewBox", "preserve": "preserveAspectRatio", "rgba": "data-rgba"}.get(key, key)
        parts.append(f'{name}="{value}"')
    return f"<svg {' '.join(parts)}>{body}</svg>"


class FakeBackend(CairoSvgBackend):
    """Geometry comes from the real lxml queries; rasters are solid fills.

    The fill colour is read from the root's ``data-rgba`` attribute
    (``"r,g,b,a"``, transparent black when absent).
    """

    def __init__(self, *, render_delay: float = 0.0) -> None:
        super().__init__()
        self.render_delay = render_delay
        self.rendered: List[Tuple[int, int]] = []
        self.markups: List[str] = []

    def rasterize(self, markup: str, width: int, height: int) -> np.ndarray:
        if self.render_delay:
            time.sleep(self.render_delay)
        self.rendered.append((width, height))
        self.markups.append(markup)
        svg = svg_geometry.find_root_svg(parse_svg(markup))
        raw = svg.get("data-rgba") if svg is not None else None
        rgba = tuple(int(v) for v in raw.split(",")) if raw else (0, 0, 0, 0)
        image = np.zeros((height, width, 4), dtype=np.uint8)
        image[...] = rgba
        return image


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture(autouse=True)
def _reset_package_logger():
    # the CLI detaches the package logger from the root; undo that between tests
    yield
    package_logger = logging.getLogger("svg_visual_compare")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)
