"""Rasterizer adapter: settle delay, timeout and fit rules around a backend."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

import numpy as np
from lxml import etree

from . import svg_geometry
from .backend import RenderingBackend, parse_svg
from .errors import AnalysisError, RasterizationError


log = logging.getLogger(__name__)

DEFAULT_SETTLE_DELAY_S = 8.0
DEFAULT_TIMEOUT_S = 30.0


def apply_fit(markup: str, fit: str) -> str:
    """Return markup whose root ``<svg>`` carries ``preserveAspectRatio=fit``."""

    root = parse_svg(markup)
    svg = svg_geometry.find_root_svg(root)
    if svg is None:
        raise AnalysisError("no <svg> root element found")
    svg.set("preserveAspectRatio", fit)
    return etree.tostring(root, encoding="unicode")


class Rasterizer:
    def __init__(
        self,
        backend: RenderingBackend,
        *,
        settle_delay_s: float = DEFAULT_SETTLE_DELAY_S,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if settle_delay_s < 0:
            raise ValueError("settle_delay_s must be >= 0")
        if timeout_s <= 0:
            raise ValueError("timeout_s must be positive")
        self.backend = backend
        self.settle_delay_s = settle_delay_s
        self.timeout_s = timeout_s
        self._sleep = sleep

    def rasterize(
        self, markup: str, width: int, height: int, *, fit: Optional[str] = None
    ) -> np.ndarray:
        """Render ``markup`` at ``width x height`` and return an RGBA ``uint8`` array.

        A backend that does not answer within ``timeout_s`` is an error, as is
        a buffer of the wrong shape.
        """

        if width <= 0 or height <= 0:
            raise RasterizationError(f"invalid render size {width}x{height}")
        if fit is not None:
            markup = apply_fit(markup, fit)
        if self.settle_delay_s > 0:
            # fonts and other async resources get a fixed time to arrive
            self._sleep(self.settle_delay_s)

        image = np.asarray(self._capture(markup, int(width), int(height)))
        if image.dtype != np.uint8 or image.shape != (int(height), int(width), 4):
            raise RasterizationError(
                f"backend returned {image.dtype} array of shape {image.shape}, "
                f"expected uint8 ({int(height)}, {int(width)}, 4)"
            )
        return image

    def _capture(self, markup: str, width: int, height: int) -> Any:
        # daemon worker: a render that never returns must not keep the process alive
        outcome: Dict[str, Any] = {}

        def _run() -> None:
            try:
                outcome["image"] = self.backend.rasterize(markup, width, height)
            except Exception as exc:  # noqa: BLE001 - re-raised in the calling thread
                outcome["error"] = exc

        worker = threading.Thread(target=_run, name="rasterize", daemon=True)
        worker.start()
        worker.join(self.timeout_s)
        if worker.is_alive():
            log.warning(
                "Abandoning %dx%d render still running after %gs", width, height, self.timeout_s
            )
            raise RasterizationError(
                f"backend did not produce a capture within {self.timeout_s:g}s"
            )
        if "error" in outcome:
            raise outcome["error"]
        return outcome["image"]


__all__ = ["Rasterizer", "apply_fit"]
