"""viewBox repair collaborators.

Documents without usable geometry get a content-fitting ``viewBox`` plus
``width``/``height`` before they are compared.  Two strategies ship: an
in-process one measuring geometric bounds, and one delegating to an external
command such as ``sbb-fix-viewbox``.
"""

from __future__ import annotations

import abc
import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Optional, Sequence

from lxml import etree

from . import svg_geometry
from .backend import parse_svg
from .errors import AnalysisError, RepairError


log = logging.getLogger(__name__)


def _fmt(value: float) -> str:
    return format(value, ".10g")


class ViewBoxRepair(abc.ABC):
    @abc.abstractmethod
    def repair(
        self,
        markup: str,
        *,
        force: bool = False,
        scratch_dir: Optional[Path] = None,
    ) -> str:
        """Return a copy of ``markup`` with a valid viewBox and width/height."""


class GeometricViewBoxRepair(ViewBoxRepair):
    """Measure content bounds with :mod:`svg_geometry` and patch the root."""

    def repair(
        self,
        markup: str,
        *,
        force: bool = False,
        scratch_dir: Optional[Path] = None,
    ) -> str:
        try:
            root = parse_svg(markup)
        except AnalysisError as exc:
            raise RepairError(f"cannot repair malformed SVG: {exc.message}") from exc
        svg = svg_geometry.find_root_svg(root)
        if svg is None:
            raise RepairError("cannot repair: no <svg> root element")

        vb = svg_geometry.parse_view_box(svg.get("viewBox"))
        if vb is None or force:
            content = svg_geometry.bbox(svg)
            if content is None or content.width <= 0 or content.height <= 0:
                raise RepairError("drawing has no measurable content; cannot derive a viewBox")
            vb = (content.min_x, content.min_y, content.width, content.height)
            svg.set("viewBox", " ".join(_fmt(v) for v in vb))
            log.debug("viewBox set to content bounds %s", svg.get("viewBox"))

        _, _, vb_w, vb_h = vb
        aspect = vb_w / vb_h
        width_attr = (svg.get("width") or "").strip()
        height_attr = (svg.get("height") or "").strip()
        if not width_attr and not height_attr:
            svg.set("width", _fmt(vb_w))
            svg.set("height", _fmt(vb_h))
        elif not width_attr:
            h = svg_geometry.parse_length(height_attr)
            svg.set("width", _fmt(h * aspect) if h and h > 0 else _fmt(vb_w))
        elif not height_attr:
            w = svg_geometry.parse_length(width_attr)
            svg.set("height", _fmt(w / aspect) if w and w > 0 else _fmt(vb_h))

        return etree.tostring(root, encoding="unicode")


class CommandViewBoxRepair(ViewBoxRepair):
    """Run an external repair command.

    ``command`` is an argv template; ``{input}`` and ``{output}`` are replaced
    by staging file paths inside ``scratch_dir``.
    """

    def __init__(self, command: Sequence[str], *, timeout_s: float = 30.0) -> None:
        if not command:
            raise ValueError("repair command must not be empty")
        self.command = [str(part) for part in command]
        self.timeout_s = timeout_s

    def _argv(self, src: Path, dst: Path) -> list[str]:
        argv = [part.format(input=str(src), output=str(dst)) for part in self.command]
        exe = shutil.which(argv[0])
        if exe is None:
            raise RepairError(f"repair command not found in PATH: {argv[0]}")
        argv[0] = exe
        return argv

    def repair(
        self,
        markup: str,
        *,
        force: bool = False,
        scratch_dir: Optional[Path] = None,
    ) -> str:
        if scratch_dir is None:
            with tempfile.TemporaryDirectory(prefix="svgcmp-repair-") as tmp:
                return self._run(markup, Path(tmp))
        return self._run(markup, Path(scratch_dir))

    def _run(self, markup: str, workdir: Path) -> str:
        fd, name = tempfile.mkstemp(suffix=".svg", prefix="repair-in-", dir=workdir)
        os.close(fd)
        src = Path(name)
        dst = src.with_name(src.name.replace("repair-in-", "repair-out-"))
        src.write_text(markup, encoding="utf-8")
        argv = self._argv(src, dst)
        log.info("Running viewBox repair: %s", " ".join(argv))
        try:
            proc = subprocess.run(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self.timeout_s,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise RepairError(f"repair command timed out after {self.timeout_s:g}s") from exc
        except OSError as exc:
            raise RepairError(f"failed to execute repair command: {exc}") from exc

        if proc.returncode != 0:
            stderr = proc.stderr.decode("utf-8", errors="replace").strip() if proc.stderr else ""
            raise RepairError(
                f"repair command exited with status {proc.returncode}"
                + (f": {stderr}" if stderr else "")
            )
        if not dst.exists() or dst.stat().st_size == 0:
            raise RepairError(f"repair command produced no output at {dst}")
        return dst.read_text(encoding="utf-8")


__all__ = ["CommandViewBoxRepair", "GeometricViewBoxRepair", "ViewBoxRepair"]
