from __future__ import annotations

import os
import subprocess
import sys
import textwrap
import time
from pathlib import Path

import numpy as np
import pytest

from conftest import FakeBackend, make_svg
from svg_visual_compare.backend import CairoSvgBackend
from svg_visual_compare.errors import RasterizationError
from svg_visual_compare.rasterizer import Rasterizer, apply_fit


def test_settle_delay_runs_before_capture(fake_backend):
    delays = []
    rasterizer = Rasterizer(fake_backend, settle_delay_s=8.0, sleep=delays.append)
    image = rasterizer.rasterize(make_svg(rgba="1,2,3,4"), 5, 3)
    assert delays == [8.0]
    assert image.shape == (3, 5, 4)
    assert tuple(image[0, 0]) == (1, 2, 3, 4)


def test_zero_settle_delay_skips_sleep(fake_backend):
    delays = []
    Rasterizer(fake_backend, settle_delay_s=0.0, sleep=delays.append).rasterize(make_svg(), 1, 1)
    assert delays == []


def test_timeout_is_an_error():
    slow = FakeBackend(render_delay=1.0)
    rasterizer = Rasterizer(slow, settle_delay_s=0.0, timeout_s=0.05)
    with pytest.raises(RasterizationError, match="within"):
        rasterizer.rasterize(make_svg(), 2, 2)


STUCK_RENDER_SCRIPT = textwrap.dedent(
    """
    import time

    from svg_visual_compare.backend import CairoSvgBackend
    from svg_visual_compare.errors import RasterizationError
    from svg_visual_compare.rasterizer import Rasterizer


    class Stuck(CairoSvgBackend):
        def rasterize(self, markup, width, height):
            time.sleep(30)


    try:
        Rasterizer(Stuck(), settle_delay_s=0.0, timeout_s=0.1).rasterize("<svg/>", 2, 2)
    except RasterizationError:
        print("timed out")
    """
)


def test_timed_out_render_does_not_keep_process_alive():
    env = os.environ.copy()
    src_path = Path(__file__).resolve().parents[1] / "src"
    pythonpath = env.get("PYTHONPATH", "")
    env["PYTHONPATH"] = os.pathsep.join([str(src_path), pythonpath]) if pythonpath else str(src_path)

    started = time.perf_counter()
    completed = subprocess.run(
        [sys.executable, "-c", STUCK_RENDER_SCRIPT],
        env=env,
        text=True,
        capture_output=True,
        timeout=20,
    )
    elapsed = time.perf_counter() - started

    assert completed.returncode == 0, completed.stderr
    assert "timed out" in completed.stdout
    assert elapsed < 10.0


def test_wrong_buffer_shape_is_an_error():
    class Broken(FakeBackend):
        def rasterize(self, markup, width, height):
            return np.zeros((height, width, 3), dtype=np.uint8)

    with pytest.raises(RasterizationError, match="shape"):
        Rasterizer(Broken(), settle_delay_s=0.0).rasterize(make_svg(), 4, 4)


def test_fit_is_applied_to_a_copy(fake_backend):
    markup = make_svg(view_box="0 0 10 10", preserve="xMinYMin meet")
    Rasterizer(fake_backend, settle_delay_s=0.0).rasterize(markup, 4, 4, fit="none")
    assert 'preserveAspectRatio="none"' in fake_backend.markups[-1]
    assert 'preserveAspectRatio="xMinYMin meet"' in markup


def test_apply_fit_sets_attribute():
    out = apply_fit(make_svg(view_box="0 0 1 1"), "xMidYMid slice")
    assert 'preserveAspectRatio="xMidYMid slice"' in out


def test_invalid_size_rejected(fake_backend):
    with pytest.raises(RasterizationError):
        Rasterizer(fake_backend, settle_delay_s=0.0).rasterize(make_svg(), 0, 4)


def test_cairosvg_renders_transparent_background():
    markup = make_svg('<rect x="0" y="0" width="5" height="10" fill="#ff0000"/>', width="10", height="10")
    image = Rasterizer(CairoSvgBackend(), settle_delay_s=0.0).rasterize(markup, 10, 10)
    assert image.dtype == np.uint8
    assert image.shape == (10, 10, 4)
    assert tuple(image[5, 2]) == (255, 0, 0, 255)
    assert image[5, 7, 3] == 0


def test_cairosvg_scales_to_requested_size():
    markup = make_svg('<rect width="10" height="10" fill="blue"/>', view_box="0 0 10 10", width="10", height="10")
    image = CairoSvgBackend().rasterize(markup, 40, 40)
    assert image.shape == (40, 40, 4)
    assert tuple(image[39, 39]) == (0, 0, 255, 255)


def test_cairosvg_failure_is_wrapped():
    with pytest.raises(RasterizationError):
        CairoSvgBackend().rasterize("not svg at all", 10, 10)
