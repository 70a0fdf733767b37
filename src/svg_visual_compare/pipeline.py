"""Single-pair comparison pipeline.

Analyzer -> Guard -> Planner -> Rasterizer x2 -> Differ, with a private
scratch directory per pair that is removed however the run ends.
"""

from __future__ import annotations

import concurrent.futures
import dataclasses
import logging
import shutil
import tempfile
import time
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Tuple, Union

import numpy as np

from .analyzer import analyze, read_document
from .backend import CairoSvgBackend, RenderingBackend
from .config import CompareSettings
from .differ import diff_images
from .errors import AlignmentError, AspectRatioMismatchError, CompareError
from .guard import AspectRatioGuard, GuardResult
from .metrics import PipelineStats, collect_stats, stage
from .planner import plan_render
from .rasterizer import Rasterizer
from .repair import CommandViewBoxRepair, GeometricViewBoxRepair, ViewBoxRepair
from .types import AlignmentMode, ComparisonResult, Point, RenderPlan


log = logging.getLogger(__name__)

Labels = Tuple[Optional[str], Optional[str]]


def _tag(exc: CompareError, label: Optional[str]) -> CompareError:
    return exc.with_path(label) if label else exc


class ComparePipeline:
    def __init__(
        self,
        backend: Optional[RenderingBackend] = None,
        settings: Optional[CompareSettings] = None,
        *,
        repair: Optional[ViewBoxRepair] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings if settings is not None else CompareSettings()
        self.backend = backend if backend is not None else CairoSvgBackend()
        if repair is None:
            if self.settings.repair_command:
                repair = CommandViewBoxRepair(
                    self.settings.repair_command, timeout_s=self.settings.repair_timeout_s
                )
            else:
                repair = GeometricViewBoxRepair()
        self.guard = AspectRatioGuard(
            self.backend,
            repair,
            threshold=self.settings.aspect_ratio_threshold,
            force_regenerate=self.settings.add_missing_viewbox,
        )
        self.rasterizer = Rasterizer(
            self.backend,
            settle_delay_s=self.settings.settle_delay_s,
            timeout_s=self.settings.timeout_s,
            sleep=sleep,
        )

    @classmethod
    def from_config(
        cls, cfg: Mapping[str, Any], backend: Optional[RenderingBackend] = None, **kwargs: Any
    ) -> "ComparePipeline":
        return cls(backend, CompareSettings.from_mapping(cfg), **kwargs)

    def compare_files(
        self, path1: Union[str, Path], path2: Union[str, Path]
    ) -> ComparisonResult:
        markup1 = read_document(path1)
        markup2 = read_document(path2)
        return self.compare_markup(markup1, markup2, labels=(str(path1), str(path2)))

    def compare_markup(
        self, markup1: str, markup2: str, *, labels: Labels = (None, None)
    ) -> ComparisonResult:
        """Compare two documents given as markup.

        Typed :class:`CompareError` subclasses propagate; an aspect-ratio
        mismatch is a 100% result unless configured as fatal.
        """

        scratch = Path(tempfile.mkdtemp(prefix="svgcmp-"))
        stats = PipelineStats()
        try:
            with collect_stats(stats):
                return self._run(markup1, markup2, labels, scratch, stats)
        finally:
            shutil.rmtree(scratch, ignore_errors=True)
            log.debug("[timing] %s", stats.summary())

    def _run(
        self,
        markup1: str,
        markup2: str,
        labels: Labels,
        scratch: Path,
        stats: PipelineStats,
    ) -> ComparisonResult:
        settings = self.settings
        with stage("analyze", logger=log):
            info1 = self._analyze(markup1, labels[0])
            info2 = self._analyze(markup2, labels[1])

        with stage("guard", logger=log):
            verdict = self.guard.check(
                info1, info2, markup1=markup1, markup2=markup2, paths=labels, scratch_dir=scratch
            )

        if not verdict.proceed:
            if settings.mismatch_is_fatal:
                raise AspectRatioMismatchError(
                    f"aspect ratio mismatch: {verdict.reason}",
                    ratio1=verdict.ratio1,
                    ratio2=verdict.ratio2,
                    diff=verdict.mismatch_diff,
                    path=labels[0],
                )
            log.info("Aspect ratio mismatch, reporting 100%% difference: %s", verdict.reason)
            return self._mismatch_result(verdict, labels, stats)

        markup1 = verdict.markup1 if verdict.markup1 is not None else markup1
        markup2 = verdict.markup2 if verdict.markup2 is not None else markup2

        with stage("plan", logger=log):
            centroids = self._centroids(markup1, markup2, labels)
            plan = plan_render(
                verdict.info1,
                verdict.info2,
                alignment=settings.alignment,
                resolution=settings.resolution,
                scale=settings.scale,
                meet_rule=settings.meet_rule,
                slice_rule=settings.slice_rule,
                centroids=centroids,
            )

        with stage("rasterize", logger=log):
            image1, image2 = self._render_pair(markup1, markup2, plan, labels)

        with stage("diff", logger=log):
            result = diff_images(image1, image2, settings.threshold)
        # rasters are not retained past the diff
        del image1, image2

        return dataclasses.replace(
            result,
            svg1=labels[0],
            svg2=labels[1],
            aspect_ratio1=verdict.ratio1,
            aspect_ratio2=verdict.ratio2,
            aspect_ratio_diff=verdict.mismatch_diff,
            plan=plan,
            warnings=verdict.warnings,
            timings=dict(stats.timings),
        )

    def _analyze(self, markup: str, label: Optional[str]):
        try:
            return analyze(markup, self.backend)
        except CompareError as exc:
            raise _tag(exc, label)

    def _centroids(
        self, markup1: str, markup2: str, labels: Labels
    ) -> Tuple[Optional[Point], Optional[Point]]:
        alignment = self.settings.alignment
        if alignment.mode is not AlignmentMode.OBJECT:
            return None, None
        centroids = []
        for markup, label in ((markup1, labels[0]), (markup2, labels[1])):
            try:
                centroid = self.backend.resolve_element_centroid(markup, alignment.object_id or "")
            except CompareError as exc:
                raise _tag(exc, label)
            if centroid is None:
                raise AlignmentError(f"element #{alignment.object_id} not found", path=label)
            centroids.append(centroid)
        return centroids[0], centroids[1]

    def _render_one(
        self, markup: str, width: int, height: int, fit: Optional[str], label: Optional[str]
    ) -> np.ndarray:
        try:
            return self.rasterizer.rasterize(markup, width, height, fit=fit)
        except CompareError as exc:
            raise _tag(exc, label)

    def _render_pair(
        self, markup1: str, markup2: str, plan: RenderPlan, labels: Labels
    ) -> Tuple[np.ndarray, np.ndarray]:
        jobs = (
            (markup1, plan.doc1.width, plan.doc1.height, plan.fit, labels[0]),
            (markup2, plan.doc2.width, plan.doc2.height, plan.fit, labels[1]),
        )
        if not self.settings.parallel_pair:
            return self._render_one(*jobs[0]), self._render_one(*jobs[1])
        with concurrent.futures.ThreadPoolExecutor(max_workers=2, thread_name_prefix="pair") as pool:
            futures = [pool.submit(self._render_one, *job) for job in jobs]
            return futures[0].result(), futures[1].result()

    def _mismatch_result(
        self, verdict: GuardResult, labels: Labels, stats: PipelineStats
    ) -> ComparisonResult:
        return ComparisonResult(
            total_pixels=0,
            different_pixels=0,
            diff_percentage=100.0,
            diff_image=None,
            threshold=self.settings.threshold,
            aspect_ratio_mismatch=True,
            svg1=labels[0],
            svg2=labels[1],
            aspect_ratio1=verdict.ratio1,
            aspect_ratio2=verdict.ratio2,
            aspect_ratio_diff=verdict.mismatch_diff,
            warnings=(verdict.reason,) if verdict.reason else (),
            timings=dict(stats.timings),
        )


__all__ = ["ComparePipeline"]
