from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from .analyzer import analyze
from .backend import RenderingBackend
from .errors import CompareError, RepairError, ValidationError
from .metrics import current_stats
from .repair import GeometricViewBoxRepair, ViewBoxRepair
from .types import GeometryInfo, RatioSource


log = logging.getLogger(__name__)

DEFAULT_ASPECT_RATIO_THRESHOLD = 0.001


@dataclass(frozen=True)
class GuardResult:
    """Outcome of the aspect-ratio check for one pair.

    ``info1``/``info2`` and ``markup1``/``markup2`` describe the documents
    the rest of the pipeline must use (regenerated ones when repair ran).
    """

    proceed: bool
    info1: GeometryInfo
    info2: GeometryInfo
    ratio1: float
    ratio2: float
    source1: RatioSource
    source2: RatioSource
    mismatch_diff: float
    markup1: Optional[str] = None
    markup2: Optional[str] = None
    reason: Optional[str] = None
    warnings: Tuple[str, ...] = ()

    @property
    def regenerated(self) -> Tuple[bool, bool]:
        return self.source1 == "regenerated", self.source2 == "regenerated"


def validate_ratio_threshold(value: float) -> float:
    try:
        threshold = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"aspect ratio threshold must be a number, got {value!r}") from None
    if not math.isfinite(threshold) or not 0.0 <= threshold <= 1.0:
        raise ValidationError(f"aspect ratio threshold must be within [0, 1], got {value!r}")
    return threshold


class AspectRatioGuard:
    """Decide whether a pixel comparison of two documents is meaningful."""

    def __init__(
        self,
        backend: RenderingBackend,
        repair: Optional[ViewBoxRepair] = None,
        *,
        threshold: float = DEFAULT_ASPECT_RATIO_THRESHOLD,
        force_regenerate: bool = False,
    ) -> None:
        self.backend = backend
        self.repair = repair if repair is not None else GeometricViewBoxRepair()
        self.threshold = validate_ratio_threshold(threshold)
        self.force_regenerate = force_regenerate

    def _resolve(
        self,
        info: GeometryInfo,
        markup: Optional[str],
        path: Optional[str],
        scratch_dir: Optional[Path],
    ) -> Tuple[GeometryInfo, Optional[str], float, RatioSource]:
        ratio = info.aspect_ratio
        source = info.ratio_source
        if ratio is not None and source is not None and not self.force_regenerate:
            return info, markup, ratio, source

        why = "forced regeneration" if ratio is not None else "no viewBox or width/height"
        if markup is None:
            raise RepairError(f"viewBox regeneration needed ({why}) but no markup was supplied", path=path)
        log.info("Regenerating viewBox for %s (%s)", path or "<markup>", why)
        try:
            repaired = self.repair.repair(markup, force=self.force_regenerate, scratch_dir=scratch_dir)
            new_info = analyze(repaired, self.backend)
        except CompareError as exc:
            raise exc.with_path(path) if path else exc
        if new_info.aspect_ratio is None:
            raise RepairError("repaired document still has no usable aspect ratio", path=path)
        stats = current_stats()
        if stats is not None:
            stats.increment("regenerated")
        return new_info, repaired, new_info.aspect_ratio, "regenerated"

    def check(
        self,
        info1: GeometryInfo,
        info2: GeometryInfo,
        *,
        markup1: Optional[str] = None,
        markup2: Optional[str] = None,
        paths: Tuple[Optional[str], Optional[str]] = (None, None),
        scratch_dir: Optional[Path] = None,
    ) -> GuardResult:
        info1, markup1, ratio1, source1 = self._resolve(info1, markup1, paths[0], scratch_dir)
        info2, markup2, ratio2, source2 = self._resolve(info2, markup2, paths[1], scratch_dir)
        return _decide(
            info1, info2, ratio1, ratio2, source1, source2, self.threshold,
            markup1=markup1, markup2=markup2,
        )


def _decide(
    info1: GeometryInfo,
    info2: GeometryInfo,
    ratio1: float,
    ratio2: float,
    source1: RatioSource,
    source2: RatioSource,
    threshold: float,
    *,
    markup1: Optional[str] = None,
    markup2: Optional[str] = None,
) -> GuardResult:
    diff = abs(ratio1 - ratio2)
    reason: Optional[str] = None
    warnings: Tuple[str, ...] = ()
    proceed = diff <= threshold
    if not proceed:
        reason = (
            f"aspect ratios differ by {diff:.6f} ({ratio1:.6f} vs {ratio2:.6f}), "
            f"threshold {threshold:g}"
        )
        log.debug("Aspect ratio guard: %s", reason)
    else:
        par1, par2 = info1.preserve_aspect_ratio, info2.preserve_aspect_ratio
        if par1 and par2 and par1 != par2:
            message = f"preserveAspectRatio differs: {par1!r} vs {par2!r}"
            log.warning(message)
            warnings = (message,)
    return GuardResult(
        proceed=proceed, info1=info1, info2=info2, ratio1=ratio1, ratio2=ratio2,
        source1=source1, source2=source2, mismatch_diff=diff,
        markup1=markup1, markup2=markup2, reason=reason, warnings=warnings,
    )


def guard(
    info1: GeometryInfo,
    info2: GeometryInfo,
    threshold: float = DEFAULT_ASPECT_RATIO_THRESHOLD,
) -> GuardResult:
    """Ratio check for documents that already carry geometry; never repairs."""

    threshold = validate_ratio_threshold(threshold)
    for info in (info1, info2):
        if info.aspect_ratio is None:
            raise RepairError("document has no viewBox or width/height; repair it first")
    return _decide(
        info1, info2,
        info1.aspect_ratio, info2.aspect_ratio,  # type: ignore[arg-type]
        info1.ratio_source, info2.ratio_source,  # type: ignore[arg-type]
        threshold,
    )


__all__ = ["AspectRatioGuard", "GuardResult", "guard", "validate_ratio_threshold"]
