"""Batch orchestration over many document pairs.

Batch files hold one pair per line: two paths separated by a single tab.
Blank lines and ``#`` comments are skipped.
"""

from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from .errors import ValidationError
from .pipeline import ComparePipeline
from .types import BatchItem, BatchReport


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PairSpec:
    svg1: str
    svg2: str
    line: Optional[int] = None


def parse_batch_lines(lines: Sequence[str], *, base_dir: Optional[Path] = None) -> List[PairSpec]:
    pairs: List[PairSpec] = []
    for number, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")
        if not line.strip() or line.startswith("#"):
            continue
        parts = line.split("\t")
        if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
            raise ValidationError(
                f"line {number}: expected two paths separated by a single tab, got {line!r}"
            )
        first, second = (Path(part.strip()) for part in parts)
        if base_dir is not None:
            first = first if first.is_absolute() else base_dir / first
            second = second if second.is_absolute() else base_dir / second
        pairs.append(PairSpec(str(first), str(second), number))
    return pairs


def read_batch_file(path: Union[str, Path]) -> List[PairSpec]:
    """Parse a batch file; relative paths resolve against its directory."""

    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValidationError(f"cannot read batch file: {exc}", path=p) from exc
    try:
        pairs = parse_batch_lines(text.splitlines(), base_dir=p.parent)
    except ValidationError as exc:
        raise exc.with_path(p)
    if not pairs:
        raise ValidationError("batch file contains no comparison pairs", path=p)
    return pairs


def _run_item(item: BatchItem, pipeline: ComparePipeline) -> BatchItem:
    try:
        result = pipeline.compare_files(item.svg1_path, item.svg2_path)
    except Exception as exc:  # noqa: BLE001 - one pair never aborts the batch
        log.error("Comparison failed: %s vs %s: %s", item.svg1_path, item.svg2_path, exc)
        item.mark_failed(exc)
    else:
        item.mark_succeeded(result)
    return item


def run_batch(
    pairs: Sequence[PairSpec],
    pipeline: ComparePipeline,
    *,
    workers: int = 1,
    on_item: Optional[Callable[[int, BatchItem], None]] = None,
) -> BatchReport:
    """Compare every pair, isolating failures; items keep input order."""

    if workers < 1:
        raise ValidationError(f"workers must be >= 1, got {workers}")
    report = BatchReport([BatchItem(pair.svg1, pair.svg2) for pair in pairs])

    if workers == 1:
        for index, item in enumerate(report.items):
            _run_item(item, pipeline)
            if on_item is not None:
                on_item(index, item)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix="batch") as pool:
            futures = {
                pool.submit(_run_item, item, pipeline): index
                for index, item in enumerate(report.items)
            }
            for future in concurrent.futures.as_completed(futures):
                index = futures[future]
                future.result()
                if on_item is not None:
                    on_item(index, report.items[index])

    log.info("Batch finished: %d successful, %d failed", report.successful, report.failed)
    return report


def diff_image_name(index: int, svg1: Union[str, Path], svg2: Union[str, Path]) -> str:
    return f"{index}_{Path(svg1).stem}_vs_{Path(svg2).stem}_diff.png"


__all__ = [
    "PairSpec",
    "diff_image_name",
    "parse_batch_lines",
    "read_batch_file",
    "run_batch",
]
