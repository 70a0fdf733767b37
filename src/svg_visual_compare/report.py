from __future__ import annotations

import csv
import json
import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import numpy as np
from PIL import Image

from .batch import diff_image_name
from .types import BatchReport


log = logging.getLogger(__name__)

PathLike = Union[str, Path]

CSV_FIELDS = [
    "index",
    "svg1",
    "svg2",
    "status",
    "total_pixels",
    "different_pixels",
    "diff_percentage",
    "threshold",
    "aspect_ratio_mismatch",
    "diff_image",
    "error_kind",
    "error",
]


def default_diff_path(svg1: PathLike, svg2: PathLike, outdir: Optional[PathLike] = None) -> Path:
    """``<stem1>_vs_<stem2>_diff.png`` next to the working directory or in ``outdir``."""

    name = f"{Path(svg1).stem}_vs_{Path(svg2).stem}_diff.png"
    return Path(outdir) / name if outdir is not None else Path(name)


def write_diff_png(image: np.ndarray, path: PathLike) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(np.ascontiguousarray(image, dtype=np.uint8)).save(p, format="PNG")
    return p


def write_json_report(obj: Mapping[str, Any], path: PathLike) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as handle:
        json.dump(obj, handle, indent=2)
        handle.write("\n")
    return p


def write_batch_diffs(report: BatchReport, outdir: PathLike) -> int:
    """Write the diff image of every successful item; returns how many were written."""

    os.makedirs(outdir, exist_ok=True)
    written = 0
    for index, item in enumerate(report.items, start=1):
        if item.result is None or item.result.diff_image is None:
            continue
        path = Path(outdir) / diff_image_name(index, item.svg1_path, item.svg2_path)
        write_diff_png(item.result.diff_image, path)
        item.diff_image_path = str(path)
        written += 1
    log.debug("Wrote %d diff images to %s", written, outdir)
    return written


def write_batch_csv(report: BatchReport, path: PathLike) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for index, item in enumerate(report.items, start=1):
            result = item.result
            writer.writerow(
                {
                    "index": index,
                    "svg1": item.svg1_path,
                    "svg2": item.svg2_path,
                    "status": item.status,
                    "total_pixels": result.total_pixels if result else "",
                    "different_pixels": result.different_pixels if result else "",
                    "diff_percentage": f"{result.rounded_percentage:.2f}" if result else "",
                    "threshold": result.threshold if result else "",
                    "aspect_ratio_mismatch": result.aspect_ratio_mismatch if result else "",
                    "diff_image": item.diff_image_path or "",
                    "error_kind": item.error_kind or "",
                    "error": item.error or "",
                }
            )
    return p


__all__ = [
    "CSV_FIELDS",
    "default_diff_path",
    "write_batch_csv",
    "write_batch_diffs",
    "write_diff_png",
    "write_json_report",
]
