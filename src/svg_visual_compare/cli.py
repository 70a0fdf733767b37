from __future__ import annotations

import json
import logging
import traceback
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

from .batch import read_batch_file, run_batch
from .config import CompareSettings, load_config_with_defaults, set_nested
from .errors import CompareError, ValidationError
from .pipeline import ComparePipeline
from .report import (
    default_diff_path,
    write_batch_csv,
    write_batch_diffs,
    write_diff_png,
    write_json_report,
)
from .types import BatchItem, ComparisonResult


log = logging.getLogger(__name__)

PACKAGE_LOGGER = "svg_visual_compare"


class Logger:
    def __init__(self, verbose: bool, *, stderr: bool = False) -> None:
        self.verbose = verbose
        theme = Theme({
            "info": "cyan",
            "step": "bold cyan",
            "warning": "bold yellow",
            "error": "bold red",
        })
        self.console = Console(theme=theme, highlight=False, stderr=stderr)
        self.err_console = Console(theme=theme, highlight=False, stderr=True)

    def _print(self, message: str, style: str | None = None, *, err: bool = False) -> None:
        target = self.err_console if err else self.console
        if style:
            target.print(f"[{style}]{escape(message)}[/{style}]")
        else:
            target.print(escape(message))

    def info(self, message: str) -> None:
        self._print(message, style="info")

    def step(self, message: str) -> None:
        self.console.print(f"[step]▶ {escape(message)}")

    def warn(self, message: str) -> None:
        self._print(message, style="warning")

    def error(self, message: str) -> None:
        self._print(message, style="error", err=True)

    def debug(self, message: str) -> None:
        if self.verbose:
            self.console.print(f"[dim]{escape(message)}[/dim]")

    def status(self, message: str):  # type: ignore[override]
        return self.console.status(message)


class _LoggingBridge(logging.Handler):
    def __init__(self, cli_logger: Logger, level: int) -> None:
        super().__init__(level)
        self._cli_logger = cli_logger

    def emit(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        msg = self.format(record)
        if record.levelno >= logging.ERROR:
            self._cli_logger.error(msg)
        elif record.levelno >= logging.WARNING:
            self._cli_logger.warn(msg)
        elif record.levelno >= logging.INFO:
            self._cli_logger.info(msg)
        else:
            self._cli_logger.debug(msg)


def _install_bridge(logger: Logger, verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(log_level)
    package_logger.propagate = False
    for handler in list(package_logger.handlers):
        if isinstance(handler, _LoggingBridge):
            package_logger.removeHandler(handler)
    bridge = _LoggingBridge(logger, log_level)
    bridge.setFormatter(logging.Formatter("%(message)s"))
    package_logger.addHandler(bridge)


def _build_settings(
    config: Optional[Path], opts: Optional[List[str]], overrides: Dict[str, Any]
) -> CompareSettings:
    cfg = load_config_with_defaults(config, opts or ())
    for dotted, value in overrides.items():
        if value is not None:
            set_nested(cfg, tuple(dotted.split(".")), value)
    return CompareSettings.from_mapping(cfg)


def _error_message(exc: BaseException) -> str:
    if isinstance(exc, CompareError):
        return f"{exc.kind}: {exc}"
    return str(exc) if str(exc) else exc.__class__.__name__


def _fail(logger: Logger, exc: BaseException, verbose: bool) -> typer.Exit:
    if isinstance(exc, (ValidationError, FileNotFoundError)):
        logger.error(_error_message(exc))
        return typer.Exit(code=2)
    if isinstance(exc, CompareError):
        logger.error(_error_message(exc))
        return typer.Exit(code=1)
    logger.error(f"Unexpected error: {_error_message(exc)}")
    if verbose:
        traceback.print_exc()
    return typer.Exit(code=1)


def _summarize(logger: Logger, result: ComparisonResult, diff_path: Optional[Path]) -> None:
    logger.console.rule("Comparison")
    table = Table(show_header=True, header_style="bold")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("SVG 1", escape(str(result.svg1)))
    table.add_row("SVG 2", escape(str(result.svg2)))
    if result.plan is not None:
        plan = result.plan
        table.add_row("Render size 1", f"{plan.doc1.width}x{plan.doc1.height}")
        table.add_row("Render size 2", f"{plan.doc2.width}x{plan.doc2.height}")
        table.add_row("Offset", f"({plan.offset_x:g}, {plan.offset_y:g})")
    table.add_row("Total pixels", str(result.total_pixels))
    table.add_row("Different pixels", str(result.different_pixels))
    table.add_row("Difference", f"{result.rounded_percentage:.2f}%")
    table.add_row("Threshold", str(result.threshold))
    if result.aspect_ratio_diff is not None:
        table.add_row("Aspect ratio diff", f"{result.aspect_ratio_diff:.6f}")
    logger.console.print(table)
    if result.aspect_ratio_mismatch:
        logger.warn("Aspect ratios differ; pair reported as 100% different")
    if diff_path is not None:
        logger.console.print(f"Diff image: {escape(str(diff_path))}")
    for item in result.warnings:
        logger.console.print(f"  - {escape(item)}", style="warning")


app = typer.Typer(help="Visual regression comparison for SVG documents")


@app.command("compare")
def compare(
    svg1: Path = typer.Argument(..., help="First SVG document"),
    svg2: Path = typer.Argument(..., help="Second SVG document (reference frame)"),
    out_diff: Optional[Path] = typer.Option(
        None, "--out-diff", help="Diff image path (default: <svg1>_vs_<svg2>_diff.png)"
    ),
    threshold: Optional[int] = typer.Option(None, "--threshold", help="Per-channel tolerance 1..255"),
    alignment: Optional[str] = typer.Option(
        None,
        "--alignment",
        help="origin | viewbox-topleft | viewbox-center | object:<id> | custom:<x>,<y>",
    ),
    resolution: Optional[str] = typer.Option(
        None, "--resolution", help="nominal | viewbox | full | scale | stretch | clip"
    ),
    scale: Optional[float] = typer.Option(None, "--scale", help="Resolution multiplier (>= 1)"),
    meet_rule: Optional[str] = typer.Option(None, "--meet-rule", help="Alignment for 'scale' mode"),
    slice_rule: Optional[str] = typer.Option(None, "--slice-rule", help="Alignment for 'clip' mode"),
    aspect_ratio_threshold: Optional[float] = typer.Option(
        None, "--aspect-ratio-threshold", help="Maximum aspect ratio difference 0..1"
    ),
    add_missing_viewbox: Optional[bool] = typer.Option(
        None, "--add-missing-viewbox", help="Always regenerate viewBox before comparing"
    ),
    mismatch_fatal: Optional[bool] = typer.Option(
        None, "--mismatch-fatal", help="Treat aspect ratio mismatch as an error"
    ),
    settle_delay: Optional[float] = typer.Option(
        None, "--settle-delay", help="Seconds to wait before each capture"
    ),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Rasterization timeout in seconds"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
    config: Optional[Path] = typer.Option(None, "--config", help="YAML configuration file"),
    opts: Optional[List[str]] = typer.Option(
        None, "--opts", help="Config override PATH=VALUE (repeatable)", metavar="PATH=VALUE"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """Compare two SVG documents pixel by pixel."""

    logger = Logger(verbose=verbose, stderr=as_json)
    _install_bridge(logger, verbose)
    try:
        settings = _build_settings(
            config,
            opts,
            {
                "compare.threshold": threshold,
                "compare.alignment": alignment,
                "compare.resolution": resolution,
                "compare.scale": scale,
                "compare.meet_rule": meet_rule,
                "compare.slice_rule": slice_rule,
                "compare.aspect_ratio_threshold": aspect_ratio_threshold,
                "compare.add_missing_viewbox": add_missing_viewbox,
                "compare.mismatch_is_fatal": mismatch_fatal,
                "render.settle_delay_s": settle_delay,
                "render.timeout_s": timeout,
            },
        )
        pipeline = ComparePipeline(settings=settings)
        with logger.status("Comparing"):
            result = pipeline.compare_files(svg1, svg2)

        diff_path: Optional[Path] = None
        if result.diff_image is not None:
            diff_path = write_diff_png(result.diff_image, out_diff or default_diff_path(svg1, svg2))
    except Exception as exc:
        raise _fail(logger, exc, verbose) from exc

    if as_json:
        record = result.to_dict(diff_image_path=str(diff_path) if diff_path else None)
        typer.echo(json.dumps(record, indent=2))
    else:
        _summarize(logger, result, diff_path)


@app.command("batch")
def batch(
    batch_file: Path = typer.Argument(..., help="Tab-separated list of SVG pairs"),
    report: Optional[Path] = typer.Option(None, "--report", help="Write the JSON report to this file"),
    csv_path: Optional[Path] = typer.Option(None, "--csv", help="Write a CSV summary to this file"),
    diff_dir: Optional[Path] = typer.Option(None, "--diff-dir", help="Directory for diff images"),
    workers: Optional[int] = typer.Option(None, "--workers", help="Pairs compared concurrently"),
    threshold: Optional[int] = typer.Option(None, "--threshold", help="Per-channel tolerance 1..255"),
    alignment: Optional[str] = typer.Option(None, "--alignment", help="Alignment mode"),
    resolution: Optional[str] = typer.Option(None, "--resolution", help="Resolution mode"),
    scale: Optional[float] = typer.Option(None, "--scale", help="Resolution multiplier (>= 1)"),
    meet_rule: Optional[str] = typer.Option(None, "--meet-rule", help="Alignment for 'scale' mode"),
    slice_rule: Optional[str] = typer.Option(None, "--slice-rule", help="Alignment for 'clip' mode"),
    aspect_ratio_threshold: Optional[float] = typer.Option(
        None, "--aspect-ratio-threshold", help="Maximum aspect ratio difference 0..1"
    ),
    add_missing_viewbox: Optional[bool] = typer.Option(
        None, "--add-missing-viewbox", help="Always regenerate viewBox before comparing"
    ),
    mismatch_fatal: Optional[bool] = typer.Option(
        None, "--mismatch-fatal", help="Record aspect ratio mismatches as failures"
    ),
    settle_delay: Optional[float] = typer.Option(
        None, "--settle-delay", help="Seconds to wait before each capture"
    ),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Rasterization timeout in seconds"),
    config: Optional[Path] = typer.Option(None, "--config", help="YAML configuration file"),
    opts: Optional[List[str]] = typer.Option(
        None, "--opts", help="Config override PATH=VALUE (repeatable)", metavar="PATH=VALUE"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """Compare every pair listed in BATCH_FILE; per-pair failures never abort the run."""

    logger = Logger(verbose=verbose, stderr=True)
    _install_bridge(logger, verbose)
    try:
        settings = _build_settings(
            config,
            opts,
            {
                "batch.workers": workers,
                "compare.threshold": threshold,
                "compare.alignment": alignment,
                "compare.resolution": resolution,
                "compare.scale": scale,
                "compare.meet_rule": meet_rule,
                "compare.slice_rule": slice_rule,
                "compare.aspect_ratio_threshold": aspect_ratio_threshold,
                "compare.add_missing_viewbox": add_missing_viewbox,
                "compare.mismatch_is_fatal": mismatch_fatal,
                "render.settle_delay_s": settle_delay,
                "render.timeout_s": timeout,
            },
        )
        pairs = read_batch_file(batch_file)
        pipeline = ComparePipeline(settings=settings)
        logger.step(f"Comparing {len(pairs)} pairs with {settings.workers} worker(s)")

        def _progress(index: int, item: BatchItem) -> None:
            if item.status == "succeeded" and item.result is not None:
                logger.info(
                    f"({index + 1}/{len(pairs)}) {item.result.rounded_percentage:.2f}% "
                    f"{item.svg1_path} vs {item.svg2_path}"
                )
            else:
                logger.warn(f"({index + 1}/{len(pairs)}) failed: {item.error}")

        outcome = run_batch(pairs, pipeline, workers=settings.workers, on_item=_progress)
        if diff_dir is not None:
            write_batch_diffs(outcome, diff_dir)
        payload = outcome.to_dict(batch_file=str(batch_file))
        if report is not None:
            write_json_report(payload, report)
        if csv_path is not None:
            write_batch_csv(outcome, csv_path)
    except Exception as exc:
        raise _fail(logger, exc, verbose) from exc

    typer.echo(json.dumps(payload, indent=2))
    style = "warning" if outcome.failed else "info"
    logger.console.print(
        f"Total: {outcome.total} | successful: {outcome.successful} | failed: {outcome.failed}",
        style=style,
    )


if __name__ == "__main__":
    app()
