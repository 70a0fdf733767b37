from __future__ import annotations

import copy
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional, Sequence, Tuple, Union

import yaml

from .errors import ValidationError
from .planner import validate_align_rule
from .types import Alignment, ResolutionMode


HARDCODED_DEFAULTS: Dict[str, Any] = {
    "compare": {
        "threshold": 1,
        "aspect_ratio_threshold": 0.001,
        "alignment": "origin",
        "resolution": "viewbox",
        "scale": 4,
        "meet_rule": "xMidYMid",
        "slice_rule": "xMidYMid",
        "add_missing_viewbox": False,
        "mismatch_is_fatal": False,
    },
    "render": {
        "settle_delay_s": 8.0,
        "timeout_s": 30.0,
        "parallel_pair": False,
    },
    "repair": {
        "command": None,
        "timeout_s": 30.0,
    },
    "batch": {
        "workers": 1,
    },
}


def load_config(path: Union[str, Path]) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")
    try:
        loaded = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValidationError(f"config is not valid YAML: {exc}", path=p) from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, Mapping):
        raise ValidationError("config root must be a mapping", path=p)
    return dict(loaded)


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(result.get(key), Mapping):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def set_nested(config: MutableMapping[str, Any], path: Sequence[str], value: Any) -> None:
    if not path:
        return
    cursor: MutableMapping[str, Any] = config
    for key in path[:-1]:
        next_value = cursor.get(key)
        if not isinstance(next_value, MutableMapping):
            next_value = {}
            cursor[key] = next_value
        cursor = next_value
    cursor[path[-1]] = value


def parse_cli_override(entry: str) -> Tuple[Tuple[str, ...], Any]:
    """Split ``compare.threshold=5`` into a key path and a YAML-parsed value."""

    if "=" not in entry:
        raise ValidationError(f"--opts expects 'path=value', got {entry!r}")
    raw_path, raw_value = entry.split("=", 1)
    path = tuple(part.strip() for part in raw_path.split(".") if part.strip())
    if not path:
        raise ValidationError("--opts needs a key path, e.g. compare.threshold=5")
    try:
        value = yaml.safe_load(raw_value)
    except yaml.YAMLError as exc:
        raise ValidationError(f"--opts {raw_path}: cannot parse value ({exc})") from exc
    return path, value


def load_config_with_defaults(
    path: Optional[Union[str, Path]] = None, overrides: Sequence[str] = ()
) -> Dict[str, Any]:
    config = deep_merge(HARDCODED_DEFAULTS, load_config(path) if path is not None else {})
    for entry in overrides:
        key_path, value = parse_cli_override(entry)
        set_nested(config, key_path, value)
    return config


def _section(cfg: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = cfg.get(name, {})
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValidationError(f"config section '{name}' must be a mapping")
    return value


def _number(section: Mapping[str, Any], key: str, where: str, *, integer: bool = False) -> float:
    value = section.get(key)
    name = f"{where}.{key}"
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number, got {value!r}")
    if integer and (isinstance(value, float) and not value.is_integer()):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if not math.isfinite(value):
        raise ValidationError(f"{name} must be finite, got {value!r}")
    return int(value) if integer else float(value)


def _flag(section: Mapping[str, Any], key: str, where: str) -> bool:
    value = section.get(key)
    if not isinstance(value, bool):
        raise ValidationError(f"{where}.{key} must be true or false, got {value!r}")
    return value


@dataclass(frozen=True)
class CompareSettings:
    threshold: int = 1
    aspect_ratio_threshold: float = 0.001
    alignment: Alignment = Alignment()
    resolution: ResolutionMode = ResolutionMode.VIEWBOX
    scale: float = 4.0
    meet_rule: str = "xMidYMid"
    slice_rule: str = "xMidYMid"
    add_missing_viewbox: bool = False
    mismatch_is_fatal: bool = False
    settle_delay_s: float = 8.0
    timeout_s: float = 30.0
    parallel_pair: bool = False
    repair_command: Optional[Tuple[str, ...]] = None
    repair_timeout_s: float = 30.0
    workers: int = 1

    @classmethod
    def from_mapping(cls, cfg: Mapping[str, Any]) -> "CompareSettings":
        """Validate a merged config mapping; offending keys are named in the error."""

        merged = deep_merge(HARDCODED_DEFAULTS, cfg)
        compare = _section(merged, "compare")
        render = _section(merged, "render")
        repair = _section(merged, "repair")
        batch = _section(merged, "batch")

        threshold = _number(compare, "threshold", "compare", integer=True)
        if not 1 <= threshold <= 255:
            raise ValidationError(f"compare.threshold must be within [1, 255], got {threshold}")
        ratio_threshold = _number(compare, "aspect_ratio_threshold", "compare")
        if not 0.0 <= ratio_threshold <= 1.0:
            raise ValidationError(
                f"compare.aspect_ratio_threshold must be within [0, 1], got {ratio_threshold}"
            )
        scale = _number(compare, "scale", "compare")
        if scale < 1:
            raise ValidationError(f"compare.scale must be >= 1, got {scale}")
        settle = _number(render, "settle_delay_s", "render")
        if settle < 0:
            raise ValidationError(f"render.settle_delay_s must be >= 0, got {settle}")
        timeout = _number(render, "timeout_s", "render")
        if timeout <= 0:
            raise ValidationError(f"render.timeout_s must be > 0, got {timeout}")
        repair_timeout = _number(repair, "timeout_s", "repair")
        if repair_timeout <= 0:
            raise ValidationError(f"repair.timeout_s must be > 0, got {repair_timeout}")
        workers = _number(batch, "workers", "batch", integer=True)
        if workers < 1:
            raise ValidationError(f"batch.workers must be >= 1, got {workers}")

        command = repair.get("command")
        if command is not None:
            if isinstance(command, str):
                command = command.split()
            if not isinstance(command, Sequence) or not command:
                raise ValidationError("repair.command must be a non-empty list of arguments")
            command = tuple(str(part) for part in command)

        try:
            alignment = Alignment.parse(str(compare.get("alignment")))
        except ValidationError as exc:
            raise ValidationError(f"compare.alignment: {exc.message}") from None
        try:
            resolution = ResolutionMode.parse(str(compare.get("resolution")))
        except ValidationError as exc:
            raise ValidationError(f"compare.resolution: {exc.message}") from None
        meet_rule = validate_align_rule(str(compare.get("meet_rule")), name="compare.meet_rule")
        slice_rule = validate_align_rule(str(compare.get("slice_rule")), name="compare.slice_rule")

        return cls(
            threshold=int(threshold),
            aspect_ratio_threshold=ratio_threshold,
            alignment=alignment,
            resolution=resolution,
            scale=scale,
            meet_rule=meet_rule,
            slice_rule=slice_rule,
            add_missing_viewbox=_flag(compare, "add_missing_viewbox", "compare"),
            mismatch_is_fatal=_flag(compare, "mismatch_is_fatal", "compare"),
            settle_delay_s=settle,
            timeout_s=timeout,
            parallel_pair=_flag(render, "parallel_pair", "render"),
            repair_command=command,
            repair_timeout_s=repair_timeout,
            workers=int(workers),
        )


__all__ = [
    "CompareSettings",
    "HARDCODED_DEFAULTS",
    "deep_merge",
    "load_config",
    "load_config_with_defaults",
    "parse_cli_override",
    "set_nested",
]
