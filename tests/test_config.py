from __future__ import annotations

from pathlib import Path

import pytest

from svg_visual_compare.config import (
    HARDCODED_DEFAULTS,
    CompareSettings,
    deep_merge,
    load_config,
    load_config_with_defaults,
    parse_cli_override,
)
from svg_visual_compare.errors import ValidationError
from svg_visual_compare.types import AlignmentMode, ResolutionMode


def test_defaults_match_settings_defaults():
    assert CompareSettings.from_mapping({}) == CompareSettings()
    assert CompareSettings.from_mapping(HARDCODED_DEFAULTS) == CompareSettings()


def test_yaml_file_merges_over_defaults(tmp_path: Path):
    path = tmp_path / "compare.yaml"
    path.write_text(
        "compare:\n"
        "  threshold: 12\n"
        "  alignment: object:logo\n"
        "  resolution: CLIP\n"
        "render:\n"
        "  parallel_pair: true\n"
        "repair:\n"
        "  command: sbb-fix-viewbox {input}\n",
        encoding="utf-8",
    )
    settings = CompareSettings.from_mapping(load_config_with_defaults(path))
    assert settings.threshold == 12
    assert settings.alignment.mode is AlignmentMode.OBJECT
    assert settings.alignment.object_id == "logo"
    assert settings.resolution is ResolutionMode.CLIP
    assert settings.parallel_pair is True
    assert settings.repair_command == ("sbb-fix-viewbox", "{input}")
    assert settings.settle_delay_s == 8.0


def test_cli_overrides_win_and_parse_as_yaml():
    cfg = load_config_with_defaults(overrides=["compare.scale=2.5", "batch.workers=3", "render.parallel_pair=yes"])
    settings = CompareSettings.from_mapping(cfg)
    assert settings.scale == 2.5
    assert settings.workers == 3
    assert settings.parallel_pair is True


@pytest.mark.parametrize(
    "cfg, key",
    [
        ({"compare": {"threshold": 0}}, "compare.threshold"),
        ({"compare": {"threshold": 256}}, "compare.threshold"),
        ({"compare": {"threshold": 2.5}}, "compare.threshold"),
        ({"compare": {"aspect_ratio_threshold": 1.5}}, "compare.aspect_ratio_threshold"),
        ({"compare": {"scale": 0.5}}, "compare.scale"),
        ({"compare": {"alignment": "sideways"}}, "compare.alignment"),
        ({"compare": {"resolution": "huge"}}, "compare.resolution"),
        ({"compare": {"meet_rule": "middle"}}, "compare.meet_rule"),
        ({"compare": {"mismatch_is_fatal": "sometimes"}}, "compare.mismatch_is_fatal"),
        ({"render": {"timeout_s": 0}}, "render.timeout_s"),
        ({"render": {"settle_delay_s": -1}}, "render.settle_delay_s"),
        ({"batch": {"workers": 0}}, "batch.workers"),
    ],
)
def test_out_of_range_values_name_the_key(cfg, key):
    with pytest.raises(ValidationError, match=key.replace(".", r"\.")):
        CompareSettings.from_mapping(cfg)


def test_section_must_be_mapping():
    with pytest.raises(ValidationError, match="compare"):
        CompareSettings.from_mapping({"compare": [1, 2]})


def test_override_syntax_errors():
    with pytest.raises(ValidationError):
        parse_cli_override("compare.threshold")
    with pytest.raises(ValidationError):
        parse_cli_override("=5")
    assert parse_cli_override("a.b=[1, 2]") == (("a", "b"), [1, 2])


def test_load_config_errors(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")

    bad = tmp_path / "bad.yaml"
    bad.write_text("compare: [unterminated\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_config(bad)

    scalar = tmp_path / "scalar.yaml"
    scalar.write_text("42\n", encoding="utf-8")
    with pytest.raises(ValidationError, match="mapping"):
        load_config(scalar)

    empty = tmp_path / "empty.yaml"
    empty.write_text("", encoding="utf-8")
    assert load_config(empty) == {}


def test_deep_merge_leaves_inputs_untouched():
    base = {"compare": {"threshold": 1, "scale": 4}}
    merged = deep_merge(base, {"compare": {"threshold": 9}})
    merged["compare"]["scale"] = 99
    assert base == {"compare": {"threshold": 1, "scale": 4}}
    assert merged["compare"]["threshold"] == 9
