from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from iptvcat.config import ConfigError, build_options, load_settings


def test_settings_file_layered_under_overrides(tmp_path: Path) -> None:
    config_path = tmp_path / "iptvcat.yml"
    config_path.write_text(
        yaml.safe_dump({"timeout_ms": "8000", "delay_ms": 250, "countries": ["FR", "us"], "offline": True}),
        encoding="utf-8",
    )

    options = build_options(load_settings(config_path), timeout_ms=2000, exclude="uk, int", offline=None)

    assert options.timeout_ms == 2000
    assert options.delay_ms == 250
    assert options.countries == {"fr", "us"}
    assert options.exclude == {"uk", "int"}
    assert options.offline is True
    assert options.channels_dir == Path("channels")


def test_empty_settings_file(tmp_path: Path) -> None:
    config_path = tmp_path / "empty.yml"
    config_path.write_text("", encoding="utf-8")
    assert load_settings(config_path) == {}


@pytest.mark.parametrize(
    "content",
    [
        "- just\n- a list\n",
        "unknown_key: 1\n",
        "timeout_ms: [unclosed\n",
    ],
)
def test_invalid_settings_file(tmp_path: Path, content: str) -> None:
    config_path = tmp_path / "bad.yml"
    config_path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_settings(config_path)


@pytest.mark.parametrize(
    "overrides",
    [
        {"workers": 0},
        {"timeout_ms": 0},
        {"delay_ms": -1},
        {"timeout_ms": "soon"},
        {"colour": "blue"},
    ],
)
def test_invalid_options(overrides: dict) -> None:
    with pytest.raises(ConfigError):
        build_options(None, **overrides)


def test_blank_code_list_means_no_filter() -> None:
    assert build_options(None, countries=" , ").countries is None
