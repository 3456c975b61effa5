from __future__ import annotations

import json
from pathlib import Path
from typing import List

import pytest

from iptvcat.generate import GenerateError, generate, generate_url_tvg


def _titles(path: Path) -> List[str]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [line.rsplit(",", 1)[1] for line in lines if line.startswith("#EXTINF")]


@pytest.fixture()
def output_dir(channels_dir: Path, tmp_path: Path) -> Path:
    target = tmp_path / "site"
    generate(channels_dir, target)
    return target


def test_generate_url_tvg() -> None:
    assert generate_url_tvg(["b", "", None, "a", "b"]) == "a,b"
    assert generate_url_tvg([]) == ""


def test_master_index(output_dir: Path) -> None:
    assert (output_dir / ".nojekyll").exists()

    index = output_dir / "index.m3u"
    assert index.read_text(encoding="utf-8").splitlines()[0] == (
        '#EXTM3U url-tvg="https://epg.example/uk.xml,https://epg.example/us.xml"'
    )
    assert _titles(index) == [
        "Arte [Geo-blocked]",
        "BBC World News",
        "CNN (1080p)",
        "France 24 (720p)",
        "M6 (1080p) [Not 24/7]",
        "Mystery Channel",
    ]
    assert "Hot XXX" in _titles(output_dir / "index.nsfw.m3u")


def test_category_index(output_dir: Path) -> None:
    titles = _titles(output_dir / "index.category.m3u")
    assert titles[:3] == ["Arte [Geo-blocked]", "M6 (1080p) [Not 24/7]", "Mystery Channel"]
    assert titles[-1] == "Hot XXX"


def test_country_index_groups_by_country(output_dir: Path) -> None:
    text = (output_dir / "index.country.m3u").read_text(encoding="utf-8")
    groups = [line.split('group-title="', 1)[1].split('"', 1)[0] for line in text.splitlines() if line.startswith("#EXTINF")]

    assert groups == ["", "", "France", "France", "International", "United Kingdom", "United States"]
    assert "Hot XXX" not in text
    assert "TF1" not in text


def test_language_index(output_dir: Path) -> None:
    titles = _titles(output_dir / "index.language.m3u")
    assert titles == [
        "Arte [Geo-blocked]",
        "Mystery Channel",
        "BBC World News",
        "CNN (1080p)",
        "France 24 (720p)",
        "M6 (1080p) [Not 24/7]",
    ]


def test_partition_files(output_dir: Path) -> None:
    assert _titles(output_dir / "countries" / "fr.m3u") == ["France 24 (720p)", "M6 (1080p) [Not 24/7]"]
    assert _titles(output_dir / "countries" / "us.m3u") == ["CNN (1080p)"]
    assert _titles(output_dir / "countries" / "int.m3u") == ["BBC World News"]
    assert _titles(output_dir / "countries" / "undefined.m3u") == ["Arte [Geo-blocked]", "Mystery Channel"]

    assert _titles(output_dir / "languages" / "fra.m3u") == ["France 24 (720p)", "M6 (1080p) [Not 24/7]"]
    assert _titles(output_dir / "languages" / "undefined.m3u") == ["Arte [Geo-blocked]", "Mystery Channel"]

    assert _titles(output_dir / "categories" / "news.m3u") == ["BBC World News", "CNN (1080p)", "France 24 (720p)"]
    assert _titles(output_dir / "categories" / "general.m3u") == []
    assert _titles(output_dir / "categories" / "xxx.m3u") == ["Hot XXX"]
    assert _titles(output_dir / "categories" / "other.m3u") == [
        "Arte [Geo-blocked]",
        "M6 (1080p) [Not 24/7]",
        "Mystery Channel",
    ]
    assert (output_dir / "categories" / "general.m3u").read_text(encoding="utf-8") == '#EXTM3U url-tvg=""\n'


def test_channels_json_snapshot(output_dir: Path) -> None:
    payload = json.loads((output_dir / "channels.json").read_text(encoding="utf-8"))

    assert len(payload) == 9
    assert [item["name"] for item in payload][:3] == ["Arte", "BBC World News", "CNN"]
    tf1 = next(item for item in payload if item["name"] == "TF1")
    assert tf1["status"] == "Offline"
    assert tf1["category"] == "General"
    bbc = payload[1]
    assert bbc["countries"] == [
        {"code": "uk", "name": "United Kingdom"},
        {"code": "int", "name": "International"},
    ]
    assert bbc["languages"] == [{"code": "eng", "name": "English"}]
    assert bbc["tvg"] == {"id": "BBCWorldNews.uk", "name": "BBC World News", "url": "https://epg.example/uk.xml"}


def test_generation_is_deterministic(channels_dir: Path, tmp_path: Path) -> None:
    first = generate(channels_dir, tmp_path / "one")
    second = generate(channels_dir, tmp_path / "two")

    assert len(first.files) == len(second.files)
    for left, right in zip(first.files, second.files):
        assert left.read_bytes() == right.read_bytes()
    assert first.countries == 4
    assert first.languages == 2


def test_missing_channels_dir(tmp_path: Path) -> None:
    with pytest.raises(GenerateError):
        generate(tmp_path / "missing", tmp_path / "out")
