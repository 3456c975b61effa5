"""
Regeneration of the published playlists from the verified catalog.

Deutsch:
    Erzeugt die veröffentlichten Playlisten aus dem geprüften Katalog.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

from .catalog import (
    ASC,
    DEFAULT_SORT_DIRECTIONS,
    DEFAULT_SORT_KEYS,
    OTHER_CATEGORY,
    Catalog,
    ChannelQuery,
    load_catalog,
)
from .io_m3u import render_channels, write_text_atomic
from .logging_conf import configure_logging
from .models import Channel

log = logging.getLogger(__name__)

DEFAULT_OUTPUT_DIR = Path(".gh-pages")
UNDEFINED = "undefined"


class GenerateError(Exception):
    """Raised when index generation fails. / Wird geworfen, wenn die Index-Erzeugung scheitert."""


@dataclass
class GenerateResult:
    output_path: Path
    channels: int = 0
    countries: int = 0
    languages: int = 0
    categories: int = 0
    files: List[Path] = field(default_factory=list)


def generate(channels_dir: Path, output_dir: Path = DEFAULT_OUTPUT_DIR) -> GenerateResult:
    """
    Write every index, partition file and the JSON snapshot.

    Deutsch:
        Schreibt alle Indizes, Partitionsdateien und den JSON-Schnappschuss.
    """

    configure_logging()
    channels_dir = Path(channels_dir)
    output_dir = Path(output_dir)
    if not channels_dir.is_dir():
        raise GenerateError(f"channel directory {channels_dir} not found")

    log.info("loading catalog from %s", channels_dir)
    catalog = load_catalog(channels_dir)

    log.info("creating %s", output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    (output_dir / ".nojekyll").touch()

    result = GenerateResult(
        output_path=output_dir,
        channels=catalog.channels.count(),
        countries=len(catalog.countries()),
        languages=len(catalog.languages()),
        categories=len(catalog.categories()),
    )
    result.files.extend(generate_index(catalog, output_dir))
    result.files.append(generate_category_index(catalog, output_dir))
    result.files.append(generate_country_index(catalog, output_dir))
    result.files.append(generate_language_index(catalog, output_dir))
    result.files.extend(generate_categories(catalog, output_dir))
    result.files.extend(generate_countries(catalog, output_dir))
    result.files.extend(generate_languages(catalog, output_dir))
    result.files.append(generate_channels_json(catalog, output_dir))

    log.info(
        "total: %d channels, %d countries, %d languages, %d categories",
        result.channels,
        result.countries,
        result.languages,
        result.categories,
    )
    return result


def sorted_channels(catalog: Catalog, leading_key: Optional[str] = None) -> ChannelQuery:
    keys = list(DEFAULT_SORT_KEYS)
    directions = list(DEFAULT_SORT_DIRECTIONS)
    if leading_key:
        keys.insert(0, leading_key)
        directions.insert(0, ASC)
    return catalog.channels.sort_by(keys, directions)


def generate_url_tvg(guides: Iterable[Optional[str]]) -> str:
    return ",".join(sorted({guide for guide in guides if guide}))


def generate_index(catalog: Catalog, output_dir: Path) -> List[Path]:
    log.info("generating index.m3u...")
    channels = sorted_channels(catalog).remove_duplicates().remove_offline().get()
    header = {"url-tvg": generate_url_tvg(channel.tvg_url for channel in channels)}

    filename = output_dir / "index.m3u"
    nsfw_filename = output_dir / "index.nsfw.m3u"
    _write(filename, header, [channel for channel in channels if not channel.is_nsfw])
    _write(nsfw_filename, header, channels)
    return [filename, nsfw_filename]


def generate_category_index(catalog: Catalog, output_dir: Path) -> Path:
    log.info("generating index.category.m3u...")
    channels = sorted_channels(catalog, "category").remove_duplicates().remove_offline().get()
    filename = output_dir / "index.category.m3u"
    _write(filename, {"url-tvg": generate_url_tvg(channel.tvg_url for channel in channels)}, channels)
    return filename


def generate_country_index(catalog: Catalog, output_dir: Path) -> Path:
    log.info("generating index.country.m3u...")
    blocks: List[str] = []
    guides: List[str] = []
    for country in [None, *catalog.countries()]:
        channels = (
            sorted_channels(catalog)
            .for_country(country)
            .remove_duplicates()
            .remove_nsfw()
            .remove_offline()
            .get()
        )
        group_title = country.name if country else ""
        blocks.append(_body(channels, group_title))
        guides.extend(channel.tvg_url for channel in channels)
    filename = output_dir / "index.country.m3u"
    _write_blocks(filename, guides, blocks)
    return filename


def generate_language_index(catalog: Catalog, output_dir: Path) -> Path:
    log.info("generating index.language.m3u...")
    blocks: List[str] = []
    guides: List[str] = []
    for language in [None, *catalog.languages()]:
        channels = (
            sorted_channels(catalog)
            .for_language(language)
            .remove_duplicates()
            .remove_nsfw()
            .remove_offline()
            .get()
        )
        group_title = language.name if language else ""
        blocks.append(_body(channels, group_title))
        guides.extend(channel.tvg_url for channel in channels)
    filename = output_dir / "index.language.m3u"
    _write_blocks(filename, guides, blocks)
    return filename


def generate_categories(catalog: Catalog, output_dir: Path) -> List[Path]:
    log.info("generating /categories...")
    target = output_dir / "categories"
    target.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []
    category_ids = [category.id for category in catalog.categories()] + [OTHER_CATEGORY]
    for category_id in category_ids:
        channels = (
            sorted_channels(catalog)
            .for_category(category_id)
            .remove_duplicates()
            .remove_offline()
            .get()
        )
        filename = target / f"{category_id}.m3u"
        _write(filename, {"url-tvg": generate_url_tvg(channel.tvg_url for channel in channels)}, channels)
        written.append(filename)
    return written


def generate_countries(catalog: Catalog, output_dir: Path) -> List[Path]:
    log.info("generating /countries...")
    target = output_dir / "countries"
    target.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []
    for country in [*catalog.countries(), None]:
        channels = (
            sorted_channels(catalog)
            .for_country(country)
            .remove_duplicates()
            .remove_offline()
            .remove_nsfw()
            .get()
        )
        filename = target / f"{country.code if country else UNDEFINED}.m3u"
        _write(filename, {"url-tvg": generate_url_tvg(channel.tvg_url for channel in channels)}, channels)
        written.append(filename)
    return written


def generate_languages(catalog: Catalog, output_dir: Path) -> List[Path]:
    log.info("generating /languages...")
    target = output_dir / "languages"
    target.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []
    for language in [*catalog.languages(), None]:
        channels = (
            sorted_channels(catalog)
            .for_language(language)
            .remove_duplicates()
            .remove_offline()
            .remove_nsfw()
            .get()
        )
        filename = target / f"{language.code if language else UNDEFINED}.m3u"
        _write(filename, {"url-tvg": generate_url_tvg(channel.tvg_url for channel in channels)}, channels)
        written.append(filename)
    return written


def generate_channels_json(catalog: Catalog, output_dir: Path) -> Path:
    log.info("generating channels.json...")
    channels = sorted_channels(catalog).get()
    filename = output_dir / "channels.json"
    payload = [channel.to_dict() for channel in channels]
    write_text_atomic(filename, json.dumps(payload, ensure_ascii=False))
    return filename


def _write(path: Path, header: dict, channels: Sequence[Channel]) -> None:
    write_text_atomic(path, render_channels(header, channels))


def _body(channels: Sequence[Channel], group_title: str) -> str:
    # Header is rendered separately once all partitions are known.
    return render_channels({}, channels, group_title).split("\n", 1)[1]


def _write_blocks(path: Path, guides: Iterable[str], blocks: Iterable[str]) -> None:
    header = render_channels({"url-tvg": generate_url_tvg(guides)}, [])
    write_text_atomic(path, header + "".join(blocks))


def run_generate(
    *,
    channels_dir: Union[str, Path] = Path("channels"),
    output: Union[str, Path] = DEFAULT_OUTPUT_DIR,
) -> GenerateResult:
    """
    Convenience wrapper used by the CLI to regenerate all outputs.
    """

    return generate(Path(channels_dir), Path(output))
