"""
In-memory catalog of verified channels with composable, read-only queries.

Deutsch:
    Katalog der geprüften Kanäle mit kombinierbaren, nur lesenden Abfragen.
"""

from __future__ import annotations

import logging
from operator import attrgetter
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from . import data
from .io_m3u import PlaylistError, list_playlists, load_playlist
from .models import OFFLINE, Category, Channel, Country, Language

log = logging.getLogger(__name__)

ASC = "asc"
DESC = "desc"
OTHER_CATEGORY = "other"

DEFAULT_SORT_KEYS: Tuple[str, ...] = ("name", "status", "resolution.height", "url")
DEFAULT_SORT_DIRECTIONS: Tuple[str, ...] = (ASC, ASC, DESC, ASC)


class ChannelQuery:
    """
    Immutable, ordered view over channels.

    Every operation returns a new view; the underlying channels are never
    modified.

    Deutsch:
        Unveränderliche, geordnete Sicht auf Kanäle.
    """

    def __init__(self, channels: Iterable[Channel] = ()) -> None:
        self._channels: Tuple[Channel, ...] = tuple(channels)

    def __iter__(self) -> Iterator[Channel]:
        return iter(self._channels)

    def __len__(self) -> int:
        return len(self._channels)

    def get(self) -> List[Channel]:
        return list(self._channels)

    def count(self) -> int:
        return len(self._channels)

    def filter(self, predicate: Callable[[Channel], bool]) -> "ChannelQuery":
        return ChannelQuery(channel for channel in self._channels if predicate(channel))

    def for_country(self, country: Union[Country, str, None]) -> "ChannelQuery":
        """Channels associated with ``country``; ``None`` selects channels without any country."""

        if country is None:
            return self.filter(lambda channel: not channel.countries)
        code = (country.code if isinstance(country, Country) else country).lower()
        return self.filter(lambda channel: any(item.code.lower() == code for item in channel.countries))

    def for_language(self, language: Union[Language, str, None]) -> "ChannelQuery":
        if language is None:
            return self.filter(lambda channel: not channel.languages)
        code = language.code if isinstance(language, Language) else language
        return self.filter(lambda channel: any(item.code == code for item in channel.languages))

    def for_category(self, category: Union[Category, str]) -> "ChannelQuery":
        category_id = (category.id if isinstance(category, Category) else category).lower()
        if category_id == OTHER_CATEGORY:
            return self.filter(lambda channel: data.category_id(channel.category) is None)
        return self.filter(lambda channel: data.category_id(channel.category) == category_id)

    def online(self) -> "ChannelQuery":
        return self.filter(lambda channel: channel.status != OFFLINE)

    def nsfw(self, flag: bool = True) -> "ChannelQuery":
        return self.filter(lambda channel: channel.is_nsfw == flag)

    def sort_by(self, keys: Sequence[str], directions: Optional[Sequence[str]] = None) -> "ChannelQuery":
        """
        Stable multi-key sort.

        Keys are dotted attribute paths evaluated left to right as tie
        breakers; each has its own direction (``asc``/``desc``, default
        ``asc``). Missing, empty or zero values sort as the lowest value.
        """

        directions = list(directions or [])
        if len(directions) > len(keys):
            raise ValueError("more sort directions than sort keys")
        directions.extend([ASC] * (len(keys) - len(directions)))
        for direction in directions:
            if direction not in (ASC, DESC):
                raise ValueError(f"unknown sort direction {direction!r}")

        items = list(self._channels)
        # Sorting by the last key first keeps earlier keys as primary criteria.
        for key, direction in reversed(list(zip(keys, directions))):
            getter = attrgetter(key)
            items.sort(key=lambda channel: _sort_value(getter, channel), reverse=direction == DESC)
        return ChannelQuery(items)

    def remove_duplicates(self) -> "ChannelQuery":
        """Keep the first channel of every canonical URL under the current order."""

        seen: set[str] = set()
        kept: List[Channel] = []
        for channel in self._channels:
            if channel.url in seen:
                continue
            seen.add(channel.url)
            kept.append(channel)
        return ChannelQuery(kept)

    def remove_offline(self) -> "ChannelQuery":
        return self.online()

    def remove_nsfw(self) -> "ChannelQuery":
        return self.nsfw(False)


def _sort_value(getter: Callable[[Channel], Any], channel: Channel) -> Tuple[Any, ...]:
    try:
        value = getter(channel)
    except AttributeError:
        value = None
    if value is None or value == "" or value == 0:
        return (0,)
    return (1, value)


class Catalog:
    """
    All channels across playlists plus their derived partitions.

    Deutsch:
        Alle Kanäle aller Playlisten samt abgeleiteter Partitionen.
    """

    def __init__(self, channels: Iterable[Channel] = ()) -> None:
        self.channels = ChannelQuery(channels)

    def countries(self) -> List[Country]:
        found: Dict[str, Country] = {}
        for channel in self.channels:
            for country in channel.countries:
                found.setdefault(country.code, country)
        return sorted(found.values(), key=lambda item: (item.name, item.code))

    def languages(self) -> List[Language]:
        found: Dict[str, Language] = {}
        for channel in self.channels:
            for language in channel.languages:
                found.setdefault(language.code, language)
        return sorted(found.values(), key=lambda item: (item.name, item.code))

    def categories(self) -> List[Category]:
        return [Category(id=name.lower(), name=name) for name in data.category_names()]


def load_catalog(channels_dir: Path) -> Catalog:
    channels: List[Channel] = []
    for path in list_playlists(channels_dir):
        try:
            playlist = load_playlist(path)
        except PlaylistError as exc:
            log.error("skipping playlist %s: %s", path, exc)
            continue
        channels.extend(playlist.channels)
    log.info("loaded %d channels from %s", len(channels), channels_dir)
    return Catalog(channels)
