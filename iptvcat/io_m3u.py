"""
Reader and writer for M3U channel playlists.

Deutsch:
    Lesen und Schreiben von M3U-Kanallisten.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from . import data
from .models import Channel, Country, Playlist, Resolution

log = logging.getLogger(__name__)

_HEADER_RE = re.compile(r"^#EXTM3U\b(.*)$")
_EXTINF_RE = re.compile(r'^#EXTINF:\s*(-?\d+)((?:\s+[\w-]+="[^"]*")*)\s*,(.*)$')
_ATTR_RE = re.compile(r'([a-zA-Z0-9\-]+)="([^"]*)"')
_STATUS_RE = re.compile(r"\s*\[([^\]]+)\]\s*$")
_RESOLUTION_RE = re.compile(r"\s*\((\d+)[pi]\)\s*$")
_NSFW_RE = re.compile(r"\b(xxx|porn)\b", re.IGNORECASE)
_VLCOPT_KEYS = {"http-referrer": "http_referrer", "http-user-agent": "user_agent"}


class PlaylistError(Exception):
    """Raised when a playlist file cannot be parsed. / Wird geworfen, wenn eine Playlist unlesbar ist."""


def list_playlists(
    channels_dir: Path,
    include: Optional[Iterable[str]] = None,
    exclude: Optional[Iterable[str]] = None,
) -> List[Path]:
    """
    List playlist files, filtered by country code (the file stem).

    Deutsch:
        Listet Playlist-Dateien, gefiltert nach Ländercode (Dateiname).
    """

    include_set = {item.strip().lower() for item in include or () if item.strip()}
    exclude_set = {item.strip().lower() for item in exclude or () if item.strip()}
    files: List[Path] = []
    for path in sorted(Path(channels_dir).glob("*.m3u")):
        code = path.stem.lower()
        if include_set and code not in include_set:
            continue
        if code in exclude_set:
            continue
        files.append(path)
    return files


def load_playlist(path: Path) -> Playlist:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(path)
    code = path.stem.lower()
    country = Country(code=code, name=data.code2name(code) or "")
    text = path.read_text(encoding="utf-8", errors="replace")
    header, channels = parse_playlist(text, source=str(path))
    return Playlist(path=path, country=country, channels=channels, header=header)


def parse_playlist(text: str, source: str = "<string>") -> tuple[Dict[str, str], List[Channel]]:
    lines = [line.strip() for line in text.splitlines()]
    lines = [line for line in lines if line]
    if not lines:
        return {}, []
    header_match = _HEADER_RE.match(lines[0])
    if not header_match:
        raise PlaylistError(f"{source}: missing #EXTM3U header")
    header = {key.lower(): value for key, value in _ATTR_RE.findall(header_match.group(1))}

    channels: List[Channel] = []
    current: Optional[Dict[str, str]] = None
    skipping = False
    for lineno, line in enumerate(lines[1:], start=2):
        if line.startswith("#EXTINF"):
            current = _parse_extinf(line)
            skipping = current is None
            if skipping:
                log.warning("%s:%d: malformed #EXTINF line, skipping entry", source, lineno)
        elif line.startswith("#EXTVLCOPT:"):
            if current is None:
                continue
            key, _, value = line[len("#EXTVLCOPT:") :].partition("=")
            field_name = _VLCOPT_KEYS.get(key.strip().lower())
            if field_name:
                current[field_name] = value.strip()
        elif line.startswith("#"):
            continue
        else:
            if current is None:
                if not skipping:
                    log.warning("%s:%d: stream url without #EXTINF, skipping", source, lineno)
                skipping = False
                continue
            channels.append(_build_channel(current, line))
            current = None
    return header, channels


def _parse_extinf(line: str) -> Optional[Dict[str, str]]:
    match = _EXTINF_RE.match(line)
    if not match:
        return None
    meta: Dict[str, str] = {}
    for key, value in _ATTR_RE.findall(match.group(2)):
        meta[key.lower()] = _clean_text(value)
    meta["title"] = _clean_text(match.group(3))
    return meta


def _build_channel(meta: Dict[str, str], url: str) -> Channel:
    name, height, status = _split_title(meta.get("title", ""))
    group_title = meta.get("group-title", "")
    channel = Channel(
        name=name,
        url=_clean_text(url),
        tvg_id=meta.get("tvg-id", ""),
        tvg_name=meta.get("tvg-name", ""),
        tvg_language=meta.get("tvg-language", ""),
        tvg_country=meta.get("tvg-country", ""),
        tvg_url=meta.get("tvg-url", ""),
        countries=_parse_countries(meta.get("tvg-country", "")),
        logo=meta.get("tvg-logo", ""),
        group_title=group_title,
        category=group_title if data.category_id(group_title) else "",
        status=status,
        resolution=Resolution(width=0, height=height),
        http_referrer=meta.get("http_referrer", ""),
        user_agent=meta.get("user_agent", ""),
    )
    channel.is_nsfw = _detect_nsfw(channel)
    return channel


def _split_title(title: str) -> tuple[str, int, Optional[str]]:
    status = None
    match = _STATUS_RE.search(title)
    if match:
        status = match.group(1).strip() or None
        title = title[: match.start()]
    height = 0
    match = _RESOLUTION_RE.search(title)
    if match:
        height = int(match.group(1))
        title = title[: match.start()]
    return title.strip(), height, status


def _parse_countries(value: str) -> List[Country]:
    countries: List[Country] = []
    for code in value.split(";"):
        code = code.strip().lower()
        name = data.code2name(code)
        if code and name:
            countries.append(Country(code=code, name=name))
    return countries


def _detect_nsfw(channel: Channel) -> bool:
    if data.category_id(channel.group_title) == "xxx":
        return True
    return bool(_NSFW_RE.search(channel.name) or _NSFW_RE.search(channel.tvg_id))


def channel_to_string(channel: Channel, group_title: Optional[str] = None) -> str:
    """
    Serialise one channel as ``#EXTINF`` block (with trailing newline).

    ``group_title`` overrides the channel's own group for partitioned indexes.
    """

    attrs = [
        ("tvg-id", channel.tvg_id),
        ("tvg-name", channel.tvg_name),
        ("tvg-country", channel.tvg_country),
        ("tvg-language", channel.tvg_language),
        ("tvg-logo", channel.logo),
    ]
    if channel.tvg_url:
        attrs.append(("tvg-url", channel.tvg_url))
    attrs.append(("group-title", channel.group_title if group_title is None else group_title))
    title = channel.name
    if channel.resolution.height:
        title += f" ({channel.resolution.height}p)"
    if channel.status:
        title += f" [{channel.status}]"

    rendered = " ".join(f'{key}="{value or ""}"' for key, value in attrs)
    lines = [f"#EXTINF:-1 {rendered},{title}"]
    if channel.http_referrer:
        lines.append(f"#EXTVLCOPT:http-referrer={channel.http_referrer}")
    if channel.user_agent:
        lines.append(f"#EXTVLCOPT:http-user-agent={channel.user_agent}")
    lines.append(channel.url)
    return "\n".join(lines) + "\n"


def render_header(attrs: Dict[str, str]) -> str:
    rendered = "".join(f' {key}="{value}"' for key, value in attrs.items())
    return f"#EXTM3U{rendered}\n"


def playlist_to_string(playlist: Playlist) -> str:
    return render_header(playlist.header) + "".join(channel_to_string(channel) for channel in playlist.channels)


def render_channels(header: Dict[str, str], channels: Sequence[Channel], group_title: Optional[str] = None) -> str:
    return render_header(header) + "".join(channel_to_string(channel, group_title) for channel in channels)


def save_playlist(playlist: Playlist) -> bool:
    """
    Write the playlist back to its source file.

    Returns ``True`` when the file content changed.

    Deutsch:
        Schreibt die Playlist zurück; liefert ``True`` bei Änderungen.
    """

    text = playlist_to_string(playlist)
    path = Path(playlist.path)
    previous = path.read_text(encoding="utf-8", errors="replace") if path.exists() else None
    if previous == text:
        playlist.updated = False
        return False
    write_text_atomic(path, text)
    playlist.updated = True
    return True


def write_text_atomic(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(text, encoding="utf-8")
    tmp_path.replace(path)


def _clean_text(value: Optional[str]) -> str:
    if value is None:
        return ""
    text = value.replace("\x00", "").strip()
    return unicodedata.normalize("NFC", text)
