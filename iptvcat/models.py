"""
Shared data models for the iptvcat toolchain.

Deutsch:
    Gemeinsame Datenmodelle für Prüf-Pipeline und Index-Generator.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Set

from . import data

OFFLINE = "Offline"
NOT_24_7 = "Not 24/7"
GEO_BLOCKED = "Geo-blocked"

# Curated statuses that are never re-probed.
SENTINEL_STATUSES = frozenset({GEO_BLOCKED, NOT_24_7})

_HTTP_CODE_RE = re.compile(r"\b([1-5]\d\d)\b")
_EXPECTED_CLIENT_ERRORS = {400, 401, 403, 404}


class HealthState(str, Enum):
    """Outcome of classifying a single probe."""

    ONLINE = "online"
    OFFLINE = "offline"
    TIMEOUT = "timeout"
    ERROR_40X = "error_40x"
    ERROR_403 = "error_403"


class FailureReason(str, Enum):
    """
    Structured reason reported by a prober when a stream could not be read.

    Deutsch:
        Strukturierter Fehlergrund, den der Prober bei einem Fehlschlag meldet.
    """

    NONE = "none"
    TIMEOUT = "timeout"
    FORBIDDEN = "forbidden"
    UNEXPECTED_CLIENT_ERROR = "unexpected_client_error"
    UNREACHABLE = "unreachable"

    @classmethod
    def from_status_code(cls, status_code: int) -> "FailureReason":
        """
        Map an HTTP error status to a reason.

        Every error status outside 400, 401, 403 and 404 counts as unexpected,
        server errors included; 403 is reported on its own.
        """

        if status_code == 403:
            return cls.FORBIDDEN
        if status_code >= 400 and status_code not in _EXPECTED_CLIENT_ERRORS:
            return cls.UNEXPECTED_CLIENT_ERROR
        return cls.UNREACHABLE

    @classmethod
    def from_text(cls, text: Optional[str]) -> "FailureReason":
        """
        Map free-text failure messages (as emitted by older probers) to a reason.
        """

        message = (text or "").lower()
        if "timed out" in message or "timeout" in message:
            return cls.TIMEOUT
        if "403" in message:
            return cls.FORBIDDEN
        if "not one of 40{0,1,3,4}" in message:
            return cls.UNEXPECTED_CLIENT_ERROR
        match = _HTTP_CODE_RE.search(message)
        if match and ("status" in message or "respon" in message):
            return cls.from_status_code(int(match.group(1)))
        return cls.UNREACHABLE


@dataclass(frozen=True)
class Country:
    code: str
    name: str


@dataclass(frozen=True)
class Language:
    code: str
    name: str


@dataclass(frozen=True)
class Category:
    id: str
    name: str


@dataclass
class Resolution:
    width: int = 0
    height: int = 0


@dataclass(eq=False)
class Channel:
    """
    A single playlist entry.

    Channels compare by identity so they can key per-pass result maps.

    Deutsch:
        Ein einzelner Playlist-Eintrag.
    """

    name: str
    url: str
    tvg_id: str = ""
    tvg_name: str = ""
    tvg_language: str = ""
    tvg_country: str = ""
    tvg_url: str = ""
    countries: List[Country] = field(default_factory=list)
    logo: str = ""
    group_title: str = ""
    category: str = ""
    status: Optional[str] = None
    resolution: Resolution = field(default_factory=Resolution)
    is_nsfw: bool = False
    http_referrer: str = ""
    user_agent: str = ""

    @property
    def languages(self) -> List[Language]:
        result: List[Language] = []
        for name in self.tvg_language.split(";"):
            name = name.strip()
            code = data.language_code(name) if name else None
            if code:
                result.append(Language(code=code, name=name))
        return result

    def update_url(self, url: str) -> None:
        self.url = url

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "logo": self.logo or None,
            "url": self.url,
            "category": self.category or None,
            "languages": [{"code": lang.code, "name": lang.name} for lang in self.languages],
            "countries": [{"code": country.code, "name": country.name} for country in self.countries],
            "tvg": {
                "id": self.tvg_id or None,
                "name": self.tvg_name or None,
                "url": self.tvg_url or None,
            },
            "status": self.status,
            "resolution": {"width": self.resolution.width, "height": self.resolution.height},
            "nsfw": self.is_nsfw,
        }


@dataclass
class Playlist:
    """
    Ordered list of channels loaded from one file.

    Deutsch:
        Geordnete Kanalliste aus einer Datei.
    """

    path: Path
    country: Country
    channels: List[Channel] = field(default_factory=list)
    header: Dict[str, str] = field(default_factory=dict)
    updated: bool = False


@dataclass
class ReferenceChannel:
    id: str
    logo: str = ""
    languages: List[str] = field(default_factory=list)
    category: str = ""


@dataclass(frozen=True)
class EpgCode:
    tvg_id: str
    logo: str = ""


@dataclass(frozen=True)
class StreamInfo:
    codec_type: str
    width: int = 0
    height: int = 0


@dataclass
class ProbeResult:
    """
    Structured outcome of probing one stream URL.

    ``requests`` holds the request chain: the original URL first, followed by
    every redirect target.
    """

    ok: bool
    reason: FailureReason = FailureReason.NONE
    message: str = ""
    streams: List[StreamInfo] = field(default_factory=list)
    requests: List[str] = field(default_factory=list)


@dataclass
class VerifyOptions:
    """
    Pass-level options controlling a verification run.

    Deutsch:
        Optionen für einen Prüflauf.
    """

    timeout_ms: int = 5000
    delay_ms: int = 0
    offline: bool = False
    debug: bool = False
    countries: Optional[Set[str]] = None
    exclude: Optional[Set[str]] = None
    channels_dir: Path = Path("channels")
    workers: int = 1
    channels_feed_url: str = "https://iptv-org.github.io/iptv/channels.json"
    epg_codes_url: str = "https://iptv-org.github.io/epg/codes.json"
