"""
Origin detection and mirror URL canonicalisation.

Deutsch:
    Erkennung von Ursprungs-URLs und Umschreiben von Spiegel-URLs.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Optional, Sequence
from urllib.parse import unquote, urlsplit, urlunsplit

from .models import Channel

log = logging.getLogger(__name__)

ORIGIN = "origin"
REDIRECT = "redirect"

_PROTOCOL_RE = re.compile(r"^(\w+:|)//")
_WHITESPACE_RE = re.compile(r"\s")
_DEFAULT_PORTS = {"http": 80, "https": 443}
_TRACKING_PARAM_RE = re.compile(r"^utm_\w+", re.IGNORECASE)
_KEEP_ENCODED_RE = re.compile(r"(%(?:2[356BbFf]|3[DdFf]))")


def remove_protocol(url: str) -> str:
    return _PROTOCOL_RE.sub("", url, count=1)


def normalize_url(url: str) -> str:
    """
    Normalise a stream URL before probing.

    Lower-cases scheme and host, drops default ports, fragments, tracking
    parameters and trailing slashes, sorts the query and percent-decodes path
    and query with whitespace replaced by ``+``. Encoded delimiters
    (``%23 %25 %26 %2B %2F %3D %3F``) stay encoded, so a normalised URL
    normalises to itself.

    Deutsch:
        Normalisiert eine Stream-URL vor der Prüfung.
    """

    text = url.strip()
    try:
        parts = urlsplit(text)
        port = parts.port
    except ValueError:
        log.debug("leaving unparsable url untouched: %s", text)
        return text
    if not parts.scheme or not parts.netloc:
        return text

    scheme = parts.scheme.lower()
    netloc = _normalise_netloc(parts.netloc, scheme, port)
    path = _decode(re.sub(r"/{2,}", "/", parts.path).rstrip("/"))
    query = _normalise_query(parts.query)
    return urlunsplit((scheme, netloc, path, query, ""))


def _normalise_netloc(netloc: str, scheme: str, port: Optional[int]) -> str:
    userinfo, _, hostport = netloc.rpartition("@")
    host = hostport
    if port is not None:
        host = hostport[: hostport.rfind(":")]
    host = host.lower().rstrip(".")
    if port is not None and _DEFAULT_PORTS.get(scheme) != port:
        host = f"{host}:{port}"
    return f"{userinfo}@{host}" if userinfo else host


def _decode(text: str) -> str:
    pieces = _KEEP_ENCODED_RE.split(text)
    decoded = [piece.upper() if index % 2 else unquote(piece) for index, piece in enumerate(pieces)]
    return _WHITESPACE_RE.sub("+", "".join(decoded))


def _normalise_query(query: str) -> str:
    if not query:
        return ""
    pairs = [_decode(pair) for pair in query.split("&") if pair]
    kept = [pair for pair in pairs if not _TRACKING_PARAM_RE.match(pair.split("=", 1)[0])]
    return "&".join(sorted(kept, key=lambda pair: pair.split("=", 1)[0]))


def _host(url: str) -> str:
    try:
        parts = urlsplit(url)
    except ValueError:
        return ""
    return parts.netloc.rpartition("@")[2].lower()


def probe_type(channel_url: str, requests: Sequence[str]) -> Optional[str]:
    """
    ``origin`` when the first request of the chain hits the channel's own host.
    """

    if not requests:
        return None
    return ORIGIN if _host(channel_url) == _host(requests[0]) else REDIRECT


class OriginCanonicalizer:
    """
    Pass-scoped origin map shared by all channels of one playlist.

    The first channel whose ``origin``-typed probe touches a URL claims it;
    later mirrors of the same URL are rewritten to that channel's URL.

    Deutsch:
        Ursprungs-Tabelle für einen Durchlauf über eine Playlist.
    """

    def __init__(self) -> None:
        self.origins: Dict[str, str] = {}

    def register(self, channel_url: str, requests: Sequence[str]) -> Optional[str]:
        kind = probe_type(channel_url, requests)
        if kind != ORIGIN:
            return kind
        for url in requests:
            key = remove_protocol(url)
            if key not in self.origins:
                self.origins[key] = channel_url
        return kind

    def resolve(self, channel_url: str, requests: Sequence[str]) -> Optional[str]:
        if not requests:
            return None
        for candidate in (channel_url, *requests):
            target = self.origins.get(remove_protocol(candidate))
            if target:
                return target
        return None

    def canonicalize(self, channel: Channel, requests: Sequence[str]) -> bool:
        target = self.resolve(channel.url, requests)
        if target is None or target == channel.url:
            return False
        log.debug("rewriting %s -> %s", channel.url, target)
        channel.update_url(target)
        return True
