"""
Loaders for the remote reference datasets (channel metadata, EPG codes).

Deutsch:
    Lader für die entfernten Referenzdaten (Kanal-Metadaten, EPG-Codes).
"""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional

import requests
from jsonschema import Draft7Validator

from . import __version__
from .enrich import index_epg_codes, merge_reference_channels
from .models import EpgCode, ReferenceChannel
from .schemas import load_validator

log = logging.getLogger(__name__)

HTTP_RETRY_ATTEMPTS = 3
HTTP_TIMEOUT = 30
HTTP_BACKOFF_BASE = 1.5
USER_AGENT = f"iptvcat/{__version__}"

_CHANNEL_VALIDATOR = load_validator("reference_channel.schema.json")
_EPG_CODE_VALIDATOR = load_validator("epg_code.schema.json")


class ReferenceLoadError(Exception):
    """Raised when a reference feed cannot be loaded. / Wird geworfen, wenn ein Referenz-Feed nicht geladen werden kann."""


def load_reference_channels(url: str, session: Optional[requests.Session] = None) -> Dict[str, ReferenceChannel]:
    """
    Fetch the channel metadata feed and merge duplicate ids.

    Deutsch:
        Lädt den Kanal-Metadaten-Feed und führt doppelte IDs zusammen.
    """

    payload = fetch_json(url, session)
    return merge_reference_channels(parse_reference_channels(payload))


def load_epg_codes(url: str, session: Optional[requests.Session] = None) -> Dict[str, EpgCode]:
    payload = fetch_json(url, session)
    return index_epg_codes(parse_epg_codes(payload))


def parse_reference_channels(payload: Any) -> List[ReferenceChannel]:
    items = _expect_list(payload, "channel feed")
    records: List[ReferenceChannel] = []
    skipped = 0
    for item in items:
        if not _is_valid(_CHANNEL_VALIDATOR, item):
            skipped += 1
            continue
        tvg = item.get("tvg") if isinstance(item.get("tvg"), Mapping) else {}
        channel_id = str(item.get("id") or tvg.get("id") or "").strip()
        if not channel_id:
            skipped += 1
            continue
        records.append(
            ReferenceChannel(
                id=channel_id,
                logo=str(item.get("logo") or ""),
                languages=_language_names(item.get("languages") or []),
                category=str(item.get("category") or ""),
            )
        )
    if skipped:
        log.debug("skipped %d invalid channel feed items", skipped)
    return records


def parse_epg_codes(payload: Any) -> List[EpgCode]:
    items = _expect_list(payload, "epg code feed")
    records: List[EpgCode] = []
    for item in items:
        if not _is_valid(_EPG_CODE_VALIDATOR, item):
            continue
        records.append(EpgCode(tvg_id=str(item["tvg_id"]), logo=str(item.get("logo") or "")))
    return records


def _language_names(values: Iterable[Any]) -> List[str]:
    names: List[str] = []
    for value in values:
        name = value.get("name") if isinstance(value, Mapping) else value
        name = str(name or "").strip()
        if name:
            names.append(name)
    return names


def _expect_list(payload: Any, label: str) -> List[Any]:
    if not isinstance(payload, list):
        raise ReferenceLoadError(f"{label} must be a JSON array")
    return payload


def _is_valid(validator: Draft7Validator, item: Any) -> bool:
    if not isinstance(item, Mapping):
        return False
    error = next(iter(validator.iter_errors(item)), None)
    if error is not None:
        log.debug("invalid feed item %r: %s", item, error.message)
        return False
    return True


def fetch_json(url: str, session: Optional[requests.Session] = None) -> Any:
    """
    GET ``url`` with retry and jitter and decode the JSON body.

    Deutsch:
        Lädt ``url`` mit Wiederholungen und dekodiert den JSON-Inhalt.
    """

    session = session or _get_http_session()
    last_exc: Optional[Exception] = None
    for attempt in range(HTTP_RETRY_ATTEMPTS):
        try:
            response = session.get(url, timeout=HTTP_TIMEOUT)
        except requests.RequestException as exc:
            last_exc = exc
            _sleep_with_jitter(attempt)
            continue
        if response.status_code == 429 or 500 <= response.status_code < 600:
            last_exc = ReferenceLoadError(f"{url} responded with {response.status_code}")
            _sleep_with_jitter(attempt)
            continue
        if response.status_code >= 400:
            raise ReferenceLoadError(f"{url} responded with {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise ReferenceLoadError(f"{url} returned invalid JSON: {exc}") from exc
    raise ReferenceLoadError(f"fetching {url} failed: {last_exc}") from last_exc


def _get_http_session() -> requests.Session:
    global _HTTP_SESSION
    if _HTTP_SESSION is None:
        session = requests.Session()
        session.headers.update(
            {
                "User-Agent": USER_AGENT,
                "Accept": "application/json, */*",
                "Accept-Encoding": "gzip, deflate",
            }
        )
        _HTTP_SESSION = session
    return _HTTP_SESSION


_HTTP_SESSION: Optional[requests.Session] = None


def _sleep_with_jitter(attempt: int) -> None:
    base = HTTP_BACKOFF_BASE ** attempt
    time.sleep(random.uniform(0.5, 1.5) * base)
