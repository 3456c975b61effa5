"""
Metadata enrichment from reference datasets.

Every step only fills fields that are still empty; existing values are never
overwritten.

Deutsch:
    Anreicherung der Kanal-Metadaten aus Referenzdaten. Vorhandene Werte
    werden niemals überschrieben.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Dict, Iterable, Optional

from . import data
from .models import Channel, Country, EpgCode, ReferenceChannel

_NON_ALNUM_RE = re.compile(r"[^a-z\d]+", re.IGNORECASE)


def name2id(name: str) -> str:
    """
    Derive the name part of a tvg-id, e.g. ``"Sky Sports+ HD"`` -> ``"SkySportsPlusHD"``.
    """

    folded = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    return _NON_ALNUM_RE.sub("", folded.replace("+", "Plus"))


def merge_reference_channels(records: Iterable[ReferenceChannel]) -> Dict[str, ReferenceChannel]:
    """
    Collapse feed records sharing an id; the first non-empty value of each field wins.

    Deutsch:
        Führt Feed-Einträge mit gleicher ID zusammen; pro Feld gewinnt der
        erste nicht-leere Wert.
    """

    merged: Dict[str, ReferenceChannel] = {}
    for record in records:
        existing = merged.get(record.id)
        if existing is None:
            merged[record.id] = ReferenceChannel(
                id=record.id,
                logo=record.logo,
                languages=list(record.languages),
                category=record.category,
            )
            continue
        merged[record.id] = _merge_pair(existing, record)
    return merged


def _merge_pair(first: ReferenceChannel, second: ReferenceChannel) -> ReferenceChannel:
    return ReferenceChannel(
        id=first.id,
        logo=first.logo or second.logo,
        languages=list(first.languages) if first.languages else list(second.languages),
        category=first.category or second.category,
    )


def index_epg_codes(records: Iterable[EpgCode]) -> Dict[str, EpgCode]:
    # Later entries replace earlier ones, as in the upstream feed.
    return {record.tvg_id: record for record in records}


def enrich_channel(
    channel: Channel,
    country_code: str,
    reference: Optional[ReferenceChannel] = None,
    epg_code: Optional[EpgCode] = None,
) -> None:
    """
    Fill empty metadata fields of ``channel`` in a fixed order.

    ``reference`` and ``epg_code`` are looked up by the caller after the
    tvg-id has been derived, see :func:`enrich_from_maps`.
    """

    _fill_identity(channel, country_code)
    _fill_from_reference(channel, reference, epg_code)


def enrich_from_maps(
    channel: Channel,
    country_code: str,
    references: Dict[str, ReferenceChannel],
    epg_codes: Dict[str, EpgCode],
) -> None:
    # The maps are keyed by tvg-id, so it has to be derived before the lookup.
    _fill_identity(channel, country_code)
    reference = references.get(channel.tvg_id) if channel.tvg_id else None
    epg_code = epg_codes.get(channel.tvg_id) if channel.tvg_id else None
    _fill_from_reference(channel, reference, epg_code)


def _fill_identity(channel: Channel, country_code: str) -> None:
    update_tvg_name(channel)
    update_tvg_id(channel, country_code)


def _fill_from_reference(
    channel: Channel,
    reference: Optional[ReferenceChannel],
    epg_code: Optional[EpgCode],
) -> None:
    update_tvg_country(channel)
    update_logo(channel, reference, epg_code)
    update_tvg_language(channel, reference)
    update_group_title(channel, reference)


def update_tvg_name(channel: Channel) -> None:
    if not channel.tvg_name:
        channel.tvg_name = channel.name.replace('"', "")


def update_tvg_id(channel: Channel, country_code: str) -> None:
    if not channel.tvg_id and channel.tvg_name:
        name_id = name2id(channel.tvg_name)
        channel.tvg_id = f"{name_id}.{country_code}" if name_id else ""


def update_tvg_country(channel: Channel) -> None:
    if channel.countries or not channel.tvg_id:
        return
    parts = channel.tvg_id.split(".")
    code = parts[1].lower() if len(parts) > 1 and parts[1] else None
    name = data.code2name(code)
    if not (code and name):
        return
    channel.countries = [Country(code=code, name=name)]
    if not channel.tvg_country:
        channel.tvg_country = code.upper()


def update_logo(
    channel: Channel,
    reference: Optional[ReferenceChannel],
    epg_code: Optional[EpgCode],
) -> None:
    if channel.logo:
        return
    logo = _first_non_empty(
        reference.logo if reference else "",
        epg_code.logo if epg_code else "",
    )
    if logo:
        channel.logo = logo


def update_tvg_language(channel: Channel, reference: Optional[ReferenceChannel]) -> None:
    if channel.tvg_language:
        return
    if reference and reference.languages:
        channel.tvg_language = ";".join(reference.languages)
    elif channel.countries:
        channel.tvg_language = data.country2language(channel.countries[0].code)


def update_group_title(channel: Channel, reference: Optional[ReferenceChannel]) -> None:
    if not channel.group_title:
        channel.group_title = _first_non_empty(
            channel.category,
            reference.category if reference else "",
        )


def _first_non_empty(*values: Optional[str]) -> str:
    for value in values:
        if value:
            return value
    return ""

