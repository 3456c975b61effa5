"""
Verification pipeline: probe, classify, enrich and canonicalise playlists.

Deutsch:
    Prüf-Pipeline: Streams prüfen, klassifizieren, anreichern und
    Spiegel-URLs auf ihren Ursprung umschreiben.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .config import build_options, load_settings
from .enrich import enrich_from_maps
from .io_m3u import PlaylistError, list_playlists, load_playlist, save_playlist
from .logging_conf import configure_logging
from .models import Channel, EpgCode, HealthState, Playlist, ProbeResult, ReferenceChannel, VerifyOptions
from .origins import OriginCanonicalizer, normalize_url
from .probe import BaseProber, ProbeError, StreamProber
from .reference import ReferenceLoadError, load_epg_codes, load_reference_channels
from .status import classify, parse_resolution, should_probe, update_resolution, update_status

log = logging.getLogger(__name__)


class NoSelectionError(Exception):
    """Raised when no playlist matches the filters. / Wird geworfen, wenn keine Playlist den Filtern entspricht."""


@dataclass
class PlaylistReport:
    path: Path
    total: int = 0
    skipped: int = 0
    online: int = 0
    failed: int = 0
    errors: int = 0
    rewritten: int = 0
    updated: bool = False


@dataclass
class _ProbeOutcome:
    result: Optional[ProbeResult] = None
    transport_error: Optional[ProbeError] = None
    crash: Optional[Exception] = None


ReferenceMaps = Tuple[Dict[str, ReferenceChannel], Dict[str, EpgCode]]


def verify(options: VerifyOptions, prober: Optional[BaseProber] = None) -> List[PlaylistReport]:
    """
    Run one verification pass over every selected playlist.

    Deutsch:
        Führt einen Prüflauf über alle ausgewählten Playlisten aus.
    """

    configure_logging("DEBUG" if options.debug else "INFO")
    files = list_playlists(options.channels_dir, options.countries, options.exclude)
    if not files:
        raise NoSelectionError(f"no playlists selected in {options.channels_dir}")

    references, epg_codes = load_reference_data(options)
    prober = prober or StreamProber()
    reports: List[PlaylistReport] = []
    for path in files:
        try:
            playlist = load_playlist(path)
        except PlaylistError as exc:
            log.error("skipping playlist %s: %s", path, exc)
            continue
        report = verify_playlist(playlist, options, prober, (references, epg_codes))
        report.updated = save_playlist(playlist)
        if report.updated:
            log.info("file '%s' has been updated", path)
        reports.append(report)
    return reports


def load_reference_data(options: VerifyOptions) -> ReferenceMaps:
    if options.offline:
        return {}, {}
    try:
        references = load_reference_channels(options.channels_feed_url)
    except ReferenceLoadError as exc:
        log.warning("channel metadata unavailable, continuing without it: %s", exc)
        references = {}
    try:
        epg_codes = load_epg_codes(options.epg_codes_url)
    except ReferenceLoadError as exc:
        log.warning("epg codes unavailable, continuing without them: %s", exc)
        epg_codes = {}
    return references, epg_codes


def verify_playlist(
    playlist: Playlist,
    options: VerifyOptions,
    prober: BaseProber,
    reference_maps: Optional[ReferenceMaps] = None,
) -> PlaylistReport:
    """
    Process the channels of one playlist in place.

    Channels are prepared and probed in source order; origins are registered
    in source order once every probe has finished and URLs are rewritten last.
    """

    references, epg_codes = reference_maps or ({}, {})
    report = PlaylistReport(path=playlist.path, total=len(playlist.channels))
    log.info("processing '%s' (%d channels)...", playlist.path, report.total)

    pending: List[Channel] = []
    for channel in playlist.channels:
        try:
            prepare_channel(channel, playlist.country.code, references, epg_codes)
        except Exception as exc:
            _log_crash(channel, exc)
            report.errors += 1
            continue
        if options.offline or not should_probe(channel):
            report.skipped += 1
            continue
        pending.append(channel)

    outcomes = _probe_all(pending, options, prober)

    canonicalizer = OriginCanonicalizer()
    results: Dict[Channel, ProbeResult] = {}
    for channel, outcome in zip(pending, outcomes):
        try:
            _apply_outcome(channel, outcome, options, canonicalizer, results, report)
        except Exception as exc:
            _log_crash(channel, exc)
            report.errors += 1

    for channel in playlist.channels:
        result = results.get(channel)
        if result is None:
            continue
        try:
            if canonicalizer.canonicalize(channel, result.requests):
                report.rewritten += 1
        except Exception as exc:
            _log_crash(channel, exc)
            report.errors += 1
    return report


def prepare_channel(
    channel: Channel,
    country_code: str,
    references: Dict[str, ReferenceChannel],
    epg_codes: Dict[str, EpgCode],
) -> None:
    channel.update_url(normalize_url(channel.url))
    enrich_from_maps(channel, country_code, references, epg_codes)


def _probe_all(channels: List[Channel], options: VerifyOptions, prober: BaseProber) -> List[_ProbeOutcome]:
    if options.workers <= 1 or len(channels) <= 1:
        outcomes: List[_ProbeOutcome] = []
        for index, channel in enumerate(channels):
            if index:
                _delay(options)
            outcomes.append(_probe_channel(channel, options, prober))
        return outcomes

    with ThreadPoolExecutor(max_workers=options.workers) as pool:
        futures = []
        for index, channel in enumerate(channels):
            if index:
                _delay(options)
            futures.append(pool.submit(_probe_channel, channel, options, prober))
        return [future.result() for future in futures]


def _probe_channel(channel: Channel, options: VerifyOptions, prober: BaseProber) -> _ProbeOutcome:
    try:
        result = prober.probe(
            channel.url,
            options.timeout_ms,
            http_referrer=channel.http_referrer or None,
            user_agent=channel.user_agent or None,
        )
    except ProbeError as exc:
        return _ProbeOutcome(transport_error=exc)
    except Exception as exc:
        return _ProbeOutcome(crash=exc)
    return _ProbeOutcome(result=result)


def _apply_outcome(
    channel: Channel,
    outcome: _ProbeOutcome,
    options: VerifyOptions,
    canonicalizer: OriginCanonicalizer,
    results: Dict[Channel, ProbeResult],
    report: PlaylistReport,
) -> None:
    if outcome.crash is not None:
        raise outcome.crash
    if outcome.transport_error is not None:
        update_status(channel, HealthState.OFFLINE)
        report.failed += 1
        if options.debug:
            log.info("  ERR: %s (%s)", channel.url, outcome.transport_error)
        return

    result = outcome.result
    if result is None:
        return
    state = classify(result)
    update_status(channel, state)
    if state is HealthState.ONLINE:
        results[channel] = result
        canonicalizer.register(channel.url, result.requests)
        update_resolution(channel, parse_resolution(result.streams))
        report.online += 1
    else:
        report.failed += 1
        if options.debug:
            log.info("  INFO: %s (%s: %s)", channel.url, state.value, result.message)


def _delay(options: VerifyOptions) -> None:
    if options.delay_ms > 0:
        time.sleep(options.delay_ms / 1000.0)


def _log_crash(channel: Channel, exc: Exception) -> None:
    log.error(
        "failed to process channel %s (%s): %s",
        channel.name,
        channel.url,
        exc,
        exc_info=log.isEnabledFor(logging.DEBUG),
    )


def run_verify(
    *,
    config_path: Optional[Union[str, Path]] = None,
    prober: Optional[BaseProber] = None,
    **overrides: Any,
) -> List[PlaylistReport]:
    """
    Convenience wrapper used by the CLI to execute a verification pass.
    """

    settings = load_settings(config_path) if config_path else None
    options = build_options(settings, **overrides)
    try:
        return verify(options, prober)
    except NoSelectionError as exc:
        log.warning("no files selected: %s", exc)
        return []


def summarise(reports: Iterable[PlaylistReport]) -> Dict[str, int]:
    totals = {"playlists": 0, "channels": 0, "online": 0, "failed": 0, "skipped": 0, "errors": 0, "updated": 0}
    for report in reports:
        totals["playlists"] += 1
        totals["channels"] += report.total
        totals["online"] += report.online
        totals["failed"] += report.failed
        totals["skipped"] += report.skipped
        totals["errors"] += report.errors
        totals["updated"] += int(report.updated)
    return totals
