"""
Health classification of probe outcomes.

Deutsch:
    Klassifizierung von Prüfergebnissen in Kanalzustände.
"""

from __future__ import annotations

from typing import Iterable, Optional

from .models import (
    NOT_24_7,
    OFFLINE,
    SENTINEL_STATUSES,
    Channel,
    FailureReason,
    HealthState,
    ProbeResult,
    Resolution,
    StreamInfo,
)

_REASON_STATES = {
    FailureReason.TIMEOUT: HealthState.TIMEOUT,
    FailureReason.FORBIDDEN: HealthState.ERROR_403,
    FailureReason.UNEXPECTED_CLIENT_ERROR: HealthState.ERROR_40X,
}


def classify(result: ProbeResult) -> HealthState:
    """
    Map a probe result onto exactly one health state.

    Deutsch:
        Ordnet ein Prüfergebnis genau einem Zustand zu.
    """

    if result.ok:
        return HealthState.ONLINE
    return _REASON_STATES.get(result.reason, HealthState.OFFLINE)


def should_probe(channel: Channel) -> bool:
    return channel.status not in SENTINEL_STATUSES


def update_status(channel: Channel, state: HealthState) -> None:
    """
    Apply a classification to the stored status of a channel.

    A channel that comes back after being ``Offline`` is marked ``Not 24/7``.
    Timeouts and unexpected client errors leave the stored status alone.
    """

    if state is HealthState.ONLINE:
        channel.status = NOT_24_7 if channel.status == OFFLINE else None
    elif state in (HealthState.OFFLINE, HealthState.ERROR_403):
        channel.status = OFFLINE


def parse_resolution(streams: Iterable[StreamInfo]) -> Optional[Resolution]:
    best = Resolution()
    for stream in streams:
        if stream.codec_type != "video":
            continue
        if stream.height > best.height:
            best = Resolution(width=stream.width, height=stream.height)
    if best.width > 0 and best.height > 0:
        return best
    return None


def update_resolution(channel: Channel, resolution: Optional[Resolution]) -> None:
    if resolution and not channel.resolution.height:
        channel.resolution = resolution
