from __future__ import annotations

import shutil
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import pytest

from iptvcat.models import ProbeResult
from iptvcat.probe import BaseProber

FIXTURE_DIR = Path(__file__).parent / "fixtures"

Outcome = Union[ProbeResult, Exception, Callable[[], ProbeResult]]


class FakeProber(BaseProber):
    """Prober answering from a URL -> outcome table and recording every call."""

    def __init__(self, outcomes: Optional[Dict[str, Outcome]] = None) -> None:
        self.outcomes: Dict[str, Outcome] = dict(outcomes or {})
        self.calls: List[str] = []

    def probe(self, url, timeout_ms, *, http_referrer=None, user_agent=None) -> ProbeResult:
        self.calls.append(url)
        outcome = self.outcomes.get(url)
        if outcome is None:
            raise AssertionError(f"unexpected probe for {url}")
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome()
        return outcome


@pytest.fixture()
def channels_dir(tmp_path: Path) -> Path:
    target = tmp_path / "channels"
    shutil.copytree(FIXTURE_DIR / "channels", target)
    return target


@pytest.fixture()
def make_prober() -> Callable[..., FakeProber]:
    return FakeProber
