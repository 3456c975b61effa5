from __future__ import annotations

from pathlib import Path

import pytest

from iptvcat import verify as verify_module
from iptvcat.io_m3u import load_playlist
from iptvcat.models import EpgCode, FailureReason, ProbeResult, StreamInfo, VerifyOptions
from iptvcat.probe import ProbeError
from iptvcat.reference import ReferenceLoadError
from iptvcat.verify import NoSelectionError, run_verify, summarise, verify


PLAYLIST = """#EXTM3U
#EXTINF:-1 tvg-id="Alpha.fr",Alpha
http://a.example/stream
#EXTINF:-1 tvg-id="Beta.fr",Beta [Offline]
http://b.example/live
#EXTINF:-1 tvg-id="Gamma.fr",Gamma [Geo-blocked]
http://c.example/live
#EXTINF:-1 tvg-id="Delta.fr",Delta
http://d.example/live
#EXTINF:-1 ,Echo
http://e.example/live
"""


def _online(*chain: str, height: int = 720) -> ProbeResult:
    return ProbeResult(
        ok=True,
        streams=[StreamInfo(codec_type="video", width=height * 16 // 9, height=height)],
        requests=list(chain),
    )


def _outcomes() -> dict:
    return {
        "http://a.example/stream": _online("http://a.example/stream", "http://b.example/live"),
        "http://b.example/live": _online("http://b.example/live"),
        "http://d.example/live": ProbeError("connection reset"),
        "http://e.example/live": ProbeResult(ok=False, reason=FailureReason.TIMEOUT, message="timed out"),
    }


@pytest.fixture()
def playlist_dir(tmp_path: Path) -> Path:
    target = tmp_path / "channels"
    target.mkdir()
    (target / "fr.m3u").write_text(PLAYLIST, encoding="utf-8")
    return target


def _options(channels_dir: Path, **kwargs) -> VerifyOptions:
    kwargs.setdefault("offline", False)
    return VerifyOptions(channels_dir=channels_dir, **kwargs)


@pytest.fixture(autouse=True)
def no_reference_feeds(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(verify_module, "load_reference_channels", lambda url: {})
    monkeypatch.setattr(verify_module, "load_epg_codes", lambda url: {})


def test_verify_pass(playlist_dir: Path, make_prober) -> None:
    prober = make_prober(_outcomes())
    (report,) = verify(_options(playlist_dir), prober)

    assert "http://c.example/live" not in prober.calls
    assert report.total == 5
    assert report.skipped == 1
    assert report.online == 2
    assert report.failed == 2
    assert report.errors == 0
    assert report.rewritten == 1
    assert report.updated

    alpha, beta, gamma, delta, echo = load_playlist(playlist_dir / "fr.m3u").channels
    assert (alpha.status, alpha.url, alpha.resolution.height) == (None, "http://a.example/stream", 720)
    assert (beta.status, beta.url) == ("Not 24/7", "http://a.example/stream")
    assert (gamma.status, gamma.url) == ("Geo-blocked", "http://c.example/live")
    assert delta.status == "Offline"
    assert echo.status is None
    assert echo.tvg_id == "Echo.fr"
    assert echo.tvg_language == "French"


def test_second_pass_is_idempotent(playlist_dir: Path, make_prober) -> None:
    verify(_options(playlist_dir), make_prober(_outcomes()))
    first = (playlist_dir / "fr.m3u").read_text(encoding="utf-8")

    (report,) = verify(_options(playlist_dir), make_prober(_outcomes()))

    assert not report.updated
    assert (playlist_dir / "fr.m3u").read_text(encoding="utf-8") == first


def test_worker_pool_matches_sequential(tmp_path: Path, playlist_dir: Path, make_prober) -> None:
    other_dir = tmp_path / "pooled"
    other_dir.mkdir()
    (other_dir / "fr.m3u").write_text(PLAYLIST, encoding="utf-8")

    verify(_options(playlist_dir), make_prober(_outcomes()))
    verify(_options(other_dir, workers=4), make_prober(_outcomes()))

    assert (other_dir / "fr.m3u").read_text(encoding="utf-8") == (playlist_dir / "fr.m3u").read_text(encoding="utf-8")


def test_offline_mode_enriches_without_probing(
    playlist_dir: Path, monkeypatch: pytest.MonkeyPatch, make_prober
) -> None:
    def fail(url):
        raise AssertionError("reference feeds must not be fetched offline")

    monkeypatch.setattr(verify_module, "load_reference_channels", fail)
    prober = make_prober()

    (report,) = verify(_options(playlist_dir, offline=True), prober)

    assert prober.calls == []
    assert report.skipped == 5
    channels = load_playlist(playlist_dir / "fr.m3u").channels
    assert [channel.status for channel in channels] == [None, "Offline", "Geo-blocked", None, None]
    assert all(channel.tvg_country == "FR" for channel in channels)


def test_crash_is_contained(playlist_dir: Path, make_prober) -> None:
    outcomes = _outcomes()
    outcomes["http://a.example/stream"] = RuntimeError("boom")
    (report,) = verify(_options(playlist_dir), make_prober(outcomes))

    assert report.errors == 1
    alpha, beta, _, delta, _ = load_playlist(playlist_dir / "fr.m3u").channels
    assert alpha.status is None
    assert (beta.status, beta.url) == ("Not 24/7", "http://b.example/live")
    assert delta.status == "Offline"


def test_reference_failure_falls_back(playlist_dir: Path, monkeypatch: pytest.MonkeyPatch, make_prober) -> None:
    def unavailable(url):
        raise ReferenceLoadError("feed down")

    monkeypatch.setattr(verify_module, "load_reference_channels", unavailable)
    monkeypatch.setattr(
        verify_module,
        "load_epg_codes",
        lambda url: {"Alpha.fr": EpgCode(tvg_id="Alpha.fr", logo="http://epg.example/alpha.png")},
    )

    verify(_options(playlist_dir), make_prober(_outcomes()))

    alpha = load_playlist(playlist_dir / "fr.m3u").channels[0]
    assert alpha.logo == "http://epg.example/alpha.png"


def test_no_selection(tmp_path: Path, make_prober) -> None:
    with pytest.raises(NoSelectionError):
        verify(_options(tmp_path), make_prober())
    assert run_verify(channels_dir=tmp_path, offline=True) == []


def test_run_verify_with_filters(channels_dir: Path) -> None:
    reports = run_verify(channels_dir=channels_dir, offline=True, countries={"us"})

    assert [report.path.stem for report in reports] == ["us"]
    totals = summarise(reports)
    assert totals["playlists"] == 1
    assert totals["channels"] == 4
    assert totals["skipped"] == 4


def test_encoded_urls_survive_repeated_passes(tmp_path: Path, make_prober) -> None:
    channels_dir = tmp_path / "channels"
    channels_dir.mkdir()
    (channels_dir / "fr.m3u").write_text(
        "#EXTM3U\n"
        '#EXTINF:-1 tvg-id="Alpha.fr",Alpha\n'
        "http://a.example/live%23hd.m3u8\n"
        '#EXTINF:-1 tvg-id="Beta.fr",Beta\n'
        "http://b.example/play?token=x%26y%3Dz&id=7\n",
        encoding="utf-8",
    )

    (first,) = verify(_options(channels_dir, offline=True), make_prober())
    text = (channels_dir / "fr.m3u").read_text(encoding="utf-8")
    (second,) = verify(_options(channels_dir, offline=True), make_prober())

    assert first.updated
    assert not second.updated
    assert (channels_dir / "fr.m3u").read_text(encoding="utf-8") == text
    urls = [channel.url for channel in load_playlist(channels_dir / "fr.m3u").channels]
    assert urls == ["http://a.example/live%23hd.m3u8", "http://b.example/play?id=7&token=x%26y%3Dz"]
