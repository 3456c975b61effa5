"""
Stream probing: redirect chain discovery plus ffprobe stream inspection.

Deutsch:
    Stream-Prüfung: Ermittlung der Weiterleitungskette und ffprobe-Analyse.
"""

from __future__ import annotations

import json
import logging
import subprocess
import threading
from typing import Dict, List, Optional
from urllib.parse import urljoin

import requests

from . import __version__
from .models import FailureReason, ProbeResult, StreamInfo

log = logging.getLogger(__name__)

REDIRECT_CODES = {301, 302, 303, 307, 308}
REDIRECT_LIMIT = 5
USER_AGENT = f"iptvcat/{__version__}"


class ProbeError(Exception):
    """Raised when a probe cannot complete at transport level. / Wird geworfen, wenn die Prüfung technisch scheitert."""


class BaseProber:
    """
    Interface of a stream prober.

    Implementations return a structured :class:`ProbeResult` for every
    classifiable outcome and raise :class:`ProbeError` otherwise. With more
    than one worker, ``probe`` is called concurrently from pool threads.
    """

    def probe(
        self,
        url: str,
        timeout_ms: int,
        *,
        http_referrer: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> ProbeResult:  # pragma: no cover - abstract
        raise NotImplementedError


class StreamProber(BaseProber):
    """
    Prober backed by ``requests`` and ``ffprobe``.

    Without an explicit ``session`` every thread gets its own
    :class:`requests.Session`; an injected session is shared as is.

    Deutsch:
        Ohne übergebene ``session`` erhält jeder Thread eine eigene Session.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        ffprobe_path: str = "ffprobe",
        redirect_limit: int = REDIRECT_LIMIT,
    ) -> None:
        self._shared_session = session
        self._local = threading.local()
        self.ffprobe_path = ffprobe_path
        self.redirect_limit = redirect_limit

    @property
    def session(self) -> requests.Session:
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, "session", None)
        if session is None:
            session = _build_session()
            self._local.session = session
        return session

    def probe(
        self,
        url: str,
        timeout_ms: int,
        *,
        http_referrer: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> ProbeResult:
        timeout = max(timeout_ms, 1) / 1000.0
        headers: Dict[str, str] = {}
        if http_referrer:
            headers["Referer"] = http_referrer
        if user_agent:
            headers["User-Agent"] = user_agent

        try:
            chain, status_code = self._follow_redirects(url, headers, timeout)
        except requests.Timeout:
            return ProbeResult(ok=False, reason=FailureReason.TIMEOUT, message=f"{url} timed out")
        except requests.ConnectionError as exc:
            return ProbeResult(ok=False, reason=FailureReason.UNREACHABLE, message=str(exc))
        except requests.RequestException as exc:
            raise ProbeError(f"request for {url} failed: {exc}") from exc

        if status_code is None:
            return ProbeResult(
                ok=False,
                reason=FailureReason.UNREACHABLE,
                message=f"too many redirects for {url}",
            )
        if status_code >= 400:
            return ProbeResult(
                ok=False,
                reason=FailureReason.from_status_code(status_code),
                message=f"server responded with {status_code}",
            )
        return self._inspect_streams(chain, headers, timeout)

    def _follow_redirects(
        self,
        url: str,
        headers: Dict[str, str],
        timeout: float,
    ) -> tuple[List[str], Optional[int]]:
        chain = [url]
        current_url = url
        for _ in range(self.redirect_limit + 1):
            response = self.session.get(
                current_url,
                headers=headers,
                stream=True,
                timeout=timeout,
                allow_redirects=False,
            )
            status_code = response.status_code
            location = response.headers.get("Location")
            response.close()
            if status_code in REDIRECT_CODES and location:
                current_url = urljoin(current_url, location)
                chain.append(current_url)
                continue
            return chain, status_code
        return chain, None

    def _inspect_streams(self, chain: List[str], headers: Dict[str, str], timeout: float) -> ProbeResult:
        cmd = [
            self.ffprobe_path,
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_streams",
            "-timeout",
            str(int(timeout * 1_000_000)),
        ]
        if "Referer" in headers:
            cmd.extend(["-referer", headers["Referer"]])
        cmd.extend(["-user_agent", headers.get("User-Agent", USER_AGENT)])
        cmd.append(chain[-1])
        log.debug("running %s", " ".join(cmd))
        try:
            completed = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout * 2, check=False)
        except subprocess.TimeoutExpired:
            return ProbeResult(ok=False, reason=FailureReason.TIMEOUT, message=f"{chain[-1]} timed out")
        except OSError as exc:
            raise ProbeError(f"cannot run {self.ffprobe_path}: {exc}") from exc

        if completed.returncode != 0:
            message = completed.stderr.strip() or f"ffprobe exited with {completed.returncode}"
            return ProbeResult(ok=False, reason=FailureReason.from_text(message), message=message)
        streams = parse_ffprobe_streams(completed.stdout)
        if not streams:
            return ProbeResult(ok=False, reason=FailureReason.UNREACHABLE, message="no streams found")
        return ProbeResult(ok=True, streams=streams, requests=chain)


def parse_ffprobe_streams(payload: str) -> List[StreamInfo]:
    try:
        document = json.loads(payload or "{}")
    except json.JSONDecodeError:
        return []
    streams: List[StreamInfo] = []
    for item in document.get("streams") or []:
        if not isinstance(item, dict):
            continue
        streams.append(
            StreamInfo(
                codec_type=str(item.get("codec_type") or ""),
                width=_safe_int(item.get("width")),
                height=_safe_int(item.get("height")),
            )
        )
    return streams


def _build_session() -> requests.Session:
    session = requests.Session()
    session.headers.update(
        {
            "User-Agent": USER_AGENT,
            "Accept": "*/*",
            "Connection": "keep-alive",
        }
    )
    return session


def _safe_int(value: object) -> int:
    try:
        return int(str(value))
    except (TypeError, ValueError):
        return 0
