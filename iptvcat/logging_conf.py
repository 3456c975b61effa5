"""
Logging setup shared by the verify and generate commands.

Deutsch:
    Gemeinsame Logging-Einrichtung für Prüf- und Generierungslauf.
"""

from __future__ import annotations

import logging
import os
from typing import Union

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
LEVEL_ENV = "IPTVCAT_LOGLEVEL"

_HTTP_LOGGERS = ("urllib3", "requests")


def configure_logging(default_level: str = "INFO") -> int:
    """
    Configure the root logger once; later calls only adjust the level.

    ``IPTVCAT_LOGLEVEL`` takes precedence over ``default_level``. HTTP client
    loggers stay at WARNING or above.

    Deutsch:
        Richtet das Root-Logging einmalig ein; weitere Aufrufe setzen nur
        den Level.
    """

    level = resolve_level(os.getenv(LEVEL_ENV) or default_level)
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level)
    else:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    for name in _HTTP_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    return level


def resolve_level(name: Union[str, int]) -> int:
    if isinstance(name, int):
        return name
    level = getattr(logging, str(name).strip().upper(), None)
    return level if isinstance(level, int) else logging.INFO
