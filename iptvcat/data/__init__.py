"""
Reference tables bundled with the project (countries, languages, categories).

Deutsch:
    Mitgelieferte Referenztabellen (Länder, Sprachen, Kategorien).
"""

from __future__ import annotations

__all__ = [
    "category_id",
    "category_names",
    "code2name",
    "country2language",
    "country_codes",
    "language_code",
    "language_name",
]

from functools import lru_cache
from importlib import resources
from json import load
from typing import Any, Dict, List, Optional


def _load(name: str) -> Any:
    with resources.files(__name__).joinpath(name).open("r", encoding="utf-8") as fh:
        return load(fh)


@lru_cache(maxsize=None)
def _countries() -> Dict[str, Dict[str, str]]:
    return {str(code).lower(): dict(item) for code, item in _load("countries.json").items()}


@lru_cache(maxsize=None)
def _languages() -> Dict[str, str]:
    return {str(code): str(name) for code, name in _load("languages.json").items()}


@lru_cache(maxsize=None)
def _language_codes() -> Dict[str, str]:
    return {name.lower(): code for code, name in _languages().items()}


@lru_cache(maxsize=None)
def _categories() -> List[str]:
    return [str(name) for name in _load("categories.json")]


def code2name(code: Optional[str]) -> Optional[str]:
    """
    Resolve a country code (case-insensitive) to its display name.

    Deutsch:
        Liefert den Anzeigenamen zu einem Ländercode.
    """

    if not code:
        return None
    country = _countries().get(code.lower())
    return country["name"] if country else None


def country2language(code: Optional[str]) -> str:
    if not code:
        return ""
    country = _countries().get(code.lower())
    return country.get("language", "") if country else ""


def country_codes() -> List[str]:
    return sorted(_countries().keys())


def language_code(name: str) -> Optional[str]:
    return _language_codes().get(name.strip().lower())


def language_name(code: str) -> Optional[str]:
    return _languages().get(code)


def category_names() -> List[str]:
    return list(_categories())


def category_id(name: Optional[str]) -> Optional[str]:
    """Return the lower-case id of a known category, ``None`` for anything else."""

    if not name:
        return None
    wanted = name.strip().lower()
    for known in _categories():
        if known.lower() == wanted:
            return wanted
    return None
