"""
JSON schemas for items of the remote reference feeds.

Deutsch:
    JSON-Schemata für Einträge der Referenz-Feeds.
"""

from __future__ import annotations

__all__ = ["load_schema", "load_validator"]

from functools import lru_cache
from importlib import resources
from json import load
from typing import Any, Dict

from jsonschema import Draft7Validator


def load_schema(name: str) -> Dict[str, Any]:
    with resources.files(__name__).joinpath(name).open("r", encoding="utf-8") as fh:
        return load(fh)


@lru_cache(maxsize=None)
def load_validator(name: str) -> Draft7Validator:
    """
    Build a checked Draft-07 validator for a bundled schema.

    Deutsch:
        Erzeugt einen geprüften Draft-07-Validator für ein mitgeliefertes Schema.
    """

    schema = load_schema(name)
    Draft7Validator.check_schema(schema)
    return Draft7Validator(schema)
