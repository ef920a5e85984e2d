"""Dataclasses and enums shared across the translation pipeline."""
from __future__ import annotations

import enum
from dataclasses import dataclass


class RequestMode(enum.Enum):
    """Output style requested for a single translation."""

    STANDARD = "standard"
    VERBOSE = "verbose"
    ALT = "alt"
    EXPLAIN = "explain"


@dataclass(frozen=True)
class TranslationRequest:
    """Immutable request payload used by the CLI and tests."""

    query: str
    mode: RequestMode = RequestMode.STANDARD


@dataclass
class TranslationRecord:
    """Result of a translation and where it came from."""

    text: str
    cache_key: str
    cached: bool = False
