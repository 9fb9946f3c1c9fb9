"""Per-language rule profiles.

Every linguistic rule the engine applies (first-person prefixes, lead-in
rewrites, conjunction markers, phase and cadence synonyms) is data in
``languages.json``.  Adding a language means adding an entry there; none of
the validation or normalization code changes.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Optional

from jobtree.config import settings


@dataclass(frozen=True)
class LanguageProfile:
    code: str
    canonical_prefix: str
    first_person_prefixes: tuple[str, ...]
    rewrites: tuple[tuple[re.Pattern[str], str], ...]
    conjunctions: tuple[re.Pattern[str], ...]
    phase_synonyms: dict[str, tuple[str, ...]] = field(default_factory=dict)
    cadence_synonyms: dict[str, tuple[str, ...]] = field(default_factory=dict)

    def match_prefix(self, text: str) -> Optional[str]:
        """Return the first-person prefix *text* starts with, if any.

        Matching is case-insensitive and respects word boundaries, so
        "I want tomatoes" does not count as starting with "I want to".
        Longer prefixes win over shorter ones.
        """
        for prefix in sorted(self.first_person_prefixes, key=len, reverse=True):
            if starts_with_word(text, prefix):
                return prefix
        return None

    def has_conjunction(self, text: str) -> bool:
        return any(p.search(text) for p in self.conjunctions)


def starts_with_word(text: str, prefix: str) -> bool:
    """True if *text* begins with *prefix* (any casing) followed by a word break."""
    n = len(prefix)
    if text[:n].lower() != prefix.lower():
        return False
    return len(text) == n or text[n].isspace()


def _compile(code: str, raw: dict) -> LanguageProfile:
    canonical = raw["canonical_prefix"]
    rewrites = tuple(
        (re.compile(pattern, re.IGNORECASE), replacement)
        for pattern, replacement in raw.get("rewrites", [])
    )
    # A rewrite that fires on already-canonical text would make
    # normalize_formulation non-idempotent.
    for pattern, _ in rewrites:
        if pattern.match(f"{canonical} x"):
            raise ValueError(
                f"Rewrite {pattern.pattern!r} in profile {code!r} matches the canonical prefix"
            )
    return LanguageProfile(
        code=code,
        canonical_prefix=canonical,
        first_person_prefixes=tuple(p.lower() for p in raw["first_person_prefixes"]),
        rewrites=rewrites,
        conjunctions=tuple(re.compile(p, re.IGNORECASE) for p in raw.get("conjunctions", [])),
        phase_synonyms={k: tuple(v) for k, v in raw.get("phase_synonyms", {}).items()},
        cadence_synonyms={k: tuple(v) for k, v in raw.get("cadence_synonyms", {}).items()},
    )


def load_profiles(path: Optional[Path] = None) -> dict[str, LanguageProfile]:
    """Read and compile a language table from *path* (defaults to the bundled one)."""
    source = path or settings.languages_path
    raw = json.loads(source.read_text(encoding="utf-8"))
    return {code: _compile(code, entry) for code, entry in raw.items()}


@lru_cache(maxsize=1)
def profiles() -> dict[str, LanguageProfile]:
    """The bundled profiles, loaded once per process."""
    return load_profiles()


def get_profile(language: str) -> LanguageProfile:
    """Return the profile for *language*.

    Raises:
        ValueError: No profile is configured for *language*.
    """
    try:
        return profiles()[language]
    except KeyError:
        known = ", ".join(sorted(profiles()))
        raise ValueError(f"Unsupported language {language!r} (known: {known})") from None
