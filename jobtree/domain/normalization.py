"""Canonicalisation of job formulations and labels.

The text functions are pure and idempotent: feeding their output back in
returns it unchanged.  ``autofix`` applies them to a stored graph through
the normal repository update path and reports what it changed; running it
a second time reports nothing.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from jobtree.db.connection import transaction
from jobtree.db.graphs import GraphRepository
from jobtree.db.jobs import JobRepository
from jobtree.db.models import CADENCES, PHASES, NewJob
from jobtree.domain.language import get_profile, profiles, starts_with_word
from jobtree.errors import NotFound

logger = logging.getLogger(__name__)

_TRAILING_PUNCTUATION = re.compile(r"[\s.]+$")


@dataclass
class NormalizationChange:
    job_id: str
    field: str
    old_value: str
    new_value: str


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------

def normalize_formulation(text: str, language: str) -> str:
    """Rewrite *text* so it opens with the profile's canonical first-person prefix.

    Known lead-ins ("I need to", "I'd like to", bare "want to", ...) are
    replaced, a missing prefix is prepended and a mis-cased one is fixed.

    >>> normalize_formulation("I need to compare pricing options", "en")
    'I want to compare pricing options'
    """
    profile = get_profile(language)
    canonical = profile.canonical_prefix
    result = text.strip()

    for pattern, replacement in profile.rewrites:
        result = pattern.sub(replacement, result, count=1)

    if starts_with_word(result, canonical):
        result = canonical + result[len(canonical):]
    else:
        result = f"{canonical} {result}"

    return result.strip()


def extract_label(formulation: str, language: str) -> str:
    """Derive a label from a formulation: drop the first-person prefix, capitalise."""
    normalized = normalize_formulation(formulation, language)
    prefix = get_profile(language).match_prefix(normalized)
    label = normalized[len(prefix):].lstrip() if prefix else normalized
    return _capitalize(label)


def normalize_label(label: str, language: str) -> str:
    """Strip first-person prefixes and trailing periods, capitalise the first letter."""
    profile = get_profile(language)
    result = _TRAILING_PUNCTUATION.sub("", label.strip())

    prefix = profile.match_prefix(result)
    while prefix:
        result = result[len(prefix):].lstrip()
        prefix = profile.match_prefix(result)

    return _capitalize(result)


def normalize_phase(value: Optional[str]) -> str:
    """Map a free-form or localised phase token to the phase enum (``unknown`` otherwise)."""
    token = (value or "").strip().lower()
    if token in PHASES:
        return token
    for profile in profiles().values():
        for phase, synonyms in profile.phase_synonyms.items():
            if token in synonyms:
                return phase
    return "unknown"


def normalize_cadence(value: Optional[str]) -> str:
    """Map a free-form or localised cadence token to ``once``/``repeat`` (``once`` otherwise)."""
    token = (value or "").strip().lower()
    if token in CADENCES:
        return token
    for profile in profiles().values():
        for cadence, synonyms in profile.cadence_synonyms.items():
            if token in synonyms:
                return cadence
    return "once"


def normalize_job(raw: Mapping[str, Any], language: str) -> NewJob:
    """Normalise an untrusted insertion payload (e.g. generation output) into a ``NewJob``."""
    data = dict(raw)
    data["formulation"] = normalize_formulation(data.get("formulation") or "", language)
    label = normalize_label(data.get("label") or "", language)
    data["label"] = label or extract_label(data["formulation"], language)
    if data.get("phase") is not None:
        data["phase"] = normalize_phase(data["phase"])
    if data.get("cadence") is not None:
        data["cadence"] = normalize_cadence(data["cadence"])
    return NewJob.model_validate(data)


# ---------------------------------------------------------------------------
# Graph-wide autofix
# ---------------------------------------------------------------------------

def autofix(
    conn: sqlite3.Connection,
    graph_id: str,
    language: Optional[str] = None,
) -> list[NormalizationChange]:
    """Normalise every job's formulation and label and persist the differences.

    Each changed job is written in its own transaction through
    :meth:`JobRepository.update_job`.  A label that would normalise to an
    empty string is derived from the formulation instead, and left alone if
    that is empty too; validation reports it.

    Raises:
        NotFound: The graph does not exist.
    """
    graph = GraphRepository(conn).find_by_id(graph_id)
    if graph is None:
        raise NotFound("Graph", graph_id)
    language = language or graph.language
    jobs = JobRepository(conn)

    changes: list[NormalizationChange] = []
    for job in jobs.by_graph(graph_id):
        patch: dict[str, str] = {}

        formulation = normalize_formulation(job.formulation, language)
        if formulation != job.formulation:
            patch["formulation"] = formulation

        label = normalize_label(job.label, language) or normalize_label(
            extract_label(formulation, language), language
        )
        if label and label != job.label:
            patch["label"] = label

        if not patch:
            continue
        with transaction(conn):
            jobs.update_job(job.id, patch)
        changes.extend(
            NormalizationChange(job.id, name, getattr(job, name), value)
            for name, value in patch.items()
        )

    if changes:
        logger.info("Autofix changed %d field(s) in graph %s", len(changes), graph_id)
    return changes
