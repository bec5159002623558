"""
Patient matching for research cohorts.

Primary path: fetch the newest patients, enrich them with the clinical
sources the criteria need, apply the predicates (clinical first, then
demographic), then deduplicate and score.

Fallback path: if anything in the primary path raises, the patients are
re-fetched without joins and only demographic criteria are applied. The
caller always gets ``success: true``; the failure is only logged.
"""

import logging
from datetime import datetime
from typing import List, Optional, Sequence, Union

from ..matching.field_classifier import required_sources, split_criteria
from ..matching.records import EnrichedPatient
from ..matching.registry import REGISTRY, PredicateRegistry
from ..matching.transform import deduplicate_and_transform
from ..schemas.common import OperationError
from ..schemas.criteria import FilterCriterion
from ..schemas.patient import MatchResult, PatientMatchResponse
from .auth import AuthenticatedUser, require_user
from .enrichment import enrich_patients, fetch_base_patients
from .record_store import RecordStore, RecordStoreError

logger = logging.getLogger(__name__)


def _response(results: List[MatchResult]) -> PatientMatchResponse:
    return PatientMatchResponse(success=True, patients=results, count=len(results))


def match_with_enrichment(
    store: RecordStore,
    criteria: Sequence[FilterCriterion],
    registry: PredicateRegistry = REGISTRY,
    now: Optional[datetime] = None,
) -> List[MatchResult]:
    """Primary path. Any exception is left to the caller."""
    rows = fetch_base_patients(store)
    clinical, _ = split_criteria(list(criteria))
    sources = required_sources(c.field for c in clinical)
    logger.debug("Fetched %d base patients; sources needed: %s", len(rows), sorted(sources) or "none")

    patients = enrich_patients(store, rows, sources, now=now)
    matched = registry.filter_patients(patients, criteria)
    return deduplicate_and_transform(matched, criteria, registry)


def match_demographics_only(
    store: RecordStore,
    criteria: Sequence[FilterCriterion],
    registry: PredicateRegistry = REGISTRY,
    now: Optional[datetime] = None,
) -> List[MatchResult]:
    """
    Fallback path: no joins, demographic criteria only.

    Scores come from the regular scorer on the un-enriched patients, so they
    stay deterministic and within [0, 100].
    """
    try:
        rows = fetch_base_patients(store)
    except RecordStoreError as e:
        logger.error("Fallback patient fetch failed, returning no patients: %s", e)
        return []

    patients = [EnrichedPatient(row=row, now=now) for row in rows]
    _, demographic = split_criteria(list(criteria))
    matched = registry.filter_patients(patients, demographic)
    return deduplicate_and_transform(matched, criteria, registry)


def find_matching_patients(
    store: RecordStore,
    user: Optional[AuthenticatedUser],
    criteria: Sequence[FilterCriterion],
    registry: PredicateRegistry = REGISTRY,
    now: Optional[datetime] = None,
) -> Union[PatientMatchResponse, OperationError]:
    """
    Find patients matching all criteria (AND-chained).

    Args:
        store: Record store holding patients and clinical tables
        user: Authenticated caller, None when anonymous
        criteria: Filter criteria; ``logical_operator`` is not evaluated
        registry: Predicate registry (the default catalogue unless overridden)
        now: Reference time for age calculation

    Returns:
        PatientMatchResponse, or OperationError when unauthenticated
    """
    denied = require_user(user)
    if denied:
        return denied

    criteria = list(criteria or [])
    logger.info("Matching patients for user %s with %d criteria", user.id, len(criteria))
    try:
        results = match_with_enrichment(store, criteria, registry, now)
    except Exception:
        logger.exception("Clinical filtering failed; falling back to demographic filtering")
        results = match_demographics_only(store, criteria, registry, now)

    logger.info("Matched %d patients", len(results))
    return _response(results)
