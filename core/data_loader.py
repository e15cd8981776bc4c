"""
core/data_loader.py — Startup hydration of the reference catalogs.

Owner: WS1 (Data & Retrieval)

Called once at app startup.  Reads the ``conditions`` and ``assessments``
collections and returns them as the same frozen types the built-in tables
use, so the engine never queries MongoDB after startup.  An empty or
missing collection falls back to the built-in table.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import pydantic

from core.assessments import ASSESSMENT_CATALOG, AssessmentDefinition
from core.conditions import CONDITION_CATALOG
from core.models import ConditionCandidate

logger = logging.getLogger(__name__)


def _condition_from_doc(doc: dict) -> ConditionCandidate:
    return ConditionCandidate(
        id=str(doc["_id"]),
        name=doc["name"],
        body_region=doc.get("body_region", ""),
        specialty=doc.get("specialty", "musculoskeletal"),
        prevalence_rank=int(doc.get("prevalence_rank", 999)),
        chronicity=doc.get("chronicity", "either"),
    )


def _assessment_from_doc(doc: dict) -> AssessmentDefinition:
    return AssessmentDefinition(
        assessment_id=str(doc["_id"]),
        name=doc["name"],
        category=doc.get("category", "Clinical Assessment"),
        regions=tuple(doc.get("regions", ())),
        pathways=tuple(doc.get("pathways", ())),
        base_relevance=int(doc.get("base_relevance", 40)),
    )


def load_conditions(db) -> tuple[ConditionCandidate, ...]:
    """Condition catalog ordered by prevalence rank (rank 1 first)."""
    conditions: list[ConditionCandidate] = []
    for doc in db["conditions"].find():
        try:
            conditions.append(_condition_from_doc(doc))
        except (KeyError, ValueError, pydantic.ValidationError) as exc:
            logger.warning("Skipping malformed condition document %r: %s", doc.get("_id"), exc)
    if not conditions:
        logger.info("No condition documents found; using built-in catalog")
        return CONDITION_CATALOG
    conditions.sort(key=lambda c: c.prevalence_rank)
    return tuple(conditions)


def load_assessments(db) -> tuple[AssessmentDefinition, ...]:
    """Assessment catalog in stored order (``order`` field, then insertion)."""
    assessments: list[AssessmentDefinition] = []
    for doc in db["assessments"].find().sort("order", 1):
        try:
            assessments.append(_assessment_from_doc(doc))
        except (KeyError, ValueError) as exc:
            logger.warning("Skipping malformed assessment document %r: %s", doc.get("_id"), exc)
    if not assessments:
        logger.info("No assessment documents found; using built-in catalog")
        return ASSESSMENT_CATALOG
    return tuple(assessments)


def load_all(db) -> dict[str, Any]:
    """
    Load all reference data from MongoDB into memory.

    Parameters
    ----------
    db : pymongo.database.Database
        The MongoDB database handle (from ``core.database.get_db()``).

    Returns
    -------
    dict with keys:
        - ``"conditions"``       : tuple[ConditionCandidate]  — ranked catalog
        - ``"condition_index"``  : dict  — condition id → ConditionCandidate
        - ``"assessments"``      : tuple[AssessmentDefinition]
        - ``"assessment_index"`` : dict  — assessment id → AssessmentDefinition
    """
    t0 = time.time()
    conditions = load_conditions(db)
    assessments = load_assessments(db)
    logger.info("load_all() loaded %d conditions, %d assessments in %.1fs",
                len(conditions), len(assessments), time.time() - t0)
    return {
        "conditions": conditions,
        "condition_index": {c.id: c for c in conditions},
        "assessments": assessments,
        "assessment_index": {a.assessment_id: a for a in assessments},
    }
