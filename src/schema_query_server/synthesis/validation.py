"""
Static query validation.

The read-only check is a prefix check: the statement must start with the
SELECT keyword (any case, leading whitespace allowed). Anything else is a
hard rejection and is never rewritten. The statement is not parsed, so
deeper correctness is left to generation.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field

from .models import QueryPlan


READ_ONLY_PATTERN = re.compile(r"^\s*SELECT\b", re.IGNORECASE)


class ValidationOutcome(BaseModel):
    ok: bool
    reason: Optional[str] = None
    suggestions: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


def is_read_only(query: str) -> bool:
    return bool(query) and READ_ONLY_PATTERN.match(query) is not None


def validate_plan(
    plan: QueryPlan,
    known_tables: Iterable[str],
    min_confidence: float = 0.0,
) -> ValidationOutcome:
    """
    Validate a generated plan.

    Hard failures: a statement that is not read-only, or a confidence below
    `min_confidence`. Tables in `tables_used` that are absent from
    `known_tables` only produce warnings.
    """
    if not is_read_only(plan.query):
        first = plan.query.strip().split(None, 1)[0].upper() if plan.query.strip() else ""
        return ValidationOutcome(
            ok=False,
            reason=f"Generated query is not a read-only SELECT statement (starts with '{first}').",
            suggestions=["Rephrase the request as a data lookup rather than a change."],
        )

    if plan.confidence < min_confidence:
        return ValidationOutcome(
            ok=False,
            reason=(
                f"Plan confidence {plan.confidence:.2f} is below the required "
                f"threshold {min_confidence:.2f}."
            ),
            suggestions=[
                "Simplify the request.",
                "Name the tables or fields you are interested in.",
            ],
        )

    known = {t.lower() for t in known_tables}
    warnings = [
        f"Table '{t}' is not part of the supplied schema context."
        for t in plan.tables_used
        if t.lower() not in known
    ]

    return ValidationOutcome(ok=True, warnings=warnings)
