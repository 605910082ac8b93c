"""
Prompt builders for query generation, schema exploration and field mapping.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .context import SchemaContext


QUERY_RULES = """\
Rules:
- Generate only a single SELECT statement. Never modify data.
- ALWAYS include the table's Id (primary key) field in the SELECT clause.
- Use only tables and fields listed in the schema context.
- Focus on fields most relevant to the request.
- Include WHERE clauses when filtering is implied.
- Limit results to a reasonable number (e.g. LIMIT 200).
- A non-grouped query using an aggregate function (COUNT, MAX, MIN, AVG, SUM)
  must not also use a LIMIT clause.
  -- Invalid: SELECT COUNT(Id) FROM Account LIMIT 1 | Valid: SELECT COUNT(Id) FROM Account
- Aggregates must be declared in GROUP BY / ORDER BY directly; sub-queries
  cannot be used in GROUP BY or ORDER BY.
- Dates in WHERE clauses use ISO 8601: YYYY-MM-DD, or YYYY-MM-DDThh:mm:ssZ
  for date-times. Resolve relative dates against the current time below.

Join syntax:
| Relationship     | Direction | Syntax                    | Example                                 |
| ---------------- | --------- | ------------------------- | --------------------------------------- |
| Child-to-Parent  | Upward    | Dot notation              | SELECT Account.Name FROM Contact        |
| Parent-to-Child  | Downward  | Sub-query on relationship | SELECT Id, (SELECT Id FROM Contacts) FROM Account |
| Semi-Join        | Filter    | WHERE ... IN (sub-query)  | WHERE Id IN (SELECT AccountId FROM ...) |
| Anti-Join        | Filter    | WHERE ... NOT IN (...)    | WHERE Id NOT IN (SELECT ...)            |
"""


MAPPING_RULES = """\
Rules:
- Only map CSV headers that have a reasonable match in the target schema.
- Prefer exact field name matches (case-insensitive).
- Use semantic similarity for partial matches (e.g. "First Name" -> "FirstName").
- Consider common variations, abbreviations and data type compatibility.
- Omit any CSV header that cannot be reasonably mapped. Never guess.
- Preserve the exact CSV header text in source_field.
- Include the target field's data type in target_type.
"""


EXPLORATION_SYSTEM_PROMPT = """\
You explore a database schema to prepare a read-only query.
Use the tools to inspect tables, their columns and how they join.
When you know which tables, fields and joins answer the request, stop calling
tools and reply with concise notes listing them. Do not write the query.
"""


def _now_iso(now: Optional[datetime]) -> str:
    return (now or datetime.now(timezone.utc)).replace(microsecond=0).isoformat()


def build_query_prompt(
    description: str,
    context: SchemaContext,
    now: Optional[datetime] = None,
    user_id: Optional[str] = None,
    exploration_notes: Optional[str] = None,
) -> str:
    parts: List[str] = [
        "You are an expert at writing read-only queries against a business schema.",
        "Write one query that answers the request below.",
        "",
        QUERY_RULES,
        f"Current date and time (UTC): {_now_iso(now)}",
    ]
    if user_id:
        parts.append(f"The requesting user's Id is {user_id}; use it for 'my' / 'mine' filters.")

    parts += [
        "",
        "Schema context:",
        json.dumps(context.to_prompt_dict(), indent=2),
    ]

    if exploration_notes:
        parts += ["", "Schema exploration notes:", exploration_notes]

    parts += ["", f"Request: {description}"]
    return "\n".join(parts)


def build_exploration_message(description: str, tables: Sequence[str]) -> str:
    hint = f" Start with: {', '.join(tables)}." if tables else ""
    return f"Request: {description}.{hint}"


def build_mapping_prompt(
    table: str,
    columns: Sequence[Mapping[str, Any]],
    headers: Sequence[str],
    types: Mapping[str, str],
) -> str:
    available: List[Dict[str, Any]] = [dict(c) for c in columns]
    header_lines = ", ".join(f"{h} ({types.get(h, 'unknown')})" for h in headers)

    return "\n".join([
        "You are an expert data mapping specialist. Map CSV column headers to "
        f"fields of the '{table}' table.",
        "",
        MAPPING_RULES,
        f"Available fields for {table}:",
        json.dumps(available, indent=2),
        "",
        "CSV headers with inferred types:",
        header_lines,
        "",
        "Return the list of mappings. Headers without a reasonable match are omitted entirely.",
    ])
