"""
Schema Discovery

Turns live describe payloads into immutable `TableSchema` values and builds
a `SchemaGraph`, reusing a stored snapshot when it already covers every
requested table.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from ..config import settings
from ..graph.models import (
    ChildRelationshipSchema,
    ColumnSchema,
    ForeignKeySchema,
    TableSchema,
)
from ..graph.schema_graph import SchemaGraph, SchemaGraphError
from .client import SchemaSource
from .snapshots import SnapshotError, SnapshotStore

logger = logging.getLogger("sqs.discovery")


# ---------------------------------------------------------------------
# Describe conversion
# ---------------------------------------------------------------------

def _int_or_none(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _picklist(raw: Any) -> tuple:
    values = []
    for item in raw or []:
        if isinstance(item, Mapping):
            if item.get("active") is False:
                continue
            value = item.get("value")
        else:
            value = item
        if value is not None and str(value) != "":
            values.append(str(value))
    return tuple(values)


def describe_to_table_schema(
    raw: Mapping[str, Any],
    table_name: Optional[str] = None,
    namespace: Optional[str] = None,
) -> TableSchema:
    """
    Convert a describe payload into a `TableSchema`.

    Fields without a type keep the sentinel type ``"unknown"``; fields are
    never dropped for missing metadata, only for a missing name.
    """
    name = table_name or raw.get("name")
    if not name:
        raise ValueError("Describe payload has no table name")

    columns: List[ColumnSchema] = []
    foreign_keys: List[ForeignKeySchema] = []

    for field in raw.get("fields") or []:
        if not isinstance(field, Mapping) or not field.get("name"):
            continue

        fname = str(field["name"])
        nillable = field.get("nillable")
        relationship_name = field.get("relationshipName") or None

        columns.append(ColumnSchema(
            name=fname,
            data_type=str(field.get("type") or "unknown"),
            is_nullable=True if nillable is None else bool(nillable),
            is_primary_key=fname.lower() == "id",
            max_length=_int_or_none(field.get("length")),
            precision=_int_or_none(field.get("precision")),
            label=field.get("label") or None,
            picklist_values=_picklist(field.get("picklistValues")),
            relationship_name=relationship_name,
        ))

        references = field.get("referenceTo") or []
        if isinstance(references, str):
            references = [references]
        for target in references:
            if not target:
                continue
            foreign_keys.append(ForeignKeySchema(
                column_name=fname,
                referenced_table=str(target),
                referenced_column="Id",
                relationship_name=relationship_name,
            ))

    child_relationships: List[ChildRelationshipSchema] = []
    for rel in raw.get("childRelationships") or []:
        if not isinstance(rel, Mapping):
            continue
        child = rel.get("childTable") or rel.get("childSObject")
        field_name = rel.get("field")
        if not child or not field_name:
            continue
        child_relationships.append(ChildRelationshipSchema(
            child_table=str(child),
            field=str(field_name),
            relationship_name=rel.get("relationshipName") or None,
        ))

    return TableSchema(
        name=str(name),
        namespace=namespace or settings.default_namespace,
        label=raw.get("label") or None,
        columns=tuple(columns),
        foreign_keys=tuple(foreign_keys),
        child_relationships=tuple(child_relationships),
    )


async def describe_tables(
    source: SchemaSource,
    names: Sequence[str],
    namespace: Optional[str] = None,
) -> Dict[str, Optional[TableSchema]]:
    """
    Describe every table concurrently.

    A table whose describe call or conversion fails maps to None; the batch
    itself never aborts.
    """

    async def _one(name: str) -> Optional[TableSchema]:
        try:
            raw = await source.describe(name)
            return describe_to_table_schema(raw, table_name=name, namespace=namespace)
        except Exception as exc:
            logger.warning(
                "Describe failed for table %s (%s): %s",
                name,
                type(exc).__name__,
                exc,
            )
            return None

    unique = list(dict.fromkeys(names))
    results = await asyncio.gather(*(_one(n) for n in unique))
    return dict(zip(unique, results))


# ---------------------------------------------------------------------
# Discovery orchestration
# ---------------------------------------------------------------------

class DiscoveryResult(BaseModel):
    graph: SchemaGraph
    location: Optional[str] = None
    from_snapshot: bool = False
    failed_tables: List[str] = Field(default_factory=list)

    model_config = ConfigDict(arbitrary_types_allowed=True)


class SchemaDiscovery:
    """
    Snapshot-first schema loader.
    """

    def __init__(
        self,
        source: SchemaSource,
        snapshots: Optional[SnapshotStore] = None,
        namespace: Optional[str] = None,
        snapshot_key: str = "schema",
    ) -> None:
        self.source = source
        self.snapshots = snapshots
        self.namespace = namespace or settings.default_namespace
        self.snapshot_key = snapshot_key

    async def _from_snapshot(
        self,
        tables: Sequence[str],
        location: str,
    ) -> Optional[SchemaGraph]:
        if self.snapshots is None:
            return None
        try:
            graph = await self.snapshots.load(location)
        except (SnapshotError, SchemaGraphError) as exc:
            logger.warning("Snapshot load failed, falling back to live describe: %s", exc)
            return None

        missing = [t for t in tables if not graph.has_table(t)]
        if missing:
            logger.info("Snapshot lacks tables %s; describing live", missing)
            return None
        return graph

    async def load_graph(
        self,
        tables: Sequence[str],
        snapshot_location: Optional[str] = None,
    ) -> DiscoveryResult:
        """
        Build a graph covering `tables`.

        Parameters
        ----------
        tables : Sequence[str]
            Table names to describe.

        snapshot_location : Optional[str]
            Location returned by an earlier call. Reused when it holds every
            requested table.

        Returns
        -------
        DiscoveryResult
            The graph, the snapshot location to reuse next time, and the
            tables whose describe failed.
        """
        names = [t.strip() for t in tables if t and t.strip()]

        if snapshot_location:
            graph = await self._from_snapshot(names, snapshot_location)
            if graph is not None:
                return DiscoveryResult(
                    graph=graph,
                    location=snapshot_location,
                    from_snapshot=True,
                )

        described = await describe_tables(self.source, names, self.namespace)
        schemas = [s for s in described.values() if s is not None]
        failed = [name for name, s in described.items() if s is None]

        graph = SchemaGraph.from_tables(schemas)

        location: Optional[str] = None
        if schemas and self.snapshots is not None:
            try:
                location = self.snapshots.save(self.snapshot_key, graph)
            except SnapshotError as exc:
                logger.warning("Snapshot save failed: %s", exc)

        logger.info(
            "Discovered %d/%d tables (%d failed)",
            len(schemas),
            len(names),
            len(failed),
        )

        return DiscoveryResult(
            graph=graph,
            location=location,
            from_snapshot=False,
            failed_tables=failed,
        )
