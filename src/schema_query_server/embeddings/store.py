"""
Field Vector Store

Upsert-capable wrapper around `VectorIndex` holding one entry per schema
field. The underlying index rejects duplicate ids; this wrapper deletes any
pre-existing id before inserting, which is the only place upsert semantics
exist.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .index import VectorIndex, VectorIndexError
from .models import FieldMatch, VectorStoreEntry
from .embedder import Embedder
from ..graph.models import TableSchema

logger = logging.getLogger("sqs.field_store")


EntryLike = Union[VectorStoreEntry, Mapping[str, Any]]


class FieldVectorStore:
    """
    Upsert / query facade over a single `VectorIndex`.
    """

    def __init__(self, index: Optional[VectorIndex] = None) -> None:
        self.index = index or VectorIndex()

    def upsert(self, entries: Iterable[EntryLike]) -> int:
        """
        Insert entries, replacing any that already exist.

        Entries without an id or without a vector are skipped. If the batch is
        rejected the entries it would have replaced are kept.

        Returns
        -------
        int
            Number of entries written.
        """
        ids: List[str] = []
        vectors: List[List[float]] = []
        docs: List[Dict[str, Any]] = []

        for entry in entries:
            if isinstance(entry, VectorStoreEntry):
                entry_id, vector, payload = entry.id, entry.vector, entry.payload
            else:
                entry_id = entry.get("id")
                vector = entry.get("vector")
                payload = entry.get("payload") or {}

            if not entry_id or not vector:
                continue

            ids.append(str(entry_id))
            vectors.append(list(vector))
            docs.append({"metadata": dict(payload)})

        if not ids:
            return 0

        previous = [
            (doc_id, self.index.get_vector(doc_id), self.index.get(doc_id))
            for doc_id in dict.fromkeys(ids)
            if self.index.get(doc_id) is not None
        ]

        self.index.delete_by_ids(ids)
        try:
            self.index.add_vectors(vectors, ids=ids, docs=docs)
        except VectorIndexError:
            # Rejected batches leave the index untouched; restore the removed entries.
            if previous:
                self.index.add_vectors(
                    [vec for _, vec, _ in previous],
                    ids=[doc_id for doc_id, _, _ in previous],
                    docs=[doc for _, _, doc in previous],
                )
            raise
        return len(ids)

    def query(self, vector: Sequence[float], k: int = 10) -> List[FieldMatch]:
        return [
            FieldMatch(id=hit.doc.id, payload=dict(hit.doc.metadata), score=hit.score)
            for hit in self.index.similarity_search(vector, k)
        ]

    def clear(self) -> None:
        self.index.clear()

    def size(self) -> int:
        return self.index.size()


# ---------------------------------------------------------------------
# Field indexing
# ---------------------------------------------------------------------

def field_text(table: str, payload: Mapping[str, Any]) -> str:
    """
    Build the descriptive text embedded for one field.
    """
    parts = [
        f"Table: {table}",
        f"Field: {payload['field_name']}",
        f"Label: {payload.get('label') or payload['field_name']}",
        f"Type: {payload.get('type', 'unknown')}",
    ]
    if payload.get("picklist_values"):
        parts.append("Values: " + ", ".join(payload["picklist_values"]))
    if payload.get("relationship_name"):
        parts.append(f"Relationship: {payload['relationship_name']}")
    if payload.get("child_table"):
        parts.append(f"Child table: {payload['child_table']}")
    return " | ".join(parts)


def field_entry_id(payload: Mapping[str, Any]) -> str:
    entry_id = f"{payload['table']}.{payload['field_name']}"
    if payload.get("type") == "childRelationship":
        entry_id += "#child"
    return entry_id


def field_payloads(table: TableSchema) -> List[Dict[str, Any]]:
    """
    One payload per column plus one per child relationship.
    """
    payloads: List[Dict[str, Any]] = []

    for col in table.columns:
        payload: Dict[str, Any] = {
            "table": table.name,
            "field_name": col.name,
            "label": col.label or col.name,
            "type": col.data_type,
        }
        if col.picklist_values:
            payload["picklist_values"] = list(col.picklist_values)
        if col.relationship_name:
            payload["relationship_name"] = col.relationship_name
        payloads.append(payload)

    for rel in table.child_relationships:
        if not rel.relationship_name:
            continue
        payloads.append({
            "table": table.name,
            "field_name": rel.relationship_name,
            "label": rel.relationship_name,
            "type": "childRelationship",
            "relationship_name": rel.relationship_name,
            "child_table": rel.child_table,
            "child_field": rel.field,
        })

    return payloads


async def index_table_fields(
    store: FieldVectorStore,
    embedder: Embedder,
    tables: Sequence[TableSchema],
) -> int:
    """
    Embed and upsert every field of `tables` into `store`.

    Entry ids are `<table>.<field>` (child relationships get a `#child`
    suffix) so re-indexing a table replaces its previous entries.

    Returns
    -------
    int
        Number of entries written.
    """
    payloads: List[Dict[str, Any]] = []
    for table in tables:
        payloads.extend(field_payloads(table))

    if not payloads:
        return 0

    texts = [field_text(p["table"], p) for p in payloads]
    vectors = await embedder.embed(texts)

    written = store.upsert(
        VectorStoreEntry(
            id=field_entry_id(p),
            vector=vec,
            payload=p,
        )
        for p, vec in zip(payloads, vectors)
    )

    logger.info("Indexed %d fields across %d tables", written, len(tables))
    return written
