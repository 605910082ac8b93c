"""
In-Memory Vector Index

This module implements an exact, in-memory cosine-similarity index used for
nearest-field discovery.

Key Properties
--------------
- One dimensionality per index, locked by the first inserted vector
- Unique ids; duplicate inserts fail (no silent overwrite)
- Exact brute-force scoring with numpy (no approximate structure)
- Full JSON round-trip of vectors, documents, dimension and id counter

Concurrency
-----------
Single writer, many readers. The index performs no locking; callers that
share one instance across tasks must serialize mutation themselves, or
create one index per session.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np
from pydantic import ValidationError

from .models import VectorDocument, ScoredDocument

logger = logging.getLogger("sqs.index")


DocumentLike = Union[VectorDocument, Mapping[str, Any]]


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class VectorIndexError(RuntimeError):
    """Base error for vector index failures."""


class DimensionMismatchError(VectorIndexError):
    """Raised when a vector does not match the locked dimensionality."""


class DuplicateIdError(VectorIndexError):
    """Raised when inserting an id that already exists."""


# ---------------------------------------------------------------------
# Vector Index
# ---------------------------------------------------------------------

class VectorIndex:
    """
    Exact cosine-similarity index over (id, vector, document) records.
    """

    def __init__(self, dim: Optional[int] = None) -> None:
        """
        Parameters
        ----------
        dim : Optional[int]
            Expected dimensionality. When omitted, the first inserted vector
            locks the dimension.
        """
        self._dim: Optional[int] = dim if dim and dim > 0 else None
        self._vectors: Dict[str, np.ndarray] = {}
        self._docs: Dict[str, VectorDocument] = {}
        self._id_counter: int = 0

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    @property
    def dim(self) -> Optional[int]:
        return self._dim

    def _next_id(self, reserved: set[str]) -> str:
        while True:
            self._id_counter += 1
            candidate = f"vec_{self._id_counter}"
            if candidate not in self._vectors and candidate not in reserved:
                return candidate

    @staticmethod
    def _to_array(vector: Sequence[float], position: int) -> np.ndarray:
        try:
            arr = np.asarray(vector, dtype="float64")
        except (TypeError, ValueError) as exc:
            raise VectorIndexError(
                f"Vector at position {position} is not numeric."
            ) from exc

        if arr.ndim != 1 or arr.size == 0:
            raise VectorIndexError(
                f"Vector at position {position} must be a non-empty 1-D list."
            )
        return arr

    def _check_dim(self, arr: np.ndarray, expected: Optional[int], position: int) -> None:
        if expected is not None and arr.size != expected:
            raise DimensionMismatchError(
                f"Vector dimensionality mismatch at position {position}: "
                f"expected {expected}, got {arr.size}."
            )

    @staticmethod
    def _coerce_doc(doc_id: str, partial: Optional[DocumentLike]) -> VectorDocument:
        if partial is None:
            return VectorDocument(id=doc_id)
        if isinstance(partial, VectorDocument):
            return VectorDocument(id=doc_id, text=partial.text, metadata=dict(partial.metadata))
        return VectorDocument(
            id=doc_id,
            text=partial.get("text"),
            metadata=dict(partial.get("metadata") or {}),
        )

    def _insert_batch(
        self,
        vectors: Sequence[Sequence[float]],
        ids: Sequence[Optional[str]],
        docs: Sequence[Optional[DocumentLike]],
    ) -> List[str]:
        """
        Validate the whole batch first, then commit. A failing batch leaves
        the index (including its dimension lock) untouched.
        """
        arrays = [self._to_array(v, i) for i, v in enumerate(vectors)]

        expected = self._dim if self._dim is not None else arrays[0].size
        for i, arr in enumerate(arrays):
            self._check_dim(arr, expected, i)

        explicit = {i for i in ids if i}
        seen: set[str] = set()
        for doc_id in ids:
            if not doc_id:
                continue
            if doc_id in self._vectors or doc_id in seen:
                raise DuplicateIdError(f"Duplicate vector id: {doc_id}")
            seen.add(doc_id)

        assigned = [doc_id or self._next_id(explicit) for doc_id in ids]

        self._dim = expected
        for doc_id, arr, partial in zip(assigned, arrays, docs):
            self._vectors[doc_id] = arr.copy()
            self._docs[doc_id] = self._coerce_doc(doc_id, partial)

        return assigned

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def add_vectors(
        self,
        vectors: Sequence[Sequence[float]],
        ids: Optional[Sequence[Optional[str]]] = None,
        docs: Optional[Sequence[Optional[DocumentLike]]] = None,
    ) -> List[str]:
        """
        Add raw vectors with optional ids and optional documents.

        Returns
        -------
        List[str]
            The ids assigned, in input order.

        Raises
        ------
        VectorIndexError
            On empty input or non-numeric vectors.
        DimensionMismatchError
            If any vector does not match the locked dimensionality.
        DuplicateIdError
            If an id already exists (or repeats inside the batch).
        """
        if vectors is None or len(vectors) == 0:
            raise VectorIndexError("vectors must be a non-empty list.")

        n = len(vectors)
        id_list = [(ids[i] if ids is not None and i < len(ids) else None) for i in range(n)]
        doc_list = [(docs[i] if docs is not None and i < len(docs) else None) for i in range(n)]

        return self._insert_batch(vectors, id_list, doc_list)

    def add_documents(
        self,
        documents: Sequence[DocumentLike],
        vectors: Sequence[Sequence[float]],
    ) -> List[str]:
        """
        Add documents with externally computed vectors (aligned 1:1).
        """
        if documents is None or len(documents) == 0:
            raise VectorIndexError("documents must be a non-empty list.")
        if vectors is None or len(vectors) != len(documents):
            raise VectorIndexError("documents and vectors must have the same length.")

        ids = [
            d.id if isinstance(d, VectorDocument) else d.get("id")
            for d in documents
        ]
        return self._insert_batch(vectors, ids, list(documents))

    def similarity_search(
        self,
        query: Sequence[float],
        k: int = 10,
    ) -> List[ScoredDocument]:
        """
        Rank every stored vector by cosine similarity to `query`.

        Ties keep insertion order. `k` larger than the index returns
        everything.
        """
        if not self._vectors or k <= 0:
            return []

        q = self._to_array(query, 0)
        self._check_dim(q, self._dim, 0)

        ids = list(self._vectors.keys())
        matrix = np.vstack([self._vectors[i] for i in ids])

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
        dots = matrix @ q
        scores = np.divide(
            dots,
            norms,
            out=np.zeros_like(dots),
            where=norms != 0,
        )

        order = np.argsort(-scores, kind="stable")[:k]

        return [
            ScoredDocument(doc=self._docs[ids[i]], score=float(scores[i]))
            for i in order
        ]

    def similarity_search_documents(
        self,
        query: Sequence[float],
        k: int = 10,
    ) -> List[VectorDocument]:
        return [hit.doc for hit in self.similarity_search(query, k)]

    def get(self, doc_id: str) -> Optional[VectorDocument]:
        return self._docs.get(doc_id)

    def get_vector(self, doc_id: str) -> Optional[List[float]]:
        vec = self._vectors.get(doc_id)
        return vec.tolist() if vec is not None else None

    def delete_by_ids(self, ids: Sequence[str]) -> int:
        """
        Remove entries by id. Missing ids are skipped.

        Returns
        -------
        int
            Number of removed entries.
        """
        removed = 0
        for doc_id in ids:
            had_vec = self._vectors.pop(doc_id, None) is not None
            had_doc = self._docs.pop(doc_id, None) is not None
            if had_vec or had_doc:
                removed += 1
        return removed

    def clear(self) -> None:
        self._vectors.clear()
        self._docs.clear()
        self._dim = None
        self._id_counter = 0

    def size(self) -> int:
        return len(self._vectors)

    def __len__(self) -> int:
        return self.size()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_json(self) -> Dict[str, Any]:
        """
        Export to a JSON-serializable dict.
        """
        return {
            "dim": self._dim,
            "id_counter": self._id_counter,
            "items": [
                {
                    "id": doc_id,
                    "vector": vec.tolist(),
                    "doc": self._docs[doc_id].model_dump(),
                }
                for doc_id, vec in self._vectors.items()
            ],
        }

    @classmethod
    def from_json(cls, data: Any) -> "VectorIndex":
        """
        Restore an index produced by `to_json`.

        Raises
        ------
        VectorIndexError
            If `data` has no `items` list. Individual malformed items are
            skipped.
        """
        if not isinstance(data, Mapping) or not isinstance(data.get("items"), list):
            raise VectorIndexError("Invalid vector index JSON: missing 'items' list.")

        raw_dim = data.get("dim")
        index = cls(dim=raw_dim if isinstance(raw_dim, int) else None)

        raw_counter = data.get("id_counter")
        index._id_counter = raw_counter if isinstance(raw_counter, int) else 0

        skipped = 0
        for item in data["items"]:
            if not isinstance(item, Mapping):
                skipped += 1
                continue

            doc_id = item.get("id")
            raw_vec = item.get("vector")
            if not isinstance(doc_id, str) or not doc_id or not isinstance(raw_vec, list):
                skipped += 1
                continue
            if doc_id in index._vectors:
                skipped += 1
                continue

            try:
                arr = cls._to_array(raw_vec, 0)
                index._check_dim(arr, index._dim, 0)
            except VectorIndexError:
                skipped += 1
                continue

            raw_doc = item.get("doc")
            try:
                doc = cls._coerce_doc(doc_id, raw_doc if isinstance(raw_doc, Mapping) else None)
            except (ValidationError, TypeError, ValueError):
                skipped += 1
                continue

            if index._dim is None:
                index._dim = arr.size
            index._vectors[doc_id] = arr
            index._docs[doc_id] = doc

        if skipped:
            logger.warning("Skipped %d malformed vector index items during load", skipped)

        return index
