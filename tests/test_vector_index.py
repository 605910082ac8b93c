"""
VectorIndex Tests

Covers insertion rules (dimension lock, unique ids, generated ids), cosine
ranking, deletion and JSON persistence.
"""

import math

import pytest

from schema_query_server.embeddings.index import (
    DimensionMismatchError,
    DuplicateIdError,
    VectorIndex,
    VectorIndexError,
)
from schema_query_server.embeddings.models import VectorDocument


@pytest.fixture
def index():
    idx = VectorIndex()
    idx.add_vectors(
        [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [1.0, 1.0, 0.0], [0.2, 0.1, 0.9]],
        ids=["a", "b", "c", "d"],
        docs=[{"text": "alpha", "metadata": {"table": "Account"}}, None, None, None],
    )
    return idx


class TestInsertion:
    def test_generated_ids_are_sequential(self):
        idx = VectorIndex()
        ids = idx.add_vectors([[1.0, 0.0], [0.0, 1.0]])
        assert ids == ["vec_1", "vec_2"]

    def test_generated_ids_skip_existing(self):
        idx = VectorIndex()
        idx.add_vectors([[1.0, 0.0]], ids=["vec_1"])
        ids = idx.add_vectors([[0.0, 1.0]])
        assert ids == ["vec_2"]

    def test_empty_input_rejected(self):
        with pytest.raises(VectorIndexError):
            VectorIndex().add_vectors([])

    def test_dimension_locked_by_first_insert(self, index):
        assert index.dim == 3
        with pytest.raises(DimensionMismatchError):
            index.add_vectors([[1.0, 0.0]])

    def test_constructor_dimension(self):
        idx = VectorIndex(dim=2)
        with pytest.raises(DimensionMismatchError):
            idx.add_vectors([[1.0, 0.0, 0.0]])

    def test_failed_batch_leaves_index_untouched(self):
        idx = VectorIndex()
        with pytest.raises(DimensionMismatchError):
            idx.add_vectors([[1.0, 0.0], [1.0, 0.0, 0.0]])
        assert idx.size() == 0
        assert idx.dim is None

    def test_duplicate_id_rejected(self, index):
        with pytest.raises(DuplicateIdError):
            index.add_vectors([[0.0, 0.0, 1.0]], ids=["a"])
        assert index.size() == 4

    def test_duplicate_id_within_batch_rejected(self):
        idx = VectorIndex()
        with pytest.raises(DuplicateIdError):
            idx.add_vectors([[1.0], [2.0]], ids=["x", "x"])
        assert idx.size() == 0

    def test_add_documents_requires_aligned_vectors(self):
        idx = VectorIndex()
        with pytest.raises(VectorIndexError):
            idx.add_documents([VectorDocument(id="a")], [[1.0], [2.0]])

    def test_add_documents_keeps_metadata(self):
        idx = VectorIndex()
        idx.add_documents(
            [VectorDocument(id="Account.Name", text="Account name", metadata={"type": "string"})],
            [[0.5, 0.5]],
        )
        doc = idx.get("Account.Name")
        assert doc.text == "Account name"
        assert doc.metadata == {"type": "string"}


class TestSimilaritySearch:
    def test_exact_vector_ranks_first(self, index):
        hits = index.similarity_search([0.0, 1.0, 0.0], k=4)
        assert hits[0].doc.id == "b"
        assert math.isclose(hits[0].score, 1.0)

    def test_scores_are_non_increasing(self, index):
        scores = [h.score for h in index.similarity_search([0.3, 0.7, 0.2], k=10)]
        assert scores == sorted(scores, reverse=True)

    def test_k_larger_than_index_returns_all(self, index):
        assert len(index.similarity_search([1.0, 0.0, 0.0], k=100)) == 4

    def test_empty_index_returns_nothing(self):
        assert VectorIndex().similarity_search([1.0, 0.0], k=5) == []

    def test_zero_norm_scores_zero(self):
        idx = VectorIndex()
        idx.add_vectors([[0.0, 0.0], [1.0, 0.0]], ids=["zero", "x"])
        hits = {h.doc.id: h.score for h in idx.similarity_search([1.0, 0.0], k=2)}
        assert hits["zero"] == 0.0
        assert all(h.score == 0.0 for h in idx.similarity_search([0.0, 0.0], k=2))

    def test_ties_keep_insertion_order(self):
        idx = VectorIndex()
        idx.add_vectors([[1.0, 0.0], [2.0, 0.0], [3.0, 0.0]], ids=["first", "second", "third"])
        assert [h.doc.id for h in idx.similarity_search([1.0, 0.0], k=3)] == [
            "first", "second", "third",
        ]

    def test_query_dimension_mismatch(self, index):
        with pytest.raises(DimensionMismatchError):
            index.similarity_search([1.0, 0.0], k=1)

    def test_documents_only(self, index):
        docs = index.similarity_search_documents([1.0, 0.0, 0.0], k=1)
        assert docs[0].id == "a"
        assert docs[0].metadata == {"table": "Account"}


class TestMutation:
    def test_delete_skips_missing_ids(self, index):
        assert index.delete_by_ids(["a", "missing"]) == 1
        assert index.size() == 3
        assert index.get("a") is None

    def test_clear_resets_dimension_and_counter(self, index):
        index.clear()
        assert len(index) == 0
        assert index.dim is None
        assert index.add_vectors([[1.0, 2.0]]) == ["vec_1"]


class TestPersistence:
    def test_round_trip_preserves_search(self, index):
        restored = VectorIndex.from_json(index.to_json())
        for query in ([1.0, 0.0, 0.0], [0.1, 0.9, 0.4], [0.5, 0.5, 0.5]):
            original = [(h.doc.id, round(h.score, 9)) for h in index.similarity_search(query, 4)]
            again = [(h.doc.id, round(h.score, 9)) for h in restored.similarity_search(query, 4)]
            assert original == again

    def test_round_trip_preserves_counter(self):
        idx = VectorIndex()
        idx.add_vectors([[1.0, 0.0], [0.0, 1.0]])
        restored = VectorIndex.from_json(idx.to_json())
        assert restored.add_vectors([[1.0, 1.0]]) == ["vec_3"]

    def test_missing_items_rejected(self):
        with pytest.raises(VectorIndexError):
            VectorIndex.from_json({"dim": 2})

    def test_malformed_items_skipped(self):
        data = {
            "dim": 2,
            "id_counter": 0,
            "items": [
                {"id": "ok", "vector": [1.0, 0.0], "doc": {"text": "fine"}},
                {"id": "bad-dim", "vector": [1.0, 0.0, 0.0]},
                {"vector": [0.0, 1.0]},
                "not-an-object",
                {"id": "bad-vec", "vector": ["x", "y"]},
                {"id": "bad-meta", "vector": [0.0, 1.0], "doc": {"metadata": "not-a-map"}},
                {"id": "bad-text", "vector": [0.0, 1.0], "doc": {"text": ["a", "b"]}},
            ],
        }
        restored = VectorIndex.from_json(data)
        assert restored.size() == 1
        assert restored.get("ok").text == "fine"
