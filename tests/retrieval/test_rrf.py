"""Tests for Reciprocal Rank Fusion."""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from knowledge_engine.models.search import RankedItem
from knowledge_engine.retrieval.rrf import fuse_ranked_lists, normalize_scores


def items(*ids: str, score: float = 1.0) -> list[RankedItem]:
    return [RankedItem(id=i, score=score) for i in ids]


class TestFuseRankedLists:
    """Test RRF scoring and ordering."""

    def test_no_lists(self):
        assert fuse_ranked_lists([]) == []

    def test_single_list_returned_unchanged(self):
        only = items("a", "b")

        assert fuse_ranked_lists([only]) is only

    def test_scores_use_zero_based_rank(self):
        fused = fuse_ranked_lists([items("x", "y"), items("y", "z")])

        scores = {item.id: item.score for item in fused}
        assert [item.id for item in fused] == ["y", "x", "z"]
        assert scores["y"] == pytest.approx(1 / 61 + 1 / 60)
        assert scores["x"] == pytest.approx(1 / 60)
        assert scores["z"] == pytest.approx(1 / 61)

    def test_custom_k(self):
        fused = fuse_ranked_lists([items("a"), items("b", "a")], k=1)

        assert fused[0].id == "a"
        assert fused[0].score == pytest.approx(1 / 1 + 1 / 2)

    def test_item_scores_are_ignored(self):
        vector = [RankedItem("v", 0.99), RankedItem("shared", 0.1)]
        keyword = [RankedItem("shared", 42.0), RankedItem("k", 0.01)]

        fused = fuse_ranked_lists([vector, keyword])

        assert fused[0].id == "shared"

    def test_ties_keep_first_seen_order(self):
        fused = fuse_ranked_lists([items("p"), items("q")])

        assert [item.id for item in fused] == ["p", "q"]

    def test_first_occurrence_payload_kept(self, make_result):
        first = make_result("dup", content="from vector search")
        second = make_result("dup", content="from keyword search")

        fused = fuse_ranked_lists([[first], [second]])

        assert len(fused) == 1
        assert fused[0].content == "from vector search"

    def test_inputs_not_mutated(self, make_result):
        original = make_result("a", score=0.87)

        fuse_ranked_lists([[original], [make_result("b")]])

        assert original.score == 0.87

    def test_custom_id_function(self):
        lists = [items("A"), items("a")]

        fused = fuse_ranked_lists(lists, id_fn=lambda item: item.id.lower())

        assert len(fused) == 1
        assert fused[0].id == "A"

    @settings(deadline=None, max_examples=100)
    @given(
        st.lists(
            st.lists(st.sampled_from("abcdefghij"), unique=True, max_size=10),
            min_size=2,
            max_size=4,
        )
    )
    def test_fused_list_properties(self, id_lists):
        ranked = [items(*ids) for ids in id_lists]

        fused = fuse_ranked_lists(ranked)

        ids = [item.id for item in fused]
        assert len(ids) == len(set(ids))
        assert set(ids) == {i for ids_ in id_lists for i in ids_}
        scores = [item.score for item in fused]
        assert scores == sorted(scores, reverse=True)
        assert [item.id for item in fuse_ranked_lists(ranked)] == ids


class TestNormalizeScores:
    def test_min_max(self):
        normalized = normalize_scores([RankedItem("a", 1.0), RankedItem("b", 3.0), RankedItem("c", 5.0)])

        assert [item.score for item in normalized] == [0.0, 0.5, 1.0]

    def test_equal_scores_unchanged(self):
        original = items("a", "b", score=2.5)

        assert [item.score for item in normalize_scores(original)] == [2.5, 2.5]

    def test_empty(self):
        assert normalize_scores([]) == []
