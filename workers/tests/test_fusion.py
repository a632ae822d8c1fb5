"""Tests for result fusion."""

from __future__ import annotations

import pytest

from contextengine.fusion import OrderedDedupFusion, WeightedRankFusion, fuse
from contextengine.models import FusionOptions, SourceName
from tests.fake_ide import make_chunk


def test_concatenates_in_source_order_not_mapping_order() -> None:
    sources = {
        SourceName.REPO_MAP: [make_chunk("r1")],
        SourceName.FTS: [make_chunk("f1"), make_chunk("f2")],
        SourceName.EMBEDDINGS: [make_chunk("e1")],
    }
    assert [c.digest for c in fuse(sources, 10)] == ["f1", "f2", "e1", "r1"]


def test_first_occurrence_per_digest_wins() -> None:
    sources = {
        SourceName.FTS: [make_chunk("a", filepath="from_fts.py")],
        SourceName.EMBEDDINGS: [make_chunk("a", filepath="from_embeddings.py"), make_chunk("b")],
    }
    fused = fuse(sources, 10)
    assert [c.digest for c in fused] == ["a", "b"]
    assert fused[0].filepath == "from_fts.py"


def test_duplicates_within_one_source_are_dropped() -> None:
    fused = fuse({SourceName.FTS: [make_chunk("a"), make_chunk("a"), make_chunk("b")]}, 10)
    assert [c.digest for c in fused] == ["a", "b"]


def test_truncates_to_max_final() -> None:
    sources = {SourceName.FTS: [make_chunk(str(i)) for i in range(50)]}
    assert len(fuse(sources, 30)) == 30
    assert fuse(sources, 0) == []


def test_digests_are_unique_and_bounded() -> None:
    sources = {
        name: [make_chunk(f"d{i % 7}") for i in range(5)] for name in (SourceName.FTS, SourceName.LSP_DEFINITIONS)
    }
    fused = fuse(sources, 4)
    digests = [c.digest for c in fused]
    assert len(digests) == len(set(digests))
    assert len(fused) <= 4


def test_fusion_is_idempotent() -> None:
    sources = {
        SourceName.FTS: [make_chunk("a"), make_chunk("b")],
        SourceName.RECENTLY_EDITED: [make_chunk("b"), make_chunk("c")],
    }
    once = fuse(sources, 3)
    assert fuse({SourceName.FTS: once}, 3) == once


def test_string_keys_are_accepted() -> None:
    fused = fuse({"embeddings": [make_chunk("e")], "fts": [make_chunk("f")]}, 5)
    assert [c.digest for c in fused] == ["f", "e"]


def test_unknown_source_name_raises() -> None:
    with pytest.raises(ValueError):
        fuse({"no_such_source": [make_chunk("x")]}, 5)


def test_negative_max_final_raises() -> None:
    with pytest.raises(ValueError, match="max_final"):
        fuse({}, -1)


def test_empty_sources_fuse_to_empty() -> None:
    assert fuse({}, 10) == []


def test_ordered_dedup_strategy_delegates_to_fuse() -> None:
    sources = {SourceName.FTS: [make_chunk("a")], SourceName.EMBEDDINGS: [make_chunk("a"), make_chunk("b")]}
    assert OrderedDedupFusion().fuse(sources, 10) == fuse(sources, 10)


def test_weighted_rank_fusion_prefers_heavier_sources() -> None:
    options = FusionOptions(source_weights={SourceName.FTS: 0.1, SourceName.EMBEDDINGS: 1.0})
    sources = {SourceName.FTS: [make_chunk("f")], SourceName.EMBEDDINGS: [make_chunk("e")]}
    fused = WeightedRankFusion(options).fuse(sources, 10)
    assert [c.digest for c in fused] == ["e", "f"]


def test_weighted_rank_fusion_rewards_agreement() -> None:
    options = FusionOptions(source_weights={SourceName.FTS: 1.0, SourceName.EMBEDDINGS: 1.0})
    sources = {
        SourceName.FTS: [make_chunk("solo"), make_chunk("shared")],
        SourceName.EMBEDDINGS: [make_chunk("other"), make_chunk("shared")],
    }
    fused = WeightedRankFusion(options).fuse(sources, 2)
    assert fused[0].digest == "shared"
    assert len(fused) == 2
