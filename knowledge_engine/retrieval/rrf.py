"""Reciprocal Rank Fusion (RRF) for combining multiple ranked lists."""

import dataclasses
from collections import defaultdict
from collections.abc import Callable, Sequence
from typing import TypeVar

T = TypeVar("T")

DEFAULT_RRF_K = 60


def fuse_ranked_lists(
    ranked_lists: Sequence[list[T]],
    k: int = DEFAULT_RRF_K,
    id_fn: Callable[[T], str] = lambda item: item.id,
) -> list[T]:
    """Fuse ranked lists with Reciprocal Rank Fusion.

    RRF score for item d: sum over all lists of 1 / (k + rank(d)), with
    rank counted from 0. Only list positions matter; the items' own scores
    are ignored, so lists with incomparable score scales fuse cleanly.

    Items must be dataclasses with a ``score`` field (RetrievalResult,
    RankedItem). The first occurrence of each id is kept and returned as a
    copy carrying the fused score. Ties keep first-seen order.

    Args:
        ranked_lists: Lists ordered best first
        k: RRF smoothing constant (default 60)
        id_fn: Function to extract unique ID from an item

    Returns:
        Fused list sorted by RRF score descending. A single input list is
        returned unchanged (same object); no lists gives an empty list.

    Example:
        >>> a = [RankedItem("x", 0.9), RankedItem("y", 0.5)]
        >>> b = [RankedItem("y", 12.0)]
        >>> [i.id for i in fuse_ranked_lists([a, b])]
        ['y', 'x']
    """
    if not ranked_lists:
        return []
    if len(ranked_lists) == 1:
        return ranked_lists[0]

    rrf_scores: dict[str, float] = defaultdict(float)
    first_seen: dict[str, T] = {}

    for ranked_list in ranked_lists:
        for rank, item in enumerate(ranked_list):
            item_id = id_fn(item)
            rrf_scores[item_id] += 1.0 / (k + rank)
            if item_id not in first_seen:
                first_seen[item_id] = item

    fused = [
        dataclasses.replace(item, score=rrf_scores[item_id])
        for item_id, item in first_seen.items()
    ]
    # list.sort is stable, so equal scores keep first-seen order
    fused.sort(key=lambda item: item.score, reverse=True)
    return fused


def normalize_scores(items: list[T]) -> list[T]:
    """Min-max rescale item scores to [0, 1].

    Returns copies; when every score is equal the items come back as-is.
    """
    if not items:
        return []

    scores = [item.score for item in items]
    low, high = min(scores), max(scores)
    if high == low:
        return list(items)

    span = high - low
    return [dataclasses.replace(item, score=(item.score - low) / span) for item in items]
