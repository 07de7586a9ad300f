"""Pure merge of a vote batch into a score table snapshot."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping

from swipescore.core.models import ItemScore, ScoreTable, Vote


def tally(votes: Iterable[Vote]) -> dict[str, tuple[int, int]]:
    """Count (left, right) votes per item."""
    left: Counter[str] = Counter()
    right: Counter[str] = Counter()
    order: dict[str, None] = {}
    for vote in votes:
        order.setdefault(vote.item, None)
        if vote.choice == "left":
            left[vote.item] += 1
        else:
            right[vote.item] += 1
    return {item: (left[item], right[item]) for item in order}


def merge(current: Mapping[str, ItemScore], votes: Iterable[Vote]) -> ScoreTable:
    """Return a new table with every vote applied once; ``current`` is left untouched.

    Items missing from ``current`` start at zero. Vote order never affects the
    resulting counts.
    """
    merged: ScoreTable = dict(current)
    for item, (left, right) in tally(votes).items():
        base = merged.get(item) or ItemScore()
        merged[item] = ItemScore(left=base.left + left, right=base.right + right)
    return merged
