import itertools

from swipescore.core.aggregator import merge, tally
from swipescore.core.models import ItemScore, Vote


def _doc(table):
    return {item: {"left": s.left, "right": s.right} for item, s in table.items()}


def test_merge_into_empty_table_creates_item():
    merged = merge({}, [Vote(item="a", choice="left")])
    assert _doc(merged) == {"a": {"left": 1, "right": 0}}


def test_merge_updates_existing_and_inserts_new_items():
    current = {"a": ItemScore(left=1, right=0)}
    merged = merge(current, [Vote(item="a", choice="right"), Vote(item="b", choice="right")])
    assert _doc(merged) == {"a": {"left": 1, "right": 1}, "b": {"left": 0, "right": 1}}


def test_merge_does_not_mutate_input_snapshot():
    current = {"a": ItemScore(left=2, right=3)}
    merge(current, [Vote(item="a", choice="left"), Vote(item="c", choice="left")])
    assert current == {"a": ItemScore(left=2, right=3)}


def test_merge_counts_repeated_votes_for_same_item():
    votes = [Vote(item="x", choice="left")] * 3 + [Vote(item="x", choice="right")] * 2
    assert _doc(merge({}, votes)) == {"x": {"left": 3, "right": 2}}


def test_merge_order_within_batch_does_not_change_totals():
    votes = [
        Vote(item="a", choice="left"),
        Vote(item="b", choice="right"),
        Vote(item="a", choice="right"),
        Vote(item="c", choice="left"),
    ]
    start = {"a": ItemScore(left=5, right=1)}
    docs = [_doc(merge(start, list(p))) for p in itertools.permutations(votes)]
    assert len(docs) == 24
    assert all(d == docs[0] for d in docs)
    assert docs[0] == {"a": {"left": 6, "right": 2}, "b": {"left": 0, "right": 1}, "c": {"left": 1, "right": 0}}


def test_sequential_batches_sum_per_item():
    batches = [
        [Vote(item="a", choice="left"), Vote(item="b", choice="left")],
        [Vote(item="a", choice="right")],
        [Vote(item="b", choice="left"), Vote(item="a", choice="left")],
    ]
    forward = {}
    for batch in batches:
        forward = merge(forward, batch)
    backward = {}
    for batch in reversed(batches):
        backward = merge(backward, batch)
    assert _doc(forward) == _doc(backward) == {"a": {"left": 2, "right": 1}, "b": {"left": 2, "right": 0}}


def test_tally_keeps_first_seen_item_order():
    counts = tally([Vote(item="z", choice="left"), Vote(item="a", choice="right"), Vote(item="z", choice="right")])
    assert list(counts) == ["z", "a"]
    assert counts["z"] == (1, 1)
