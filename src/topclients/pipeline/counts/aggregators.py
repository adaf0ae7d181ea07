from collections.abc import Iterable, Iterator, Mapping

import xxhash

from topclients.data import KeyCount


def bucket_for_key(key: str, num_buckets: int) -> int:
    """Shuffle routing: the bucket (reducer) every count of `key` is sent to. Stable across processes and runs."""
    if num_buckets == 1:
        return 0
    return xxhash.xxh64_intdigest(key) % num_buckets


class KeyCounter:
    """Insertion ordered key -> count mapping. Iterating yields `KeyCount` in the order keys were first seen."""

    def __init__(self):
        self.counts: dict[str, int] = {}

    def add(self, key: str, count: int = 1):
        if count < 0:
            raise ValueError(f"Counts can not be negative ({key=}, {count=})")
        self.counts[key] = self.counts.get(key, 0) + count

    def update(self, pairs: Iterable[KeyCount] | Mapping[str, int]):
        for key, count in pairs.items() if isinstance(pairs, Mapping) else pairs:
            self.add(key, count)
        return self

    def __iter__(self) -> Iterator[KeyCount]:
        return (KeyCount(key, count) for key, count in self.counts.items())

    def __len__(self):
        return len(self.counts)

    def __getitem__(self, key: str) -> int:
        return self.counts.get(key, 0)

    def to_dict(self) -> dict[str, int]:
        return dict(self.counts)


class LocalAggregator(KeyCounter):
    """
    Combiner: sums the counts of a single partition before they are shuffled. Owned by one task for one run,
    it only shrinks the data sent to the reducers and never changes the totals.
    """

    def partition(self, num_buckets: int) -> list[dict[str, int]]:
        """
        Split the partial counts into `num_buckets` shuffle buckets (see `bucket_for_key`).

        Returns: one {key: partial count} dict per bucket, possibly empty, in bucket order
        """
        if num_buckets < 1:
            raise ValueError(f"Need at least one shuffle bucket, got {num_buckets=}")
        buckets = [{} for _ in range(num_buckets)]
        for key, count in self.counts.items():
            buckets[bucket_for_key(key, num_buckets)][key] = count
        return buckets


class GlobalAggregator(KeyCounter):
    """
    Reducer: merges the partial counts of every partition into one total per key. All partials of a key must be
    routed to the same GlobalAggregator, otherwise its totals are undercounts.
    """

    def merge(self, partial_counts: Mapping[str, int] | Iterable[KeyCount]):
        """Add one partition's partial counts (or raw `(key, count)` pairs)."""
        return self.update(partial_counts)
