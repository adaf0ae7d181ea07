import heapq
from collections.abc import Iterable, Sequence
from enum import Enum

from topclients.data import KeyCount, TopEntry
from topclients.errors import SelectorStateError, ShuffleRoutingViolation


class SelectorState(Enum):
    ACCUMULATING = "accumulating"
    DRAINING = "draining"
    EMITTED = "emitted"


class TopNSelector:
    """
    Keeps the `top_n` largest totals out of a stream of `(key, total)` pairs with a bounded min-heap.

    Ordering is by count descending. Among equal counts the key that was offered first ranks higher, and is also the
    one kept when only some of the tied keys fit. A selector is single use: `offer` any number of times, then `close`
    exactly once to get the sorted result.

    Args:
        top_n: how many entries to keep. 0 always yields an empty result
    """

    def __init__(self, top_n: int):
        if top_n < 0:
            raise ValueError(f"top_n must be >= 0, got {top_n}")
        self.top_n = top_n
        self.state = SelectorState.ACCUMULATING
        # (count, -arrival, key): the heap root is the smallest count, latest arrival among ties
        self._heap: list[tuple[int, int, str]] = []
        self._arrivals = 0

    def offer(self, key: str, count: int):
        if self.state is not SelectorState.ACCUMULATING:
            raise SelectorStateError(f"Can not offer {key!r}: selector is already {self.state.value}")
        heapq.heappush(self._heap, (count, -self._arrivals, key))
        self._arrivals += 1
        if len(self._heap) > self.top_n:
            heapq.heappop(self._heap)

    def offer_all(self, pairs: Iterable[KeyCount]):
        for key, count in pairs:
            self.offer(key, count)
        return self

    def __len__(self):
        return len(self._heap)

    def close(self) -> list[TopEntry]:
        """
        Drain the heap and return the result set, sorted by count descending then arrival order.
        """
        if self.state is not SelectorState.ACCUMULATING:
            raise SelectorStateError(f"Selector was already closed ({self.state.value})")
        self.state = SelectorState.DRAINING
        entries, self._heap = self._heap, []
        entries.sort(key=lambda entry: (-entry[0], -entry[1]))
        self.state = SelectorState.EMITTED
        return [TopEntry(key, count) for count, _, key in entries]


def select_top_n(pairs: Iterable[KeyCount], top_n: int) -> list[TopEntry]:
    return TopNSelector(top_n).offer_all(pairs).close()


def merge_top_n(results: Sequence[Sequence[TopEntry]], top_n: int) -> list[TopEntry]:
    """
    Tree-reduce alternative to a single selector: merge bounded top-N lists that were each computed over a disjoint
    set of keys (one per shuffle bucket). Exact as long as every list holds its own top `top_n`.

    Ties between lists are broken by list order, then by position inside each list, which is not the same arrival
    order a single selector would have seen.

    Raises:
        ShuffleRoutingViolation: a key shows up in more than one list
    """
    seen = set()
    for result in results:
        for entry in result:
            if entry.key in seen:
                raise ShuffleRoutingViolation(f"Key {entry.key!r} was counted by more than one reducer")
            seen.add(entry.key)
    return select_top_n((entry for result in results for entry in result), top_n)
