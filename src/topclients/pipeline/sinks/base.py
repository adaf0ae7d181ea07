import json
from abc import ABC, abstractmethod
from dataclasses import dataclass

from topclients.data import TopEntry
from topclients.errors import SinkWriteFailure
from topclients.utils.logging import logger


RESULT_KEY = "topN"


@dataclass(frozen=True)
class Snapshot:
    """The stored result of one run. `version` goes up by one on every write to the same key."""

    version: int
    results: list[TopEntry]

    def to_json(self) -> str:
        return json.dumps({"version": self.version, "results": [entry.to_dict() for entry in self.results]})

    @classmethod
    def from_json(cls, data: str) -> "Snapshot":
        parsed = json.loads(data)
        return cls(
            version=parsed["version"],
            results=[TopEntry(entry["key"], entry["count"]) for entry in parsed["results"]],
        )


class ResultSink(ABC):
    """
    Single key point read/write store for result sets. Each write replaces the previous snapshot for that key,
    no history is kept.
    """

    # snapshots outlive the process that wrote them
    persistent: bool = True

    def write(self, key: str, results: list[TopEntry]) -> Snapshot:
        """
        Store `results` under `key` as a new snapshot. Either the full snapshot is stored or the previous one is kept.

        Raises:
            SinkWriteFailure: the snapshot could not be persisted
        """
        try:
            previous = self.read(key)
            snapshot = Snapshot(version=previous.version + 1 if previous else 1, results=list(results))
            self._put(key, snapshot)
        except SinkWriteFailure:
            raise
        except Exception as e:
            raise SinkWriteFailure(f"Could not write results for {key=} to {self}") from e
        logger.info(f"Stored {len(snapshot.results)} results under {key=} (version {snapshot.version})")
        return snapshot

    @abstractmethod
    def _put(self, key: str, snapshot: Snapshot):
        raise NotImplementedError

    @abstractmethod
    def read(self, key: str) -> Snapshot | None:
        """The latest snapshot under `key`, or None if no run has stored one yet."""
        raise NotImplementedError


class InMemoryResultSink(ResultSink):
    """Dict backed sink. Snapshots are kept serialized so readers never share objects with the writer."""

    persistent = False

    def __init__(self):
        self._store: dict[str, str] = {}

    def _put(self, key: str, snapshot: Snapshot):
        self._store[key] = snapshot.to_json()

    def read(self, key: str) -> Snapshot | None:
        data = self._store.get(key)
        return Snapshot.from_json(data) if data is not None else None

    def __repr__(self):
        return f"InMemoryResultSink({len(self._store)} keys)"
