import json

from topclients.data import TopEntry
from topclients.errors import PartitionFailure
from topclients.io import DataFolderLike, get_datafolder
from topclients.pipeline.base import PipelineStep
from topclients.pipeline.counts.aggregators import GlobalAggregator
from topclients.pipeline.counts.selector import TopNSelector, merge_top_n
from topclients.pipeline.counts.writer import partial_counts_path
from topclients.pipeline.sinks import RESULT_KEY, ResultSink
from topclients.utils.logging import logger
from topclients.utils.typeshelper import ExtensionHelperTC, StatHints


def partial_top_path(rank: int) -> str:
    return f"{rank:05d}{ExtensionHelperTC.partial_top}"


class BaseCountsReducer(PipelineStep):
    """
    Shared logic of the reducers: load the partial counts every counting task wrote for a set of shuffle buckets
    and merge them into one GlobalAggregator.

    Args:
        input_folder: the `output_folder` of the PartialCountsWriter
        map_tasks: number of tasks of the counting stage. Every one of them must have written its files
        top_n: number of entries to select
        reduce_buckets: number of shuffle buckets the counting stage wrote
    """

    type = "🏆 - TOP N"

    def __init__(self, input_folder: DataFolderLike, map_tasks: int, top_n: int = 10, reduce_buckets: int = 1):
        super().__init__()
        if top_n < 0:
            raise ValueError("top_n must be >= 0")
        self.input_folder = get_datafolder(input_folder)
        self.map_tasks = map_tasks
        self.top_n = top_n
        self.reduce_buckets = reduce_buckets

    def check_partitions(self, buckets: list[int]):
        """All-or-nothing: any missing partial file means a partition failed or never ran."""
        missing = [
            path
            for bucket in buckets
            for rank in range(self.map_tasks)
            if not self.input_folder.isfile(path := partial_counts_path(bucket, rank))
        ]
        if missing:
            raise PartitionFailure(
                f"{len(missing)} partial count files are missing from {self.input_folder.path}, e.g. {missing[:5]}. "
                f"Refusing to select from incomplete counts."
            )

    def aggregate(self, buckets: list[int]) -> GlobalAggregator:
        self.check_partitions(buckets)
        aggregator = GlobalAggregator()
        for bucket in buckets:
            for rank in range(self.map_tasks):
                with self.input_folder.open(partial_counts_path(bucket, rank), "rt") as f:
                    partial = json.load(f)
                with self.track_time():
                    aggregator.merge(partial)
                self.stat_update("partial_keys", value=len(partial), unit="partition")
        self.stat_update(StatHints.keys, value=len(aggregator), unit="task")
        logger.info(f"Merged {len(aggregator)} distinct keys from {len(buckets)} buckets x {self.map_tasks} partitions")
        return aggregator

    def select(self, aggregator: GlobalAggregator) -> list[TopEntry]:
        with self.track_time():
            return TopNSelector(self.top_n).offer_all(aggregator).close()


class TopNReducer(BaseCountsReducer):
    """Single reducer: global aggregation of every bucket followed by one top N selection, stored in the sink.
        Must run with exactly one task.

    Args:
        input_folder: the `output_folder` of the PartialCountsWriter
        map_tasks: number of tasks of the counting stage
        sink: where the result set is stored
        top_n: number of entries to keep (default: 10)
        reduce_buckets: number of shuffle buckets the counting stage wrote
        result_key: key of the snapshot in the sink (default: "topN")
    """

    name = "🥇 Global top N"

    def __init__(
        self,
        input_folder: DataFolderLike,
        map_tasks: int,
        sink: ResultSink,
        top_n: int = 10,
        reduce_buckets: int = 1,
        result_key: str = RESULT_KEY,
    ):
        super().__init__(input_folder, map_tasks, top_n, reduce_buckets)
        self.sink = sink
        self.result_key = result_key

    def run(self, data=None, rank: int = 0, world_size: int = 1):
        if world_size != 1:
            raise ValueError(f"{self.name} needs to see every key and must run with a single task ({world_size=})")
        results = self.select(self.aggregate(list(range(self.reduce_buckets))))
        self.stat_update("results", value=len(results), unit="task")
        self.sink.write(self.result_key, results)


class PartialTopNReducer(BaseCountsReducer):
    """Tree-reduce alternative, first level: each task merges the buckets [rank, rank+world_size, ...] and saves the
        top N of those keys to output_folder/{rank:05d}.top.json. Keys never cross tasks, so merging these lists with
        TopNMerger gives the exact global top N. Ties across tasks are broken by task rank.

    Args:
        input_folder: the `output_folder` of the PartialCountsWriter
        output_folder: where each task's bounded top N list is saved
        map_tasks: number of tasks of the counting stage
        top_n: number of entries to keep (default: 10)
        reduce_buckets: number of shuffle buckets the counting stage wrote
    """

    name = "🥈 Partial top N"

    def __init__(
        self,
        input_folder: DataFolderLike,
        output_folder: DataFolderLike,
        map_tasks: int,
        top_n: int = 10,
        reduce_buckets: int = 1,
    ):
        super().__init__(input_folder, map_tasks, top_n, reduce_buckets)
        self.output_folder = get_datafolder(output_folder)

    def run(self, data=None, rank: int = 0, world_size: int = 1):
        buckets = list(range(rank, self.reduce_buckets, world_size))
        if not buckets:
            logger.warning(f"No shuffle buckets for {rank=} ({self.reduce_buckets=}, {world_size=})")
        results = self.select(self.aggregate(buckets))
        self.output_folder.write_atomically(
            partial_top_path(rank), json.dumps([entry.to_dict() for entry in results])
        )
        self.stat_update("results", value=len(results), unit="task")


class TopNMerger(PipelineStep):
    """Tree-reduce alternative, last level: merges the lists of every PartialTopNReducer task and stores the result.
        Must run with exactly one task.

    Args:
        input_folder: the `output_folder` of the PartialTopNReducer
        reduce_tasks: number of PartialTopNReducer tasks
        sink: where the result set is stored
        top_n: number of entries to keep (default: 10)
        result_key: key of the snapshot in the sink (default: "topN")
    """

    type = "🏆 - TOP N"
    name = "🔗 Merge top N"

    def __init__(
        self,
        input_folder: DataFolderLike,
        reduce_tasks: int,
        sink: ResultSink,
        top_n: int = 10,
        result_key: str = RESULT_KEY,
    ):
        super().__init__()
        self.input_folder = get_datafolder(input_folder)
        self.reduce_tasks = reduce_tasks
        self.sink = sink
        self.top_n = top_n
        self.result_key = result_key

    def run(self, data=None, rank: int = 0, world_size: int = 1):
        if world_size != 1:
            raise ValueError(f"{self.name} must run with a single task ({world_size=})")
        missing = [
            path for r in range(self.reduce_tasks) if not self.input_folder.isfile(path := partial_top_path(r))
        ]
        if missing:
            raise PartitionFailure(f"Partial top N lists are missing from {self.input_folder.path}: {missing}")
        partial_results = []
        for r in range(self.reduce_tasks):
            with self.input_folder.open(partial_top_path(r), "rt") as f:
                partial_results.append([TopEntry(entry["key"], entry["count"]) for entry in json.load(f)])
        with self.track_time():
            results = merge_top_n(partial_results, self.top_n)
        self.stat_update("results", value=len(results), unit="task")
        self.sink.write(self.result_key, results)
