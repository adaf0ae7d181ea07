"""
Drives a top clients run: parse and count each partition, shuffle the partial counts by key, aggregate them and
select the top N, then store the result set. `run_top_n` does it in-process, `TopClientsJob` on local executors.
"""

from collections.abc import Iterable

from topclients.config import TopClientsConfig
from topclients.data import LogRecord, TimeWindow, TopEntry
from topclients.errors import MalformedRecordError, PartitionFailure
from topclients.executor.local import LocalPipelineExecutor
from topclients.pipeline.counts import (
    ClientIPExtractor,
    GlobalAggregator,
    LocalAggregator,
    PartialCountsWriter,
    PartialTopNReducer,
    TopNMerger,
    TopNReducer,
    extract_client_ip,
    select_top_n,
)
from topclients.pipeline.readers import StreamLogReader, TextLogReader
from topclients.pipeline.readers.base import BaseDiskReader
from topclients.pipeline.sinks import RESULT_KEY, FolderResultSink, ResultSink
from topclients.utils.logging import logger


def count_partition(records: Iterable[str | LogRecord]) -> LocalAggregator:
    """Parse and combine one partition. Malformed records are skipped."""
    aggregator = LocalAggregator()
    for record in records:
        try:
            aggregator.add(extract_client_ip(record.text if isinstance(record, LogRecord) else record))
        except MalformedRecordError:
            continue
    return aggregator


def run_top_n(
    partitions: Iterable[Iterable[str | LogRecord]],
    top_n: int,
    sink: ResultSink | None = None,
    result_key: str = RESULT_KEY,
    num_buckets: int = 1,
) -> list[TopEntry]:
    """
    In-process top N run over already partitioned records.

    Every partition is counted by its own LocalAggregator, shuffled into `num_buckets` buckets and merged bucket by
    bucket, partition by partition, into one GlobalAggregator. Keys reach the selector in that order, so with a single
    bucket ties go to the key that appears first in the input.

    Args:
        partitions: iterable of partitions, each an iterable of raw log lines (or LogRecord)
        top_n: number of entries to keep
        sink: if given, the result set is stored in it once everything succeeded
        result_key: key of the snapshot in the sink
        num_buckets: number of shuffle buckets

    Returns: the result set, sorted by count descending

    Raises:
        PartitionFailure: producing, reading or counting a partition raised. Nothing is written to the sink
    """
    shuffled: list[list[dict[str, int]]] = []
    try:
        for partition in partitions:
            shuffled.append(count_partition(partition).partition(num_buckets))
    except Exception as e:
        # len(shuffled) is the index of the partition being read or counted
        raise PartitionFailure(f"Partition {len(shuffled)} could not be counted: {e}") from e

    totals = GlobalAggregator()
    for bucket in range(num_buckets):
        for partition_buckets in shuffled:
            totals.merge(partition_buckets[bucket])
    results = select_top_n(totals, top_n)
    logger.info(f"Selected {len(results)} of {len(totals)} keys from {len(shuffled)} partitions")
    if sink is not None:
        sink.write(result_key, results)
    return results


class TopClientsJob:
    """
    Two (or three) stage top clients job on LocalPipelineExecutors:
        - count: `map_tasks` tasks of reader -> ClientIPExtractor -> PartialCountsWriter
        - select: one TopNReducer task, or with `reduce_tasks > 1` PartialTopNReducer tasks followed by a single
          TopNMerger task ("merge")
    Each stage depends on the previous one, so selection never starts before every partition is complete.

    Args:
        config: the job configuration
        sink: where the result set is stored. Defaults to a FolderResultSink on `config.results_path`. Tasks may run
            in other processes, so the sink must be persistent

    Raises:
        ValueError: `sink` does not persist snapshots across processes
    """

    def __init__(self, config: TopClientsConfig, sink: ResultSink | None = None):
        if sink is not None and not sink.persistent:
            raise ValueError(f"{sink!r} does not outlive its process, use a persistent sink such as FolderResultSink")
        self.config = config
        self.window = TimeWindow.last(config.window_minutes, config.end_time)
        self.sink = sink if sink is not None else FolderResultSink(config.results_path)

    def _logging_dir(self, stage: str) -> str:
        return f"{self.config.output_folder}/logs/{stage}"

    def build_reader(self) -> BaseDiskReader:
        if self.config.input_format == "stream":
            return StreamLogReader(self.config.input_folder, window=self.window)
        return TextLogReader(self.config.input_folder)

    def build_executors(self) -> list[LocalPipelineExecutor]:
        """
        Returns: the executors of every stage, in order. Running the last one runs the whole chain
        """
        config = self.config
        shuffle_folder = f"{config.output_folder}/shuffle"
        common = dict(skip_completed=config.skip_completed, start_method=config.start_method)

        count = LocalPipelineExecutor(
            pipeline=[
                self.build_reader(),
                ClientIPExtractor(),
                PartialCountsWriter(shuffle_folder, reduce_buckets=config.buckets),
            ],
            tasks=config.map_tasks,
            workers=config.workers,
            logging_dir=self._logging_dir("count"),
            **common,
        )
        if config.reduce_tasks == 1:
            select = LocalPipelineExecutor(
                pipeline=[
                    TopNReducer(
                        shuffle_folder,
                        map_tasks=config.map_tasks,
                        sink=self.sink,
                        top_n=config.top_n,
                        reduce_buckets=config.buckets,
                        result_key=config.result_key,
                    )
                ],
                tasks=1,
                logging_dir=self._logging_dir("select"),
                depends=count,
                **common,
            )
            return [count, select]

        top_folder = f"{config.output_folder}/top"
        select = LocalPipelineExecutor(
            pipeline=[
                PartialTopNReducer(
                    shuffle_folder,
                    top_folder,
                    map_tasks=config.map_tasks,
                    top_n=config.top_n,
                    reduce_buckets=config.buckets,
                )
            ],
            tasks=config.reduce_tasks,
            workers=config.workers,
            logging_dir=self._logging_dir("select"),
            depends=count,
            **common,
        )
        merge = LocalPipelineExecutor(
            pipeline=[
                TopNMerger(
                    top_folder,
                    reduce_tasks=config.reduce_tasks,
                    sink=self.sink,
                    top_n=config.top_n,
                    result_key=config.result_key,
                )
            ],
            tasks=1,
            logging_dir=self._logging_dir("merge"),
            depends=select,
            **common,
        )
        return [count, select, merge]

    def run(self) -> list[TopEntry]:
        """
        Run every stage and return the stored result set.
        """
        if self.config.input_format == "stream":
            logger.info(f"Counting events in window [{self.window.start}, {self.window.end})")
        self.build_executors()[-1].run()
        snapshot = self.sink.read(self.config.result_key)
        if snapshot is None:
            raise RuntimeError(f"Job finished without storing a result under {self.config.result_key!r}")
        return snapshot.results
