import json

from topclients.data import KeyCountsPipeline
from topclients.io import DataFolderLike, get_datafolder
from topclients.pipeline.base import PipelineStep
from topclients.pipeline.counts.aggregators import LocalAggregator
from topclients.utils.logging import logger
from topclients.utils.typeshelper import ExtensionHelperTC, StatHints


def partial_counts_path(bucket: int, rank: int) -> str:
    return f"{bucket:04d}/{rank:05d}{ExtensionHelperTC.partial_counts}"


class PartialCountsWriter(PipelineStep):
    """Last step of the counting stage: combines this rank's `KeyCount` stream and shuffles it to disk.
        Partial counts are saved in output_folder/{bucket:04d}/{rank:05d}.counts.json, one JSON object per shuffle
        bucket. A file is written for every bucket, even an empty one, so reducers can tell a finished partition from
        a missing one.

    Args:
        output_folder: folder where partial counts are saved
        reduce_buckets: number of shuffle buckets. Must match the reducers' `reduce_buckets`
    """

    type = "🧮 - COUNTS"
    name = "➕ Partial counts"

    def __init__(self, output_folder: DataFolderLike, reduce_buckets: int = 1):
        super().__init__()
        if reduce_buckets < 1:
            raise ValueError("reduce_buckets must be >= 1")
        self.output_folder = get_datafolder(output_folder)
        self.reduce_buckets = reduce_buckets

    def save_partials(self, aggregator: LocalAggregator, rank: int):
        for bucket, counts in enumerate(aggregator.partition(self.reduce_buckets)):
            self.output_folder.write_atomically(partial_counts_path(bucket, rank), json.dumps(counts))
            self.stat_update("partial_keys", value=len(counts), unit="bucket")

    def run(self, data: KeyCountsPipeline, rank: int = 0, world_size: int = 1):
        aggregator = LocalAggregator()
        for key, count in data or ():
            with self.track_time():
                aggregator.add(key, count)
            self.stat_update(StatHints.total)
        self.stat_update(StatHints.keys, value=len(aggregator), unit="partition")
        logger.info(f"Partition {rank} has {len(aggregator)} distinct keys, saving {self.reduce_buckets} buckets")
        with self.track_time():
            self.save_partials(aggregator, rank)
