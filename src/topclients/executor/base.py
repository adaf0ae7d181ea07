import dataclasses
import json
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Sequence
from typing import Callable

from topclients.io import DataFolderLike, get_datafolder
from topclients.pipeline.base import PipelineStep
from topclients.utils.logging import (
    add_task_logger,
    close_task_logger,
    get_random_str,
    get_timestamp,
    log_pipeline,
    logger,
)
from topclients.utils.stats import PipelineStats


class PipelineExecutor(ABC):
    """Base class for pipeline executors

    Args:
        pipeline: a list of PipelineStep and/or custom functions
            with arguments (data, rank: int, world_size: int)
        logging_dir: where to save logs, stats, completion markers. Should be parsable into a topclients.io.DataFolder
        skip_completed: whether to skip tasks that were completed in previous runs. default: True
    """

    @abstractmethod
    def __init__(
        self,
        pipeline: list[PipelineStep | Callable],
        logging_dir: DataFolderLike = None,
        skip_completed: bool = True,
    ):
        self.pipeline: list[PipelineStep | Callable] = pipeline
        self.logging_dir = get_datafolder(logging_dir if logging_dir else f"logs/{get_timestamp()}_{get_random_str()}")
        self.skip_completed = skip_completed

    @abstractmethod
    def run(self):
        """Run the pipeline on all tasks, by invoking `self._run_for_rank` for each task that is to be run."""
        pass

    @property
    @abstractmethod
    def world_size(self) -> int:
        """
        Returns: the total number of tasks. Readers use it to shard input files, reducers to split buckets
        """
        return 0

    def _run_for_rank(self, rank: int, local_rank: int = 0) -> PipelineStats:
        """
            Sets up logging, pipes data from each pipeline step to the next, saves statistics and marks the task as
            completed. Any exception is logged and re-raised: a task either completes or fails as a whole.
        Args:
            rank: the rank that we want to run the pipeline for
            local_rank: only used for logging. Any task with local_rank != 0 will not print logs to console.

        Returns: the stats for this task

        """
        if self.is_rank_completed(rank):
            logger.info(f"Skipping {rank=} as it has already been completed.")
            return PipelineStats()
        logfile = add_task_logger(self.logging_dir, rank, local_rank)
        log_pipeline(self.pipeline)
        try:
            pipelined_data = None
            for pipeline_step in self.pipeline:
                if callable(pipeline_step):
                    pipelined_data = pipeline_step(pipelined_data, rank, self.world_size)
                elif isinstance(pipeline_step, Sequence) and not isinstance(pipeline_step, str):
                    pipelined_data = pipeline_step
                else:
                    raise ValueError(f"Invalid pipeline step: {pipeline_step!r}")
            if pipelined_data:
                deque(pipelined_data, maxlen=0)

            logger.success(f"Processing done for {rank=}")

            stats = PipelineStats(self.pipeline)
            with self.logging_dir.open(f"stats/{rank:05d}.json", "w") as f:
                stats.save_to_disk(f)
            logger.info(stats.get_repr(f"Task {rank}"))
            self.mark_rank_as_completed(rank)
        except Exception as e:
            logger.exception(e)
            raise e
        finally:
            close_task_logger(logfile)
        return stats

    def is_rank_completed(self, rank: int) -> bool:
        """
        Returns: whether task `rank` has already been completed. If `skip_completed=False`, will always return `False`.
        """
        return self.skip_completed and self.has_completion_marker(rank)

    def has_completion_marker(self, rank: int) -> bool:
        """Whether task `rank` finished successfully at some point, regardless of `skip_completed`."""
        return self.logging_dir.isfile(f"completions/{rank:05d}")

    def mark_rank_as_completed(self, rank: int):
        """Creates an empty `completions/{rank:05d}` marker file."""
        self.logging_dir.open(f"completions/{rank:05d}", "w").close()

    def get_incomplete_ranks(self, ranks=None) -> list[int]:
        """
        Returns: the ranks (out of `ranks`, or every rank) that are still incomplete
        """
        completed = set(self.logging_dir.list_files("completions"))
        return [
            rank
            for rank in (ranks if ranks is not None else range(self.world_size))
            if not self.skip_completed or f"completions/{rank:05d}" not in completed
        ]

    def save_executor_as_json(self, indent: int = 4):
        """Save a json representation of this executor to `executor.json` in the logging folder."""
        with self.logging_dir.open("executor.json", "w") as f:
            json.dump(self, f, cls=ExecutorJSONEncoder, indent=indent)


class ExecutorJSONEncoder(json.JSONEncoder):
    """Custom JSON encoder for the PipelineExecutor class"""

    def default(self, o):
        if dataclasses.is_dataclass(o):
            return dataclasses.asdict(o)
        if isinstance(o, PipelineExecutor):
            return o.__dict__ | {"world_size": o.world_size}
        if isinstance(o, PipelineStep):
            return {a: b for a, b in o.__dict__.items() if a != "stats"}
        return str(o)
