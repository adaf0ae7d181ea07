from copy import deepcopy
from functools import partial
from typing import Callable

import multiprocess

from topclients.errors import PartitionFailure
from topclients.executor.base import PipelineExecutor
from topclients.io import DataFolderLike
from topclients.pipeline.base import PipelineStep
from topclients.utils.logging import logger
from topclients.utils.stats import PipelineStats


class LocalPipelineExecutor(PipelineExecutor):
    """Executor to run a pipeline locally, one task per rank

    Args:
        pipeline: a list of PipelineStep and/or custom functions
            with arguments (data, rank: int, world_size: int)
        tasks: total number of tasks to run the pipeline on (default: 1)
        workers: how many tasks to run simultaneously. (default is -1 for no limit aka tasks)
        logging_dir: where to save logs, stats, etc. Should be parsable into a topclients.io.DataFolder
        depends: another LocalPipelineExecutor that must complete every one of its tasks before this one starts
        skip_completed: whether to skip tasks that were completed in previous runs. default: True
        start_method: method to use to spawn a multiprocessing Pool (default: "forkserver")
    """

    def __init__(
        self,
        pipeline: list[PipelineStep | Callable],
        tasks: int = 1,
        workers: int = -1,
        logging_dir: DataFolderLike = None,
        depends: "LocalPipelineExecutor" = None,
        skip_completed: bool = True,
        start_method: str = "forkserver",
    ):
        super().__init__(pipeline, logging_dir, skip_completed)
        if tasks < 1:
            raise ValueError(f"Need at least one task, got {tasks=}")
        self.tasks = tasks
        self.workers = workers if workers != -1 else tasks
        self.start_method = start_method
        self.depends = depends
        self._launched = False

    def _launch_run_for_rank(self, rank: int, ranks_q, completed=None, completed_lock=None) -> PipelineStats:
        """
            Small wrapper around _run_for_rank with a queue of available local ranks.
        """
        local_rank = ranks_q.get()
        try:
            return self._run_for_rank(rank, local_rank)
        finally:
            if completed and completed_lock:
                with completed_lock:
                    completed.value += 1
                    logger.info(f"{completed.value}/{self.world_size} tasks completed.")
            ranks_q.put(local_rank)

    def run(self):
        """
            Runs every incomplete rank, first launching `depends` if it has not run yet. With workers == 1 ranks are
            run sequentially in this process, otherwise in a multiprocess pool. Any failed task aborts the run.

        Returns: the merged stats of every task that ran
        """
        assert not self.depends or isinstance(self.depends, LocalPipelineExecutor), (
            "depends= must be a LocalPipelineExecutor"
        )
        if self.depends:
            if not self.depends._launched:
                logger.info(f'Launching dependency job "{self.depends}"')
                self.depends.run()
            incomplete = [r for r in range(self.depends.world_size) if not self.depends.has_completion_marker(r)]
            if incomplete:
                raise PartitionFailure(
                    f"Dependency job has {len(incomplete)}/{self.depends.world_size} incomplete tasks: {incomplete}"
                )

        self._launched = True
        if all(map(self.is_rank_completed, range(self.tasks))):
            logger.info(f"Not doing anything as all {self.tasks} tasks have already been completed.")
            return PipelineStats()

        self.save_executor_as_json()
        mg = multiprocess.Manager()
        ranks_q = mg.Queue()
        for i in range(self.workers):
            ranks_q.put(i)

        ranks_to_run = self.get_incomplete_ranks()
        if (skipped := self.tasks - len(ranks_to_run)) > 0:
            logger.info(f"Skipping {skipped} already completed tasks")

        if self.workers == 1:
            pipeline = self.pipeline
            stats = []
            for rank in ranks_to_run:
                # fresh step state (and stats) for every rank
                self.pipeline = deepcopy(pipeline)
                stats.append(self._launch_run_for_rank(rank, ranks_q))
            self.pipeline = pipeline
        else:
            completed_counter = mg.Value("i", skipped)
            completed_lock = mg.Lock()
            ctx = multiprocess.get_context(self.start_method)
            with ctx.Pool(self.workers) as pool:
                stats = list(
                    pool.imap_unordered(
                        partial(
                            self._launch_run_for_rank,
                            ranks_q=ranks_q,
                            completed=completed_counter,
                            completed_lock=completed_lock,
                        ),
                        ranks_to_run,
                    )
                )
        stats = sum(stats, start=PipelineStats())
        with self.logging_dir.open("stats.json", "wt") as statsfile:
            stats.save_to_disk(statsfile)
        logger.success(stats.get_repr(f"All {self.tasks} tasks"))
        return stats

    @property
    def world_size(self) -> int:
        return self.tasks

    def __repr__(self):
        return f"LocalPipelineExecutor({self.logging_dir.path}, tasks={self.tasks})"
