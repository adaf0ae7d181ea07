from dataclasses import dataclass
from typing import Literal

from topclients.pipeline.sinks import RESULT_KEY


INPUT_FORMAT = Literal["text", "stream"]


@dataclass(frozen=True)
class TopClientsConfig:
    """
    Everything needed to run one top clients job.

    Args:
        input_folder: folder (local path or fsspec url) with the access logs
        output_folder: local path or fsspec url where shuffle files, partial results and logs are kept for this run
        results_folder: where the result snapshot is stored. Defaults to `{output_folder}/results`. Share it between
            runs so that each run overwrites the previous snapshot
        top_n: number of clients to keep
        map_tasks: number of counting tasks (partitions). Input files are split across them
        workers: how many tasks run simultaneously, -1 for as many as tasks
        reduce_tasks: 1 for a single global reducer. More uses the tree-reduce of partial top N lists
        reduce_buckets: number of shuffle buckets, defaults to `reduce_tasks`
        input_format: "text" for raw log lines, "stream" for JSONL events with a timestamp and a body
        window_minutes: length of the window read from a stream, ending at `end_time`
        end_time: logical start time of the run, in epoch milliseconds. Defaults to now
        result_key: key of the snapshot in the results folder
        skip_completed: skip tasks already completed by a previous attempt of this run
        start_method: multiprocess start method for the worker pools
    """

    input_folder: str
    output_folder: str
    results_folder: str | None = None
    top_n: int = 10
    map_tasks: int = 1
    workers: int = -1
    reduce_tasks: int = 1
    reduce_buckets: int | None = None
    input_format: INPUT_FORMAT = "text"
    window_minutes: int = 60
    end_time: int | None = None
    result_key: str = RESULT_KEY
    skip_completed: bool = True
    start_method: str = "forkserver"

    def __post_init__(self):
        if self.top_n < 0:
            raise ValueError("top_n must be >= 0")
        if self.map_tasks < 1 or self.reduce_tasks < 1:
            raise ValueError("map_tasks and reduce_tasks must be >= 1")
        if self.reduce_buckets is not None and self.reduce_buckets < self.reduce_tasks:
            raise ValueError("reduce_buckets can not be lower than reduce_tasks")
        if self.input_format not in ("text", "stream"):
            raise ValueError(f"Unknown input_format {self.input_format!r}")

    @property
    def buckets(self) -> int:
        return self.reduce_buckets or self.reduce_tasks

    @property
    def results_path(self) -> str:
        return self.results_folder or f"{self.output_folder}/results"
