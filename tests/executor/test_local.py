import json
import shutil
import tempfile
import unittest

from topclients.errors import PartitionFailure
from topclients.executor.local import LocalPipelineExecutor
from topclients.io import get_datafolder


def fail_on_rank_one(data, rank: int = 0, world_size: int = 1):
    if rank == 1:
        raise OSError("lost partition")
    return data


class TestLocalExecutor(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.tmp_dir)

    def test_executor(self):
        configurations = (3, 1), (3, 3), (3, -1)
        file_list = [
            "executor.json",
            "stats.json",
        ] + [
            x
            for rank in range(3)
            for x in (f"completions/{rank:05d}", f"logs/task_{rank:05d}.log", f"stats/{rank:05d}.json")
        ]
        for tasks, workers in configurations:
            log_dir = get_datafolder(f"{self.tmp_dir}/{tasks}_{workers}")
            executor = LocalPipelineExecutor(pipeline=[], tasks=tasks, workers=workers, logging_dir=log_dir)
            executor.run()

            for file in file_list:
                assert log_dir.isfile(file)
            with log_dir.open("executor.json", "rt") as f:
                self.assertEqual(json.load(f)["world_size"], tasks)

    def test_skip_completed(self):
        seen = []
        executor = LocalPipelineExecutor(
            pipeline=[lambda data, rank, world_size: seen.append(rank)],
            tasks=2,
            workers=1,
            logging_dir=f"{self.tmp_dir}/skip",
        )
        executor.run()
        executor.run()
        self.assertEqual(seen, [0, 1])

    def test_failed_task_is_not_completed(self):
        executor = LocalPipelineExecutor(
            pipeline=[fail_on_rank_one], tasks=2, workers=1, logging_dir=f"{self.tmp_dir}/failing"
        )
        with self.assertRaises(OSError):
            executor.run()
        self.assertEqual(executor.get_incomplete_ranks(), [1])

    def test_dependent_stage_does_not_start_after_failure(self):
        seen = []
        count = LocalPipelineExecutor(
            pipeline=[fail_on_rank_one], tasks=2, workers=1, logging_dir=f"{self.tmp_dir}/count"
        )
        select = LocalPipelineExecutor(
            pipeline=[lambda data, rank, world_size: seen.append(rank)],
            logging_dir=f"{self.tmp_dir}/select",
            depends=count,
        )
        with self.assertRaises(OSError):
            select.run()
        # dependency was already launched: the second attempt sees its incomplete task
        with self.assertRaises(PartitionFailure):
            select.run()
        self.assertEqual(seen, [])

    def test_dependent_stage_without_skip_completed(self):
        seen = []
        count = LocalPipelineExecutor(
            pipeline=[lambda data, rank, world_size: None],
            tasks=2,
            workers=1,
            logging_dir=f"{self.tmp_dir}/count",
            skip_completed=False,
        )
        select = LocalPipelineExecutor(
            pipeline=[lambda data, rank, world_size: seen.append(rank)],
            logging_dir=f"{self.tmp_dir}/select",
            depends=count,
            skip_completed=False,
        )
        select.run()
        self.assertEqual(seen, [0])

    def test_invalid_tasks(self):
        with self.assertRaises(ValueError):
            LocalPipelineExecutor(pipeline=[], tasks=0, logging_dir=f"{self.tmp_dir}/invalid")
