import json
import random
import shutil
import tempfile
import unittest
from collections import Counter

from topclients.config import TopClientsConfig
from topclients.data import LogRecord, TopEntry
from topclients.errors import PartitionFailure
from topclients.io import get_datafolder
from topclients.orchestrator import TopClientsJob, count_partition, run_top_n
from topclients.pipeline.sinks import RESULT_KEY, FolderResultSink, InMemoryResultSink, Snapshot

from .utils import write_files


def random_log(seed: int, n: int = 400) -> list[str]:
    rng = random.Random(seed)
    lines = []
    for _ in range(n):
        if rng.random() < 0.05:
            lines.append(rng.choice(["", "garbage", " 1.1.1.1 GET /"]))
        else:
            lines.append(f"192.168.{rng.randint(0, 2)}.{rng.randint(0, 12)} GET /{rng.randint(0, 99)}")
    return lines


def expected_counts(lines: list[str]) -> Counter:
    return Counter(line.split(" ")[0] for line in lines if " " in line and not line.startswith(" "))


def failing_partition():
    yield "1.1.1.1 GET /"
    raise OSError("connection reset")


def failing_partitions():
    yield ["1.1.1.1 GET /"]
    raise OSError("listing failed")


class TestRunTopN(unittest.TestCase):
    def test_scenario(self):
        records = ["1.1.1.1 GET /a", "1.1.1.1 GET /b", "2.2.2.2 GET /a"]
        self.assertEqual(run_top_n([records], 10), [TopEntry("1.1.1.1", 2), TopEntry("2.2.2.2", 1)])

    def test_empty_input_stores_empty_snapshot(self):
        sink = InMemoryResultSink()
        self.assertIsNone(sink.read(RESULT_KEY))
        self.assertEqual(run_top_n([], 10, sink=sink), [])
        self.assertEqual(run_top_n([[]], 10), [])
        self.assertEqual(sink.read(RESULT_KEY), Snapshot(version=1, results=[]))

    def test_malformed_records_are_dropped(self):
        self.assertEqual(run_top_n([["", "nospace", " 3.3.3.3 x", "4.4.4.4 GET /"]], 10), [TopEntry("4.4.4.4", 1)])

    def test_log_records(self):
        partition = [LogRecord(text="5.5.5.5 GET /", id="0"), "5.5.5.5 GET /x"]
        self.assertEqual(count_partition(partition).to_dict(), {"5.5.5.5": 2})

    def test_counts_are_exact(self):
        lines = random_log(0)
        counts = expected_counts(lines)
        results = run_top_n([lines[:100], lines[100:250], lines[250:]], 5)
        self.assertEqual(len(results), 5)
        for entry in results:
            self.assertEqual(entry.count, counts[entry.key])
        self.assertEqual([entry.count for entry in results], sorted(counts.values(), reverse=True)[:5])

    def test_size_is_min_of_n_and_distinct_keys(self):
        lines = random_log(1)
        distinct = len(expected_counts(lines))
        for n in (0, 1, distinct - 1, distinct, distinct + 10):
            with self.subTest(n=n):
                self.assertEqual(len(run_top_n([lines], n)), min(n, distinct))

    def test_ties_go_to_first_seen_key(self):
        records = ["9.9.9.9 a", "8.8.8.8 a", "7.7.7.7 a", "8.8.8.8 b", "7.7.7.7 b", "9.9.9.9 b"]
        self.assertEqual(
            run_top_n([records[:3], records[3:]], 2), [TopEntry("9.9.9.9", 2), TopEntry("8.8.8.8", 2)]
        )

    def test_partitioning_and_buckets_do_not_change_totals(self):
        lines = random_log(2)
        reference = run_top_n([lines], 1000)
        for partitions in ([lines[:1], lines[1:]], [lines[i::7] for i in range(7)]):
            for num_buckets in (1, 3):
                results = run_top_n(partitions, 1000, num_buckets=num_buckets)
                self.assertEqual(dict(results), dict(reference))

    def test_idempotent(self):
        lines = random_log(3)
        partitions = [lines[:200], lines[200:]]
        first_sink, second_sink = InMemoryResultSink(), InMemoryResultSink()
        run_top_n(partitions, 10, sink=first_sink)
        run_top_n(partitions, 10, sink=second_sink)
        self.assertEqual(first_sink.read(RESULT_KEY).to_json(), second_sink.read(RESULT_KEY).to_json())

    def test_failed_partition_writes_nothing(self):
        sink = InMemoryResultSink()
        with self.assertRaises(PartitionFailure):
            run_top_n([["1.1.1.1 GET /"], failing_partition()], 10, sink=sink)
        self.assertIsNone(sink.read(RESULT_KEY))

    def test_failed_partition_listing_writes_nothing(self):
        sink = InMemoryResultSink()
        with self.assertRaises(PartitionFailure) as cm:
            run_top_n(failing_partitions(), 10, sink=sink)
        self.assertIn("Partition 1", str(cm.exception))
        self.assertIsNone(sink.read(RESULT_KEY))


class TestTopClientsJob(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.tmp_dir)
        self.input_folder = get_datafolder(f"{self.tmp_dir}/input")
        self.lines = [random_log(seed, 150) for seed in range(5)]
        write_files(self.input_folder, {f"access_{i}.log": lines for i, lines in enumerate(self.lines)})
        self.counts = expected_counts([line for lines in self.lines for line in lines])

    def make_config(self, name: str, **kwargs) -> TopClientsConfig:
        return TopClientsConfig(
            input_folder=self.input_folder.path,
            output_folder=f"{self.tmp_dir}/{name}",
            results_folder=f"{self.tmp_dir}/results",
            workers=1,
            **kwargs,
        )

    def assert_exact_top(self, results: list[TopEntry], n: int):
        self.assertEqual(len(results), min(n, len(self.counts)))
        for entry in results:
            self.assertEqual(entry.count, self.counts[entry.key])
        self.assertEqual([entry.count for entry in results], sorted(self.counts.values(), reverse=True)[:n])

    def test_single_reducer(self):
        results = TopClientsJob(self.make_config("single", map_tasks=3, top_n=10)).run()
        self.assert_exact_top(results, 10)
        # same partitioning and arrival order as the in-process run
        in_process = run_top_n([[line for lines in self.lines[rank::3] for line in lines] for rank in range(3)], 10)
        self.assertEqual(results, in_process)
        logs = get_datafolder(f"{self.tmp_dir}/single/logs")
        for path in ("count/stats.json", "count/completions/00002", "select/logs/task_00000.log"):
            self.assertTrue(logs.isfile(path), path)

    def test_tree_reduce(self):
        results = TopClientsJob(self.make_config("tree", map_tasks=2, top_n=8, reduce_tasks=2, reduce_buckets=4)).run()
        self.assert_exact_top(results, 8)

    def test_rerun_overwrites_snapshot(self):
        first = TopClientsJob(self.make_config("run1", map_tasks=2, top_n=5)).run()
        second = TopClientsJob(self.make_config("run2", map_tasks=2, top_n=5)).run()
        self.assertEqual(first, second)
        snapshot = FolderResultSink(f"{self.tmp_dir}/results").read(RESULT_KEY)
        self.assertEqual(snapshot.version, 2)
        self.assertEqual(snapshot.results, second)

    def test_stream_window(self):
        events = [
            {"timestamp": 3_600_000 - 1, "body": "1.1.1.1 GET /old"},
            {"timestamp": 3_600_000, "body": "2.2.2.2 GET /a"},
            {"timestamp": 5_000_000, "body": "2.2.2.2 GET /b"},
            {"timestamp": 7_000_000, "body": "3.3.3.3 GET /c"},
            {"timestamp": 7_200_000, "body": "1.1.1.1 GET /future"},
        ]
        stream_folder = get_datafolder(f"{self.tmp_dir}/stream")
        write_files(stream_folder, {"events.jsonl": [json.dumps(event) for event in events]})
        config = TopClientsConfig(
            input_folder=stream_folder.path,
            output_folder=f"{self.tmp_dir}/stream_run",
            input_format="stream",
            window_minutes=60,
            end_time=7_200_000,
        )
        results = TopClientsJob(config).run()
        self.assertEqual(results, [TopEntry("2.2.2.2", 2), TopEntry("3.3.3.3", 1)])

    def test_undecodable_line_keeps_rest_of_file(self):
        log_folder = get_datafolder(f"{self.tmp_dir}/bad_bytes")
        with log_folder.open("a.log", "wb") as f:
            f.write(b"1.1.1.1 GET /a\n2.2.2.2 GET /\xff\xfe\n3.3.3.3 GET /c\n3.3.3.3 GET /d\n")
        config = TopClientsConfig(input_folder=log_folder.path, output_folder=f"{self.tmp_dir}/bad_bytes_run")
        results = TopClientsJob(config).run()
        self.assertEqual(results, [TopEntry("3.3.3.3", 2), TopEntry("1.1.1.1", 1)])

    def test_rejects_non_persistent_sink(self):
        with self.assertRaises(ValueError):
            TopClientsJob(self.make_config("memory"), sink=InMemoryResultSink())


class TestTopClientsConfig(unittest.TestCase):
    def test_defaults(self):
        config = TopClientsConfig(input_folder="in", output_folder="out")
        self.assertEqual(config.top_n, 10)
        self.assertEqual(config.window_minutes, 60)
        self.assertEqual(config.buckets, 1)
        self.assertEqual(config.results_path, "out/results")
        self.assertEqual(config.result_key, "topN")

    def test_validation(self):
        for kwargs in ({"top_n": -1}, {"map_tasks": 0}, {"reduce_tasks": 3, "reduce_buckets": 2}, {"input_format": "x"}):
            with self.subTest(**kwargs), self.assertRaises(ValueError):
                TopClientsConfig(input_folder="in", output_folder="out", **kwargs)
