import json
import unittest

from topclients.utils.stats import MetricStats, PipelineStats, Stats


class TestStats(unittest.TestCase):
    def test_counter_merge(self):
        first, second = Stats("step"), Stats("step")
        for _ in range(3):
            first["dropped"].update(1)
        second["dropped"].update(1)
        second["keys"].update(10, unit="partition")
        merged = first + second
        self.assertEqual(merged["dropped"].total, 4)
        self.assertEqual(merged["keys"].total, 10)
        self.assertEqual(merged["keys"].unit, "partition")

    def test_mean_and_std_dev_merge(self):
        values = [1, 5, 9, 2, 2]
        left, right = MetricStats(), MetricStats()
        for value in values[:2]:
            left.update(value)
        for value in values[2:]:
            right.update(value)
        merged = left + right
        self.assertEqual(merged.n, 5)
        self.assertAlmostEqual(merged.mean, 3.8)
        self.assertAlmostEqual(merged.variance, 10.7)
        self.assertEqual((merged.min, merged.max), (1, 9))

    def test_merge_different_steps(self):
        with self.assertRaises(AssertionError):
            Stats("a") + Stats("b")

    def test_pipeline_stats_from_saved_json(self):
        stats = Stats("step")
        stats["records"].update(1)
        stats["keys"].update(3)
        stats["keys"].update(5)
        with stats.time_stats:
            pass
        loaded = PipelineStats.from_json(json.loads(PipelineStats([stats]).to_json()))
        merged = loaded + PipelineStats([stats])
        self.assertEqual(merged.stats[0]["records"].total, 2)
        self.assertEqual(merged.stats[0]["keys"].n, 4)
        self.assertEqual(merged.stats[0].time_stats.n_tasks, 2)
        self.assertIn("Total Runtime", merged.get_repr("All tasks"))
