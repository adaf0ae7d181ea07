from unittest import TestCase

from topclients.pipeline.base import PipelineStep


class DummyPipelineStep(PipelineStep):
    _requires_dependencies = [
        "xxhash",
        "non_existent_dependency1",
        ("non_existent_dependency2", "non_existent_dependency2-wheel"),
    ]

    def run(self, data, rank: int = 0, world_size: int = 1):
        yield from data


class CountingStep(PipelineStep):
    type = "🧪 - TEST"
    name = "counting"

    def run(self, data, rank: int = 0, world_size: int = 1):
        for item in data:
            self.stat_update("seen")
            with self.track_time():
                yield item


class TestPipelineStep(TestCase):
    def test_init_pipeline_step_with_missing_dependencies(self):
        with self.assertRaisesRegex(
            ImportError,
            "`non_existent_dependency1` and `non_existent_dependency2`.*`pip install non_existent_dependency1 non_existent_dependency2-wheel`",
        ):
            DummyPipelineStep()

    def test_call_runs_and_tracks_stats(self):
        step = CountingStep()
        self.assertEqual(list(step(["a", "b", "c"])), ["a", "b", "c"])
        self.assertEqual(step.stats["seen"].total, 3)
        self.assertEqual(step.stats.time_stats.n, 3)
        self.assertEqual(repr(step), "🧪 - TEST: counting")
