from abc import ABC, abstractmethod
from itertools import chain

from topclients.utils._import_utils import check_required_dependencies
from topclients.utils.stats import Stats


class PipelineStep(ABC):
    """Base pipeline block, all blocks should inherit from this one.
        Takes care of checking optional dependencies and of keeping per-step stats

    Args:
        name: Name of the step
        type: Type of the step
            Types are high-level categories of steps, e.g. "Reader", "Counter", "Reducer", etc.
    """

    name: str = None
    type: str = None

    def __new__(cls, *args, **kwargs):
        """
        Checks if this block or its superclasses' `_requires_dependencies` are installed and raises an error otherwise.
        """
        required_dependencies = chain.from_iterable(getattr(t, "_requires_dependencies", []) for t in cls.mro())
        if required_dependencies:
            check_required_dependencies(cls.__name__, required_dependencies)
        return super().__new__(cls)

    def __init__(self):
        super().__init__()
        self.stats = Stats(str(self))

    def stat_update(self, *labels, value: int = 1, unit: str = None):
        """
        Register statistics. `stat_update("metric1", "metric2")` will add 1 to the count of both metrics. Using
        `stat_update("mymetric", value=15)` will increment the value of "mymetric" by 15, and 15 will be used to
        compute the mean, min, max and std dev of "mymetric".

        Args:
          *labels: names of stats to change
          value: int:  (Default value = 1)
          unit: str:  (Default value = None) None is treated as record (so when printing you will see /record)
        """
        for label in labels:
            self.stats[label].update(value, unit)

    def track_time(self, unit: str = None):
        """
            Track the time a given block of code takes to run and add it to statistics. If this block is not applied
            on a record level, please specify "unit"
        """
        if unit:
            self.stats.time_stats.unit = unit
        return self.stats.time_stats

    def __repr__(self):
        return f"{self.type}: {self.name}"

    @abstractmethod
    def run(self, data, rank: int = 0, world_size: int = 1):
        """
        Main entrypoint for any pipeline step. `data` is a generator of whatever the previous step yields
        (`LogRecord` after a reader, `KeyCount` after the key extractor), and this method should yield the items for
        the next step.

        Args:
          data: generator from the previous step, or None for the first step
          rank: int:  (Default value = 0) used when each task needs to choose a shard of data to work on
          world_size: int:  (Default value = 1) total number of tasks
        """
        if data:
            yield from data

    def __call__(self, data=None, rank: int = 0, world_size: int = 1):
        """
            Shorthand way of calling the `run` method.
        """
        return self.run(data, rank, world_size)
