import datetime
import json
import math
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import IO, Callable

import humanize


INDENT = " " * 4


def _human_duration(seconds: float, minimum_unit: str = "seconds") -> str:
    return humanize.precisedelta(datetime.timedelta(seconds=seconds), minimum_unit=minimum_unit)


@dataclass
class MetricStats:
    """
    Running total/mean/variance of one metric. Two instances from different tasks can be added together.
    """

    total: float = 0
    n: int = 0
    mean: float = 0.0
    min: float = float("inf")
    max: float = float("-inf")
    _running_variance: float = 0.0
    unit: str = "record"

    def update(self, x: float, unit: str = None):
        if unit:
            self.unit = unit
        self.total += x
        self.n += 1
        self.min = min(self.min, x)
        self.max = max(self.max, x)

        # https://en.wikipedia.org/wiki/Algorithms_for_calculating_variance#Welford%27s_online_algorithm
        delta = x - self.mean
        self.mean += delta / self.n
        if self.n > 1:
            self._running_variance += delta * (x - self.mean)

    @property
    def variance(self):
        return self._running_variance / (self.n - 1) if self.n > 1 else 0.0

    @property
    def standard_deviation(self):
        return math.sqrt(self.variance)

    def __add__(self, other):
        if not isinstance(other, MetricStats):
            other = MetricStats.from_dict(other)
        # https://en.wikipedia.org/wiki/Algorithms_for_calculating_variance#Parallel_algorithm
        n = self.n + other.n
        mean = running_variance = 0.0
        if n > 0:
            mean = (self.n * self.mean + other.n * other.mean) / n
            delta = self.mean - other.mean
            running_variance = self._running_variance + other._running_variance + delta * delta * self.n * other.n / n
        return MetricStats(
            total=self.total + other.total,
            n=n,
            mean=mean,
            min=min(self.min, other.min),
            max=max(self.max, other.max),
            _running_variance=running_variance,
            unit=self.unit if self.unit != "record" else other.unit,
        )

    def to_dict(self):
        if self.n == 0:
            return 0
        if self.n == self.total and self.min == self.max == 1:
            # plain counter
            return self.total
        data = {"total": self.total, "n": self.n, "mean": self.mean}
        if self.min != self.max:
            data |= {"std_dev": self.standard_deviation, "min": self.min, "max": self.max}
        if self.unit != "record":
            data["unit"] = self.unit
        return data

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            return cls(total=data, n=data, mean=1, min=1, max=1) if data else cls()
        n = data["n"]
        mean = data["mean"]
        std_dev = data.get("std_dev", 0.0)
        return cls(
            total=data["total"],
            n=n,
            mean=mean,
            min=data.get("min", mean),
            max=data.get("max", mean),
            _running_variance=std_dev * std_dev * (n - 1),
            unit=data.get("unit", "record"),
        )

    def __repr__(self):
        if self.n == self.total and self.min == self.max == 1:
            return str(self.total)
        spread = f"±{self.standard_deviation:.0f}" if self.standard_deviation else ""
        return f"{self.total} [{self.mean:.2f}{spread}/{self.unit}]"


@dataclass
class TimingStats(MetricStats):
    """
    Wall time spent inside a `with step.track_time():` block. `n_tasks` and `global_*` track the spread of the
    total time across tasks once stats from several tasks are merged.
    """

    n_tasks: int = 1
    global_mean: float = 0.0
    global_std_dev: float = 0.0

    def __enter__(self):
        self._entry_time = time.perf_counter()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.update(time.perf_counter() - self._entry_time)

    def update(self, x: float, unit: str = None):
        super().update(x, unit)
        if self.n_tasks == 1:
            self.global_mean = self.total

    def __add__(self, other: "TimingStats"):
        merged = super().__add__(other)
        n_tasks = self.n_tasks + other.n_tasks
        global_mean = (self.n_tasks * self.global_mean + other.n_tasks * other.global_mean) / n_tasks
        squares = (
            self.global_std_dev**2 * (self.n_tasks - 1)
            + other.global_std_dev**2 * (other.n_tasks - 1)
            + (self.global_mean - other.global_mean) ** 2 * self.n_tasks * other.n_tasks / n_tasks
        )
        return TimingStats(
            total=merged.total,
            n=merged.n,
            mean=merged.mean,
            min=merged.min,
            max=merged.max,
            _running_variance=merged._running_variance,
            unit=merged.unit,
            n_tasks=n_tasks,
            global_mean=global_mean,
            global_std_dev=math.sqrt(squares / (n_tasks - 1)),
        )

    def get_repr(self, total_time: float = 0.0):
        if self.total == 0:
            return "Time not computed"
        frac = self.global_mean / total_time if total_time > 0 else 0
        return (
            f"({frac:.2%}) {_human_duration(self.global_mean)}"
            + (f"±{_human_duration(self.global_std_dev)}/task" if self.global_std_dev else "")
            + f" [{_human_duration(self.mean, 'milliseconds')}/{self.unit}]"
        )

    def to_dict(self):
        return {
            "total": self.total,
            "n": self.n,
            "mean": self.mean,
            "std_dev": self.standard_deviation,
            "n_tasks": self.n_tasks,
            "global_mean": self.global_mean,
            "global_std_dev": self.global_std_dev,
            "total_human": _human_duration(self.total),
        }

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict) or not data.get("n"):
            return cls()
        std_dev = data.get("std_dev", 0.0)
        return cls(
            total=data["total"],
            n=data["n"],
            mean=data["mean"],
            _running_variance=std_dev * std_dev * (data["n"] - 1),
            n_tasks=data.get("n_tasks", 1),
            global_mean=data.get("global_mean", data["total"]),
            global_std_dev=data.get("global_std_dev", 0.0),
        )


class Stats:
    """
    Stats for a particular pipeline step

    Args:
        name: The name of the step
    """

    def __init__(self, name: str):
        self.name = name
        self.time_stats = TimingStats()
        self.stats: defaultdict[str, MetricStats] = defaultdict(MetricStats)

    def __getitem__(self, item: str) -> MetricStats:
        return self.stats[item]

    def __add__(self, stat: "Stats"):
        assert self.name == stat.name, f"Can not merge stats from different steps {self.name} != {stat.name}"
        result = Stats(self.name)
        result.time_stats = self.time_stats + stat.time_stats
        for key in self.stats.keys() | stat.stats.keys():
            result.stats[key] = self.stats.get(key, MetricStats()) + stat.stats.get(key, MetricStats())
        return result

    def __repr__(self, total_time: float = 0.0):
        lines = [self.name]
        if self.time_stats.total > 0:
            lines.append(f"Runtime: {self.time_stats.get_repr(total_time)}")
        if self.stats:
            lines.append("Stats: {" + ", ".join(f"{key}: {value}" for key, value in sorted(self.stats.items())) + "}")
        return f"\n{INDENT}".join(lines)

    def to_dict(self):
        return {
            "name": self.name,
            "time_stats": self.time_stats.to_dict(),
            "stats": {key: value.to_dict() for key, value in self.stats.items()},
        }

    @classmethod
    def from_dict(cls, data):
        stats = cls(data["name"])
        stats.time_stats = TimingStats.from_dict(data["time_stats"])
        for key, value in data["stats"].items():
            stats.stats[key] = MetricStats.from_dict(value)
        return stats


class PipelineStats:
    """Stats of every step of a pipeline, for one task or merged over several."""

    def __init__(self, stats: list[Stats | Callable] = None):
        self.stats: list[Stats] = stats if stats else []
        if self.stats and not isinstance(self.stats[0], Stats):
            self.stats = [pipeline_step.stats for pipeline_step in self.stats if hasattr(pipeline_step, "stats")]

    def __add__(self, pipestat: "PipelineStats"):
        if not self.stats:
            return PipelineStats(pipestat.stats)
        if not pipestat.stats:
            return PipelineStats(self.stats)
        return PipelineStats([x + y for x, y in zip(self.stats, pipestat.stats)])

    @property
    def total_time(self):
        return sum(stat.time_stats.global_mean for stat in self.stats)

    def get_repr(self, text=None):
        header = f"\n\n{'📉' * 3} Stats{': ' + text if text else ''} {'📉' * 3}\n\n"
        body = f"Total Runtime: {_human_duration(self.total_time)}\n\n"
        return header + body + "\n".join(stat.__repr__(self.total_time) for stat in self.stats)

    def __repr__(self):
        return self.get_repr()

    def to_json(self):
        return json.dumps([stat.to_dict() for stat in self.stats], indent=4)

    @classmethod
    def from_json(cls, data):
        return PipelineStats([Stats.from_dict(stat) for stat in data])

    def save_to_disk(self, file: IO):
        file.write(self.to_json())
