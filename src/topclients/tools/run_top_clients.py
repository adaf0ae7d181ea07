import argparse

from topclients.config import TopClientsConfig
from topclients.orchestrator import TopClientsJob
from topclients.utils.logging import logger


parser = argparse.ArgumentParser("Compute the top N clients (by request count) of a folder of access logs.")

parser.add_argument("input", type=str, help="Folder (local path or fsspec url) with the access logs.")
parser.add_argument("output", type=str, help="Working folder for this run: shuffle files, logs and stats.")
parser.add_argument("--results", type=str, help="Folder where the result snapshot is stored.", default=None)
parser.add_argument("--top-n", "-n", type=int, help="Number of clients to keep. Defaults to 10.", default=10)
parser.add_argument("--tasks", type=int, help="Number of counting tasks (partitions). Defaults to 1.", default=1)
parser.add_argument("--workers", type=int, help="Simultaneous tasks, -1 for one per task.", default=-1)
parser.add_argument(
    "--reduce-tasks",
    type=int,
    help="Reducer tasks. Values above 1 merge partial top N lists instead of using a single reducer.",
    default=1,
)
parser.add_argument("--format", choices=("text", "stream"), help="Input format. Defaults to text.", default="text")
parser.add_argument("--window-minutes", type=int, help="Window read from a stream. Defaults to 60.", default=60)
parser.add_argument("--end-time", type=int, help="Window end in epoch ms. Defaults to now.", default=None)
parser.add_argument("--result-key", type=str, help="Key of the result snapshot. Defaults to topN.", default="topN")
parser.add_argument("--no-skip-completed", action="store_true", help="Rerun tasks completed by a previous attempt.")


def main():
    args = parser.parse_args()
    config = TopClientsConfig(
        input_folder=args.input,
        output_folder=args.output,
        results_folder=args.results,
        top_n=args.top_n,
        map_tasks=args.tasks,
        workers=args.workers,
        reduce_tasks=args.reduce_tasks,
        input_format=args.format,
        window_minutes=args.window_minutes,
        end_time=args.end_time,
        result_key=args.result_key,
        skip_completed=not args.no_skip_completed,
    )
    results = TopClientsJob(config).run()
    logger.info(f"Top {config.top_n} clients stored under {config.result_key!r} in {config.results_path}")
    for position, entry in enumerate(results, start=1):
        logger.info(f"{position:>3}. {entry.key} {entry.count}")


if __name__ == "__main__":
    main()
