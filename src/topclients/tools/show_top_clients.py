import argparse
import os.path

from topclients.pipeline.sinks import RESULT_KEY, FolderResultSink
from topclients.utils._import_utils import is_rich_available


if not is_rich_available():
    raise ImportError("Please install `rich` to run this command (`pip install rich`).")

from rich.console import Console  # noqa: E402
from rich.table import Table  # noqa: E402


parser = argparse.ArgumentParser("Display the latest stored top clients.")

parser.add_argument(
    "path", type=str, nargs="?", help="Path to the results folder. Defaults to current directory.", default=os.getcwd()
)
parser.add_argument("--key", "-k", type=str, help=f"Snapshot key. Defaults to {RESULT_KEY}.", default=RESULT_KEY)


def main():
    args = parser.parse_args()
    console = Console()
    snapshot = FolderResultSink(args.path).read(args.key)
    if snapshot is None:
        console.print(f"[red]not found[/red]: no result stored under {args.key!r} in {args.path}")
        raise SystemExit(1)

    table = Table(title=f"{args.key} (version {snapshot.version})")
    table.add_column("#", justify="right")
    table.add_column("Client")
    table.add_column("Requests", justify="right")
    for position, entry in enumerate(snapshot.results, start=1):
        table.add_row(str(position), entry.key, str(entry.count))
    console.print(table)


if __name__ == "__main__":
    main()
